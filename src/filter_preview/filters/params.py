"""Numeric eq parameters and their slider/domain mapping."""

from __future__ import annotations

from enum import Enum

SLIDER_MIN = 0.0
SLIDER_MAX = 100.0
EQ_DECIMALS = 3


class FilterParameter(Enum):
    """The four eq parameters, each carrying its domain bounds and default.

    Member order matches the order the parameters appear in the eq fragment.
    """

    BRIGHTNESS = ("brightness", -0.2, 0.3, 0.0)
    CONTRAST = ("contrast", 0.5, 2.0, 1.0)
    SATURATION = ("saturation", 0.0, 3.0, 1.0)
    GAMMA = ("gamma", 0.6, 3.0, 1.0)

    def __init__(self, key: str, domain_min: float, domain_max: float, default: float) -> None:
        self.key = key
        self.domain_min = domain_min
        self.domain_max = domain_max
        self.default = default

    @property
    def span(self) -> float:
        return self.domain_max - self.domain_min

    @property
    def default_slider(self) -> float:
        return domain_to_slider(self, self.default)

    @classmethod
    def from_key(cls, key: str) -> FilterParameter:
        """Return the parameter named *key* (case-insensitive)."""

        normalized = key.strip().lower()
        for member in cls:
            if member.key == normalized:
                return member
        raise ValueError(
            f"Unknown filter parameter {key!r}; expected one of: "
            + ", ".join(member.key for member in cls)
        )


def slider_to_domain(param: FilterParameter, slider: float) -> float:
    """Map a ``[0, 100]`` slider position linearly onto *param*'s domain."""

    return (float(slider) / SLIDER_MAX) * param.span + param.domain_min


def domain_to_slider(param: FilterParameter, value: float) -> float:
    """Inverse of :func:`slider_to_domain`."""

    return ((float(value) - param.domain_min) / param.span) * SLIDER_MAX


def format_domain_value(param: FilterParameter, slider: float) -> str:
    """Render the domain value for *slider* with three decimals, as ffmpeg receives it."""

    # adding 0.0 folds a rounded -0.0 into 0.0
    value = round(slider_to_domain(param, slider), EQ_DECIMALS) + 0.0
    return f"{value:.{EQ_DECIMALS}f}"
