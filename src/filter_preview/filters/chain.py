"""Filter state snapshots and ffmpeg filter-chain assembly."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Sequence

from .params import SLIDER_MAX, SLIDER_MIN, FilterParameter, domain_to_slider, format_domain_value

VIDEO_FILTER_FLAG = "-vf"
FRAGMENT_SEPARATOR = ", "
# domain -> slider conversions of the bounds can land a hair outside [0, 100]
_SLIDER_TOLERANCE = 1e-6


def _default_values() -> Dict[FilterParameter, float]:
    return {param: param.default_slider for param in FilterParameter}


@dataclass(frozen=True)
class FilterState:
    """Immutable snapshot of every user-controlled filter input.

    ``values`` holds slider positions (``0..100``), not domain values.
    """

    values: Mapping[FilterParameter, float] = field(default_factory=_default_values)
    custom_expression: str = ""
    lut3d_path: str = ""

    @classmethod
    def default(cls) -> FilterState:
        return cls()

    def value(self, param: FilterParameter) -> float:
        return float(self.values.get(param, param.default_slider))

    def with_value(self, param: FilterParameter, slider: float) -> FilterState:
        slider_value = float(slider)
        if not math.isfinite(slider_value) or not (
            SLIDER_MIN - _SLIDER_TOLERANCE <= slider_value <= SLIDER_MAX + _SLIDER_TOLERANCE
        ):
            raise ValueError(
                f"{param.key} slider value must be between {SLIDER_MIN:g} and {SLIDER_MAX:g}"
            )
        slider_value = min(SLIDER_MAX, max(SLIDER_MIN, slider_value))
        updated = dict(self.values)
        updated[param] = slider_value
        return replace(self, values=updated)

    def with_domain_value(self, param: FilterParameter, value: float) -> FilterState:
        """Set *param* from a value expressed in ffmpeg's eq units."""

        return self.with_value(param, domain_to_slider(param, value))

    def with_custom_expression(self, expression: str) -> FilterState:
        return replace(self, custom_expression=expression or "")

    def with_lut3d_path(self, path: str) -> FilterState:
        return replace(self, lut3d_path=path or "")

    def reset(self) -> FilterState:
        return FilterState.default()

    def eq_is_default(self) -> bool:
        return all(
            math.isclose(self.value(param), param.default_slider, abs_tol=1e-9)
            for param in FilterParameter
        )


def build_eq_fragment(state: FilterState) -> str:
    pairs = [
        f"{param.key}={format_domain_value(param, state.value(param))}"
        for param in FilterParameter
    ]
    return "eq=" + ":".join(pairs)


def build_filter_chain(state: FilterState) -> List[str]:
    """
    Return the filter fragments for *state* in evaluation order.

    The order is ``[custom expression, lut3d, eq]``; each fragment is omitted
    when it would be empty. The eq fragment appears only when at least one
    numeric parameter has moved away from its default.
    """

    fragments: List[str] = []
    custom = state.custom_expression.strip()
    if custom:
        fragments.append(custom)
    lut3d_path = state.lut3d_path.strip()
    if lut3d_path:
        fragments.append(f"lut3d={lut3d_path}")
    if not state.eq_is_default():
        fragments.append(build_eq_fragment(state))
    return fragments


def build_filter_args(fragments: Sequence[str]) -> List[str]:
    """Return ``["-vf", <chain>]``, or nothing when there are no fragments.

    ffmpeg rejects an empty ``-vf`` value, so the flag is only added when
    there is something to pass.
    """

    if not fragments:
        return []
    return [VIDEO_FILTER_FLAG, FRAGMENT_SEPARATOR.join(fragments)]


def describe_filter_chain(state: FilterState) -> str:
    """Compact one-line rendering of the chain for display."""

    return ",".join(build_filter_chain(state))
