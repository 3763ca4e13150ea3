"""Filter parameter mapping and filter-chain assembly."""

from .chain import (
    FilterState,
    build_filter_args,
    build_filter_chain,
    describe_filter_chain,
)
from .params import FilterParameter, domain_to_slider, format_domain_value, slider_to_domain

__all__ = [
    "FilterParameter",
    "FilterState",
    "build_filter_args",
    "build_filter_chain",
    "describe_filter_chain",
    "domain_to_slider",
    "format_domain_value",
    "slider_to_domain",
]
