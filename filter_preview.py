"""Public shim exposing the filter_preview CLI and library surface."""

from __future__ import annotations

from typing import Callable, cast

import src.filter_preview.cli_entry as _cli_entry
from src.config_loader import ConfigError, fresh_app_config, load_config
from src.filter_preview.cache import CacheDirectory, RawFrameCache
from src.filter_preview.export import ExportEncoder
from src.filter_preview.filters import (
    FilterParameter,
    FilterState,
    build_filter_args,
    build_filter_chain,
    domain_to_slider,
    slider_to_domain,
)
from src.filter_preview.render import (
    BinaryNotFound,
    FileSystemError,
    NoFrameCaptured,
    ProcessExecutionFailed,
    RenderError,
    RenderInvoker,
)
from src.filter_preview.scheduler import PreviewDisplay, PreviewScheduler
from src.filter_preview.session import ExportUnavailable, PreviewSession

__all__ = (
    "main",
    "BinaryNotFound",
    "CacheDirectory",
    "ConfigError",
    "ExportEncoder",
    "ExportUnavailable",
    "FileSystemError",
    "FilterParameter",
    "FilterState",
    "NoFrameCaptured",
    "PreviewDisplay",
    "PreviewScheduler",
    "PreviewSession",
    "ProcessExecutionFailed",
    "RawFrameCache",
    "RenderError",
    "RenderInvoker",
    "build_filter_args",
    "build_filter_chain",
    "domain_to_slider",
    "fresh_app_config",
    "load_config",
    "slider_to_domain",
)

main = _cli_entry.main


if __name__ == "__main__":
    _entry_point = cast(Callable[[], None], main)
    _entry_point()
