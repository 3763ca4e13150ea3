"""Configuration loader that parses and validates user-provided TOML."""

from __future__ import annotations

import logging
import math
import tomllib
from dataclasses import fields, is_dataclass
from pathlib import Path
from typing import Any, Dict

from .datatypes import (
    AppConfig,
    CacheConfig,
    CLIConfig,
    ExportConfig,
    PreviewConfig,
    RenderConfig,
)

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the configuration file is malformed or fails validation."""


_RENDER_TIMEOUT_NOT_NUMBER_MSG = "render.timeout_seconds must be a number"
_RENDER_TIMEOUT_NOT_FINITE_MSG = "render.timeout_seconds must be a finite number"
_RENDER_TIMEOUT_NEGATIVE_MSG = "render.timeout_seconds must be >= 0"


def _coerce_bool(value: Any, dotted_key: str) -> bool:
    """Return a bool, coercing simple 0/1 representations when necessary."""

    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"0", "1"}:
            return normalized == "1"
        if normalized in {"true", "false"}:
            return normalized == "true"
    raise ConfigError(f"{dotted_key} must be a boolean (use true/false).")


def _coerce_int(value: Any, dotted_key: str) -> int:
    """Return an int, rejecting bools and non-integral floats."""

    if isinstance(value, bool):
        raise ConfigError(f"{dotted_key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as exc:
            raise ConfigError(f"{dotted_key} must be an integer") from exc
    raise ConfigError(f"{dotted_key} must be an integer")


def _sanitize_section(raw: dict[str, Any], name: str, cls):
    """
    Coerce a raw TOML table into an instance of ``cls`` with cleaned booleans.

    Parameters:
        raw (dict[str, Any]): Raw TOML section data.
        name (str): Section name used when reporting validation errors.
        cls: Dataclass type used to construct the section object.

    Returns:
        Any: Instantiated dataclass populated with values from ``raw``.

    Raises:
        ConfigError: If the section is not a table or contains invalid keys or values.
    """
    if not isinstance(raw, dict):
        raise ConfigError(f"[{name}] must be a table")
    cleaned: Dict[str, Any] = {}
    cls_fields = {field.name: field for field in fields(cls)}
    bool_fields = {name for name, field in cls_fields.items() if field.type is bool}
    int_fields = {name for name, field in cls_fields.items() if field.type is int}
    nested_fields = {
        name: field.type
        for name, field in cls_fields.items()
        if is_dataclass(field.type)
    }
    for key, value in raw.items():
        if key in bool_fields:
            cleaned[key] = _coerce_bool(value, f"{name}.{key}")
        elif key in int_fields:
            cleaned[key] = _coerce_int(value, f"{name}.{key}")
        elif key in nested_fields:
            if not isinstance(value, dict):
                raise ConfigError(f"[{name}.{key}] must be a table")
            cleaned[key] = _sanitize_section(value, f"{name}.{key}", nested_fields[key])
        else:
            cleaned[key] = value
    try:
        return cls(**cleaned)
    except TypeError as exc:
        raise ConfigError(f"Invalid keys in [{name}]: {exc}") from exc


def _require_text(value: Any, dotted_key: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{dotted_key} must be a non-empty string")
    return value.strip()


def _validate(app: AppConfig) -> AppConfig:
    """Normalise field values in place and reject out-of-range settings."""

    if app.preview.debounce_ms < 0:
        raise ConfigError("preview.debounce_ms must be >= 0")

    render_cfg = app.render
    render_cfg.binary = _require_text(render_cfg.binary, "render.binary")
    if isinstance(render_cfg.timeout_seconds, bool):
        raise ConfigError(_RENDER_TIMEOUT_NOT_NUMBER_MSG)
    try:
        timeout = float(render_cfg.timeout_seconds)
    except (TypeError, ValueError) as exc:
        raise ConfigError(_RENDER_TIMEOUT_NOT_NUMBER_MSG) from exc
    if not math.isfinite(timeout):
        raise ConfigError(_RENDER_TIMEOUT_NOT_FINITE_MSG)
    if timeout < 0:
        raise ConfigError(_RENDER_TIMEOUT_NEGATIVE_MSG)
    render_cfg.timeout_seconds = timeout
    if not 2 <= render_cfg.capture_quality <= 31:
        raise ConfigError("render.capture_quality must be between 2 and 31")

    export_cfg = app.export
    if not 0 <= export_cfg.crf <= 51:
        raise ConfigError("export.crf must be between 0 and 51")
    if export_cfg.threads < 0:
        raise ConfigError("export.threads must be >= 0")
    export_cfg.video_codec = _require_text(export_cfg.video_codec, "export.video_codec")
    export_cfg.profile = _require_text(export_cfg.profile, "export.profile")
    export_cfg.x264opts = str(export_cfg.x264opts).strip()
    suffix = _require_text(export_cfg.suffix, "export.suffix")
    if "/" in suffix or "\\" in suffix:
        raise ConfigError("export.suffix may not contain path separators")
    export_cfg.suffix = suffix

    cache_root = str(app.cache.root or "").strip()
    if cache_root:
        root_path = Path(cache_root).expanduser()
        if root_path.exists() and not root_path.is_dir():
            raise ConfigError("cache.root must point to a directory")
        cache_root = str(root_path)
    app.cache.root = cache_root
    return app


def fresh_app_config() -> AppConfig:
    """Return an ``AppConfig`` populated with defaults only."""

    return AppConfig(
        preview=PreviewConfig(),
        render=RenderConfig(),
        export=ExportConfig(),
        cache=CacheConfig(),
        cli=CLIConfig(),
    )


def load_config(path: str) -> AppConfig:
    """
    Read a TOML configuration file and return a validated ``AppConfig``.

    Missing sections fall back to their defaults; unknown sections are
    ignored with a warning so older files keep loading.
    """

    try:
        raw_bytes = Path(path).read_bytes()
    except OSError as exc:
        raise ConfigError(f"Unable to read configuration file {path}: {exc}") from exc
    try:
        text = raw_bytes.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ConfigError("Configuration file must be UTF-8 encoded") from exc
    try:
        raw = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse TOML: {exc}") from exc

    sections = {
        "preview": PreviewConfig,
        "render": RenderConfig,
        "export": ExportConfig,
        "cache": CacheConfig,
        "cli": CLIConfig,
    }
    for unknown in sorted(set(raw) - set(sections)):
        logger.warning("Ignoring unknown configuration section [%s]", unknown)

    built = {
        name: _sanitize_section(raw.get(name, {}), name, cls)
        for name, cls in sections.items()
    }
    app = AppConfig(**built)
    return _validate(app)
