"""Configuration dataclasses for the filter preview tool."""
from dataclasses import dataclass


@dataclass
class PreviewConfig:
    """Debounce behaviour of the live preview scheduler."""

    debounce_ms: int = 100


@dataclass
class RenderConfig:
    """External render tool resolution and invocation safeguards."""

    binary: str = "ffmpeg"
    timeout_seconds: float = 0.0
    kill_superseded: bool = False
    capture_quality: int = 3


@dataclass
class ExportConfig:
    """Encoder settings used when re-encoding the whole source."""

    crf: int = 16
    video_codec: str = "libx264"
    profile: str = "baseline"
    x264opts: str = "level=3.0"
    threads: int = 0
    suffix: str = "-encoded.mp4"


@dataclass
class CacheConfig:
    """Location and lifetime of the per-session frame cache."""

    root: str = ""
    keep_on_exit: bool = False


@dataclass
class CLIConfig:
    """CLI presentation controls."""

    emit_json: bool = False


@dataclass
class AppConfig:
    """Aggregated configuration loaded from the user-provided TOML file."""

    preview: PreviewConfig
    render: RenderConfig
    export: ExportConfig
    cache: CacheConfig
    cli: CLIConfig
