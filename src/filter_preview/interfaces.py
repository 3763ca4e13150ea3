"""Protocols describing the collaborators the preview scheduler drives."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence

from src.filter_preview.source import VideoSource


class RawFrameProvider(Protocol):
    async def ensure_raw_frame(self, timestamp: float, source: VideoSource) -> Path: ...

    def reset(self) -> None: ...


class FrameRenderer(Protocol):
    async def filter_frame(self, raw_path: Path, filter_args: Sequence[str]) -> Path: ...


class VideoEncoder(Protocol):
    async def encode(self, input_path: Path, filter_args: Sequence[str]) -> Path: ...
