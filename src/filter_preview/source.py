"""Video sources that can hand back the decoded picture at a timeline position."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Protocol, runtime_checkable

from src.filter_preview.render.invoker import RenderInvoker

logger = logging.getLogger(__name__)


@runtime_checkable
class VideoSource(Protocol):
    """Anything able to produce encoded still bytes for a timeline position."""

    @property
    def path(self) -> Path: ...

    async def capture(self, timestamp: float) -> bytes: ...


class FfmpegVideoSource:
    """Grab frames from a file on disk by asking ffmpeg for a single JPEG."""

    def __init__(self, path: Path, invoker: RenderInvoker) -> None:
        self._path = Path(path)
        self._invoker = invoker

    @property
    def path(self) -> Path:
        return self._path

    async def capture(self, timestamp: float) -> bytes:
        started = time.perf_counter()
        data = await self._invoker.capture_frame(self._path, timestamp)
        logger.debug(
            "capture frame at %.3fs took %d ms (%d bytes)",
            timestamp,
            int((time.perf_counter() - started) * 1000),
            len(data),
        )
        return data

    def __repr__(self) -> str:
        return f"FfmpegVideoSource({str(self._path)!r})"
