"""Raw frame cache keyed by quantized timeline position."""

from __future__ import annotations

import asyncio
import logging
import math
import os
import tempfile
from pathlib import Path
from typing import Dict

from src.filter_preview.render.errors import FileSystemError, NoFrameCaptured
from src.filter_preview.source import VideoSource

logger = logging.getLogger(__name__)

RAW_FRAME_PREFIX = "frame-raw-"
RAW_FRAME_EXTENSION = ".jpeg"


def quantize_timestamp(timestamp: float) -> int:
    """Return *timestamp* (seconds) as whole milliseconds."""

    value = float(timestamp)
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"timestamp must be a finite, non-negative number of seconds (got {timestamp!r})")
    return int(round(value * 1000))


def _has_content(path: Path) -> bool:
    try:
        return path.stat().st_size > 0
    except OSError:
        return False


def _write_temp(path: Path, data: bytes) -> str:
    """Write *data* to a hidden sibling of *path* and return its name."""

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".part", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
    except BaseException:
        _discard(tmp_name)
        raise
    return tmp_name


def _discard(tmp_name: str) -> None:
    try:
        os.unlink(tmp_name)
    except OSError:
        pass


class RawFrameCache:
    """
    Map timeline positions to captured stills inside the cache directory.

    A frame that already exists with non-empty content is returned without
    capturing. Concurrent requests for the same position share one capture.
    Bytes are written to a temporary sibling and renamed into place, so a
    partial or empty file never appears under the final name.

    Every :meth:`reset` starts a new generation. A capture begun in an older
    generation is never renamed into place; it fails with
    :class:`FileSystemError` instead.
    """

    def __init__(self, cache_dir: Path) -> None:
        self._cache_dir = Path(cache_dir)
        self._inflight: Dict[Path, asyncio.Task[Path]] = {}
        self._generation = 0
        self.capture_count = 0

    @property
    def generation(self) -> int:
        return self._generation

    def raw_frame_path(self, timestamp: float) -> Path:
        return self._cache_dir / f"{RAW_FRAME_PREFIX}{quantize_timestamp(timestamp)}{RAW_FRAME_EXTENSION}"

    def reset(self) -> None:
        """Forget in-flight captures and make their results unpublishable."""

        self._generation += 1
        self._inflight.clear()

    async def ensure_raw_frame(self, timestamp: float, source: VideoSource) -> Path:
        path = self.raw_frame_path(timestamp)
        if _has_content(path):
            logger.debug("Raw frame cache hit %s", path.name)
            return path
        task = self._inflight.get(path)
        if task is None:
            task = asyncio.create_task(self._capture(path, timestamp, source, self._generation))
            self._inflight[path] = task
            task.add_done_callback(lambda done, key=path: self._forget(key, done))
        else:
            logger.debug("Joining in-flight capture for %s", path.name)
        # shielded so a cancelled waiter does not abort the capture other waiters share
        return await asyncio.shield(task)

    def _forget(self, key: Path, task: asyncio.Task[Path]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Capture for %s failed: %s", key.name, task.exception())

    async def _capture(self, path: Path, timestamp: float, source: VideoSource, generation: int) -> Path:
        self.capture_count += 1
        data = await source.capture(timestamp)
        if not data:
            raise NoFrameCaptured(timestamp)
        self._check_generation(path, generation)
        try:
            tmp_name = await asyncio.to_thread(_write_temp, path, data)
        except OSError as exc:
            raise FileSystemError(f"Unable to write raw frame {path}: {exc}") from exc
        # the rename stays on the loop so no reset can slip in between check and replace
        try:
            self._check_generation(path, generation)
        except FileSystemError:
            _discard(tmp_name)
            raise
        try:
            os.replace(tmp_name, path)
        except OSError as exc:
            _discard(tmp_name)
            raise FileSystemError(f"Unable to write raw frame {path}: {exc}") from exc
        logger.debug("Captured raw frame %s (%d bytes)", path.name, len(data))
        return path

    def _check_generation(self, path: Path, generation: int) -> None:
        if generation != self._generation:
            logger.debug("Discarding raw frame %s captured before cache reset", path.name)
            raise FileSystemError(f"Raw frame {path.name} discarded: cache was reset during capture")
