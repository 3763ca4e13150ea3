"""Session context wiring the cache, render tool, scheduler and exporter together."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from types import TracebackType
from typing import Callable, List, Optional

from src.datatypes import AppConfig
from src.filter_preview.cache.directory import CacheDirectory
from src.filter_preview.cache.frames import RawFrameCache, quantize_timestamp
from src.filter_preview.export import ExportEncoder
from src.filter_preview.filters.chain import FilterState, build_filter_args, build_filter_chain
from src.filter_preview.filters.params import FilterParameter
from src.filter_preview.render.invoker import ProcessRunner, RenderInvoker
from src.filter_preview.scheduler.core import PreviewScheduler
from src.filter_preview.scheduler.events import (
    FiltersChanged,
    PlaybackChanged,
    PositionChanged,
    PreviewDisplay,
    SourceChanged,
)
from src.filter_preview.source import FfmpegVideoSource, VideoSource

logger = logging.getLogger(__name__)

SourceFactory = Callable[[Path, RenderInvoker], VideoSource]


class ExportUnavailable(RuntimeError):
    """Raised when an export is requested before any source is loaded."""


class PreviewSession:
    """
    Explicit context for one preview session.

    Owns the cache directory and every pipeline component, holds the current
    filter state, and translates user actions into scheduler events. Use it as
    an async context manager so the scheduler task and cache directory are
    torn down together.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        cache_dir: CacheDirectory | None = None,
        runner: ProcessRunner | None = None,
        source_factory: SourceFactory | None = None,
    ) -> None:
        self.config = config
        self.cache_dir = cache_dir or CacheDirectory.from_config(config.cache)
        self._runner = runner
        self._source_factory: SourceFactory = source_factory or FfmpegVideoSource
        self._filters = FilterState.default()
        self._source: Optional[VideoSource] = None
        self._scheduler_task: Optional[asyncio.Task[None]] = None
        self.invoker: Optional[RenderInvoker] = None
        self.frames: Optional[RawFrameCache] = None
        self.scheduler: Optional[PreviewScheduler] = None
        self.exporter: Optional[ExportEncoder] = None

    async def __aenter__(self) -> PreviewSession:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def start(self) -> None:
        if self._scheduler_task is not None:
            return
        cache_path = self.cache_dir.create()
        self.invoker = RenderInvoker(
            self.config.render,
            self.config.export,
            cache_path,
            runner=self._runner,
        )
        self.frames = RawFrameCache(cache_path)
        self.scheduler = PreviewScheduler(
            self.frames,
            self.invoker,
            debounce_seconds=self.config.preview.debounce_ms / 1000.0,
            kill_superseded=self.config.render.kill_superseded,
            filters=self._filters,
        )
        self.exporter = ExportEncoder(self.invoker)
        self._scheduler_task = asyncio.create_task(self.scheduler.run())

    async def close(self) -> None:
        scheduler = self._require_scheduler()
        scheduler.stop()
        if self._scheduler_task is not None:
            await self._scheduler_task
            self._scheduler_task = None
        await scheduler.cancel_outstanding()
        self.cache_dir.remove()

    def _require_scheduler(self) -> PreviewScheduler:
        if self.scheduler is None:
            raise RuntimeError("PreviewSession.start() has not been called")
        return self.scheduler

    @property
    def source(self) -> Optional[VideoSource]:
        return self._source

    @property
    def filters(self) -> FilterState:
        return self._filters

    @property
    def display(self) -> PreviewDisplay:
        return self._require_scheduler().display

    def load_source(self, path: Path) -> VideoSource:
        """Switch to a new video: empty the cache and reset position and playback."""

        scheduler = self._require_scheduler()
        assert self.invoker is not None and self.frames is not None
        self.cache_dir.empty()
        self.frames.reset()
        source = self._source_factory(Path(path), self.invoker)
        self._source = source
        scheduler.submit(SourceChanged(source))
        logger.info("Loaded %s", Path(path).name)
        return source

    def seek(self, timestamp: Optional[float]) -> None:
        if timestamp is not None:
            quantize_timestamp(timestamp)
        self._require_scheduler().submit(PositionChanged(timestamp))

    def set_playing(self, playing: bool) -> None:
        self._require_scheduler().submit(PlaybackChanged(bool(playing)))

    def _replace_filters(self, filters: FilterState) -> None:
        self._filters = filters
        self._require_scheduler().submit(FiltersChanged(filters))

    def set_filter_value(self, param: FilterParameter, slider: float) -> None:
        logger.debug("%s slider=%s", param.key, slider)
        self._replace_filters(self._filters.with_value(param, slider))

    def set_filter_domain_value(self, param: FilterParameter, value: float) -> None:
        self._replace_filters(self._filters.with_domain_value(param, value))

    def set_custom_expression(self, expression: str) -> None:
        self._replace_filters(self._filters.with_custom_expression(expression))

    def set_lut3d_path(self, path: str) -> None:
        self._replace_filters(self._filters.with_lut3d_path(path))

    def apply_filters(self, filters: FilterState) -> None:
        self._replace_filters(filters)

    def reset_filters(self) -> None:
        self._replace_filters(self._filters.reset())

    def filter_chain(self) -> List[str]:
        return build_filter_chain(self._filters)

    def filter_args(self) -> List[str]:
        return build_filter_args(self.filter_chain())

    async def settle(self) -> PreviewDisplay:
        """Wait for pending events and renders, then return the current display."""

        scheduler = self._require_scheduler()
        await scheduler.settle()
        return scheduler.display

    async def export(self) -> Path:
        if self._source is None:
            raise ExportUnavailable("No video loaded; load a source before exporting")
        assert self.exporter is not None
        return await self.exporter.export(self._source.path, self._filters)
