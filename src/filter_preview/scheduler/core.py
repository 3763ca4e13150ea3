"""Debounced, superseding scheduler that turns UI changes into preview renders."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Set, Union

from src.filter_preview.filters.chain import FilterState, build_filter_args, build_filter_chain
from src.filter_preview.interfaces import FrameRenderer, RawFrameProvider
from src.filter_preview.render.errors import FileSystemError, RenderError
from src.filter_preview.scheduler.events import (
    FiltersChanged,
    PlaybackChanged,
    PositionChanged,
    PreviewDisplay,
    PreviewEvent,
    RenderRequest,
    SchedulerPhase,
    SourceChanged,
    _Stop,
)
from src.filter_preview.source import VideoSource

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.1

DisplayListener = Callable[[PreviewDisplay], None]


class PreviewScheduler:
    """
    Consume preview events on one task and drive frame capture plus filtering.

    Every event restarts the debounce window. When the window closes with
    playback paused and a known position, a :class:`RenderRequest` is started
    and the previous request (if any) is superseded. Only a request that has
    not been superseded may change :attr:`display`; stale successes and
    failures are dropped.
    """

    def __init__(
        self,
        frames: RawFrameProvider,
        renderer: FrameRenderer,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        kill_superseded: bool = False,
        source: Optional[VideoSource] = None,
        filters: Optional[FilterState] = None,
    ) -> None:
        self._frames = frames
        self._renderer = renderer
        self._debounce_seconds = max(0.0, float(debounce_seconds))
        self._kill_superseded = kill_superseded
        self._events: asyncio.Queue[Union[PreviewEvent, _Stop]] = asyncio.Queue()
        self._quiet = asyncio.Event()
        self._quiet.set()

        self._source = source
        self._filters = filters or FilterState.default()
        self._timestamp: Optional[float] = None
        self._playing = False

        self._phase = SchedulerPhase.IDLE
        self._display = PreviewDisplay()
        self._listeners: List[DisplayListener] = []
        self._active: Optional[RenderRequest] = None
        self._active_task: Optional[asyncio.Task[None]] = None
        self._tasks: Set[asyncio.Task[None]] = set()
        self._next_request_id = 1
        self.render_attempts = 0

    @property
    def phase(self) -> SchedulerPhase:
        return self._phase

    @property
    def display(self) -> PreviewDisplay:
        return self._display

    @property
    def filters(self) -> FilterState:
        return self._filters

    @property
    def playing(self) -> bool:
        return self._playing

    @property
    def timestamp(self) -> Optional[float]:
        return self._timestamp

    @property
    def active_request(self) -> Optional[RenderRequest]:
        return self._active

    def subscribe(self, listener: DisplayListener) -> Callable[[], None]:
        """Register *listener* for display updates; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def submit(self, event: PreviewEvent) -> None:
        self._quiet.clear()
        self._events.put_nowait(event)

    def stop(self) -> None:
        self._events.put_nowait(_Stop())

    async def run(self) -> None:
        """Event loop of the scheduler; returns after :meth:`stop`."""

        logger.debug("Preview scheduler started (debounce=%.3fs)", self._debounce_seconds)
        try:
            while True:
                if self._events.empty():
                    self._quiet.set()
                event = await self._events.get()
                if isinstance(event, _Stop):
                    break
                self._apply(event)
                if not await self._debounce():
                    break
                self._fire()
        finally:
            self._quiet.set()
            logger.debug("Preview scheduler stopped")

    async def _debounce(self) -> bool:
        """Absorb events until none arrive for the debounce interval.

        Returns ``False`` when a stop request arrived instead.
        """

        while True:
            try:
                event = await asyncio.wait_for(self._events.get(), timeout=self._debounce_seconds)
            except asyncio.TimeoutError:
                return True
            if isinstance(event, _Stop):
                return False
            self._apply(event)

    def _apply(self, event: PreviewEvent) -> None:
        self._phase = SchedulerPhase.PENDING
        if isinstance(event, PositionChanged):
            self._timestamp = event.timestamp
        elif isinstance(event, FiltersChanged):
            self._filters = event.filters
        elif isinstance(event, PlaybackChanged):
            self._playing = event.playing
            if event.playing:
                self._supersede_active()
            self._publish(PreviewDisplay())
        elif isinstance(event, SourceChanged):
            self._source = event.source
            self._timestamp = None
            self._playing = False
            self._supersede_active()
            self._publish(PreviewDisplay())
        else:
            raise TypeError(f"Unsupported preview event: {event!r}")

    def _fire(self) -> None:
        if self._playing or self._timestamp is None or self._source is None:
            logger.debug(
                "Debounce elapsed without render (playing=%s, timestamp=%s)",
                self._playing,
                self._timestamp,
            )
            self._phase = SchedulerPhase.IDLE
            return
        self._supersede_active()
        request = RenderRequest(
            request_id=self._next_request_id,
            timestamp=self._timestamp,
            filters=self._filters,
            source=self._source,
        )
        self._next_request_id += 1
        self.render_attempts += 1
        self._active = request
        self._phase = SchedulerPhase.RENDERING
        task = asyncio.create_task(self._render(request))
        self._active_task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("Started preview request #%d at %.3fs", request.request_id, request.timestamp)

    def _supersede_active(self) -> None:
        request = self._active
        if request is None or request.superseded:
            return
        request.token.cancel()
        logger.debug("Superseded preview request #%d", request.request_id)
        task = self._active_task
        if self._kill_superseded and task is not None and not task.done():
            task.cancel()

    async def _render(self, request: RenderRequest) -> None:
        try:
            raw_path = await self._frames.ensure_raw_frame(request.timestamp, request.source)
            if request.superseded:
                logger.debug("Request #%d superseded after capture; skipping filter", request.request_id)
                return
            filter_args = build_filter_args(build_filter_chain(request.filters))
            filtered_path = await self._renderer.filter_frame(raw_path, filter_args)
        except asyncio.CancelledError:
            logger.debug("Request #%d cancelled", request.request_id)
            raise
        except Exception as exc:  # noqa: BLE001
            if isinstance(exc, RenderError):
                error = exc
            elif isinstance(exc, OSError):
                error = FileSystemError(str(exc))
            else:
                logger.debug("Unexpected failure in request #%d", request.request_id, exc_info=True)
                error = RenderError(str(exc) or type(exc).__name__)
            if request.superseded:
                logger.debug("Dropping failure of superseded request #%d: %s", request.request_id, error)
                return
            logger.warning("Preview render failed: %s", error)
            self._finish(request, SchedulerPhase.ERROR)
            self._publish(PreviewDisplay(error=error.diagnostic, request_id=request.request_id))
            return
        if request.superseded:
            logger.debug("Dropping result of superseded request #%d", request.request_id)
            return
        self._finish(request, SchedulerPhase.IDLE)
        self._publish(PreviewDisplay(frame_path=filtered_path, request_id=request.request_id))

    def _finish(self, request: RenderRequest, phase: SchedulerPhase) -> None:
        # a newer event may already have moved the phase on to PENDING
        if self._active is request and self._phase is SchedulerPhase.RENDERING:
            self._phase = phase

    def _publish(self, display: PreviewDisplay) -> None:
        if display == self._display:
            return
        self._display = display
        for listener in list(self._listeners):
            try:
                listener(display)
            except Exception:  # noqa: BLE001
                logger.debug("Display listener failed", exc_info=True)

    async def wait_idle(self) -> None:
        """Wait for every started render task, superseded or not."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_outstanding(self) -> None:
        """Supersede the active request and cancel every render task (shutdown path)."""

        self._supersede_active()
        for task in list(self._tasks):
            task.cancel()
        await self.wait_idle()

    async def settle(self) -> None:
        """Wait until queued events are debounced and resulting renders finish."""

        await self._quiet.wait()
        await self.wait_idle()
