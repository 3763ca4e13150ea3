from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, List

import pytest

from src.filter_preview.cache import RawFrameCache
from src.filter_preview.filters import FilterParameter, FilterState, build_filter_args, build_filter_chain
from src.filter_preview.render.errors import ProcessExecutionFailed
from src.filter_preview.scheduler import (
    FiltersChanged,
    PlaybackChanged,
    PositionChanged,
    PreviewDisplay,
    PreviewScheduler,
    SchedulerPhase,
    SourceChanged,
)
from tests.helpers.render_env import ControlledRenderer, FakeSource, wait_for

Scenario = Callable[[PreviewScheduler, ControlledRenderer, FakeSource], Awaitable[None]]


def _run(
    tmp_path: Path,
    scenario: Scenario,
    *,
    debounce: float = 0.02,
    kill_superseded: bool = False,
    renderer: ControlledRenderer | None = None,
    source: FakeSource | None = None,
) -> None:
    renderer = renderer or ControlledRenderer(tmp_path)
    source = source or FakeSource(tmp_path / "clip.mp4")

    async def _main() -> None:
        scheduler = PreviewScheduler(
            RawFrameCache(tmp_path),
            renderer,
            debounce_seconds=debounce,
            kill_superseded=kill_superseded,
            source=source,
        )
        loop_task = asyncio.create_task(scheduler.run())
        try:
            await scenario(scheduler, renderer, source)
        finally:
            scheduler.stop()
            await loop_task
            await scheduler.cancel_outstanding()

    asyncio.run(_main())


def _contrast(slider: float) -> FilterState:
    return FilterState.default().with_value(FilterParameter.CONTRAST, slider)


def test_burst_of_changes_produces_one_render_with_final_inputs(tmp_path: Path) -> None:
    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.submit(PositionChanged(1.0))
        for slider in (55, 60, 65, 70, 75):
            scheduler.submit(FiltersChanged(_contrast(slider)))
        await scheduler.settle()
        display = scheduler.display

        assert scheduler.render_attempts == 1
        assert renderer.calls == [build_filter_args(build_filter_chain(_contrast(75)))]
        assert display.frame_path == tmp_path / "frame-filtered-0.jpeg"
        assert scheduler.phase is SchedulerPhase.IDLE

    _run(tmp_path, scenario)


def test_changes_spaced_inside_debounce_window_coalesce(tmp_path: Path) -> None:
    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.submit(PositionChanged(2.0))
        for slider in (10, 20, 30, 40):
            await asyncio.sleep(0.02)
            scheduler.submit(FiltersChanged(_contrast(slider)))
        await scheduler.settle()

        assert scheduler.render_attempts == 1
        assert source.captured == [2.0]

    _run(tmp_path, scenario, debounce=0.15)


def test_changes_separated_by_quiet_periods_render_separately(tmp_path: Path) -> None:
    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.submit(PositionChanged(1.0))
        await scheduler.settle()
        scheduler.submit(PositionChanged(2.0))
        await scheduler.settle()
        scheduler.submit(FiltersChanged(_contrast(80)))
        await scheduler.settle()

        assert scheduler.render_attempts == 3
        # third render reuses the cached raw frame at 2.0s
        assert source.captured == [1.0, 2.0]
        assert scheduler.display.request_id == 3

    _run(tmp_path, scenario)


def test_no_render_without_a_known_position(tmp_path: Path) -> None:
    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.submit(FiltersChanged(_contrast(90)))
        await scheduler.settle()

        assert scheduler.render_attempts == 0
        assert scheduler.display.empty
        assert scheduler.phase is SchedulerPhase.IDLE

    _run(tmp_path, scenario)


def test_stale_success_finishing_last_is_dropped(tmp_path: Path) -> None:
    renderer = ControlledRenderer(tmp_path)
    renderer.auto_release = False

    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.submit(PositionChanged(1.0))
        await wait_for(lambda: len(renderer.calls) == 1)
        first = scheduler.active_request
        scheduler.submit(FiltersChanged(_contrast(90)))
        await wait_for(lambda: len(renderer.calls) == 2)
        assert first is not None and first.superseded

        renderer.gate(1).set()
        await wait_for(lambda: scheduler.display.request_id == 2)
        renderer.gate(0).set()
        await scheduler.settle()

        assert scheduler.display.frame_path == tmp_path / "frame-filtered-1.jpeg"
        assert scheduler.display.request_id == 2
        assert scheduler.phase is SchedulerPhase.IDLE

    _run(tmp_path, scenario, renderer=renderer)


def test_stale_success_finishing_first_is_never_shown(tmp_path: Path) -> None:
    renderer = ControlledRenderer(tmp_path)
    renderer.auto_release = False
    seen: List[PreviewDisplay] = []

    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.subscribe(seen.append)
        scheduler.submit(PositionChanged(1.0))
        await wait_for(lambda: len(renderer.calls) == 1)
        scheduler.submit(FiltersChanged(_contrast(10)))
        await wait_for(lambda: len(renderer.calls) == 2)

        renderer.gate(0).set()
        await asyncio.sleep(0.02)
        assert scheduler.display.empty
        renderer.gate(1).set()
        await scheduler.settle()

    _run(tmp_path, scenario, renderer=renderer)
    assert [display.request_id for display in seen] == [2]


def test_stale_failure_is_dropped(tmp_path: Path) -> None:
    renderer = ControlledRenderer(tmp_path)
    renderer.auto_release = False
    renderer.failures[0] = ProcessExecutionFailed(1, "Error initializing filter 'eq'\n")

    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.submit(PositionChanged(1.0))
        await wait_for(lambda: len(renderer.calls) == 1)
        scheduler.submit(FiltersChanged(_contrast(30)))
        await wait_for(lambda: len(renderer.calls) == 2)

        renderer.gate(1).set()
        await wait_for(lambda: scheduler.display.request_id == 2)
        renderer.gate(0).set()
        await scheduler.settle()

        assert scheduler.display.error is None
        assert scheduler.display.frame_path == tmp_path / "frame-filtered-1.jpeg"
        assert scheduler.phase is SchedulerPhase.IDLE

    _run(tmp_path, scenario, renderer=renderer)


def test_current_failure_is_published_with_stderr(tmp_path: Path) -> None:
    renderer = ControlledRenderer(tmp_path)
    renderer.failures[0] = ProcessExecutionFailed(1, "[eq] Invalid argument\n")

    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.submit(PositionChanged(1.0))
        await scheduler.settle()

        assert scheduler.phase is SchedulerPhase.ERROR
        assert scheduler.display.frame_path is None
        assert scheduler.display.error == "[eq] Invalid argument\n"

        scheduler.submit(FiltersChanged(_contrast(40)))
        await scheduler.settle()
        assert scheduler.phase is SchedulerPhase.IDLE
        assert scheduler.display.error is None

    _run(tmp_path, scenario, renderer=renderer)


def test_empty_capture_surfaces_as_error(tmp_path: Path) -> None:
    source = FakeSource(tmp_path / "clip.mp4", data=b"")

    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.submit(PositionChanged(2.0))
        await scheduler.settle()

        assert renderer.calls == []
        assert scheduler.display.error == "No frame captured at 2.000s"

    _run(tmp_path, scenario, source=source)


def test_playing_clears_display_and_suppresses_renders(tmp_path: Path) -> None:
    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.submit(PositionChanged(1.0))
        await scheduler.settle()
        assert scheduler.display.frame_path is not None

        scheduler.submit(PlaybackChanged(True))
        scheduler.submit(PositionChanged(1.5))
        scheduler.submit(FiltersChanged(_contrast(20)))
        await scheduler.settle()

        assert scheduler.display.empty
        assert scheduler.render_attempts == 1

        scheduler.submit(PlaybackChanged(False))
        await scheduler.settle()
        assert scheduler.render_attempts == 2
        assert source.captured == [1.0, 1.5]
        assert scheduler.display.frame_path is not None

    _run(tmp_path, scenario)


def test_starting_playback_supersedes_in_flight_render(tmp_path: Path) -> None:
    renderer = ControlledRenderer(tmp_path)
    renderer.auto_release = False

    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.submit(PositionChanged(1.0))
        await wait_for(lambda: len(renderer.calls) == 1)
        scheduler.submit(PlaybackChanged(True))
        await wait_for(lambda: scheduler.playing)
        renderer.gate(0).set()
        await scheduler.settle()

        assert scheduler.display.empty

    _run(tmp_path, scenario, renderer=renderer)


def test_source_change_clears_display_and_waits_for_position(tmp_path: Path) -> None:
    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.submit(PositionChanged(1.0))
        await scheduler.settle()

        other = FakeSource(tmp_path / "other.mp4")
        scheduler.submit(SourceChanged(other))
        await scheduler.settle()
        assert scheduler.display.empty
        assert scheduler.timestamp is None
        assert scheduler.render_attempts == 1

        scheduler.submit(PositionChanged(3.0))
        await scheduler.settle()
        assert other.captured == [3.0]
        assert scheduler.display.frame_path is not None

    _run(tmp_path, scenario)


def test_kill_superseded_cancels_in_flight_render(tmp_path: Path) -> None:
    renderer = ControlledRenderer(tmp_path)
    renderer.auto_release = False

    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.submit(PositionChanged(1.0))
        await wait_for(lambda: len(renderer.calls) == 1)
        scheduler.submit(FiltersChanged(_contrast(70)))
        await wait_for(lambda: len(renderer.calls) == 2)

        # the first gate is never released; settling only works if that task was cancelled
        renderer.gate(1).set()
        await asyncio.wait_for(scheduler.settle(), timeout=2.0)
        assert scheduler.display.request_id == 2

    _run(tmp_path, scenario, renderer=renderer, kill_superseded=True)


def test_failing_listener_does_not_block_others(tmp_path: Path) -> None:
    seen: List[PreviewDisplay] = []

    def _broken(display: PreviewDisplay) -> None:
        raise RuntimeError("listener exploded")

    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.subscribe(_broken)
        unsubscribe = scheduler.subscribe(seen.append)
        scheduler.submit(PositionChanged(1.0))
        await scheduler.settle()
        unsubscribe()
        scheduler.submit(PositionChanged(2.0))
        await scheduler.settle()

    _run(tmp_path, scenario)
    assert len(seen) == 1
    assert seen[0].request_id == 1


@pytest.mark.parametrize("debounce", [0.0, 0.01])
def test_tiny_debounce_still_renders_latest_state(tmp_path: Path, debounce: float) -> None:
    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.submit(PositionChanged(0.5))
        scheduler.submit(FiltersChanged(_contrast(100)))
        await scheduler.settle()
        await scheduler.settle()

        assert renderer.calls[-1] == build_filter_args(build_filter_chain(_contrast(100)))

    _run(tmp_path, scenario, debounce=debounce)


def test_invalid_position_is_reported_instead_of_hanging(tmp_path: Path) -> None:
    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.submit(PositionChanged(float("nan")))
        await asyncio.wait_for(scheduler.settle(), timeout=2.0)

        assert scheduler.phase is SchedulerPhase.ERROR
        assert scheduler.display.frame_path is None
        assert scheduler.display.error is not None
        assert "finite" in scheduler.display.error
        assert source.captured == []

        scheduler.submit(PositionChanged(1.0))
        await scheduler.settle()
        assert scheduler.phase is SchedulerPhase.IDLE
        assert scheduler.display.frame_path is not None

    _run(tmp_path, scenario)


class _ExplodingSource(FakeSource):
    async def capture(self, timestamp: float) -> bytes:
        self.captured.append(timestamp)
        raise RuntimeError("decoder went away")


def test_unexpected_source_failure_is_published_as_error(tmp_path: Path) -> None:
    async def scenario(scheduler: PreviewScheduler, renderer: ControlledRenderer, source: FakeSource) -> None:
        scheduler.submit(PositionChanged(2.0))
        await asyncio.wait_for(scheduler.settle(), timeout=2.0)

        assert scheduler.phase is SchedulerPhase.ERROR
        assert scheduler.display.error == "decoder went away"
        assert renderer.calls == []

    _run(tmp_path, scenario, source=_ExplodingSource(tmp_path / "clip.mp4"))
