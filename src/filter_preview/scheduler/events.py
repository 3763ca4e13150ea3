"""Events, request snapshots and display state for the preview scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from src.filter_preview.filters.chain import FilterState
from src.filter_preview.source import VideoSource


class SchedulerPhase(str, Enum):
    """Where the scheduler is between an input change and a published result."""

    IDLE = "idle"
    PENDING = "pending"
    RENDERING = "rendering"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class PositionChanged:
    timestamp: Optional[float]


@dataclass(frozen=True, slots=True)
class FiltersChanged:
    filters: FilterState


@dataclass(frozen=True, slots=True)
class PlaybackChanged:
    playing: bool


@dataclass(frozen=True, slots=True)
class SourceChanged:
    """A new video was loaded; position and playback reset with it."""

    source: Optional[VideoSource]


@dataclass(frozen=True, slots=True)
class _Stop:
    pass


PreviewEvent = Union[PositionChanged, FiltersChanged, PlaybackChanged, SourceChanged]


class CancellationToken:
    """One-way flag marking a request as superseded."""

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


@dataclass(frozen=True)
class RenderRequest:
    """Inputs captured when the debounce window closed."""

    request_id: int
    timestamp: float
    filters: FilterState
    source: VideoSource
    token: CancellationToken = field(default_factory=CancellationToken, compare=False)

    @property
    def superseded(self) -> bool:
        return self.token.cancelled


@dataclass(frozen=True, slots=True)
class PreviewDisplay:
    """What the viewer should show: a filtered still, an error, or the live video."""

    frame_path: Optional[Path] = None
    error: Optional[str] = None
    request_id: Optional[int] = None

    @property
    def empty(self) -> bool:
        return self.frame_path is None and self.error is None
