"""Preview scheduling: events in, debounced and superseding renders out."""

from .core import DEFAULT_DEBOUNCE_SECONDS, DisplayListener, PreviewScheduler
from .events import (
    CancellationToken,
    FiltersChanged,
    PlaybackChanged,
    PositionChanged,
    PreviewDisplay,
    PreviewEvent,
    RenderRequest,
    SchedulerPhase,
    SourceChanged,
)

__all__ = [
    "CancellationToken",
    "DEFAULT_DEBOUNCE_SECONDS",
    "DisplayListener",
    "FiltersChanged",
    "PlaybackChanged",
    "PositionChanged",
    "PreviewDisplay",
    "PreviewEvent",
    "PreviewScheduler",
    "RenderRequest",
    "SchedulerPhase",
    "SourceChanged",
]
