"""Full-video export through the same filter chain as the preview."""

from __future__ import annotations

import logging
import time
from pathlib import Path

from src.filter_preview.filters.chain import FilterState, build_filter_args, build_filter_chain
from src.filter_preview.interfaces import VideoEncoder

logger = logging.getLogger(__name__)


class ExportEncoder:
    """One-shot re-encode of a source file; no debounce, no cancellation."""

    def __init__(self, encoder: VideoEncoder) -> None:
        self._encoder = encoder

    async def export(self, source_path: Path, filters: FilterState) -> Path:
        filter_args = build_filter_args(build_filter_chain(filters))
        logger.info("Encoding %s started", Path(source_path).name)
        started = time.perf_counter()
        output_path = await self._encoder.encode(Path(source_path), filter_args)
        logger.info(
            "Encoded %s in %.1fs -> %s",
            Path(source_path).name,
            time.perf_counter() - started,
            output_path,
        )
        return output_path
