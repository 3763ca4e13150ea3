"""Render tool resolution and ffmpeg argument construction."""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence

from src.datatypes import ExportConfig, RenderConfig
from src.filter_preview import subproc as _subproc
from src.filter_preview.render.errors import BinaryNotFound, ProcessExecutionFailed
from src.filter_preview.subproc import ProcessResult

logger = logging.getLogger(__name__)

FILTERED_FRAME_PREFIX = "frame-filtered-"
FRAME_EXTENSION = ".jpeg"


class ProcessRunner(Protocol):
    def __call__(self, cmd: Sequence[str], *, timeout: float | None = None) -> Awaitable[ProcessResult]: ...


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


def build_filter_frame_args(raw_path: Path, filter_args: Sequence[str], out_path: Path) -> List[str]:
    return [
        "-i", str(raw_path),
        *filter_args,
        "-hide_banner",
        "-f", "image2",
        "-y", str(out_path),
    ]


def build_encode_args(
    input_path: Path,
    filter_args: Sequence[str],
    output_path: Path,
    cfg: ExportConfig,
) -> List[str]:
    args = [
        "-i", str(input_path),
        "-acodec", "copy",
        *filter_args,
        "-crf", str(cfg.crf),
        "-vcodec", cfg.video_codec,
        "-profile:v", cfg.profile,
    ]
    if cfg.x264opts:
        args.extend(["-x264opts", cfg.x264opts])
    args.extend([
        "-threads", str(cfg.threads),
        "-map", "0",
        "-y", str(output_path),
    ])
    return args


def build_capture_args(source_path: Path, timestamp: float, quality: int) -> List[str]:
    """Arguments that decode the single frame at *timestamp* as JPEG onto stdout."""

    return [
        "-hide_banner",
        "-loglevel", "error",
        "-ss", f"{max(0.0, float(timestamp)):.3f}",
        "-i", str(source_path),
        "-frames:v", "1",
        "-f", "image2pipe",
        "-c:v", "mjpeg",
        "-q:v", str(int(quality)),
        "pipe:1",
    ]


def encode_output_path(input_path: Path, suffix: str = "-encoded.mp4") -> Path:
    """Sibling of *input_path* named ``<basename><suffix>``."""

    source = Path(input_path)
    return source.parent / f"{source.name}{suffix}"


class RenderInvoker:
    """Runs the external render tool for preview frames, captures and exports."""

    def __init__(
        self,
        render_cfg: RenderConfig,
        export_cfg: ExportConfig,
        cache_dir: Path,
        *,
        runner: ProcessRunner | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._render_cfg = render_cfg
        self._export_cfg = export_cfg
        self._cache_dir = Path(cache_dir)
        self._runner: ProcessRunner = runner or _subproc.run_process
        self._clock = clock or _epoch_ms
        self._binary_path: Optional[str] = None

    @property
    def binary_name(self) -> str:
        return self._render_cfg.binary

    def resolve_binary(self) -> str:
        """
        Locate the render tool on PATH.

        A successful lookup is remembered; a miss is not, so installing the
        tool mid-session makes the next attempt succeed.
        """

        if self._binary_path is not None:
            return self._binary_path
        resolved = shutil.which(self._render_cfg.binary)
        if resolved is None:
            raise BinaryNotFound(self._render_cfg.binary)
        logger.debug("Resolved %s to %s", self._render_cfg.binary, resolved)
        self._binary_path = resolved
        return resolved

    def _timeout(self) -> float | None:
        timeout = float(self._render_cfg.timeout_seconds or 0.0)
        return timeout if timeout > 0 else None

    async def run(self, args: Sequence[str]) -> ProcessResult:
        """Invoke the render tool with *args*; raise on non-zero exit."""

        binary = self.resolve_binary()
        command = self._render_cfg.binary
        logger.debug("%s %s", command, " ".join(args))
        started = time.perf_counter()
        timeout = self._timeout()
        try:
            result = await self._runner([binary, *args], timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            raise ProcessExecutionFailed(
                -1, f"{command} timed out after {timeout or 0.0:.1f}s", command=command
            ) from exc
        except FileNotFoundError as exc:
            self._binary_path = None
            raise BinaryNotFound(command) from exc
        except OSError as exc:
            raise ProcessExecutionFailed(-1, str(exc), command=command) from exc
        logger.debug("%s took %d ms", command, int((time.perf_counter() - started) * 1000))
        if result.returncode != 0:
            stderr = result.stderr_text()
            logger.debug("%s failed with status %d: %s", command, result.returncode, stderr.strip())
            raise ProcessExecutionFailed(result.returncode, stderr, command=command)
        return result

    def filtered_frame_path(self) -> Path:
        return self._cache_dir / f"{FILTERED_FRAME_PREFIX}{self._clock()}{FRAME_EXTENSION}"

    async def filter_frame(self, raw_path: Path, filter_args: Sequence[str]) -> Path:
        """
        Apply *filter_args* to the still at *raw_path* and return the new file.

        The output name comes from the wall clock in milliseconds, so every
        render produces a fresh file. A zero exit status is trusted; the
        output is not re-checked.
        """

        out_path = self.filtered_frame_path()
        await self.run(build_filter_frame_args(raw_path, filter_args, out_path))
        return out_path

    async def encode(self, input_path: Path, filter_args: Sequence[str]) -> Path:
        output_path = encode_output_path(input_path, self._export_cfg.suffix)
        await self.run(build_encode_args(input_path, filter_args, output_path, self._export_cfg))
        return output_path

    async def capture_frame(self, source_path: Path, timestamp: float) -> bytes:
        result = await self.run(
            build_capture_args(source_path, timestamp, self._render_cfg.capture_quality)
        )
        return result.stdout
