"""Async subprocess helper shared by the render and capture paths."""

from __future__ import annotations

import asyncio
import logging
import subprocess
from dataclasses import dataclass
from typing import Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProcessResult:
    """Exit status and captured output of a finished child process."""

    returncode: int
    stdout: bytes
    stderr: bytes

    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", "replace")


async def run_process(cmd: Sequence[str], *, timeout: float | None = None) -> ProcessResult:
    """
    Run *cmd* to completion and capture stdout/stderr.

    A non-zero exit status is returned, not raised. When *timeout* elapses the
    child is killed and :class:`subprocess.TimeoutExpired` is raised. If the
    awaiting task is cancelled the child is killed before the cancellation
    propagates.
    """

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    try:
        if timeout is not None and timeout > 0:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        else:
            stdout, stderr = await process.communicate()
    except asyncio.TimeoutError as exc:
        await _kill(process)
        raise subprocess.TimeoutExpired(list(cmd), timeout or 0.0) from exc
    except asyncio.CancelledError:
        logger.debug("Killing pid %s after cancellation", process.pid)
        await _kill(process)
        raise
    returncode = process.returncode if process.returncode is not None else -1
    return ProcessResult(returncode=returncode, stdout=stdout or b"", stderr=stderr or b"")


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        return
    await process.wait()
