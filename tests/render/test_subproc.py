from __future__ import annotations

import asyncio
import subprocess
import sys

import pytest

from src.filter_preview.subproc import run_process


def test_run_process_captures_output_and_exit_status() -> None:
    script = "import sys; sys.stdout.write('out'); sys.stderr.write('boom'); sys.exit(3)"
    result = asyncio.run(run_process([sys.executable, "-c", script]))
    assert result.returncode == 3
    assert result.stdout == b"out"
    assert result.stderr_text() == "boom"


def test_run_process_kills_child_after_timeout() -> None:
    with pytest.raises(subprocess.TimeoutExpired):
        asyncio.run(run_process([sys.executable, "-c", "import time; time.sleep(30)"], timeout=0.2))


def test_cancelling_the_caller_kills_the_child() -> None:
    async def _scenario() -> None:
        task = asyncio.create_task(run_process([sys.executable, "-c", "import time; time.sleep(30)"]))
        await asyncio.sleep(0.3)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, timeout=10)

    asyncio.run(_scenario())
