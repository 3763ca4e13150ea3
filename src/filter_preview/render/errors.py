"""Render pipeline error taxonomy."""

from __future__ import annotations


class RenderError(RuntimeError):
    """Base class for failures raised while producing a preview or export."""

    @property
    def diagnostic(self) -> str:
        """Text suitable for showing to the user."""

        return str(self)


class BinaryNotFound(RenderError):
    """The render tool could not be located on the executable search path."""

    def __init__(self, binary: str) -> None:
        super().__init__(f"{binary} executable not found in PATH")
        self.binary = binary


class NoFrameCaptured(RenderError):
    """Frame capture returned no bytes."""

    def __init__(self, timestamp: float) -> None:
        super().__init__(f"No frame captured at {timestamp:.3f}s")
        self.timestamp = timestamp


class ProcessExecutionFailed(RenderError):
    """The render tool exited with a non-zero status."""

    def __init__(self, exit_code: int, stderr: str, *, command: str = "ffmpeg") -> None:
        summary = stderr.strip().splitlines()[-1] if stderr.strip() else "unknown error"
        super().__init__(f"{command} exited with status {exit_code}: {summary}")
        self.exit_code = exit_code
        self.stderr = stderr
        self.command = command

    @property
    def diagnostic(self) -> str:
        return self.stderr or str(self)


class FileSystemError(RenderError):
    """Reading or writing a cache file failed."""
