"""External render tool invocation."""

from .errors import (
    BinaryNotFound,
    FileSystemError,
    NoFrameCaptured,
    ProcessExecutionFailed,
    RenderError,
)
from .invoker import (
    RenderInvoker,
    build_capture_args,
    build_encode_args,
    build_filter_frame_args,
    encode_output_path,
)

__all__ = [
    "BinaryNotFound",
    "FileSystemError",
    "NoFrameCaptured",
    "ProcessExecutionFailed",
    "RenderError",
    "RenderInvoker",
    "build_capture_args",
    "build_encode_args",
    "build_filter_frame_args",
    "encode_output_path",
]
