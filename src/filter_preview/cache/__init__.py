"""On-disk frame cache."""

from .directory import CacheDirectory
from .frames import RawFrameCache, quantize_timestamp

__all__ = ["CacheDirectory", "RawFrameCache", "quantize_timestamp"]
