"""Byte-rate limiting for producer/consumer pipes."""

from .pacer import ConfigurationError, Pacer, PacerConfig, PacerState
from .pipe import ThrottledPipe
from .scheduling import AsyncioScheduler, ThreadingScheduler
from .streams import CopyStats, copy_stream, pace_chunks

__all__ = [
    "ConfigurationError",
    "Pacer",
    "PacerConfig",
    "PacerState",
    "ThrottledPipe",
    "AsyncioScheduler",
    "ThreadingScheduler",
    "CopyStats",
    "copy_stream",
    "pace_chunks",
]
