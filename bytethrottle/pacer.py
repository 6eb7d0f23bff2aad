from __future__ import annotations

import math
import time
from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import Any, Callable, Dict, Mapping, Optional, Union

from rich.console import Console


default_console = Console(stderr=True)

Clock = Callable[[], float]
Options = Union["PacerConfig", Real, Mapping[str, Any], None]

# Accepted spellings for mapping options, mapped to PacerConfig fields.
_ALIASES: Dict[str, str] = {
    "target_rate": "target_rate",
    "targetRate": "target_rate",
    "rate": "target_rate",
    "bps": "target_rate",
    "chunk_size": "chunk_size",
    "chunkSize": "chunk_size",
    "burst_threshold": "burst_threshold",
    "burstThresholdBytes": "burst_threshold",
    "burst": "burst_threshold",
    "burst_rate": "burst_rate",
    "burstRate": "burst_rate",
    "burstMax": "burst_rate",
    "low_water_mark": "low_water_mark",
    "lowWaterMark": "low_water_mark",
    "high_water_mark": "high_water_mark",
    "highWaterMark": "high_water_mark",
}


class ConfigurationError(ValueError):
    """Raised when a throttle is constructed without a usable rate."""


class PacerState(str, Enum):
    BURSTING = "bursting"
    STEADY = "steady"


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _is_finite(value: Any) -> bool:
    return _is_number(value) and math.isfinite(value)


def _count(value: Any, default: int = 0) -> int:
    # Optional fields never fail construction; junk falls back to the default.
    return max(0, int(value)) if _is_finite(value) else default


@dataclass
class PacerConfig:
    target_rate: float
    chunk_size: Optional[int] = None
    burst_threshold: int = 0
    burst_rate: Optional[float] = None
    low_water_mark: int = 0
    high_water_mark: int = 0

    def __post_init__(self) -> None:
        if not _is_number(self.target_rate):
            raise ConfigurationError(
                f"a positive bytes-per-second target_rate is required, got {self.target_rate!r}"
            )
        if not 0 < self.target_rate < math.inf:
            raise ConfigurationError(f"target_rate must be > 0 and finite, got {self.target_rate}")
        self.chunk_size = max(1, _count(self.chunk_size, int(self.target_rate / 10)))
        if not _is_finite(self.burst_rate) or self.burst_rate <= 0:
            self.burst_rate = self.target_rate * 2
        self.burst_threshold = _count(self.burst_threshold)
        self.low_water_mark = _count(self.low_water_mark)
        self.high_water_mark = _count(self.high_water_mark)

    @classmethod
    def coerce(cls, options: Options) -> "PacerConfig":
        """Build a config from a config, a bare rate number or a mapping.

        A bare number means "steady-state bytes per second, defaults for the
        rest". Mappings accept both snake_case names and the camelCase / short
        aliases (``bps``, ``burst``, ``burstMax`` ...).
        """
        if isinstance(options, cls):
            return options
        if options is None:
            raise ConfigurationError("must pass a bytes-per-second rate")
        if _is_number(options):
            return cls(target_rate=options)
        if isinstance(options, Mapping):
            kwargs: Dict[str, Any] = {}
            for key, value in options.items():
                field = _ALIASES.get(key)
                if field is None:
                    default_console.log(f"Ignoring unknown throttle option: {key!r}")
                    continue
                if value is None:
                    continue
                kwargs[field] = value
            if "target_rate" not in kwargs:
                raise ConfigurationError("must pass a bytes-per-second target_rate option")
            return cls(**kwargs)
        raise ConfigurationError(f"unsupported throttle options: {options!r}")


class Pacer:
    """Leaky-bucket pacing state for one throttled byte stream.

    The pacer never touches bytes. Callers ask it how many bytes to release
    (``issue``) and, once those bytes have been handed downstream, how long to
    wait before asking again (``on_tick_complete``). Throughput is compared
    against the ideal ``elapsed * active_rate`` since ``start_time``, so stalls
    are caught up without delay and fast stretches are slept off.

    Bytes are counted optimistically: ``cumulative_bytes`` grows when a slice
    is issued, not when the sink confirms it.
    """

    def __init__(
        self,
        config: PacerConfig,
        clock: Optional[Clock] = None,
        console: Optional[Console] = None,
    ) -> None:
        self.config = config
        self.clock = clock or time.monotonic
        self.console = console if console is not None else default_console
        self.reset()

    def reset(self) -> None:
        self.chunk_bytes: int = int(self.config.chunk_size or 1)
        self.cumulative_bytes: int = 0
        self.start_time: float = self.clock()
        self.active_rate: float = self.config.target_rate
        self.previous_rate: float = 0

    @property
    def state(self) -> PacerState:
        if self.cumulative_bytes < self.config.burst_threshold:
            return PacerState.BURSTING
        return PacerState.STEADY

    def _select_rate(self) -> float:
        if self.state is PacerState.BURSTING:
            return float(self.config.burst_rate or self.config.target_rate)
        return float(self.config.target_rate)

    def issue(self) -> int:
        """Account for the next slice and return its size in bytes."""
        self.cumulative_bytes += self.chunk_bytes
        return self.chunk_bytes

    def on_tick_complete(self) -> float:
        """Pick the rate for the next tick and return the delay in seconds."""
        elapsed = self.clock() - self.start_time
        self.active_rate = self._select_rate()

        if self.active_rate != self.previous_rate:
            if self.state is PacerState.BURSTING:
                self.console.log(f"Bursting: {self.active_rate:g} B/s")
            else:
                self.console.log(f"Streaming: {self.active_rate:g} B/s")
            self.chunk_bytes = max(1, int(self.active_rate / 10))
            self.previous_rate = self.active_rate

        expected = elapsed * self.active_rate
        if self.cumulative_bytes > expected:
            surplus = self.cumulative_bytes - expected
            delay = surplus / self.active_rate
            if delay > 0:
                return delay
        return 0.0
