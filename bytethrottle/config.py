from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


@dataclass
class Settings:
    rate: Optional[float]
    chunk_size: Optional[int]
    burst_threshold: int
    burst_rate: Optional[float]
    read_size: int
    http_timeout: float


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_settings() -> Settings:
    load_dotenv(override=False)
    return Settings(
        rate=_env_float("THROTTLE_RATE", None),
        chunk_size=_env_int("THROTTLE_CHUNK_SIZE", None),
        burst_threshold=_env_int("THROTTLE_BURST_BYTES", 0) or 0,
        burst_rate=_env_float("THROTTLE_BURST_RATE", None),
        read_size=_env_int("THROTTLE_READ_SIZE", 64 * 1024) or 64 * 1024,
        http_timeout=_env_float("THROTTLE_HTTP_TIMEOUT", 15.0) or 15.0,
    )
