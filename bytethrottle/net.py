from __future__ import annotations

from typing import BinaryIO, Optional

import requests
from rich.console import Console

from .pacer import Clock, Options, PacerConfig
from .scheduling import Scheduler
from .streams import DEFAULT_READ_SIZE, CopyStats, pace_chunks


def fetch_url(
    url: str,
    out: BinaryIO,
    options: Options,
    *,
    session: Optional[requests.Session] = None,
    timeout: float = 15.0,
    read_size: int = DEFAULT_READ_SIZE,
    scheduler: Optional[Scheduler] = None,
    clock: Optional[Clock] = None,
    console: Optional[Console] = None,
) -> CopyStats:
    """Download ``url`` into ``out`` no faster than the configured rate.

    The body is streamed, so at most one ``read_size`` block is held beyond
    what the pacer has released. HTTP errors propagate as ``requests``
    exceptions and are not retried.
    """
    config = PacerConfig.coerce(options)
    http = session or requests.Session()
    with http.get(url, stream=True, timeout=timeout) as resp:
        resp.raise_for_status()
        return pace_chunks(
            resp.iter_content(chunk_size=max(1, int(read_size))),
            out.write,
            config,
            flush=getattr(out, "flush", None),
            scheduler=scheduler,
            clock=clock,
            console=console,
        )
