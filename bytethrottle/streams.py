from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterable, Optional

from rich.console import Console

from .pacer import Clock, Options
from .pipe import ThrottledPipe
from .scheduling import Scheduler


DEFAULT_READ_SIZE = 64 * 1024


@dataclass
class CopyStats:
    bytes_copied: int
    seconds: float

    @property
    def rate(self) -> float:
        """Average bytes per second over the whole copy."""
        if self.seconds <= 0:
            return 0.0
        return self.bytes_copied / self.seconds


def pace_chunks(
    chunks: Iterable[bytes],
    write: Callable[[bytes], object],
    options: Options,
    *,
    flush: Optional[Callable[[], object]] = None,
    scheduler: Optional[Scheduler] = None,
    clock: Optional[Clock] = None,
    console: Optional[Console] = None,
) -> CopyStats:
    """Feed ``chunks`` to ``write`` no faster than ``options`` allows.

    Blocks until every byte has been written (and ``flush`` called, if
    given). Errors raised by ``write`` are re-raised here; the pipe is torn
    down on every exit path so no timer outlives the call.
    """
    now = clock or time.monotonic
    drained = threading.Event()
    done = threading.Event()
    copied = 0

    def on_data(chunk: bytes) -> None:
        nonlocal copied
        write(chunk)
        copied += len(chunk)

    def on_end() -> None:
        if flush is not None:
            flush()
        done.set()

    def on_error(exc: BaseException) -> None:
        drained.set()
        done.set()

    pipe = ThrottledPipe(
        options,
        on_data,
        on_end=on_end,
        on_drain=drained.set,
        on_error=on_error,
        scheduler=scheduler,
        clock=clock,
        console=console,
    )
    started = now()
    try:
        for block in chunks:
            if not block:
                continue
            drained.clear()
            if not pipe.write(block):
                drained.wait()
            if pipe.error is not None:
                raise pipe.error
        pipe.end()
        done.wait()
        if pipe.error is not None:
            raise pipe.error
    finally:
        pipe.close()
    return CopyStats(bytes_copied=copied, seconds=now() - started)


def copy_stream(
    src: BinaryIO,
    dst: BinaryIO,
    options: Options,
    *,
    read_size: int = DEFAULT_READ_SIZE,
    scheduler: Optional[Scheduler] = None,
    clock: Optional[Clock] = None,
    console: Optional[Console] = None,
) -> CopyStats:
    """Copy ``src`` to ``dst`` until EOF at the configured byte rate."""
    size = max(1, int(read_size))
    return pace_chunks(
        iter(lambda: src.read(size), b""),
        dst.write,
        options,
        flush=getattr(dst, "flush", None),
        scheduler=scheduler,
        clock=clock,
        console=console,
    )
