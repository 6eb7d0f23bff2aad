from __future__ import annotations

import asyncio
from typing import Optional

from rich.console import Console

from .pacer import Clock, Options
from .pipe import ThrottledPipe
from .scheduling import AsyncioScheduler
from .streams import DEFAULT_READ_SIZE, CopyStats


async def pace_stream(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    options: Options,
    *,
    read_size: int = DEFAULT_READ_SIZE,
    clock: Optional[Clock] = None,
    console: Optional[Console] = None,
) -> CopyStats:
    """Relay ``reader`` to ``writer`` at the configured rate on the running loop.

    Pacing delays are loop timers, so other tasks keep running while this
    stream waits. The writer is not closed.
    """
    loop = asyncio.get_running_loop()
    drained = asyncio.Event()
    done = asyncio.Event()
    copied = 0

    def on_data(chunk: bytes) -> None:
        nonlocal copied
        writer.write(chunk)
        copied += len(chunk)

    def on_error(exc: BaseException) -> None:
        drained.set()
        done.set()

    pipe = ThrottledPipe(
        options,
        on_data,
        on_end=done.set,
        on_drain=drained.set,
        on_error=on_error,
        scheduler=AsyncioScheduler(loop),
        clock=clock or loop.time,
        console=console,
    )
    started = loop.time()
    try:
        while True:
            block = await reader.read(max(1, int(read_size)))
            if not block:
                break
            drained.clear()
            if not pipe.write(block):
                await drained.wait()
            if pipe.error is not None:
                raise pipe.error
            await writer.drain()
        pipe.end()
        await done.wait()
        if pipe.error is not None:
            raise pipe.error
        await writer.drain()
    finally:
        pipe.close()
    return CopyStats(bytes_copied=copied, seconds=loop.time() - started)
