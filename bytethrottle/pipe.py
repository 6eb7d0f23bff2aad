from __future__ import annotations

import threading
from functools import partial
from typing import Callable, Optional

from rich.console import Console

from .pacer import Clock, Options, Pacer, PacerConfig
from .scheduling import Scheduler, ThreadingScheduler, TimerHandle


DataCb = Callable[[bytes], None]
EventCb = Optional[Callable[[], None]]
ErrorCb = Optional[Callable[[BaseException], None]]


class ThrottledPipe:
    """Pass-through byte stage that releases input at a paced rate.

    Input given to ``write`` is buffered and handed to ``on_data`` unmodified
    and in order, one pacer slice per tick. Between ticks the pipe waits on a
    scheduler timer; ``close`` and ``destroy`` cancel that timer, and a timer
    that still fires after teardown does nothing.

    Thread-safe: producer writes and timer callbacks are serialized by one
    re-entrant lock, so at most one slice is ever in flight.
    """

    def __init__(
        self,
        options: Options,
        on_data: DataCb,
        *,
        on_end: EventCb = None,
        on_drain: EventCb = None,
        on_error: ErrorCb = None,
        scheduler: Optional[Scheduler] = None,
        clock: Optional[Clock] = None,
        console: Optional[Console] = None,
    ) -> None:
        self.config = PacerConfig.coerce(options)
        self.on_data = on_data
        self.on_end = on_end
        self.on_drain = on_drain
        self.on_error = on_error
        self.scheduler = scheduler or ThreadingScheduler()
        self.error: Optional[BaseException] = None

        self._lock = threading.RLock()
        self._pending = bytearray()
        self._owed = 0
        self._tick = 0
        self._waiting = False
        self._timer: Optional[TimerHandle] = None
        self._ended = False
        self._closed = False
        self._finished = False
        self._needs_drain = False
        self._pumping = False

        self.pacer = Pacer(self.config, clock=clock, console=console)
        # Tick 0 fires without delay.
        self._owed = self.pacer.issue()

    @property
    def buffered(self) -> int:
        return len(self._pending)

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def finished(self) -> bool:
        return self._finished

    def write(self, data: bytes) -> bool:
        """Queue ``data``; returns False once buffering exceeds the high water mark."""
        with self._lock:
            if self._closed:
                raise self.error or RuntimeError("write after close")
            if self._ended:
                raise RuntimeError("write after end")
            self._pending += data
            try:
                self._pump()
            except Exception as exc:
                self.destroy(exc)
                raise
            ok = len(self._pending) <= self.config.high_water_mark
            if not ok:
                self._needs_drain = True
            return ok

    def end(self) -> None:
        """Signal end of input; ``on_end`` fires once buffered bytes are out."""
        with self._lock:
            if self._closed or self._ended:
                return
            self._ended = True
            self._settle()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._pending.clear()
            self._waiting = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def destroy(self, exc: Optional[BaseException] = None) -> None:
        with self._lock:
            self.close()
            notify = exc is not None and self.error is None
            if notify:
                self.error = exc
        if notify and self.on_error is not None:
            self.on_error(exc)

    def _pump(self) -> None:
        outer = self._pumping
        self._pumping = True
        try:
            while not self._closed and not self._waiting and self._owed and self._pending:
                take = min(self._owed, len(self._pending))
                chunk = bytes(self._pending[:take])
                del self._pending[:take]
                self._owed -= take
                self.on_data(chunk)
                if not self._owed:
                    self._complete_tick()
        finally:
            self._pumping = outer
        self._settle()

    def _complete_tick(self) -> None:
        if self._closed:
            return
        delay = self.pacer.on_tick_complete()
        if delay <= 0:
            self._owed = self.pacer.issue()
            return
        self._tick += 1
        tick = self._tick
        self._waiting = True
        handle = self.scheduler.call_later(delay, partial(self._on_timer, tick))
        # Synchronous schedulers have already fired this tick by now.
        if self._waiting and self._tick == tick:
            self._timer = handle

    def _on_timer(self, tick: int) -> None:
        with self._lock:
            if self._closed or tick != self._tick or not self._waiting:
                return
            self._waiting = False
            self._timer = None
            self._owed = self.pacer.issue()
            if self._pumping:
                # Fired from inside call_later; the running pump loop takes the new slice.
                return
            try:
                self._pump()
            except Exception as exc:
                self.destroy(exc)

    def _settle(self) -> None:
        if self._closed:
            return
        if self._needs_drain and len(self._pending) <= self.config.low_water_mark:
            self._needs_drain = False
            if self.on_drain is not None:
                self.on_drain()
        if self._ended and not self._pending and not self._finished:
            self._finished = True
            self.close()
            if self.on_end is not None:
                self.on_end()
