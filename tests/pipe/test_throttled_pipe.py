from typing import List

import pytest
from rich.console import Console

from bytethrottle.pacer import ConfigurationError
from bytethrottle.pipe import ThrottledPipe


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers: List[FakeTimer] = []

    def call_later(self, delay, callback):
        t = FakeTimer(delay, callback)
        self.timers.append(t)
        return t

    def fire_next(self) -> FakeTimer:
        # Fires even cancelled timers, like a callback that was already queued.
        t = self.timers.pop(0)
        self.clock.now += t.delay
        t.callback()
        return t

    def run_all(self) -> None:
        while self.timers:
            self.fire_next()


def make_pipe(options, out: list, **kwargs):
    clock = kwargs.pop("clock", None) or FakeClock()
    sched = ManualScheduler(clock)
    pipe = ThrottledPipe(
        options,
        out.append,
        scheduler=sched,
        clock=clock,
        console=Console(quiet=True),
        **kwargs,
    )
    return pipe, sched


def test_first_slice_released_without_delay():
    out: list = []
    pipe, sched = make_pipe(1000, out)
    pipe.write(b"x" * 250)
    assert out == [b"x" * 100]
    assert pipe.buffered == 150
    assert [t.delay for t in sched.timers] == [pytest.approx(0.1)]


def test_slices_follow_pacer_and_drain_fires():
    out: list = []
    drains: list = []
    pipe, sched = make_pipe(1000, out, on_drain=lambda: drains.append(True))
    assert pipe.write(b"a" * 250) is False

    sched.fire_next()
    assert [len(c) for c in out] == [100, 100]
    assert drains == []

    sched.fire_next()
    assert [len(c) for c in out] == [100, 100, 50]
    assert pipe.buffered == 0
    assert drains == [True]
    assert sched.timers == []

    # The rest of the current slice goes out as soon as input arrives.
    pipe.write(b"b" * 50)
    assert [len(c) for c in out] == [100, 100, 50, 50]
    assert len(sched.timers) == 1


def test_output_is_identical_and_ordered():
    data = bytes(range(256)) * 10
    out: list = []
    pipe, sched = make_pipe(1000, out)
    pipe.write(data)
    sched.run_all()
    assert b"".join(out) == data
    assert all(len(c) <= 100 for c in out)


def test_end_fires_once_after_buffer_drains():
    out: list = []
    ended: list = []
    pipe, sched = make_pipe(1000, out, on_end=lambda: ended.append(True))
    pipe.write(b"z" * 180)
    pipe.end()
    assert ended == []
    sched.run_all()
    assert ended == [True]
    assert pipe.finished and pipe.closed
    pipe.end()
    assert ended == [True]


def test_write_after_end_raises():
    pipe, _ = make_pipe(1000, [])
    pipe.end()
    with pytest.raises(RuntimeError):
        pipe.write(b"late")


def test_close_cancels_timer_and_late_fire_is_noop():
    out: list = []
    pipe, sched = make_pipe(1000, out)
    pipe.write(b"q" * 300)
    timer = sched.timers[0]
    cumulative = pipe.pacer.cumulative_bytes

    pipe.close()
    assert timer.cancelled
    assert pipe.buffered == 0

    sched.fire_next()
    assert out == [b"q" * 100]
    assert pipe.pacer.cumulative_bytes == cumulative


def test_sink_error_in_write_propagates():
    errors: list = []

    def boom(chunk: bytes) -> None:
        raise OSError("sink gone")

    pipe, sched = make_pipe(1000, [], on_error=errors.append)
    pipe.on_data = boom
    with pytest.raises(OSError):
        pipe.write(b"x" * 10)
    assert pipe.closed
    assert isinstance(pipe.error, OSError)
    assert errors == [pipe.error]
    with pytest.raises(OSError):
        pipe.write(b"again")


def test_sink_error_in_timer_goes_to_on_error():
    calls: list = []
    errors: list = []

    def flaky(chunk: bytes) -> None:
        calls.append(chunk)
        if len(calls) == 2:
            raise OSError("broken pipe")

    pipe, sched = make_pipe(1000, [], on_error=errors.append)
    pipe.on_data = flaky
    pipe.write(b"y" * 300)
    sched.fire_next()
    assert len(errors) == 1 and isinstance(errors[0], OSError)
    assert pipe.closed
    assert sched.timers == []
    # No second completion was counted for the failed slice.
    assert pipe.pacer.cumulative_bytes == 200


def test_bad_config_raises_before_scheduling():
    clock = FakeClock()
    sched = ManualScheduler(clock)
    with pytest.raises(ConfigurationError):
        ThrottledPipe(0, lambda c: None, scheduler=sched, clock=clock)
    assert sched.timers == []


def test_high_water_mark_allows_buffering():
    out: list = []
    pipe, _ = make_pipe({"target_rate": 1000, "high_water_mark": 500}, out)
    assert pipe.write(b"w" * 400) is True
    assert pipe.write(b"w" * 300) is False


def test_bare_number_and_mapping_same_timeline():
    def timeline(options):
        out: list = []
        pipe, sched = make_pipe(options, out)
        pipe.write(b"k" * 2000)
        delays = []
        while sched.timers:
            delays.append(round(sched.fire_next().delay, 9))
        return [len(c) for c in out], delays

    assert timeline(1000) == timeline({"target_rate": 1000})


class SteppingScheduler:
    """Advances the clock and fires the callback inside call_later."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls = 0

    def call_later(self, delay, callback):
        self.calls += 1
        self.clock.now += delay
        callback()
        return FakeTimer(delay, callback)


def test_synchronous_scheduler_handles_long_runs():
    clock = FakeClock()
    sched = SteppingScheduler(clock)
    out: list = []
    pipe = ThrottledPipe(1000, out.append, scheduler=sched, clock=clock, console=Console(quiet=True))
    data = bytes(range(256)) * 4000  # 1,024,000 bytes in 100-byte slices
    assert pipe.write(data) is True
    assert b"".join(out) == data
    assert sched.calls == len(data) // 100
    assert clock.now == pytest.approx(len(data) / 1000, abs=0.11)
