from __future__ import annotations

import logging
import threading

import pytest

from gcslink.dispatch import Dispatcher
from helpers import FakeClock


def test_posted_work_runs_in_order():
    d = Dispatcher(clock=FakeClock())
    seen = []
    for i in range(3):
        d.post(seen.append, i)
    assert seen == []
    assert d.run_until_idle() == 3
    assert seen == [0, 1, 2]


def test_timers_fire_in_deadline_order():
    clock = FakeClock()
    d = Dispatcher(clock=clock)
    seen = []
    d.call_later(0.3, seen.append, "late")
    d.call_later(0.1, seen.append, "early")
    d.run_until_idle()
    assert seen == []
    clock.advance(0.5)
    d.run_until_idle()
    assert seen == ["early", "late"]


def test_cancelled_timer_never_fires():
    clock = FakeClock()
    d = Dispatcher(clock=clock)
    seen = []
    timer = d.call_later(0.1, seen.append, "x")
    timer.cancel()
    clock.advance(1.0)
    d.run_until_idle()
    assert seen == []
    assert d.next_deadline() is None


def test_work_posted_from_work_runs_on_a_later_round():
    d = Dispatcher(clock=FakeClock())
    seen = []

    def first():
        seen.append("first")
        d.post(seen.append, "second")

    d.post(first)
    assert d.run_once() == 1
    assert seen == ["first"]
    d.run_until_idle()
    assert seen == ["first", "second"]


def test_failing_work_is_logged_and_does_not_stop_dispatch(caplog):
    d = Dispatcher(clock=FakeClock())
    seen = []

    def boom():
        raise RuntimeError("boom")

    d.post(boom)
    d.post(seen.append, "after")
    with caplog.at_level(logging.ERROR, logger="gcslink.dispatch"):
        d.run_until_idle()
    assert seen == ["after"]
    assert "dispatch work failed" in caplog.text


def test_thread_runs_posted_work_and_timers():
    d = Dispatcher()
    done = threading.Event()
    in_thread = []

    def work():
        in_thread.append(d.in_dispatch_thread())
        done.set()

    d.start()
    try:
        d.call_later(0.01, work)
        assert done.wait(2.0)
    finally:
        d.stop()
    assert in_thread == [True]
    assert not d.in_dispatch_thread()


def test_run_until_idle_gives_up_on_work_that_keeps_reposting():
    d = Dispatcher(clock=FakeClock())

    def again():
        d.post(again)

    d.post(again)
    with pytest.raises(RuntimeError):
        d.run_until_idle(max_rounds=50)


def test_timer_cancelled_by_earlier_work_in_the_same_round_does_not_fire():
    clock = FakeClock()
    d = Dispatcher(clock=clock)
    fired = []
    timer = d.call_later(0.5, fired.append, "timer")
    d.post(timer.cancel)
    clock.advance(0.5)
    d.run_once()
    assert fired == []
