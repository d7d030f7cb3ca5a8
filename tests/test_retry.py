from __future__ import annotations

import pytest

from gcslink.dispatch import Dispatcher
from gcslink.retry import RetryPolicy, RetryTimer
from helpers import FakeClock, settle


def _timer(policy):
    clock = FakeClock()
    d = Dispatcher(clock=clock)
    resends, exhausted = [], []
    timer = RetryTimer(d, policy, resends.append, lambda: exhausted.append(True), label="test")
    return clock, d, timer, resends, exhausted


def test_resends_then_exhausts():
    clock, d, timer, resends, exhausted = _timer(RetryPolicy(timeout_s=0.5, retries=3))
    timer.start()
    settle(d, clock, 1.9)
    assert resends == [1, 2, 3]
    assert exhausted == []
    settle(d, clock, 0.2)
    assert exhausted == [True]
    assert not timer.active


def test_start_resets_budget():
    clock, d, timer, resends, exhausted = _timer(RetryPolicy(timeout_s=0.5, retries=1))
    timer.start()
    settle(d, clock, 0.75)
    assert resends == [1]
    timer.start()
    settle(d, clock, 0.75)
    assert resends == [1, 1]
    assert exhausted == []


def test_touch_keeps_budget():
    clock, d, timer, resends, exhausted = _timer(RetryPolicy(timeout_s=0.5, retries=1))
    timer.start()
    settle(d, clock, 0.75)
    timer.touch()
    settle(d, clock, 0.75)
    assert resends == [1]
    assert exhausted == [True]


def test_cancel_stops_everything():
    clock, d, timer, resends, exhausted = _timer(RetryPolicy())
    timer.start()
    timer.cancel()
    settle(d, clock, 5.0)
    assert resends == [] and exhausted == []


def test_policy_defaults_and_bounds():
    policy = RetryPolicy()
    assert (policy.timeout_s, policy.retries) == (0.5, 3)
    assert policy.worst_case_s == pytest.approx(2.0)
    with pytest.raises(ValueError):
        RetryPolicy(timeout_s=0)
    with pytest.raises(ValueError):
        RetryPolicy(retries=-1)
