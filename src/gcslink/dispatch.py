"""Serialized dispatch context.

All protocol state lives on one dispatcher and is only touched from work it
runs. Other threads hand work over with ``post`` or ``call_later``.

The dispatcher either runs its own thread (``start``) or is stepped by hand
with ``run_until_idle``, which is how the tests drive it against a fake
clock.
"""
from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, List, Optional, Tuple

log = logging.getLogger(__name__)

Work = Tuple[Optional["Timer"], Callable[..., Any], Tuple[Any, ...]]


class Timer:
    __slots__ = ("deadline", "fn", "args", "cancelled")

    def __init__(self, deadline: float, fn: Callable[..., Any], args: Tuple[Any, ...]):
        self.deadline = deadline
        self.fn = fn
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class Dispatcher:
    def __init__(self, clock: Callable[[], float] = time.monotonic, name: str = "gcslink-dispatch"):
        self.clock = clock
        self.name = name
        self._cond = threading.Condition()
        self._ready: Deque[Work] = deque()
        self._timers: List[Tuple[float, int, Timer]] = []
        self._order = itertools.count()
        self._thread: Optional[threading.Thread] = None
        self._running = False

    # --- scheduling, callable from any thread ---

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        with self._cond:
            self._ready.append((None, fn, args))
            self._cond.notify()

    def call_later(self, delay_s: float, fn: Callable[..., Any], *args: Any) -> Timer:
        timer = Timer(self.clock() + max(0.0, delay_s), fn, args)
        with self._cond:
            heapq.heappush(self._timers, (timer.deadline, next(self._order), timer))
            self._cond.notify()
        return timer

    def is_threaded(self) -> bool:
        return self._thread is not None

    def in_dispatch_thread(self) -> bool:
        return self._thread is not None and threading.current_thread() is self._thread

    # --- running ---

    def _take_due(self) -> List[Work]:
        with self._cond:
            batch: List[Work] = list(self._ready)
            self._ready.clear()
            now = self.clock()
            while self._timers and self._timers[0][0] <= now:
                _, _, timer = heapq.heappop(self._timers)
                if not timer.cancelled:
                    batch.append((timer, timer.fn, timer.args))
            return batch

    def _run(self, work: Work) -> None:
        timer, fn, args = work
        # earlier work in the same batch may have cancelled this timer
        if timer is not None and timer.cancelled:
            return
        try:
            fn(*args)
        except Exception:
            log.exception("dispatch work failed; fn=%r", fn)

    def run_once(self) -> int:
        """Run everything posted so far plus every timer that is due. Returns the number run."""
        batch = self._take_due()
        for work in batch:
            self._run(work)
        return len(batch)

    def run_until_idle(self, max_rounds: int = 10_000) -> int:
        total = 0
        for _ in range(max_rounds):
            ran = self.run_once()
            if ran == 0:
                return total
            total += ran
        raise RuntimeError(f"dispatcher did not settle after {max_rounds} rounds")

    def next_deadline(self) -> Optional[float]:
        with self._cond:
            while self._timers and self._timers[0][2].cancelled:
                heapq.heappop(self._timers)
            return self._timers[0][0] if self._timers else None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._running = True
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout_s: float = 2.0) -> None:
        thread = self._thread
        if thread is None:
            return
        with self._cond:
            self._running = False
            self._cond.notify()
        if thread is not threading.current_thread():
            thread.join(timeout_s)
        self._thread = None

    def _loop(self) -> None:
        log.debug("dispatcher running; name=%s", self.name)
        while True:
            with self._cond:
                while self._running and not self._ready:
                    deadline = self._timers[0][0] if self._timers else None
                    if deadline is None:
                        self._cond.wait()
                        continue
                    remaining = deadline - self.clock()
                    if remaining <= 0:
                        break
                    self._cond.wait(remaining)
                if not self._running:
                    break
            self.run_once()
        log.debug("dispatcher stopped; name=%s", self.name)
