"""Blocking calls derived from callback-style primitives.

Never call a blocking variant from a callback running on the dispatcher:
the dispatcher would wait on itself forever. This is not checked.
"""
from __future__ import annotations

import threading
from typing import Any, Callable, List, Tuple


def call_blocking(async_fn: Callable[..., None], *args: Any) -> Any:
    """Call ``async_fn(*args, callback)`` and wait for the callback.

    Returns the callback's single argument, or the tuple of its arguments
    when it has more than one (``(Result, items)`` for downloads).
    """
    done = threading.Event()
    box: List[Tuple[Any, ...]] = []

    def _callback(*outcome: Any) -> None:
        if not box:
            box.append(outcome)
        done.set()

    async_fn(*args, _callback)
    done.wait()
    outcome = box[0]
    return outcome[0] if len(outcome) == 1 else outcome
