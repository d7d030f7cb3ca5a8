from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .constants import DEFAULT_RETRIES, DEFAULT_TIMEOUT_S
from .dispatch import Dispatcher, Timer

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    timeout_s: float = DEFAULT_TIMEOUT_S
    retries: int = DEFAULT_RETRIES

    def __post_init__(self) -> None:
        if self.timeout_s <= 0:
            raise ValueError(f"timeout must be positive: {self.timeout_s}")
        if self.retries < 0:
            raise ValueError(f"retries must be >= 0: {self.retries}")

    @property
    def worst_case_s(self) -> float:
        return self.timeout_s * (self.retries + 1)


class RetryTimer:
    """Guards one outstanding request.

    On each expiry ``resend(attempt)`` is called with the 1-based retry
    number until the policy's retries are used up, then ``on_exhausted()``.
    Runs on the dispatcher; not thread-safe.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        policy: RetryPolicy,
        resend: Callable[[int], None],
        on_exhausted: Callable[[], None],
        label: str = "",
    ):
        self.dispatcher = dispatcher
        self.policy = policy
        self.resend = resend
        self.on_exhausted = on_exhausted
        self.label = label
        self.retries_used = 0
        self._timer: Optional[Timer] = None

    @property
    def active(self) -> bool:
        return self._timer is not None

    def start(self) -> None:
        """(Re)arm with a fresh retry budget."""
        self.retries_used = 0
        self._arm()

    def touch(self) -> None:
        """Push the deadline out without touching the retry budget."""
        self._arm()

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _arm(self) -> None:
        self.cancel()
        self._timer = self.dispatcher.call_later(self.policy.timeout_s, self._expired)

    def _expired(self) -> None:
        self._timer = None
        if self.retries_used >= self.policy.retries:
            log.debug("retries exhausted; %s retries=%d", self.label, self.retries_used)
            self.on_exhausted()
            return
        self.retries_used += 1
        log.debug("timeout; %s retry=%d", self.label, self.retries_used)
        self._arm()
        self.resend(self.retries_used)
