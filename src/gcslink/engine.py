from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from .command import CommandProtocol
from .constants import DEFAULT_HEARTBEAT_TIMEOUT_S
from .dispatch import Dispatcher
from .link import Link
from .mission import MissionTransferProtocol
from .retry import RetryPolicy
from .system import System

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EngineConfig:
    command: RetryPolicy = field(default_factory=RetryPolicy)
    mission: RetryPolicy = field(default_factory=RetryPolicy)
    heartbeat_timeout_s: float = DEFAULT_HEARTBEAT_TIMEOUT_S


class Engine:
    """Everything one connection needs: dispatcher, system handle and protocols.

    Plugin façades hold on to ``engine.command`` and ``engine.mission``.
    """

    def __init__(self, link: Link, config: EngineConfig | None = None, dispatcher: Dispatcher | None = None):
        self.config = config or EngineConfig()
        self.link = link
        self.dispatcher = dispatcher or Dispatcher()
        self.system = System(link, self.dispatcher, heartbeat_timeout_s=self.config.heartbeat_timeout_s)
        self.command = CommandProtocol(self.system, self.dispatcher, self.config.command)
        self.mission = MissionTransferProtocol(self.system, self.dispatcher, self.config.mission)

    def start(self) -> "Engine":
        self.dispatcher.start()
        start_link = getattr(self.link, "start", None)
        if start_link is not None:
            start_link()
        log.info("engine started")
        return self

    def stop(self, timeout_s: float = 2.0) -> None:
        """Resolve everything in flight with ``Result.CANCELLED``, then shut down."""
        if self.dispatcher.is_threaded() and not self.dispatcher.in_dispatch_thread():
            drained = threading.Event()
            self.dispatcher.post(self._cancel_outstanding, drained)
            if not drained.wait(timeout_s):
                log.warning("dispatcher did not drain within %.1fs", timeout_s)
        else:
            self._cancel_outstanding()
        self.link.close()
        self.dispatcher.stop()
        log.info("engine stopped")

    def _cancel_outstanding(self, drained: threading.Event | None = None) -> None:
        try:
            self.command.cancel_all()
            self.mission.cancel_all()
        finally:
            if drained is not None:
                drained.set()

    def __enter__(self) -> "Engine":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop()
