from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, DefaultDict, List, Optional

from pymavlink.dialects.v20 import common as mavlink

from .constants import DEFAULT_HEARTBEAT_TIMEOUT_S
from .dispatch import Dispatcher, Timer
from .link import Link
from .messages import Heartbeat

log = logging.getLogger(__name__)

Handler = Callable[["PeerIdentity", Any], None]


@dataclass(frozen=True, slots=True)
class PeerIdentity:
    system_id: int
    component_id: int

    def __str__(self) -> str:
        return f"{self.system_id}/{self.component_id}"


class System:
    """Handle on the one remote autopilot a connection talks to.

    The peer is fixed by the first autopilot heartbeat and never replaced.
    Inbound messages are moved onto the dispatcher before any handler sees
    them.
    """

    def __init__(
        self,
        link: Link,
        dispatcher: Dispatcher,
        heartbeat_timeout_s: float = DEFAULT_HEARTBEAT_TIMEOUT_S,
    ):
        self.link = link
        self.dispatcher = dispatcher
        self.heartbeat_timeout_s = heartbeat_timeout_s
        self.peer: Optional[PeerIdentity] = None
        self._connected = False
        self._has_autopilot = False
        self._handlers: DefaultDict[type, List[Handler]] = defaultdict(list)
        self._heartbeat_timer: Optional[Timer] = None
        # bumped on every re-arm; a lost-timer from an older arm is stale
        self._heartbeat_epoch = 0
        link.set_receiver(self.receive)

    def peer_connected(self) -> bool:
        return self._connected

    def peer_has_autopilot(self) -> bool:
        return self._connected and self._has_autopilot

    def subscribe(self, message_type: type, handler: Handler) -> None:
        self._handlers[message_type].append(handler)

    def send(self, message: Any) -> bool:
        if self.peer is None:
            return False
        return self.link.send(self.peer, message)

    def receive(self, sender: PeerIdentity, message: Any) -> None:
        """Link entry point; safe to call from the link's own thread."""
        self.dispatcher.post(self._deliver, sender, message)

    def _deliver(self, sender: PeerIdentity, message: Any) -> None:
        if isinstance(message, Heartbeat):
            self._on_heartbeat(sender, message)
        for handler in list(self._handlers.get(type(message), ())):
            handler(sender, message)

    def _on_heartbeat(self, sender: PeerIdentity, heartbeat: Heartbeat) -> None:
        if heartbeat.type == mavlink.MAV_TYPE_GCS:
            return
        autopilot = heartbeat.autopilot != mavlink.MAV_AUTOPILOT_INVALID
        if self.peer is None:
            if not autopilot:
                return
            self.peer = sender
            log.info("peer discovered; peer=%s", sender)
        elif sender != self.peer:
            return
        if not self._connected:
            log.info("peer connected; peer=%s autopilot=%s", sender, autopilot)
        self._connected = True
        self._has_autopilot = autopilot
        if self._heartbeat_timer is not None:
            self._heartbeat_timer.cancel()
        self._heartbeat_epoch += 1
        self._heartbeat_timer = self.dispatcher.call_later(
            self.heartbeat_timeout_s, self._heartbeat_lost, self._heartbeat_epoch
        )

    def _heartbeat_lost(self, epoch: int) -> None:
        if epoch != self._heartbeat_epoch:
            return
        self._heartbeat_timer = None
        self._connected = False
        log.warning("heartbeat lost; peer=%s", self.peer)
