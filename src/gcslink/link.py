from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Tuple

from .dispatch import Dispatcher

if TYPE_CHECKING:
    from .system import PeerIdentity

log = logging.getLogger(__name__)

Receiver = Callable[["PeerIdentity", Any], None]


@dataclass(slots=True)
class Impairment:
    loss_rate: float = 0.0
    delay_ms: int = 0
    seed: Optional[int] = None
    rng: random.Random = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.rng = random.Random(self.seed)

    def should_drop(self) -> bool:
        return self.loss_rate > 0 and self.rng.random() < self.loss_rate

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)


class Link:
    """Message-oriented transport to one or more peers.

    ``send`` never blocks and returns False when the transport refused the
    message. Inbound messages go to the receiver set by ``set_receiver``,
    in receipt order, tagged with the sender.
    """

    def __init__(self) -> None:
        self._receiver: Optional[Receiver] = None

    def set_receiver(self, receiver: Receiver) -> None:
        self._receiver = receiver

    def send(self, peer: "PeerIdentity", message: Any) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def _deliver(self, sender: "PeerIdentity", message: Any) -> None:
        if self._receiver is None:
            log.debug("no receiver; dropped %s from %s", type(message).__name__, sender)
            return
        self._receiver(sender, message)


class LoopbackLink(Link):
    """One end of an in-process link; build both ends with ``pair``.

    Delivery goes through the dispatcher, so the far side always sees a
    message on a later tick than the one that sent it.
    """

    def __init__(self, dispatcher: Dispatcher, identity: "PeerIdentity", impairment: Impairment | None = None):
        super().__init__()
        self.dispatcher = dispatcher
        self.identity = identity
        self.impairment = impairment or Impairment()
        self.remote: Optional[LoopbackLink] = None
        self.sent: List[Tuple["PeerIdentity", Any]] = []
        self.closed = False

    @classmethod
    def pair(
        cls,
        dispatcher: Dispatcher,
        local: "PeerIdentity",
        remote: "PeerIdentity",
        impairment: Impairment | None = None,
    ) -> Tuple["LoopbackLink", "LoopbackLink"]:
        a = cls(dispatcher, local, impairment)
        b = cls(dispatcher, remote, impairment)
        a.remote, b.remote = b, a
        return a, b

    def send(self, peer: "PeerIdentity", message: Any) -> bool:
        if self.closed or self.remote is None:
            return False
        self.sent.append((peer, message))
        if peer != self.remote.identity:
            return True
        if self.impairment.should_drop():
            log.debug("DROPPED %s to %s", type(message).__name__, peer)
            return True
        if self.impairment.delay_ms > 0:
            self.dispatcher.call_later(self.impairment.delay_ms / 1000.0, self.remote._deliver, self.identity, message)
        else:
            self.dispatcher.post(self.remote._deliver, self.identity, message)
        return True

    def sent_of(self, message_type: type) -> List[Any]:
        return [message for _, message in self.sent if isinstance(message, message_type)]

    def close(self) -> None:
        self.closed = True
