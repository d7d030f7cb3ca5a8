"""Mission transfer: upload, download and clear of an ordered item list.

One session per peer at a time. The peer drives an upload by requesting
items by index, in any order and as often as it likes; answers come out of
an index-keyed table. A download requests indices 0..N-1 one at a time.
Each wait is guarded by a ``RetryTimer`` that resends the last message.

Mission-changed subscribers fire once per change of the mission signature:
after a local upload or clear, and on MISSION_CURRENT broadcasts that show a
different mission than the one last seen.
"""
from __future__ import annotations

import enum
import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from pymavlink.dialects.v20 import common as mavlink

from .bridge import call_blocking
from .constants import MISSION_TYPE_MISSION
from .dispatch import Dispatcher
from .messages import (
    MissionAck,
    MissionClearAll,
    MissionCount,
    MissionCurrent,
    MissionItem,
    MissionItemInt,
    MissionRequestInt,
    MissionRequestList,
    MissionSignature,
)
from .result import Result, ResultCallback, from_mission_ack
from .retry import RetryPolicy, RetryTimer
from .system import PeerIdentity, System

log = logging.getLogger(__name__)

ItemsCallback = Callable[[Result, List[MissionItem]], None]
ChangedCallback = Callable[[], None]


class Direction(enum.Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"
    CLEAR = "clear"


class TransferState(enum.Enum):
    IDLE = "idle"
    SENDING_COUNT = "sending_count"
    AWAITING_ITEM_REQUESTS = "awaiting_item_requests"
    # every item has been requested at least once; waiting for the peer's MISSION_ACK
    SENDING_ACK = "sending_ack"
    REQUESTING_COUNT = "requesting_count"
    REQUESTING_ITEMS = "requesting_items"
    CLEARING = "clearing"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class TransferSession:
    peer: PeerIdentity
    direction: Direction
    mission_type: int
    callback: Callable[..., None]
    state: TransferState = TransferState.IDLE
    total: int = 0
    items: List[Optional[MissionItem]] = field(default_factory=list)
    answered: Set[int] = field(default_factory=set)
    next_seq: int = 0
    last_sent: Any = None
    timer: Optional[RetryTimer] = None


def validate_items(items: Sequence[MissionItem]) -> Optional[str]:
    """Return why ``items`` cannot be uploaded, or None."""
    if not items:
        return "empty item list"
    for index, item in enumerate(items):
        if item.seq != index:
            return f"item {index} has seq {item.seq}"
    mission_types = {item.mission_type for item in items}
    if len(mission_types) != 1:
        return f"mixed mission types {sorted(mission_types)}"
    if items[0].mission_type == MISSION_TYPE_MISSION:
        current = [item for item in items if item.current]
        if len(current) != 1:
            return f"{len(current)} items flagged current, need exactly 1"
        if not current[0].is_navigation:
            return f"current item {current[0].seq} is not a navigation command"
    return None


class MissionTransferProtocol:
    def __init__(self, system: System, dispatcher: Dispatcher, policy: RetryPolicy | None = None):
        self.system = system
        self.dispatcher = dispatcher
        self.policy = policy or RetryPolicy()
        self.signature: Optional[MissionSignature] = None
        self._sessions: Dict[PeerIdentity, TransferSession] = {}
        self._subscribers: List[ChangedCallback] = []
        # set after a local transfer: the peer's checksum for that mission is not known yet
        self._adopt_peer_id = False
        system.subscribe(MissionRequestInt, self._on_request)
        system.subscribe(MissionAck, self._on_ack)
        system.subscribe(MissionCount, self._on_count)
        system.subscribe(MissionItemInt, self._on_item)
        system.subscribe(MissionCurrent, self._on_current)

    # --- public API, callable from any thread ---

    def upload_async(self, items: Sequence[MissionItem], callback: ResultCallback) -> None:
        self.dispatcher.post(self._upload, list(items), callback)

    def upload(self, items: Sequence[MissionItem]) -> Result:
        return call_blocking(self.upload_async, items)

    def download_async(self, callback: ItemsCallback, mission_type: int = MISSION_TYPE_MISSION) -> None:
        self.dispatcher.post(self._download, mission_type, callback)

    def download(self, mission_type: int = MISSION_TYPE_MISSION) -> Tuple[Result, List[MissionItem]]:
        return call_blocking(functools.partial(self.download_async, mission_type=mission_type))

    def clear_mission_async(self, callback: ResultCallback, mission_type: int = MISSION_TYPE_MISSION) -> None:
        """Cancel any transfer in progress, then clear the peer's list."""
        self.dispatcher.post(self._clear, mission_type, callback)

    def clear_mission(self, mission_type: int = MISSION_TYPE_MISSION) -> Result:
        return call_blocking(functools.partial(self.clear_mission_async, mission_type=mission_type))

    def cancel_transfer(self) -> None:
        self.dispatcher.post(self._cancel_active)

    def subscribe_mission_changed(self, callback: ChangedCallback) -> None:
        """Call ``callback()`` on the dispatcher after every mission change.

        There is no unsubscribe; subscriptions live as long as this object.
        """
        self.dispatcher.post(self._subscribers.append, callback)

    def active_session(self, peer: PeerIdentity) -> Optional[TransferSession]:
        return self._sessions.get(peer)

    # --- session plumbing ---

    def _open(self, direction: Direction, mission_type: int, callback: Callable[..., None]) -> Optional[TransferSession]:
        peer = self.system.peer
        if peer is None or not self.system.peer_has_autopilot():
            self._reject(direction, callback, Result.NO_SYSTEM)
            return None
        if peer in self._sessions:
            log.debug("transfer busy; direction=%s peer=%s", direction.value, peer)
            self._reject(direction, callback, Result.BUSY)
            return None
        session = TransferSession(peer, direction, mission_type, callback)
        session.timer = RetryTimer(
            self.dispatcher,
            self.policy,
            resend=lambda attempt: self._resend(session),
            on_exhausted=lambda: self._finish(session, Result.TIMEOUT),
            label=f"{direction.value} peer={peer}",
        )
        self._sessions[peer] = session
        return session

    @staticmethod
    def _reject(direction: Direction, callback: Callable[..., None], result: Result) -> None:
        if direction is Direction.DOWNLOAD:
            callback(result, [])
        else:
            callback(result)

    def _send(self, session: TransferSession, message: Any) -> bool:
        session.last_sent = message
        if not self.system.send(message):
            self._finish(session, Result.CONNECTION_ERROR)
            return False
        return True

    def _resend(self, session: TransferSession) -> None:
        if self._sessions.get(session.peer) is not session:
            return
        if session.last_sent is not None:
            self._send(session, session.last_sent)

    def _finish(
        self,
        session: TransferSession,
        result: Result,
        items: Optional[List[MissionItem]] = None,
        changed: Optional[MissionSignature] = None,
    ) -> None:
        if self._sessions.get(session.peer) is not session:
            return
        del self._sessions[session.peer]
        if session.timer is not None:
            session.timer.cancel()
        session.state = TransferState.DONE if result is Result.SUCCESS else TransferState.FAILED
        log.info("%s finished; result=%s peer=%s total=%d", session.direction.value, result, session.peer, session.total)
        if changed is not None:
            self._mission_changed(changed)
        if session.direction is Direction.DOWNLOAD:
            session.callback(result, items or [])
        else:
            session.callback(result)

    def _session_for(self, sender: PeerIdentity, direction: Direction, mission_type: int) -> Optional[TransferSession]:
        session = self._sessions.get(sender)
        if session is None or session.direction is not direction or session.mission_type != mission_type:
            return None
        return session

    # --- upload ---

    def _upload(self, items: List[MissionItem], callback: ResultCallback) -> None:
        problem = validate_items(items)
        if problem is not None:
            log.warning("upload rejected; %s", problem)
            callback(Result.INVALID_ARGUMENT)
            return
        session = self._open(Direction.UPLOAD, items[0].mission_type, callback)
        if session is None:
            return
        session.items = list(items)
        session.total = len(items)
        session.state = TransferState.SENDING_COUNT
        log.info("upload started; peer=%s count=%d", session.peer, session.total)
        if self._send(session, MissionCount(session.total, session.mission_type)):
            session.state = TransferState.AWAITING_ITEM_REQUESTS
            session.timer.start()

    def _on_request(self, sender: PeerIdentity, request: MissionRequestInt) -> None:
        session = self._session_for(sender, Direction.UPLOAD, request.mission_type)
        if session is None:
            return
        if request.seq >= session.total:
            log.warning("request out of range; seq=%d total=%d", request.seq, session.total)
            return
        if request.seq in session.answered:
            log.debug("duplicate request; seq=%d", request.seq)
        session.answered.add(request.seq)
        if not self._send(session, MissionItemInt(session.items[request.seq])):
            return
        if len(session.answered) == session.total:
            session.state = TransferState.SENDING_ACK
        session.timer.start()

    # --- download ---

    def _download(self, mission_type: int, callback: ItemsCallback) -> None:
        session = self._open(Direction.DOWNLOAD, mission_type, callback)
        if session is None:
            return
        session.state = TransferState.REQUESTING_COUNT
        log.info("download started; peer=%s", session.peer)
        if self._send(session, MissionRequestList(mission_type)):
            session.timer.start()

    def _on_count(self, sender: PeerIdentity, count: MissionCount) -> None:
        session = self._session_for(sender, Direction.DOWNLOAD, count.mission_type)
        if session is None or session.state is not TransferState.REQUESTING_COUNT:
            return
        session.total = count.count
        if count.count == 0:
            self.system.send(MissionAck(mavlink.MAV_MISSION_ACCEPTED, session.mission_type))
            self._record_download(session, [])
            return
        session.items = [None] * count.count
        session.state = TransferState.REQUESTING_ITEMS
        self._request_next(session)

    def _request_next(self, session: TransferSession) -> None:
        if self._send(session, MissionRequestInt(session.next_seq, session.mission_type)):
            session.timer.start()

    def _on_item(self, sender: PeerIdentity, message: MissionItemInt) -> None:
        session = self._session_for(sender, Direction.DOWNLOAD, message.mission_type)
        if session is None or session.state is not TransferState.REQUESTING_ITEMS:
            return
        if message.seq != session.next_seq:
            log.debug("unexpected item; seq=%d want=%d", message.seq, session.next_seq)
            return
        session.items[message.seq] = message.item
        session.next_seq += 1
        if session.next_seq < session.total:
            self._request_next(session)
            return
        items = [item for item in session.items if item is not None]
        self.system.send(MissionAck(mavlink.MAV_MISSION_ACCEPTED, session.mission_type))
        self._record_download(session, items)

    def _record_download(self, session: TransferSession, items: List[MissionItem]) -> None:
        if session.mission_type == MISSION_TYPE_MISSION:
            self.signature = MissionSignature.of(items)
            self._adopt_peer_id = True
        self._finish(session, Result.SUCCESS, items)

    # --- clear and cancel ---

    def _clear(self, mission_type: int, callback: ResultCallback) -> None:
        self._cancel_active()
        session = self._open(Direction.CLEAR, mission_type, callback)
        if session is None:
            return
        session.state = TransferState.CLEARING
        log.info("clear started; peer=%s", session.peer)
        if self._send(session, MissionClearAll(mission_type)):
            session.timer.start()

    def _cancel_active(self) -> None:
        peer = self.system.peer
        session = self._sessions.get(peer) if peer is not None else None
        if session is not None:
            self._cancel(session)

    def cancel_all(self) -> None:
        """Cancel every session; runs on the dispatcher."""
        for session in list(self._sessions.values()):
            self._cancel(session)

    def _cancel(self, session: TransferSession) -> None:
        if session.direction is not Direction.CLEAR:
            self.system.send(MissionAck(mavlink.MAV_MISSION_OPERATION_CANCELLED, session.mission_type))
        self._finish(session, Result.CANCELLED)

    # --- acks ---

    def _on_ack(self, sender: PeerIdentity, ack: MissionAck) -> None:
        session = self._sessions.get(sender)
        if session is None or session.mission_type != ack.mission_type:
            log.debug("unsolicited mission ack; type=%d from=%s", ack.type, sender)
            return
        result = from_mission_ack(ack.type)
        if session.direction is Direction.DOWNLOAD:
            if result is Result.SUCCESS:
                return
            self._finish(session, result)
            return

        changed = None
        if result is Result.SUCCESS:
            if session.direction is Direction.UPLOAD and len(session.answered) < session.total:
                log.warning("ack before all items sent; sent=%d total=%d", len(session.answered), session.total)
                result = Result.INVALID_SEQUENCE
            elif session.mission_type == MISSION_TYPE_MISSION:
                items = [item for item in session.items if item is not None]
                changed = MissionSignature.of(items)
        self._finish(session, result, changed=changed)

    # --- change notification ---

    def _mission_changed(self, signature: MissionSignature, local: bool = True) -> None:
        self.signature = signature
        self._adopt_peer_id = local
        log.info("mission changed; count=%d checksum=%08x", signature.count, signature.checksum)
        for callback in list(self._subscribers):
            try:
                callback()
            except Exception:
                log.exception("mission changed subscriber failed")

    def _on_current(self, sender: PeerIdentity, current: MissionCurrent) -> None:
        if sender != self.system.peer or sender in self._sessions:
            return
        observed = MissionSignature(current.total, current.mission_id)
        known = self.signature
        if known is None:
            self.signature = observed
            return
        if known.count != observed.count:
            self._mission_changed(observed, local=False)
        elif observed.checksum in (0, known.checksum):
            return
        elif self._adopt_peer_id:
            log.debug("adopting peer mission id; id=%08x", observed.checksum)
            self.signature = observed
            self._adopt_peer_id = False
        else:
            self._mission_changed(observed, local=False)
