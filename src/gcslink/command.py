from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple, Union

from pymavlink.dialects.v20 import common as mavlink

from .bridge import call_blocking
from .constants import MAX_COMMAND_PARAMS
from .dispatch import Dispatcher
from .messages import CommandAck, CommandInt, CommandLong
from .result import Result, ResultCallback, from_command_ack
from .retry import RetryPolicy, RetryTimer
from .system import PeerIdentity, System

log = logging.getLogger(__name__)

Request = Union[CommandLong, CommandInt]
RequestKey = Tuple[PeerIdentity, int]


@dataclass(slots=True)
class PendingRequest:
    key: RequestKey
    message: Request
    sent_at: float
    callback: ResultCallback
    timer: RetryTimer = dataclasses.field(init=False)

    def matches(self, sender: PeerIdentity, ack: CommandAck) -> bool:
        return sender == self.key[0] and ack.command == self.key[1]


class CommandProtocol:
    """COMMAND_LONG / COMMAND_INT with ack matching, retries and timeout.

    Different command codes may be in flight together; a repeat of a code
    that is still pending is answered with ``Result.BUSY``.
    """

    def __init__(self, system: System, dispatcher: Dispatcher, policy: RetryPolicy | None = None):
        self.system = system
        self.dispatcher = dispatcher
        self.policy = policy or RetryPolicy()
        self._pending: Dict[RequestKey, PendingRequest] = {}
        system.subscribe(CommandAck, self._on_ack)

    # --- public API, callable from any thread ---

    def execute_async(self, command: int, params: Sequence[float], callback: ResultCallback) -> None:
        self.dispatcher.post(self._execute_long, command, tuple(params), callback)

    def execute(self, command: int, params: Sequence[float] = ()) -> Result:
        return call_blocking(self.execute_async, command, params)

    def execute_int_async(
        self,
        command: int,
        frame: int,
        params: Sequence[float],
        x: int,
        y: int,
        z: float,
        callback: ResultCallback,
    ) -> None:
        self.dispatcher.post(self._execute_int, command, frame, tuple(params), x, y, z, callback)

    def execute_int(self, command: int, frame: int, params: Sequence[float], x: int, y: int, z: float) -> Result:
        return call_blocking(self.execute_int_async, command, frame, params, x, y, z)

    def pending_count(self) -> int:
        return len(self._pending)

    # --- dispatcher side ---

    def cancel_all(self) -> None:
        """Resolve every outstanding request with ``Result.CANCELLED``."""
        for pending in list(self._pending.values()):
            self._resolve(pending, Result.CANCELLED)

    def _execute_long(self, command: int, params: Tuple[float, ...], callback: ResultCallback) -> None:
        if len(params) > MAX_COMMAND_PARAMS:
            callback(Result.INVALID_ARGUMENT)
            return
        padded = params + (0.0,) * (MAX_COMMAND_PARAMS - len(params))
        self._issue(CommandLong(command, padded), callback)

    def _execute_int(
        self,
        command: int,
        frame: int,
        params: Tuple[float, ...],
        x: int,
        y: int,
        z: float,
        callback: ResultCallback,
    ) -> None:
        if len(params) > 4:
            callback(Result.INVALID_ARGUMENT)
            return
        padded = params + (0.0,) * (4 - len(params))
        self._issue(CommandInt(command, frame, padded, x, y, z), callback)

    def _issue(self, message: Request, callback: ResultCallback) -> None:
        peer = self.system.peer
        if peer is None or not self.system.peer_has_autopilot():
            callback(Result.NO_SYSTEM)
            return
        key = (peer, message.command)
        if key in self._pending:
            log.debug("command busy; command=%d peer=%s", message.command, peer)
            callback(Result.BUSY)
            return

        pending = PendingRequest(key, message, self.dispatcher.clock(), callback)
        pending.timer = RetryTimer(
            self.dispatcher,
            self.policy,
            resend=lambda attempt: self._resend(pending, attempt),
            on_exhausted=lambda: self._resolve(pending, Result.TIMEOUT),
            label=f"command={message.command}",
        )
        if not self.system.send(message):
            callback(Result.CONNECTION_ERROR)
            return
        self._pending[key] = pending
        pending.timer.start()
        log.debug("command sent; command=%d peer=%s", message.command, peer)

    def _resend(self, pending: PendingRequest, attempt: int) -> None:
        if self._pending.get(pending.key) is not pending:
            return
        message = pending.message
        if isinstance(message, CommandLong):
            message = dataclasses.replace(message, confirmation=min(attempt, 255))
        if not self.system.send(message):
            self._resolve(pending, Result.CONNECTION_ERROR)

    def _resolve(self, pending: PendingRequest, result: Result) -> None:
        if self._pending.get(pending.key) is not pending:
            return
        del self._pending[pending.key]
        pending.timer.cancel()
        elapsed = self.dispatcher.clock() - pending.sent_at
        log.debug("command done; command=%d result=%s elapsed=%.3fs", pending.key[1], result, elapsed)
        pending.callback(result)

    def _on_ack(self, sender: PeerIdentity, ack: CommandAck) -> None:
        pending = self._pending.get((sender, ack.command))
        if pending is None or not pending.matches(sender, ack):
            log.debug("unmatched ack; command=%d from=%s", ack.command, sender)
            return
        if ack.result == mavlink.MAV_RESULT_IN_PROGRESS:
            log.debug("command in progress; command=%d progress=%d", ack.command, ack.progress)
            pending.timer.touch()
            return
        self._resolve(pending, from_command_ack(ack.result))
