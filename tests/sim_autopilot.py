"""A scripted autopilot on the far end of a LoopbackLink."""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List, Optional

from pymavlink.dialects.v20 import common as mavlink

from gcslink.link import LoopbackLink
from gcslink.messages import (
    CommandAck,
    CommandInt,
    CommandLong,
    Heartbeat,
    MissionAck,
    MissionClearAll,
    MissionCount,
    MissionCurrent,
    MissionItem,
    MissionItemInt,
    MissionRequestInt,
    MissionRequestList,
    mission_checksum,
)


class SimAutopilot:
    def __init__(self, link: LoopbackLink):
        self.link = link
        link.set_receiver(self._on_message)
        self.received: List[Any] = []
        self.missions: Dict[int, List[MissionItem]] = defaultdict(list)

        # commands
        self.command_results: Dict[int, int] = {}
        self.in_progress_first: set = set()
        self.silent_commands: set = set()

        # upload behaviour
        self.request_order: Optional[List[int]] = None
        self.stop_requesting_after: Optional[int] = None
        self.upload_ack = mavlink.MAV_MISSION_ACCEPTED
        self.upload_in_progress: Dict[int, MissionItem] = {}
        self._upload_total = 0
        self._upload_type = 0
        self._order: List[int] = []
        self._requests_sent = 0

        # drop the first n inbound messages of a type
        self.drop_first: Dict[type, int] = {}
        self.silent = False

    @property
    def gcs(self):
        return self.link.remote.identity

    def send(self, message: Any) -> None:
        self.link.send(self.gcs, message)

    def heartbeat(self) -> None:
        self.send(Heartbeat(mavlink.MAV_TYPE_QUADROTOR, mavlink.MAV_AUTOPILOT_PX4))

    def broadcast_current(self, mission_type: int = 0, mission_id: Optional[int] = None) -> None:
        items = self.missions[mission_type]
        checksum = mission_checksum(items) if mission_id is None else mission_id
        self.send(MissionCurrent(0, len(items), checksum))

    def received_of(self, message_type: type) -> List[Any]:
        return [m for m in self.received if isinstance(m, message_type)]

    def _on_message(self, sender, message: Any) -> None:
        remaining = self.drop_first.get(type(message), 0)
        if remaining > 0:
            self.drop_first[type(message)] = remaining - 1
            return
        self.received.append(message)
        if self.silent:
            return
        handler = getattr(self, f"_on_{type(message).__name__}", None)
        if handler is not None:
            handler(message)

    # --- commands ---

    def _on_CommandLong(self, message: CommandLong) -> None:
        self._answer_command(message.command)

    def _on_CommandInt(self, message: CommandInt) -> None:
        self._answer_command(message.command)

    def _answer_command(self, command: int) -> None:
        if command in self.silent_commands:
            return
        if command in self.in_progress_first:
            self.in_progress_first.discard(command)
            self.send(CommandAck(command, mavlink.MAV_RESULT_IN_PROGRESS, progress=50))
            self.send(CommandAck(command, mavlink.MAV_RESULT_IN_PROGRESS, progress=90))
            return
        self.send(CommandAck(command, self.command_results.get(command, mavlink.MAV_RESULT_ACCEPTED)))

    # --- upload, peer side ---

    def _on_MissionCount(self, message: MissionCount) -> None:
        self.upload_in_progress = {}
        self._upload_total = message.count
        self._upload_type = message.mission_type
        self._order = list(self.request_order) if self.request_order is not None else list(range(message.count))
        self._requests_sent = 0
        if self.upload_ack == mavlink.MAV_MISSION_NO_SPACE:
            self.send(MissionAck(self.upload_ack, message.mission_type))
            return
        self._request_next()

    def _request_next(self) -> None:
        if not self._order:
            return
        if self.stop_requesting_after is not None and self._requests_sent >= self.stop_requesting_after:
            return
        self._requests_sent += 1
        self.send(MissionRequestInt(self._order.pop(0), self._upload_type))

    def _on_MissionItemInt(self, message: MissionItemInt) -> None:
        self.upload_in_progress[message.seq] = message.item
        if self._order:
            self._request_next()
            return
        if len(self.upload_in_progress) == self._upload_total:
            if self.upload_ack == mavlink.MAV_MISSION_ACCEPTED:
                self.missions[self._upload_type] = [self.upload_in_progress[i] for i in range(self._upload_total)]
            self.send(MissionAck(self.upload_ack, self._upload_type))

    # --- download, peer side ---

    def _on_MissionRequestList(self, message: MissionRequestList) -> None:
        self.send(MissionCount(len(self.missions[message.mission_type]), message.mission_type))

    def _on_MissionRequestInt(self, message: MissionRequestInt) -> None:
        items = self.missions[message.mission_type]
        if message.seq < len(items):
            self.send(MissionItemInt(items[message.seq]))

    def _on_MissionClearAll(self, message: MissionClearAll) -> None:
        self.missions[message.mission_type] = []
        self.send(MissionAck(mavlink.MAV_MISSION_ACCEPTED, message.mission_type))

    def _on_MissionAck(self, message: MissionAck) -> None:
        if message.type == mavlink.MAV_MISSION_OPERATION_CANCELLED:
            self._order = []
