"""Conversion between gcslink messages and pymavlink messages.

Bit layout is pymavlink's business; this module only maps fields.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from pymavlink.dialects.v20 import common as mavlink

from .messages import (
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
)
from .system import PeerIdentity


def encode(mav: mavlink.MAVLink, peer: PeerIdentity, message: Any) -> mavlink.MAVLink_message:
    ts, tc = peer.system_id, peer.component_id
    if isinstance(message, Heartbeat):
        return mav.heartbeat_encode(
            message.type, message.autopilot, message.base_mode, message.custom_mode, message.system_status
        )
    if isinstance(message, CommandLong):
        return mav.command_long_encode(ts, tc, message.command, message.confirmation, *message.params)
    if isinstance(message, CommandInt):
        return mav.command_int_encode(
            ts, tc, message.frame, message.command, 0, 0, *message.params, message.x, message.y, message.z
        )
    if isinstance(message, MissionCount):
        return mav.mission_count_encode(ts, tc, message.count, message.mission_type)
    if isinstance(message, MissionRequestList):
        return mav.mission_request_list_encode(ts, tc, message.mission_type)
    if isinstance(message, MissionRequestInt):
        return mav.mission_request_int_encode(ts, tc, message.seq, message.mission_type)
    if isinstance(message, MissionItemInt):
        item = message.item
        return mav.mission_item_int_encode(
            ts,
            tc,
            item.seq,
            item.frame,
            item.command,
            item.current,
            item.autocontinue,
            item.param1,
            item.param2,
            item.param3,
            item.param4,
            item.x,
            item.y,
            item.z,
            item.mission_type,
        )
    if isinstance(message, MissionAck):
        return mav.mission_ack_encode(ts, tc, message.type, message.mission_type)
    if isinstance(message, MissionClearAll):
        return mav.mission_clear_all_encode(ts, tc, message.mission_type)
    raise ValueError(f"cannot encode {type(message).__name__}")


def _mission_item(msg: Any) -> MissionItemInt:
    return MissionItemInt(
        MissionItem(
            seq=msg.seq,
            frame=msg.frame,
            command=msg.command,
            current=msg.current,
            autocontinue=msg.autocontinue,
            param1=msg.param1,
            param2=msg.param2,
            param3=msg.param3,
            param4=msg.param4,
            x=msg.x,
            y=msg.y,
            z=msg.z,
            mission_type=getattr(msg, "mission_type", 0),
        )
    )


_DECODERS: Dict[str, Callable[[Any], Any]] = {
    "HEARTBEAT": lambda m: Heartbeat(m.type, m.autopilot, m.base_mode, m.custom_mode, m.system_status),
    "COMMAND_ACK": lambda m: CommandAck(m.command, m.result, getattr(m, "progress", 0)),
    "MISSION_COUNT": lambda m: MissionCount(m.count, getattr(m, "mission_type", 0)),
    "MISSION_REQUEST_INT": lambda m: MissionRequestInt(m.seq, getattr(m, "mission_type", 0)),
    # legacy float request; the answer is still MISSION_ITEM_INT
    "MISSION_REQUEST": lambda m: MissionRequestInt(m.seq, getattr(m, "mission_type", 0)),
    "MISSION_ITEM_INT": _mission_item,
    "MISSION_ACK": lambda m: MissionAck(m.type, getattr(m, "mission_type", 0)),
    "MISSION_CURRENT": lambda m: MissionCurrent(m.seq, getattr(m, "total", 0), getattr(m, "mission_id", 0)),
}


def decode(msg: Any) -> Optional[Any]:
    """Return the gcslink message for ``msg``, or None if the core does not consume it."""
    decoder = _DECODERS.get(msg.get_type())
    if decoder is None:
        return None
    return decoder(msg)


def sender_of(msg: Any) -> PeerIdentity:
    return PeerIdentity(msg.get_srcSystem(), msg.get_srcComponent())
