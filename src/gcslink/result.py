from __future__ import annotations

import enum
from typing import Callable

from pymavlink.dialects.v20 import common as mavlink

from .constants import MAV_RESULT_CANCELLED


class Result(enum.Enum):
    SUCCESS = "success"
    UNKNOWN = "unknown"
    NO_SYSTEM = "no_system"
    CONNECTION_ERROR = "connection_error"
    BUSY = "busy"
    COMMAND_DENIED = "command_denied"
    INVALID_SEQUENCE = "invalid_sequence"
    NO_SPACE = "no_space"
    TIMEOUT = "timeout"
    INVALID_ARGUMENT = "invalid_argument"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


ResultCallback = Callable[[Result], None]


_COMMAND_RESULTS = {
    mavlink.MAV_RESULT_ACCEPTED: Result.SUCCESS,
    mavlink.MAV_RESULT_TEMPORARILY_REJECTED: Result.BUSY,
    mavlink.MAV_RESULT_DENIED: Result.COMMAND_DENIED,
    mavlink.MAV_RESULT_FAILED: Result.COMMAND_DENIED,
    mavlink.MAV_RESULT_UNSUPPORTED: Result.UNKNOWN,
    MAV_RESULT_CANCELLED: Result.CANCELLED,
}

_MISSION_RESULTS = {
    mavlink.MAV_MISSION_ACCEPTED: Result.SUCCESS,
    mavlink.MAV_MISSION_NO_SPACE: Result.NO_SPACE,
    mavlink.MAV_MISSION_INVALID_SEQUENCE: Result.INVALID_SEQUENCE,
    mavlink.MAV_MISSION_DENIED: Result.COMMAND_DENIED,
    mavlink.MAV_MISSION_UNSUPPORTED: Result.COMMAND_DENIED,
    mavlink.MAV_MISSION_UNSUPPORTED_FRAME: Result.COMMAND_DENIED,
    mavlink.MAV_MISSION_INVALID: Result.COMMAND_DENIED,
    mavlink.MAV_MISSION_INVALID_PARAM1: Result.COMMAND_DENIED,
    mavlink.MAV_MISSION_INVALID_PARAM2: Result.COMMAND_DENIED,
    mavlink.MAV_MISSION_INVALID_PARAM3: Result.COMMAND_DENIED,
    mavlink.MAV_MISSION_INVALID_PARAM4: Result.COMMAND_DENIED,
    mavlink.MAV_MISSION_INVALID_PARAM5_X: Result.COMMAND_DENIED,
    mavlink.MAV_MISSION_INVALID_PARAM6_Y: Result.COMMAND_DENIED,
    mavlink.MAV_MISSION_INVALID_PARAM7: Result.COMMAND_DENIED,
    mavlink.MAV_MISSION_OPERATION_CANCELLED: Result.CANCELLED,
}


def from_command_ack(code: int) -> Result:
    """Map a MAV_RESULT code from COMMAND_ACK. IN_PROGRESS is not terminal and is not handled here."""
    return _COMMAND_RESULTS.get(code, Result.UNKNOWN)


def from_mission_ack(code: int) -> Result:
    return _MISSION_RESULTS.get(code, Result.UNKNOWN)
