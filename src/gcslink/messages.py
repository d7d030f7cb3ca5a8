from __future__ import annotations

import struct
import zlib
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from .constants import ITEM_FORMAT, MISSION_TYPE_MISSION, NAV_COMMAND_LIMIT

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


@dataclass(frozen=True, slots=True, eq=False)
class MissionItem:
    """One MISSION_ITEM_INT worth of fields.

    Two items are equal when their packed wire bytes are equal, so a NaN
    "don't care" parameter compares equal to itself.
    """

    seq: int
    frame: int
    command: int
    current: int = 0
    autocontinue: int = 1
    param1: float = 0.0
    param2: float = 0.0
    param3: float = 0.0
    param4: float = 0.0
    x: int = 0
    y: int = 0
    z: float = 0.0
    mission_type: int = MISSION_TYPE_MISSION

    def __post_init__(self) -> None:
        if not 0 <= self.seq <= 0xFFFF:
            raise ValueError(f"seq out of range: {self.seq}")
        if not 0 <= self.command <= 0xFFFF:
            raise ValueError(f"command out of range: {self.command}")
        for name in ("frame", "current", "autocontinue", "mission_type"):
            value = getattr(self, name)
            if not 0 <= value <= 0xFF:
                raise ValueError(f"{name} out of uint8 range: {value}")
        for name in ("x", "y"):
            value = getattr(self, name)
            if not _INT32_MIN <= value <= _INT32_MAX:
                raise ValueError(f"{name} out of int32 range: {value}")

    @property
    def is_navigation(self) -> bool:
        return self.command < NAV_COMMAND_LIMIT

    @property
    def params(self) -> Tuple[float, float, float, float]:
        return (self.param1, self.param2, self.param3, self.param4)

    def packed(self) -> bytes:
        return struct.pack(
            ITEM_FORMAT,
            self.seq,
            self.frame,
            self.command,
            self.current,
            self.autocontinue,
            self.param1,
            self.param2,
            self.param3,
            self.param4,
            self.x,
            self.y,
            self.z,
            self.mission_type,
        )

    @staticmethod
    def global_position(
        seq: int,
        frame: int,
        command: int,
        latitude_deg: float,
        longitude_deg: float,
        altitude_m: float,
        **fields,
    ) -> "MissionItem":
        return MissionItem(
            seq=seq,
            frame=frame,
            command=command,
            x=int(round(latitude_deg * 1e7)),
            y=int(round(longitude_deg * 1e7)),
            z=altitude_m,
            **fields,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MissionItem):
            return NotImplemented
        return self.packed() == other.packed()

    def __hash__(self) -> int:
        return hash(self.packed())

    def __repr__(self) -> str:
        return (
            f"MissionItem(seq={self.seq}, command={self.command}, frame={self.frame}, "
            f"current={self.current}, params={self.params}, x={self.x}, y={self.y}, z={self.z})"
        )


def mission_checksum(items: Iterable[MissionItem]) -> int:
    crc = 0
    for item in items:
        crc = zlib.crc32(item.packed(), crc)
    return crc


@dataclass(frozen=True, slots=True)
class MissionSignature:
    count: int
    checksum: int = 0

    @classmethod
    def of(cls, items: List[MissionItem]) -> "MissionSignature":
        return cls(len(items), mission_checksum(items))


# Messages. Target system/component come from the peer the link sends to.


@dataclass(frozen=True, slots=True)
class Heartbeat:
    type: int
    autopilot: int
    base_mode: int = 0
    custom_mode: int = 0
    system_status: int = 0


@dataclass(frozen=True, slots=True)
class CommandLong:
    command: int
    params: Tuple[float, ...] = field(default=(0.0,) * 7)
    confirmation: int = 0

    def __post_init__(self) -> None:
        if len(self.params) != 7:
            raise ValueError(f"COMMAND_LONG carries 7 params, got {len(self.params)}")


@dataclass(frozen=True, slots=True)
class CommandInt:
    command: int
    frame: int
    params: Tuple[float, ...] = (0.0, 0.0, 0.0, 0.0)
    x: int = 0
    y: int = 0
    z: float = 0.0

    def __post_init__(self) -> None:
        if len(self.params) != 4:
            raise ValueError(f"COMMAND_INT carries 4 params, got {len(self.params)}")


@dataclass(frozen=True, slots=True)
class CommandAck:
    command: int
    result: int
    progress: int = 0


@dataclass(frozen=True, slots=True)
class MissionCount:
    count: int
    mission_type: int = MISSION_TYPE_MISSION


@dataclass(frozen=True, slots=True)
class MissionRequestList:
    mission_type: int = MISSION_TYPE_MISSION


@dataclass(frozen=True, slots=True)
class MissionRequestInt:
    seq: int
    mission_type: int = MISSION_TYPE_MISSION


@dataclass(frozen=True, slots=True)
class MissionItemInt:
    item: MissionItem

    @property
    def seq(self) -> int:
        return self.item.seq

    @property
    def mission_type(self) -> int:
        return self.item.mission_type


@dataclass(frozen=True, slots=True)
class MissionAck:
    type: int
    mission_type: int = MISSION_TYPE_MISSION


@dataclass(frozen=True, slots=True)
class MissionClearAll:
    mission_type: int = MISSION_TYPE_MISSION


@dataclass(frozen=True, slots=True)
class MissionCurrent:
    seq: int
    total: int = 0
    mission_id: int = 0
