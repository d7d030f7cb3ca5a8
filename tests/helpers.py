from __future__ import annotations

import math
from typing import Any, List

from pymavlink.dialects.v20 import common as mavlink

from gcslink.constants import GCS_COMPONENT_ID, GCS_SYSTEM_ID
from gcslink.dispatch import Dispatcher
from gcslink.messages import MissionItem
from gcslink.system import PeerIdentity

GCS = PeerIdentity(GCS_SYSTEM_ID, GCS_COMPONENT_ID)
AUTOPILOT = PeerIdentity(1, 1)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Recorder:
    """Completion callback that remembers every call."""

    def __init__(self) -> None:
        self.calls: List[Any] = []

    def __call__(self, *outcome: Any) -> None:
        self.calls.append(outcome[0] if len(outcome) == 1 else outcome)

    @property
    def only(self) -> Any:
        assert len(self.calls) == 1, self.calls
        return self.calls[0]


def settle(dispatcher: Dispatcher, clock: FakeClock, seconds: float, step: float = 0.0625) -> None:
    """Advance the fake clock in small steps, draining the dispatcher at each one."""
    dispatcher.run_until_idle()
    steps = int(round(seconds / step))
    for _ in range(steps):
        clock.advance(step)
        dispatcher.run_until_idle()


LATITUDES = (47.398170, 47.398175)
LONGITUDES = (8.545649, 8.545654)
ALTITUDES = (5.0, 7.5)
SPEEDS = (4.0, 5.0)


def waypoints_with_speeds() -> List[MissionItem]:
    """Two waypoints, each followed by a change-speed item; the first waypoint is current."""
    items: List[MissionItem] = []
    for i in range(len(LATITUDES)):
        items.append(
            MissionItem.global_position(
                seq=2 * i,
                frame=mavlink.MAV_FRAME_GLOBAL_RELATIVE_ALT_INT,
                command=mavlink.MAV_CMD_NAV_WAYPOINT,
                latitude_deg=LATITUDES[i],
                longitude_deg=LONGITUDES[i],
                altitude_m=ALTITUDES[i],
                current=1 if i == 0 else 0,
                param1=1.0,
                param2=1.0,
                param3=1.0,
                param4=math.nan,
            )
        )
        items.append(
            MissionItem(
                seq=2 * i + 1,
                frame=mavlink.MAV_FRAME_MISSION,
                command=mavlink.MAV_CMD_DO_CHANGE_SPEED,
                param1=1.0,
                param2=SPEEDS[i],
                param3=-1.0,
                param4=0.0,
                z=math.nan,
            )
        )
    return items
