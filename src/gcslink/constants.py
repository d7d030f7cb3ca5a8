from __future__ import annotations

from pymavlink.dialects.v20 import common as mavlink

DEFAULT_TIMEOUT_S = 0.5
DEFAULT_RETRIES = 3
DEFAULT_HEARTBEAT_TIMEOUT_S = 3.0
DEFAULT_HEARTBEAT_INTERVAL_S = 1.0

GCS_SYSTEM_ID = 245
GCS_COMPONENT_ID = mavlink.MAV_COMP_ID_MISSIONPLANNER

# Commands below this code are navigation commands.
NAV_COMMAND_LIMIT = 100

MAX_COMMAND_PARAMS = 7

# MAV_RESULT_CANCELLED; older common dialects do not define it
MAV_RESULT_CANCELLED = 6

# little-endian wire layout of the item fields:
# seq, frame, command, current, autocontinue, param1..4, x, y, z, mission_type
ITEM_FORMAT = "<HBHBBffffiifB"

MISSION_TYPE_MISSION = mavlink.MAV_MISSION_TYPE_MISSION
MISSION_TYPE_FENCE = mavlink.MAV_MISSION_TYPE_FENCE
MISSION_TYPE_RALLY = mavlink.MAV_MISSION_TYPE_RALLY
