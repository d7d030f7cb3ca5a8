"""gcslink: reliable command and mission transfer for a MAVLink autopilot.

This package is structured the way the link layer itself is:
- message types separate from the protocol state machines
- one serialized dispatcher owning all protocol state
- every operation available as a callback call and as a blocking call

Message encoding is left to pymavlink.
"""

from .command import CommandProtocol
from .dispatch import Dispatcher
from .engine import Engine, EngineConfig
from .link import Impairment, Link, LoopbackLink
from .messages import MissionItem
from .mission import MissionTransferProtocol
from .result import Result
from .retry import RetryPolicy
from .system import PeerIdentity, System

__all__ = [
    "CommandProtocol",
    "Dispatcher",
    "Engine",
    "EngineConfig",
    "Impairment",
    "Link",
    "LoopbackLink",
    "MissionItem",
    "MissionTransferProtocol",
    "PeerIdentity",
    "Result",
    "RetryPolicy",
    "System",
]
