from __future__ import annotations

import pytest

from gcslink.dispatch import Dispatcher
from gcslink.engine import Engine, EngineConfig
from gcslink.link import LoopbackLink
from helpers import AUTOPILOT, GCS, FakeClock
from sim_autopilot import SimAutopilot


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dispatcher(clock: FakeClock) -> Dispatcher:
    return Dispatcher(clock=clock)


@pytest.fixture
def links(dispatcher: Dispatcher):
    return LoopbackLink.pair(dispatcher, GCS, AUTOPILOT)


@pytest.fixture
def engine(links, dispatcher: Dispatcher) -> Engine:
    # long heartbeat timeout so slow fake-clock scenarios keep the peer
    return Engine(links[0], EngineConfig(heartbeat_timeout_s=600.0), dispatcher=dispatcher)


@pytest.fixture
def autopilot(links) -> SimAutopilot:
    return SimAutopilot(links[1])


@pytest.fixture
def connected(engine: Engine, autopilot: SimAutopilot, dispatcher: Dispatcher) -> Engine:
    autopilot.heartbeat()
    dispatcher.run_until_idle()
    assert engine.system.peer_has_autopilot()
    return engine
