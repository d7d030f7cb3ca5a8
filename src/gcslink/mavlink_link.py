from __future__ import annotations

import logging
import os
import threading
import time
from typing import Any, Optional

from pymavlink import mavutil
from pymavlink.dialects.v20 import common as mavlink

from . import codec
from .constants import DEFAULT_HEARTBEAT_INTERVAL_S, GCS_COMPONENT_ID, GCS_SYSTEM_ID
from .link import Impairment, Link
from .messages import Heartbeat
from .system import PeerIdentity

log = logging.getLogger(__name__)


class MavlinkLink(Link):
    """Link over a pymavlink connection (``udpin:0.0.0.0:14550``, ``tcp:host:port``, ``/dev/ttyACM0``...).

    A reader thread decodes inbound traffic and hands it to the receiver;
    the same thread emits the GCS heartbeat. An ``Impairment`` drops in both
    directions; its delay is applied to inbound traffic only.
    """

    def __init__(
        self,
        url: str,
        source_system: int = GCS_SYSTEM_ID,
        source_component: int = GCS_COMPONENT_ID,
        baud: int = 57600,
        heartbeat_interval_s: float = DEFAULT_HEARTBEAT_INTERVAL_S,
        impairment: Impairment | None = None,
    ):
        super().__init__()
        os.environ.setdefault("MAVLINK20", "1")
        self.url = url
        self.heartbeat_interval_s = heartbeat_interval_s
        self.impairment = impairment or Impairment()
        self.conn = mavutil.mavlink_connection(
            url,
            baud=baud,
            source_system=source_system,
            source_component=source_component,
            dialect="common",
        )
        self._send_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=f"gcslink-link-{self.url}", daemon=True)
        self._thread.start()
        log.info("link started; url=%s", self.url)

    def send(self, peer: PeerIdentity, message: Any) -> bool:
        if self.impairment.should_drop():
            log.debug("DROPPED outbound %s", type(message).__name__)
            return True
        try:
            with self._send_lock:
                self.conn.mav.send(codec.encode(self.conn.mav, peer, message))
        except OSError as e:
            log.warning("send failed; url=%s err=%s", self.url, e)
            return False
        return True

    def _send_heartbeat(self) -> None:
        heartbeat = Heartbeat(mavlink.MAV_TYPE_GCS, mavlink.MAV_AUTOPILOT_INVALID, 0, 0, mavlink.MAV_STATE_ACTIVE)
        # target ids are unused by HEARTBEAT
        self.send(PeerIdentity(0, 0), heartbeat)

    def _run(self) -> None:
        next_heartbeat = 0.0
        while not self._stop.is_set():
            now = time.monotonic()
            if now >= next_heartbeat:
                self._send_heartbeat()
                next_heartbeat = now + self.heartbeat_interval_s
            try:
                msg = self.conn.recv_match(blocking=True, timeout=self.heartbeat_interval_s / 2)
            except OSError as e:
                log.warning("receive failed; url=%s err=%s", self.url, e)
                time.sleep(self.heartbeat_interval_s)
                continue
            if msg is None or msg.get_type() == "BAD_DATA":
                continue
            if self.impairment.should_drop():
                continue
            # send() runs on the dispatcher and never sleeps
            self.impairment.sleep_if_needed()
            decoded = codec.decode(msg)
            if decoded is not None:
                self._deliver(codec.sender_of(msg), decoded)

    def close(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(2.0)
            self._thread = None
        self.conn.close()
        log.info("link closed; url=%s", self.url)
