"""
Connection state - single owner of the messaging session status, QR payload
and session id. All mutations go through the transition methods below, each
taking one asyncio lock; events that do not fit the current state are ignored.

    disconnected --qr / connect request--> connecting --ready--> connected
    connecting | connected --disconnected / disconnect request--> disconnected
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from whatsrelay.utils.timestamps import utc_now_iso

logger = logging.getLogger(__name__)

DISCONNECTED = "disconnected"
CONNECTING = "connecting"
CONNECTED = "connected"


@dataclass(frozen=True)
class ConnectionSnapshot:
    status: str
    qr_code: str
    session_id: Optional[str]
    last_connected: Optional[str]

    def as_status_payload(self) -> dict:
        return {
            "status": self.status,
            "sessionId": self.session_id,
            "lastConnected": self.last_connected,
        }


class ConnectionState:
    def __init__(self):
        self._lock = asyncio.Lock()
        self._status = DISCONNECTED
        self._qr_code = ""
        self._session_id: Optional[str] = None
        self._last_connected: Optional[str] = None

    def snapshot(self) -> ConnectionSnapshot:
        return ConnectionSnapshot(
            status=self._status,
            qr_code=self._qr_code,
            session_id=self._session_id,
            last_connected=self._last_connected,
        )

    @property
    def status(self) -> str:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status == CONNECTED

    async def begin_connecting(self) -> bool:
        """Explicit connect request. Only valid while disconnected."""
        async with self._lock:
            if self._status != DISCONNECTED:
                return False
            self._status = CONNECTING
            logger.info("Connection state: disconnected -> connecting (connect request)")
            return True

    async def on_qr(self, qr_code: str) -> bool:
        async with self._lock:
            if self._status == CONNECTED:
                logger.debug("Ignoring QR code while connected")
                return False
            if self._status == DISCONNECTED:
                logger.info("Connection state: disconnected -> connecting (qr)")
            self._status = CONNECTING
            self._qr_code = qr_code
            return True

    async def on_ready(self) -> bool:
        async with self._lock:
            if self._status != CONNECTING:
                logger.debug("Ignoring ready event in state %s", self._status)
                return False
            self._status = CONNECTED
            self._qr_code = ""
            self._session_id = str(uuid.uuid4())
            self._last_connected = utc_now_iso()
            logger.info("Connection state: connecting -> connected (session %s)", self._session_id)
            return True

    async def on_disconnected(self, reason: Optional[str] = None) -> bool:
        """Disconnected event from the client, or an explicit disconnect request."""
        async with self._lock:
            if self._status == DISCONNECTED:
                logger.debug("Ignoring disconnect while already disconnected")
                return False
            logger.info("Connection state: %s -> disconnected (%s)", self._status, reason or "no reason")
            self._status = DISCONNECTED
            self._qr_code = ""
            self._session_id = None
            return True
