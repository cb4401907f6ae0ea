"""
Abstract messaging client interface - the WhatsApp session driver is an opaque
collaborator. Implementations connect/disconnect, send text and media, download
media of inbound messages, and push normalized ClientEvents onto a bounded queue
that the session bridge consumes in arrival order.
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

EVENT_QR = "qr"
EVENT_READY = "ready"
EVENT_DISCONNECTED = "disconnected"
EVENT_MESSAGE = "message"
EVENT_MESSAGE_CREATE = "message_create"


@dataclass(frozen=True)
class MediaPayload:
    mimetype: str
    data: bytes
    filename: Optional[str] = None


@dataclass(frozen=True)
class ClientMessage:
    id: str
    sender: str
    recipient: str
    body: str = ""
    timestamp: int = 0  # epoch seconds
    from_me: bool = False
    has_media: bool = False
    mimetype: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class ClientEvent:
    type: str
    qr: Optional[str] = None
    reason: Optional[str] = None
    message: Optional[ClientMessage] = None


@dataclass(frozen=True)
class SentMessage:
    id: str


def to_chat_id(phone_number: str) -> str:
    """'15551234567' -> '15551234567@c.us'. Chat ids pass through unchanged."""
    phone_number = phone_number.strip()
    if "@" in phone_number:
        return phone_number
    return f"{phone_number}@c.us"


class MessagingClient(ABC):
    """Base class for WhatsApp session drivers."""

    def __init__(self, queue_size: int = 1000):
        self.events: asyncio.Queue[ClientEvent] = asyncio.Queue(maxsize=queue_size)

    async def emit(self, event: ClientEvent) -> None:
        """Queue an event for the session bridge. Blocks while the queue is full."""
        await self.events.put(event)

    @abstractmethod
    async def connect(self) -> None:
        """Start or resume the session. QR codes and readiness arrive as events."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Log out and tear down the session."""
        ...

    @abstractmethod
    async def send_message(self, chat_id: str, body: str) -> SentMessage:
        ...

    @abstractmethod
    async def send_media(
        self, chat_id: str, media: MediaPayload, caption: Optional[str] = None,
    ) -> SentMessage:
        ...

    @abstractmethod
    async def download_media(self, message: ClientMessage) -> MediaPayload:
        """Fetch the attachment of an inbound message."""
        ...

    async def close(self) -> None:
        """Release client resources at shutdown. Default: nothing to release."""
        return None
