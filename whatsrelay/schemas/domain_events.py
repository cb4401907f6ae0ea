"""
Domain events - normalized, immutable records of something that happened,
independent of the messaging client that produced them.

Each event knows its own webhook wire payload via to_wire().
"""
import uuid
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from whatsrelay.utils.timestamps import utc_now_iso

DEFAULT_SOURCE = "whatsapp-server"
TEST_EVENT_MESSAGE = "This is a test webhook event from WhatsApp Web Dashboard"


class _DomainEventBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: str = Field(default_factory=utc_now_iso)
    source: str = DEFAULT_SOURCE


class MessageSent(_DomainEventBase):
    kind: Literal["message_sent"] = "message_sent"
    message_id: str
    to: str
    body: str = ""
    media_type: Optional[str] = None
    media_path: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "message_sent",
            "message": {
                "id": self.message_id,
                "to": self.to,
                "body": self.body,
                "mediaType": self.media_type,
                "mediaPath": self.media_path,
            },
        }


class MessageReceived(_DomainEventBase):
    kind: Literal["message_received"] = "message_received"
    message_id: str
    sender: str
    body: str = ""
    message_timestamp: int  # epoch seconds as reported by the messaging client
    has_media: bool = False
    media_type: Optional[str] = None
    media_path: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "message_received",
            "message": {
                "id": self.message_id,
                "from": self.sender,
                "body": self.body,
                "timestamp": self.message_timestamp,
                "hasMedia": self.has_media,
                "mediaType": self.media_type,
                "mediaPath": self.media_path,
            },
        }


class WebhookTest(_DomainEventBase):
    kind: Literal["webhook_test"] = "webhook_test"
    message: str = TEST_EVENT_MESSAGE

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "webhook_test",
            "timestamp": self.timestamp,
            "test": True,
            "message": self.message,
        }


class ExternalEvent(_DomainEventBase):
    """An event posted to the inbound relay endpoint by a third party."""

    kind: Literal["external_event"] = "external_event"
    source: str = "external"
    event_type: str = "external"
    data: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "external_event",
            "timestamp": self.timestamp,
            "source": self.source,
            "event": self.event_type,
            "data": self.data,
        }


DomainEvent = Annotated[
    Union[MessageSent, MessageReceived, WebhookTest, ExternalEvent],
    Field(discriminator="kind"),
]
