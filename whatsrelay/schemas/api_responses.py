"""
API request and response schemas for the dashboard endpoints.
Every endpoint answers with the same envelope: {"success", "data"?, "error"?, "message"?}.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message is not None:
        body["message"] = message
    return body


def fail(error: str) -> dict:
    return {"success": False, "error": error}


class _CamelModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class SendMessageRequest(_CamelModel):
    phone_number: str = Field(alias="phoneNumber", min_length=1)
    message: str = Field(min_length=1)


class ConfigureWebhookRequest(_CamelModel):
    webhook_url: Optional[str] = Field(default=None, alias="webhookUrl")


class MessageLogOut(_CamelModel):
    id: str
    timestamp: str
    type: str = Field(validation_alias="direction")
    phone_number: str = Field(serialization_alias="phoneNumber")
    content: str
    status: str
    media_type: Optional[str] = Field(default=None, serialization_alias="mediaType")
    media_path: Optional[str] = Field(default=None, serialization_alias="mediaPath")


class WebhookAttemptOut(_CamelModel):
    id: str
    timestamp: str
    method: str
    endpoint: str
    status: int
    source: str
    payload: Optional[Any] = None
    response: Optional[Any] = None


def serialize_message_log(entry) -> dict:
    return MessageLogOut.model_validate(entry).model_dump(by_alias=True)


def serialize_webhook_attempt(entry) -> dict:
    return WebhookAttemptOut.model_validate(entry).model_dump(by_alias=True)
