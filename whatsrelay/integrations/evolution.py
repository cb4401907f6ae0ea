"""
Evolution API messaging client.

Drives a WhatsApp Web session hosted by an Evolution API gateway. Outbound calls
go over HTTP with the instance API key; session and message events arrive as
webhook callbacks (POST /api/webhook/evolution) and are normalized here into
ClientEvents for the session bridge.
"""
import base64
import binascii
import logging
from typing import Any, Optional

import httpx

from whatsrelay.errors import MediaFetchError, MessagingClientError
from whatsrelay.integrations.messaging_base import (
    EVENT_DISCONNECTED,
    EVENT_MESSAGE,
    EVENT_MESSAGE_CREATE,
    EVENT_QR,
    EVENT_READY,
    ClientEvent,
    ClientMessage,
    MediaPayload,
    MessagingClient,
    SentMessage,
)

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 30.0

_MEDIA_MESSAGE_KEYS = (
    "imageMessage",
    "videoMessage",
    "audioMessage",
    "documentMessage",
    "stickerMessage",
)


def jid_to_chat_id(jid: str) -> str:
    """'5511999999999@s.whatsapp.net' -> '5511999999999@c.us'."""
    if jid.endswith("@s.whatsapp.net"):
        return jid[: -len("@s.whatsapp.net")] + "@c.us"
    return jid


def chat_id_to_number(chat_id: str) -> str:
    """Evolution takes bare numbers for direct chats and full JIDs for groups."""
    if chat_id.endswith("@c.us"):
        return chat_id[: -len("@c.us")]
    return chat_id


def _normalize_event_name(name: str) -> str:
    # v1 sends MESSAGES_UPSERT, v2 sends messages.upsert
    return name.strip().lower().replace("_", ".")


def _extract_body(message: dict) -> str:
    if message.get("conversation"):
        return str(message["conversation"])
    extended = message.get("extendedTextMessage")
    if isinstance(extended, dict) and extended.get("text"):
        return str(extended["text"])
    for key in _MEDIA_MESSAGE_KEYS:
        media = message.get(key)
        if isinstance(media, dict) and media.get("caption"):
            return str(media["caption"])
    return ""


def _extract_media(message: dict) -> tuple[bool, Optional[str]]:
    for key in _MEDIA_MESSAGE_KEYS:
        media = message.get(key)
        if isinstance(media, dict) and media:
            return True, media.get("mimetype")
    return False, None


def parse_message(data: dict, from_me: Optional[bool] = None) -> Optional[ClientMessage]:
    """Build a ClientMessage from an Evolution message record, or None if it has no key."""
    key = data.get("key")
    if not isinstance(key, dict):
        return None
    message_id = key.get("id")
    remote = key.get("remoteJid")
    if not isinstance(message_id, str) or not isinstance(remote, str) or not message_id or not remote:
        return None

    if from_me is None:
        from_me = bool(key.get("fromMe"))
    content = data.get("message")
    if not isinstance(content, dict):
        content = {}
    has_media, mimetype = _extract_media(content)
    chat_id = jid_to_chat_id(remote)
    owner = jid_to_chat_id(str(data.get("owner") or data.get("sender") or ""))

    try:
        timestamp = int(data.get("messageTimestamp") or 0)
    except (TypeError, ValueError):
        timestamp = 0

    return ClientMessage(
        id=message_id,
        sender=owner if from_me else chat_id,
        recipient=chat_id if from_me else owner,
        body=_extract_body(content),
        timestamp=timestamp,
        from_me=from_me,
        has_media=has_media,
        mimetype=mimetype,
        raw=data,
    )


def parse_webhook(payload: dict) -> list[ClientEvent]:
    """Translate one Evolution webhook callback into zero or more client events."""
    event_name = _normalize_event_name(str(payload.get("event") or ""))
    data = payload.get("data")
    fields = data if isinstance(data, dict) else {}

    if event_name == "qrcode.updated":
        qrcode = fields.get("qrcode")
        qr = qrcode.get("base64") if isinstance(qrcode, dict) else qrcode
        return [ClientEvent(type=EVENT_QR, qr=qr)] if isinstance(qr, str) and qr else []

    if event_name == "connection.update":
        state = fields.get("state")
        if state == "open":
            return [ClientEvent(type=EVENT_READY)]
        if state == "close":
            reason = fields.get("statusReason")
            return [ClientEvent(type=EVENT_DISCONNECTED, reason=str(reason) if reason else "close")]
        return []

    if event_name == "logout.instance":
        return [ClientEvent(type=EVENT_DISCONNECTED, reason="logout")]

    if event_name in ("messages.upsert", "send.message"):
        records = data if isinstance(data, list) else fields.get("messages") or [fields]
        if not isinstance(records, list):
            records = []
        events = []
        for record in records:
            if not isinstance(record, dict):
                continue
            message = parse_message(record, from_me=True if event_name == "send.message" else None)
            if message is None:
                continue
            event_type = EVENT_MESSAGE_CREATE if message.from_me else EVENT_MESSAGE
            events.append(ClientEvent(type=event_type, message=message))
        return events

    logger.debug("Ignoring Evolution event %s", event_name or "<missing>")
    return []


class EvolutionClient(MessagingClient):
    """Evolution API v2 integration."""

    def __init__(self, base_url: str, api_key: str, instance_name: str, queue_size: int = 1000):
        super().__init__(queue_size=queue_size)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.instance_name = instance_name

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """Make an authenticated request to the gateway."""
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS) as client:
                response = await client.request(
                    method,
                    url,
                    headers={"apikey": self.api_key, "Content-Type": "application/json"},
                    **kwargs,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise MessagingClientError(
                f"Evolution API {method} {path} failed: {e.response.status_code} {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise MessagingClientError(f"Evolution API {method} {path} unreachable: {e}") from e
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    async def connect(self) -> None:
        data = await self._request("GET", f"/instance/connect/{self.instance_name}")
        state = (data.get("instance") or {}).get("state")
        if state == "open":
            await self.emit(ClientEvent(type=EVENT_READY))
            return
        qr = data.get("base64") or data.get("code")
        if qr:
            await self.emit(ClientEvent(type=EVENT_QR, qr=qr))
        logger.info("Evolution instance %s connecting", self.instance_name)

    async def disconnect(self) -> None:
        await self._request("DELETE", f"/instance/logout/{self.instance_name}")
        logger.info("Evolution instance %s logged out", self.instance_name)

    async def send_message(self, chat_id: str, body: str) -> SentMessage:
        data = await self._request(
            "POST",
            f"/message/sendText/{self.instance_name}",
            json={"number": chat_id_to_number(chat_id), "text": body},
        )
        return SentMessage(id=self._sent_id(data))

    async def send_media(
        self, chat_id: str, media: MediaPayload, caption: Optional[str] = None,
    ) -> SentMessage:
        mediatype = media.mimetype.split("/", 1)[0]
        if mediatype not in ("image", "video", "audio"):
            mediatype = "document"
        payload = {
            "number": chat_id_to_number(chat_id),
            "mediatype": mediatype,
            "mimetype": media.mimetype,
            "media": base64.b64encode(media.data).decode("ascii"),
            "fileName": media.filename or "file",
        }
        if caption:
            payload["caption"] = caption
        data = await self._request("POST", f"/message/sendMedia/{self.instance_name}", json=payload)
        return SentMessage(id=self._sent_id(data))

    async def download_media(self, message: ClientMessage) -> MediaPayload:
        try:
            data = await self._request(
                "POST",
                f"/chat/getBase64FromMediaMessage/{self.instance_name}",
                json={"message": {"key": {"id": message.id}}, "convertToMp4": False},
            )
        except MessagingClientError as e:
            raise MediaFetchError(e.message) from e

        encoded = data.get("base64")
        mimetype = data.get("mimetype") or message.mimetype
        if not encoded or not mimetype:
            raise MediaFetchError(f"No media returned for message {message.id}")
        try:
            raw = base64.b64decode(encoded, validate=False)
        except (binascii.Error, ValueError) as e:
            raise MediaFetchError(f"Invalid media encoding for message {message.id}") from e
        return MediaPayload(mimetype=mimetype, data=raw, filename=data.get("fileName"))

    async def handle_webhook(self, payload: dict) -> int:
        """Queue the events carried by one gateway callback. Returns how many were queued."""
        events = parse_webhook(payload)
        for event in events:
            await self.emit(event)
        return len(events)

    @staticmethod
    def _sent_id(data: dict) -> str:
        message_id = (data.get("key") or {}).get("id")
        if not message_id:
            raise MessagingClientError("Evolution API response did not include a message id")
        return message_id
