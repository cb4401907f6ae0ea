"""
Outbound messages and the message log.

Sends are forwarded straight to the messaging client and logged as 'sent'
with status 'delivered'. The status is advisory: the client does not confirm
transport-level delivery at send time.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from whatsrelay.api.deps import get_connection_state, get_media_storage, get_messaging_client
from whatsrelay.config import get_settings
from whatsrelay.database import get_db
from whatsrelay.errors import ClientNotConnectedError, ValidationError
from whatsrelay.integrations.messaging_base import MediaPayload, MessagingClient, to_chat_id
from whatsrelay.schemas.api_responses import SendMessageRequest, ok, serialize_message_log
from whatsrelay.schemas.domain_events import MessageSent
from whatsrelay.services import event_log
from whatsrelay.services.media_storage import MediaStorage, media_kind, upload_filename
from whatsrelay.services.session_state import ConnectionState

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["messages"])


def _require_connected(state: ConnectionState) -> None:
    if not state.is_connected:
        raise ClientNotConnectedError("WhatsApp client not connected")


async def _log_sent(db: AsyncSession, event: MessageSent) -> None:
    if not await event_log.insert_message_log_if_absent(db, event_log.message_log_from_event(event)):
        # The client's message_create echo outran the API and was logged first
        logger.debug("Sent message already logged", extra={"message_id": event.message_id})


@router.post("/send-message")
async def send_message(
    body: SendMessageRequest,
    db: AsyncSession = Depends(get_db),
    client: MessagingClient = Depends(get_messaging_client),
    state: ConnectionState = Depends(get_connection_state),
):
    _require_connected(state)

    sent = await client.send_message(to_chat_id(body.phone_number), body.message)
    logger.info("Message sent", extra={"message_id": sent.id, "phone": body.phone_number})
    await _log_sent(db, MessageSent(message_id=sent.id, to=body.phone_number, body=body.message))
    return ok({"messageId": sent.id})


@router.post("/send-media")
async def send_media(
    phone_number: str = Form(..., alias="phoneNumber"),
    caption: Optional[str] = Form(None),
    media: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    client: MessagingClient = Depends(get_messaging_client),
    state: ConnectionState = Depends(get_connection_state),
    storage: MediaStorage = Depends(get_media_storage),
):
    _require_connected(state)
    if media is None:
        raise ValidationError("No media file provided")

    max_bytes = get_settings().max_upload_bytes
    data = await media.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise ValidationError(f"Media file exceeds {max_bytes // (1024 * 1024)}MB limit")

    original_name = media.filename or "upload"
    mimetype = media.content_type or "application/octet-stream"
    path = await storage.save(upload_filename(original_name), data)

    sent = await client.send_media(
        to_chat_id(phone_number),
        MediaPayload(mimetype=mimetype, data=data, filename=original_name),
        caption=caption or None,
    )
    logger.info(
        "Media sent (%s, %d bytes)", mimetype, len(data),
        extra={"message_id": sent.id, "phone": phone_number},
    )
    await _log_sent(
        db,
        MessageSent(
            message_id=sent.id,
            to=phone_number,
            body=caption or f"Media file: {original_name}",
            media_type=media_kind(mimetype),
            media_path=path,
        ),
    )
    return ok({"messageId": sent.id})


@router.get("/messages/logs")
async def get_message_logs(
    limit: int = Query(event_log.DEFAULT_PAGE_SIZE, ge=1, le=event_log.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    entries = await event_log.list_message_logs(db, limit=limit, offset=offset)
    return ok([serialize_message_log(e) for e in entries])


@router.delete("/messages/logs")
async def clear_message_logs(db: AsyncSession = Depends(get_db)):
    await event_log.clear_message_logs(db)
    return ok(message="Message logs cleared")
