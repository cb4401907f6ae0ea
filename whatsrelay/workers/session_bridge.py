"""
Session event bridge - the single consumer of the messaging client's event queue.

Events are handled one at a time in arrival order:
- qr / ready / disconnected drive the connection state machine
- message_create (from us) is logged as a sent message after a short grace
  period, never dispatched. A send made through the admin API logs the same
  id with its media details; whichever row lands first is kept
- message (inbound) stores any media, logs the message, then schedules a
  webhook delivery of MessageReceived

Media is best-effort; the text log is mandatory. A failing handler is logged
and the loop moves on to the next event.
"""
import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from whatsrelay.errors import MediaFetchError, PersistenceError
from whatsrelay.integrations.messaging_base import (
    EVENT_DISCONNECTED,
    EVENT_MESSAGE,
    EVENT_MESSAGE_CREATE,
    EVENT_QR,
    EVENT_READY,
    ClientEvent,
    ClientMessage,
    MessagingClient,
)
from whatsrelay.models.message_log import MessageLog
from whatsrelay.schemas.domain_events import MessageReceived, MessageSent
from whatsrelay.services import event_log
from whatsrelay.services.media_storage import MediaStorage, media_kind
from whatsrelay.services.session_state import ConnectionState
from whatsrelay.services.webhook_dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)


class SessionBridge:
    def __init__(
        self,
        client: MessagingClient,
        state: ConnectionState,
        dispatcher: WebhookDispatcher,
        media_storage: MediaStorage,
        session_factory: Callable[[], AsyncSession],
        echo_log_delay: float = 0.0,
    ):
        self.client = client
        self.state = state
        self.dispatcher = dispatcher
        self.media_storage = media_storage
        self._session_factory = session_factory
        self.echo_log_delay = echo_log_delay
        self._pending_echoes: set[asyncio.Task] = set()
        self._handlers = {
            EVENT_QR: self._on_qr,
            EVENT_READY: self._on_ready,
            EVENT_DISCONNECTED: self._on_disconnected,
            EVENT_MESSAGE_CREATE: self._on_message_create,
            EVENT_MESSAGE: self._on_message,
        }

    async def run(self) -> None:
        """Main bridge loop. Runs until cancelled."""
        logger.info("Session bridge started")
        while True:
            event = await self.client.events.get()
            try:
                await self.handle(event)
            except Exception as e:
                logger.error("Session bridge failed on %s event: %s", event.type, str(e), exc_info=True)
            finally:
                self.client.events.task_done()

    async def handle(self, event: ClientEvent) -> None:
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.debug("Ignoring unknown client event %s", event.type)
            return
        await handler(event)

    async def _on_qr(self, event: ClientEvent) -> None:
        if event.qr:
            await self.state.on_qr(event.qr)

    async def _on_ready(self, event: ClientEvent) -> None:
        await self.state.on_ready()

    async def _on_disconnected(self, event: ClientEvent) -> None:
        await self.state.on_disconnected(event.reason)

    async def _on_message_create(self, event: ClientEvent) -> None:
        message = event.message
        if message is None or not message.from_me:
            return

        entry = event_log.message_log_from_event(
            MessageSent(
                message_id=message.id,
                to=message.recipient,
                body=message.body,
                media_type=media_kind(message.mimetype) if message.has_media else None,
            )
        )
        task = asyncio.create_task(self._log_echo(entry))
        self._pending_echoes.add(task)
        task.add_done_callback(self._pending_echoes.discard)

    async def _log_echo(self, entry: MessageLog) -> None:
        # Give the admin send path time to log the richer row under the same id
        await asyncio.sleep(self.echo_log_delay)
        try:
            async with self._session_factory() as db:
                inserted = await event_log.insert_message_log_if_absent(db, entry)
        except PersistenceError as e:
            logger.error("Sent message %s was not logged: %s", entry.id, e.message)
            return
        if not inserted:
            logger.debug("Sent message %s already logged", entry.id)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for deferred sent-message logs, e.g. at shutdown."""
        if not self._pending_echoes:
            return
        if timeout is None:
            timeout = self.echo_log_delay + 5.0
        _, still_pending = await asyncio.wait(list(self._pending_echoes), timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            await asyncio.gather(*still_pending, return_exceptions=True)

    async def _on_message(self, event: ClientEvent) -> None:
        message = event.message
        if message is None:
            return
        logger.info("Received message", extra={"message_id": message.id, "phone": message.sender})

        media_type, media_path = None, None
        if message.has_media:
            media_type, media_path = await self._store_media(message)

        received = MessageReceived(
            message_id=message.id,
            sender=message.sender,
            body=message.body,
            message_timestamp=message.timestamp,
            has_media=message.has_media,
            media_type=media_type,
            media_path=media_path,
        )
        try:
            async with self._session_factory() as db:
                await event_log.append_message_log(db, event_log.message_log_from_event(received))
        except PersistenceError as e:
            logger.error("Received message %s was not logged: %s", message.id, e.message)
            return

        self.dispatcher.schedule(received)

    async def _store_media(self, message: ClientMessage) -> tuple[Optional[str], Optional[str]]:
        """Download and store the attachment. Returns (None, None) on any failure."""
        try:
            media = await self.client.download_media(message)
            path = await self.media_storage.save_received(media.mimetype, media.data)
        except MediaFetchError as e:
            logger.warning("Media for message %s not stored: %s", message.id, e.message)
            return None, None
        except Exception as e:
            logger.warning("Media download for message %s failed: %s", message.id, str(e))
            return None, None
        return media_kind(media.mimetype), path


async def delayed_connect(client: MessagingClient, state: ConnectionState, delay: float) -> None:
    """Start the messaging session shortly after startup."""
    await asyncio.sleep(delay)
    logger.info("Initializing messaging client")
    if not await state.begin_connecting():
        return
    try:
        await client.connect()
    except Exception as e:
        logger.error("Messaging client failed to connect: %s", str(e))
        await state.on_disconnected("connect failed")
