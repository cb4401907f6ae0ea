"""
Webhook dispatcher - forwards domain events to the configured webhook destination.

Delivery is best-effort and at-most-one-attempt: one POST per event, a hard
10 second timeout, no retry queue. Every attempt that is made is written to the
webhook_attempts table whatever its outcome. deliver() never raises.
"""
import asyncio
import logging
from typing import Any, Callable, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from whatsrelay.errors import DeliveryError, PersistenceError
from whatsrelay.models.webhook_attempt import TRANSPORT_FAILURE_STATUS, WebhookAttempt
from whatsrelay.schemas.domain_events import DomainEvent
from whatsrelay.services import event_log, webhook_registry
from whatsrelay.utils.timestamps import utc_now_iso

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT_SECONDS = 10.0
WEBHOOK_HEADERS = {
    "Content-Type": "application/json",
    "User-Agent": "WhatsApp-Webhook/1.0",
}


def _response_body(response: httpx.Response) -> Any:
    """Parsed JSON when the destination returned JSON, raw text otherwise."""
    try:
        return response.json()
    except ValueError:
        return response.text or None


async def post_webhook(url: str, payload: dict) -> tuple[int, Any]:
    """
    POST payload to url.
    Returns (status_code, response_body) for any HTTP response, including 4xx/5xx.
    Raises DeliveryError on transport failures and timeouts.
    """
    try:
        async with httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_SECONDS) as client:
            response = await client.post(url, json=payload, headers=WEBHOOK_HEADERS)
    except httpx.TimeoutException as e:
        raise DeliveryError(f"Webhook request timed out after {WEBHOOK_TIMEOUT_SECONDS:.0f}s") from e
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise DeliveryError(str(e) or e.__class__.__name__) from e
    return response.status_code, _response_body(response)


class WebhookDispatcher:
    """Resolves the destination for an event, POSTs it and records the attempt."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        default_url: str = "",
    ):
        self._session_factory = session_factory
        # Fixed for the lifetime of the process
        self._default_url = default_url.strip()
        self._pending: set[asyncio.Task] = set()

    @property
    def default_url(self) -> str:
        return self._default_url

    async def resolve_destination(self) -> Optional[str]:
        """Active registry destination, else the process default, else None."""
        try:
            async with self._session_factory() as db:
                destination = await webhook_registry.get_active(db)
        except PersistenceError as e:
            logger.warning("Webhook registry lookup failed, using default: %s", e.message)
            destination = None
        if destination is not None and destination.url:
            return destination.url
        return self._default_url or None

    async def deliver(self, event: DomainEvent) -> Optional[WebhookAttempt]:
        """
        Deliver one event. Returns the recorded attempt, or None when no
        destination is configured (deliberate no-op) or the attempt could not
        be persisted.
        """
        try:
            return await self._deliver(event)
        except Exception as e:
            logger.error("Unexpected webhook delivery error for event %s: %s", event.id, str(e), exc_info=True)
            return None

    async def _deliver(self, event: DomainEvent) -> Optional[WebhookAttempt]:
        url = await self.resolve_destination()
        if not url:
            logger.debug("No webhook destination configured, skipping %s", event.kind)
            return None

        payload = event.to_wire()
        timestamp = utc_now_iso()

        log_extra = {"event_id": event.id, "endpoint": url}

        try:
            status, body = await post_webhook(url, payload)
            log_extra["status_code"] = status
            if 200 <= status < 300:
                logger.info("Webhook delivered: %s -> %s (%d)", event.kind, url, status, extra=log_extra)
            else:
                logger.warning("Webhook rejected: %s -> %s (%d)", event.kind, url, status, extra=log_extra)
        except DeliveryError as e:
            status, body = TRANSPORT_FAILURE_STATUS, {"error": e.message}
            logger.warning("Webhook delivery failed: %s -> %s: %s", event.kind, url, e.message, extra=log_extra)

        attempt = WebhookAttempt(
            timestamp=timestamp,
            method="POST",
            endpoint=url,
            status=status,
            source=event.source,
            payload=payload,
            response=body,
        )
        try:
            async with self._session_factory() as db:
                await event_log.append_webhook_attempt(db, attempt)
        except PersistenceError as e:
            logger.error("Webhook attempt for event %s was not recorded: %s", event.id, e.message)
            return None
        return attempt

    def schedule(self, event: DomainEvent) -> asyncio.Task:
        """Fire-and-forget delivery. The task is tracked until it finishes."""
        task = asyncio.create_task(self.deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def drain(self, timeout: float = WEBHOOK_TIMEOUT_SECONDS + 5.0) -> None:
        """Wait for in-flight deliveries, e.g. at shutdown."""
        if not self._pending:
            return
        pending = list(self._pending)
        logger.info("Waiting for %d in-flight webhook deliveries", len(pending))
        done, still_pending = await asyncio.wait(pending, timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            await asyncio.gather(*still_pending, return_exceptions=True)
