"""
Webhook administration - destination config, test delivery and the attempt log.
"""
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from whatsrelay.api.deps import get_dispatcher
from whatsrelay.database import get_db
from whatsrelay.schemas.api_responses import ConfigureWebhookRequest, ok, serialize_webhook_attempt
from whatsrelay.schemas.domain_events import WebhookTest
from whatsrelay.services import event_log, webhook_registry
from whatsrelay.services.webhook_dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/webhook", tags=["webhook"])


@router.get("/logs")
async def get_webhook_logs(
    limit: int = Query(event_log.DEFAULT_PAGE_SIZE, ge=1, le=event_log.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    attempts = await event_log.list_webhook_attempts(db, limit=limit, offset=offset)
    return ok([serialize_webhook_attempt(a) for a in attempts])


@router.delete("/logs")
async def clear_webhook_logs(db: AsyncSession = Depends(get_db)):
    await event_log.clear_webhook_attempts(db)
    return ok(message="Webhook logs cleared")


@router.get("/info")
async def webhook_info(
    db: AsyncSession = Depends(get_db),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
):
    """Configured destination, falling back to the process default."""
    destination = await webhook_registry.get_active(db)
    if destination is not None:
        endpoint, source = destination.url, "configured"
    elif dispatcher.default_url:
        endpoint, source = dispatcher.default_url, "default"
    else:
        endpoint, source = "", "none"
    return ok({
        "endpoint": endpoint,
        "status": "active" if endpoint else "inactive",
        "source": source,
    })


@router.post("/configure")
async def configure_webhook(
    body: ConfigureWebhookRequest,
    db: AsyncSession = Depends(get_db),
):
    destination = await webhook_registry.configure(db, body.webhook_url)
    return ok({"endpoint": destination.url}, message="Webhook configured successfully")


@router.post("/test")
async def test_webhook(dispatcher: WebhookDispatcher = Depends(get_dispatcher)):
    """Send a test event synchronously and report the recorded attempt."""
    attempt = await dispatcher.deliver(WebhookTest())
    if attempt is None:
        return ok(
            {"delivered": False, "endpoint": None, "status": None},
            message="No webhook destination configured",
        )
    return ok(
        {
            "delivered": attempt.succeeded,
            "endpoint": attempt.endpoint,
            "status": attempt.status,
            "attemptId": attempt.id,
        },
        message="Test webhook sent",
    )
