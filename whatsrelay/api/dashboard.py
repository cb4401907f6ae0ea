"""
Dashboard stats - message and webhook counters for the overview cards.
"""
import time

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from whatsrelay.database import get_db
from whatsrelay.models.message_log import DIRECTION_RECEIVED, DIRECTION_SENT
from whatsrelay.schemas.api_responses import ok
from whatsrelay.services import event_log
from whatsrelay.utils.timestamps import utc_now_iso

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


def uptime_seconds(request: Request) -> float:
    started = getattr(request.app.state, "started_at", None)
    if started is None:
        return 0.0
    return round(time.monotonic() - started, 3)


@router.get("/stats")
async def dashboard_stats(request: Request, db: AsyncSession = Depends(get_db)):
    return ok({
        "messagesSent": await event_log.count_message_logs(db, direction=DIRECTION_SENT),
        "messagesReceived": await event_log.count_message_logs(db, direction=DIRECTION_RECEIVED),
        "mediaFilesSent": await event_log.count_message_logs(db, with_media=True),
        "webhookEvents": await event_log.count_webhook_attempts(db),
        "uptime": uptime_seconds(request),
        "lastActivity": utc_now_iso(),
    })
