"""
Webhook registry - holds the single active webhook destination.

configure() is an upsert on a fixed singleton key executed under a per-loop
lock and committed in one transaction, so readers see either the old URL or the
new one, never both and never neither.
"""
import asyncio
import logging
from typing import Optional
from urllib.parse import urlparse

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from whatsrelay.errors import PersistenceError, ValidationError
from whatsrelay.models.webhook_destination import SINGLETON_ID, WebhookDestination

logger = logging.getLogger(__name__)

_lock: Optional[asyncio.Lock] = None
_lock_loop: Optional[asyncio.AbstractEventLoop] = None


def _configure_lock() -> asyncio.Lock:
    """The configure lock for the running loop; an asyncio.Lock is bound to one loop."""
    global _lock, _lock_loop
    loop = asyncio.get_running_loop()
    if _lock is None or _lock_loop is not loop:
        _lock, _lock_loop = asyncio.Lock(), loop
    return _lock


def validate_webhook_url(url: Optional[str]) -> str:
    """Return the stripped URL or raise ValidationError."""
    if url is None or not url.strip():
        raise ValidationError("Webhook URL is required")
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("Webhook URL must be an absolute http(s) URL")
    return url


async def get_active(db: AsyncSession) -> Optional[WebhookDestination]:
    """Return the active destination, or None when nothing is configured."""
    try:
        result = await db.execute(
            select(WebhookDestination)
            .where(WebhookDestination.is_active.is_(True))
            .limit(1)
        )
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to read webhook destination: {e}") from e
    return result.scalar_one_or_none()


async def configure(db: AsyncSession, url: str) -> WebhookDestination:
    """Replace the active destination with url. Last writer wins."""
    url = validate_webhook_url(url)

    async with _configure_lock():
        try:
            # Stray rows from older schemas or manual edits
            await db.execute(
                delete(WebhookDestination).where(WebhookDestination.id != SINGLETON_ID)
            )
            destination = await db.get(WebhookDestination, SINGLETON_ID)
            if destination is None:
                destination = WebhookDestination(id=SINGLETON_ID, url=url, is_active=True)
                db.add(destination)
            else:
                destination.url = url
                destination.is_active = True
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to configure webhook destination: %s", str(e))
            raise PersistenceError(f"Failed to configure webhook destination: {e}") from e

    logger.info("Webhook destination configured: %s", url)
    return destination
