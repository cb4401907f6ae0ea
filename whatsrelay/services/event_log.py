"""
Event log store - append-only persistence for message logs and webhook attempts.

Every write commits before returning so callers never consider an operation done
while the row is still pending. Storage failures are rolled back and raised as
PersistenceError; they are never retried here.
"""
import logging
from typing import Optional, Union

from sqlalchemy import delete, desc, func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from whatsrelay.errors import PersistenceError
from whatsrelay.models.message_log import (
    DIRECTION_RECEIVED,
    DIRECTION_SENT,
    STATUS_DELIVERED,
    MessageLog,
)
from whatsrelay.models.webhook_attempt import WebhookAttempt
from whatsrelay.schemas.domain_events import MessageReceived, MessageSent

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500


def _clamp_page(limit: int, offset: int) -> tuple[int, int]:
    if limit <= 0:
        limit = DEFAULT_PAGE_SIZE
    return min(limit, MAX_PAGE_SIZE), max(offset, 0)


def message_log_from_event(event: Union[MessageSent, MessageReceived]) -> MessageLog:
    """
    Build the log row for a message event. Sent rows reuse the client message id
    so a send and its echo from the client map to the same row; received rows
    get a fresh id. Status is advisory: the client does not confirm delivery.
    """
    if isinstance(event, MessageSent):
        return MessageLog(
            id=event.message_id,
            timestamp=event.timestamp,
            direction=DIRECTION_SENT,
            phone_number=event.to,
            content=event.body,
            status=STATUS_DELIVERED,
            media_type=event.media_type,
            media_path=event.media_path,
        )
    return MessageLog(
        timestamp=event.timestamp,
        direction=DIRECTION_RECEIVED,
        phone_number=event.sender,
        content=event.body,
        status=STATUS_DELIVERED,
        media_type=event.media_type,
        media_path=event.media_path,
    )


async def _append(db: AsyncSession, entry, label: str) -> str:
    try:
        db.add(entry)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to persist %s %s: %s", label, entry.id, str(e))
        raise PersistenceError(f"Failed to persist {label}: {e}") from e
    return entry.id


async def append_message_log(db: AsyncSession, entry: MessageLog) -> str:
    """Insert a message log row. Returns its id."""
    return await _append(db, entry, "message log")


async def append_webhook_attempt(db: AsyncSession, entry: WebhookAttempt) -> str:
    """Insert a webhook attempt row. Returns its id."""
    return await _append(db, entry, "webhook attempt")


async def insert_message_log_if_absent(db: AsyncSession, entry: MessageLog) -> bool:
    """
    Insert a message log row unless one with the same id already exists.
    Returns False when the id was taken; the existing row is left untouched.
    """
    dialect = db.get_bind().dialect.name
    insert = postgresql_insert if dialect == "postgresql" else sqlite_insert
    values = {
        column.key: getattr(entry, column.key)
        for column in MessageLog.__table__.columns
        if getattr(entry, column.key) is not None
    }
    stmt = insert(MessageLog).values(**values).on_conflict_do_nothing(index_elements=["id"])
    try:
        result = await db.execute(stmt)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to persist message log %s: %s", entry.id, str(e))
        raise PersistenceError(f"Failed to persist message log: {e}") from e
    return result.rowcount == 1


async def get_message_log(db: AsyncSession, log_id: str) -> Optional[MessageLog]:
    try:
        result = await db.execute(select(MessageLog).where(MessageLog.id == log_id))
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to read message log: {e}") from e
    return result.scalar_one_or_none()


async def list_message_logs(
    db: AsyncSession, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0,
) -> list[MessageLog]:
    """Newest first."""
    limit, offset = _clamp_page(limit, offset)
    try:
        result = await db.execute(
            select(MessageLog)
            .order_by(desc(MessageLog.timestamp), desc(MessageLog.id))
            .limit(limit)
            .offset(offset)
        )
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to list message logs: {e}") from e
    return list(result.scalars().all())


async def list_webhook_attempts(
    db: AsyncSession, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0,
) -> list[WebhookAttempt]:
    """Newest first."""
    limit, offset = _clamp_page(limit, offset)
    try:
        result = await db.execute(
            select(WebhookAttempt)
            .order_by(desc(WebhookAttempt.timestamp), desc(WebhookAttempt.id))
            .limit(limit)
            .offset(offset)
        )
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to list webhook attempts: {e}") from e
    return list(result.scalars().all())


async def _clear(db: AsyncSession, model, label: str) -> int:
    try:
        result = await db.execute(delete(model))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to clear %s: %s", label, str(e))
        raise PersistenceError(f"Failed to clear {label}: {e}") from e
    deleted = result.rowcount or 0
    logger.info("Cleared %d %s", deleted, label)
    return deleted


async def clear_message_logs(db: AsyncSession) -> int:
    return await _clear(db, MessageLog, "message logs")


async def clear_webhook_attempts(db: AsyncSession) -> int:
    return await _clear(db, WebhookAttempt, "webhook attempts")


async def count_message_logs(
    db: AsyncSession, direction: Optional[str] = None, with_media: bool = False,
) -> int:
    query = select(func.count()).select_from(MessageLog)
    if direction:
        query = query.where(MessageLog.direction == direction)
    if with_media:
        query = query.where(MessageLog.media_type.is_not(None))
    try:
        result = await db.execute(query)
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to count message logs: {e}") from e
    return result.scalar() or 0


async def count_webhook_attempts(db: AsyncSession) -> int:
    try:
        result = await db.execute(select(func.count()).select_from(WebhookAttempt))
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to count webhook attempts: {e}") from e
    return result.scalar() or 0
