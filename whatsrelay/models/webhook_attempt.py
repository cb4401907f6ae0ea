"""
Webhook attempt audit trail - one row per outbound POST to the webhook destination,
whatever its outcome. Transport failures are recorded with status 500.
"""
import uuid
from typing import Any, Optional
from sqlalchemy import String, Integer, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column
from whatsrelay.database import Base
from whatsrelay.utils.timestamps import utc_now_iso

TRANSPORT_FAILURE_STATUS = 500


class WebhookAttempt(Base):
    __tablename__ = "webhook_attempts"

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    timestamp: Mapped[str] = mapped_column(String(32), nullable=False, default=utc_now_iso)
    method: Mapped[str] = mapped_column(String(10), nullable=False, default="POST")
    endpoint: Mapped[str] = mapped_column(String(2048), nullable=False)
    status: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[Optional[Any]] = mapped_column(JSON)
    response: Mapped[Optional[Any]] = mapped_column(JSON)

    __table_args__ = (
        Index("ix_webhook_attempts_timestamp", "timestamp"),
    )

    @property
    def succeeded(self) -> bool:
        return 200 <= self.status < 300

    def __repr__(self) -> str:
        return f"<WebhookAttempt {self.method} {self.endpoint} status={self.status}>"
