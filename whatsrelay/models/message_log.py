"""
Message log model - one row per sent or received WhatsApp message.
Rows are written once and only removed by a bulk clear.
"""
import uuid
from typing import Optional
from sqlalchemy import String, Text, Index
from sqlalchemy.orm import Mapped, mapped_column
from whatsrelay.database import Base
from whatsrelay.utils.timestamps import utc_now_iso

DIRECTION_SENT = "sent"
DIRECTION_RECEIVED = "received"

STATUS_DELIVERED = "delivered"
STATUS_PENDING = "pending"
STATUS_FAILED = "failed"


class MessageLog(Base):
    __tablename__ = "message_logs"

    id: Mapped[str] = mapped_column(
        String(128), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    timestamp: Mapped[str] = mapped_column(String(32), nullable=False, default=utc_now_iso)
    direction: Mapped[str] = mapped_column(String(10), nullable=False)  # sent, received
    phone_number: Mapped[str] = mapped_column(String(128), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=STATUS_DELIVERED
    )  # delivered, pending, failed

    # Media is stored on disk; only the kind and location live here
    media_type: Mapped[Optional[str]] = mapped_column(String(20))  # image, video, audio, ...
    media_path: Mapped[Optional[str]] = mapped_column(String(512))

    __table_args__ = (
        Index("ix_message_logs_timestamp", "timestamp"),
        Index("ix_message_logs_direction", "direction"),
    )

    def __repr__(self) -> str:
        return f"<MessageLog {self.direction} {self.phone_number} status={self.status}>"
