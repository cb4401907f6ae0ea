"""
WebhookDestination model - singleton row holding the active webhook URL.
Replaced atomically from the dashboard; see services.webhook_registry.
"""
from datetime import datetime, timezone
from sqlalchemy import String, Integer, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from whatsrelay.database import Base

SINGLETON_ID = 1


class WebhookDestination(Base):
    __tablename__ = "webhook_destinations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=SINGLETON_ID)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<WebhookDestination {self.url} active={self.is_active}>"
