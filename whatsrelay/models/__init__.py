"""
Database models - import all models here so Alembic can discover them.
"""
from whatsrelay.models.message_log import MessageLog
from whatsrelay.models.webhook_attempt import WebhookAttempt
from whatsrelay.models.webhook_destination import WebhookDestination

__all__ = [
    "MessageLog",
    "WebhookAttempt",
    "WebhookDestination",
]
