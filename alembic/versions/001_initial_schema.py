"""Initial schema: message log, webhook attempt audit trail and webhook destination.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Sent and received WhatsApp messages
    op.create_table(
        "message_logs",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("timestamp", sa.String(32), nullable=False),
        sa.Column("direction", sa.String(10), nullable=False),
        sa.Column("phone_number", sa.String(128), nullable=False),
        sa.Column("content", sa.Text, nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="delivered"),
        sa.Column("media_type", sa.String(20), nullable=True),
        sa.Column("media_path", sa.String(512), nullable=True),
    )
    op.create_index("ix_message_logs_timestamp", "message_logs", ["timestamp"])
    op.create_index("ix_message_logs_direction", "message_logs", ["direction"])

    # One row per outbound webhook POST, whatever the outcome
    op.create_table(
        "webhook_attempts",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("timestamp", sa.String(32), nullable=False),
        sa.Column("method", sa.String(10), nullable=False, server_default="POST"),
        sa.Column("endpoint", sa.String(2048), nullable=False),
        sa.Column("status", sa.Integer, nullable=False),
        sa.Column("source", sa.String(64), nullable=False),
        sa.Column("payload", sa.JSON, nullable=True),
        sa.Column("response", sa.JSON, nullable=True),
    )
    op.create_index("ix_webhook_attempts_timestamp", "webhook_attempts", ["timestamp"])

    # Singleton destination row (id = 1)
    op.create_table(
        "webhook_destinations",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("url", sa.String(2048), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("webhook_destinations")
    op.drop_index("ix_webhook_attempts_timestamp", table_name="webhook_attempts")
    op.drop_table("webhook_attempts")
    op.drop_index("ix_message_logs_direction", table_name="message_logs")
    op.drop_index("ix_message_logs_timestamp", table_name="message_logs")
    op.drop_table("message_logs")
