"""Initial schema - parties, messages, reply option sets, webhook audit trail.

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Parties
    op.create_table(
        "parties",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("own_phone", sa.String(20), nullable=False),
        sa.Column("counterpart_phone", sa.String(20), nullable=False),
        sa.Column("service_phone", sa.String(20), nullable=False),
        sa.Column("own_name", sa.String(100)),
        sa.Column("counterpart_name", sa.String(100)),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("subscription_status", sa.String(20)),
        sa.Column("has_activated_service", sa.Boolean, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("own_phone <> counterpart_phone", name="ck_parties_distinct_phones"),
    )
    # At most one active party per client phone
    op.create_index(
        "uq_parties_own_phone_active",
        "parties",
        ["own_phone"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )
    op.create_index("ix_parties_counterpart_phone", "parties", ["counterpart_phone"])

    # Messages
    op.create_table(
        "messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("party_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("parties.id"), nullable=False),
        sa.Column("from_phone", sa.String(20), nullable=False, server_default=""),
        sa.Column("to_phone", sa.String(20), nullable=False, server_default=""),
        sa.Column("original_text", sa.Text, nullable=False),
        sa.Column("filtered_text", sa.Text),
        sa.Column("category", sa.String(20)),
        sa.Column("direction", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("external_id", sa.String(100)),
        sa.Column("delivery_error_code", sa.String(20)),
        sa.Column("metadata", postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("delivered_at", sa.DateTime(timezone=True)),
    )
    op.create_index(
        "ix_messages_party_direction_created", "messages", ["party_id", "direction", "created_at"],
    )
    op.create_index("ix_messages_external_id", "messages", ["external_id"])

    # Reply option sets
    op.create_table(
        "reply_option_sets",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "message_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("messages.id"),
            nullable=False, unique=True,
        ),
        sa.Column("option1", sa.Text, nullable=False),
        sa.Column("option2", sa.Text, nullable=False),
        sa.Column("option3", sa.Text, nullable=False),
        sa.Column("selected_response", sa.Text),
        sa.Column("custom_response", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
    )

    # Webhook audit trail
    op.create_table(
        "webhook_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("external_message_id", sa.String(100)),
        sa.Column("payload_hash", sa.String(64), nullable=False),
        sa.Column("raw_payload", postgresql.JSONB, nullable=False),
        sa.Column("party_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("parties.id")),
        sa.Column("processing_status", sa.String(20), nullable=False, server_default="received"),
        sa.Column("outcome", sa.String(50)),
        sa.Column("error_message", sa.Text),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        sa.Column("correlation_id", sa.String(64)),
    )
    op.create_index("ix_webhook_events_source", "webhook_events", ["source"])
    op.create_index("ix_webhook_events_external_message_id", "webhook_events", ["external_message_id"])
    op.create_index("ix_webhook_events_payload_hash", "webhook_events", ["payload_hash"])
    op.create_index("ix_webhook_events_party_id", "webhook_events", ["party_id"])
    op.create_index("ix_webhook_events_correlation_id", "webhook_events", ["correlation_id"])


def downgrade() -> None:
    op.drop_table("webhook_events")
    op.drop_table("reply_option_sets")
    op.drop_table("messages")
    op.drop_table("parties")
