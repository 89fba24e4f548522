"""
Message record model - one logical SMS event between the two parties.

Directions:
- incoming:        counterpart → client (filtered before delivery)
- outgoing:        client → counterpart, final text already sent
- outgoing_intent: client-authored draft waiting for a phrasing choice
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from safetalk.database import Base

DIRECTION_INCOMING = "incoming"
DIRECTION_OUTGOING = "outgoing"
DIRECTION_OUTGOING_INTENT = "outgoing_intent"

CATEGORY_INFORMATIONAL = "informational"
CATEGORY_DECISION_MAKING = "decision_making"

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_SENT = "sent"
STATUS_DELIVERED = "delivered"
STATUS_FAILED = "failed"

# Once here, only the delivery-status webhook may touch the record
TERMINAL_STATUSES = {STATUS_DELIVERED, STATUS_FAILED}


class MessageRecord(Base):
    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    party_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("parties.id"), nullable=False
    )

    from_phone: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    to_phone: Mapped[str] = mapped_column(String(20), nullable=False, default="")

    original_text: Mapped[str] = mapped_column(Text, nullable=False)
    filtered_text: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(
        String(20)
    )  # informational, decision_making
    direction: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # incoming, outgoing, outgoing_intent
    status: Mapped[str] = mapped_column(
        String(20), default=STATUS_PENDING
    )  # pending, processing, sent, delivered, failed

    # Transport tracking
    external_id: Mapped[Optional[str]] = mapped_column(String(100))
    delivery_error_code: Mapped[Optional[str]] = mapped_column(String(20))

    # Transform metadata (provider, degraded flag, context reason)
    extra_data: Mapped[Optional[dict]] = mapped_column("metadata", JSONB, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_messages_party_direction_created", "party_id", "direction", "created_at"),
        Index("ix_messages_external_id", "external_id"),
    )

    def __repr__(self) -> str:
        return f"<MessageRecord {self.direction} status={self.status}>"
