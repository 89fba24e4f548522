"""
Party model - one subscriber pairing (client + counterpart) on a service number.

A party is discoverable by either phone, but lookups always record which role
matched. Parties are deactivated on STOP, never deleted.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Boolean, DateTime, Index, CheckConstraint, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from safetalk.database import Base

ROLE_CLIENT = "client"
ROLE_COUNTERPART = "counterpart"

SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_CANCELED = "canceled"
SUBSCRIPTION_PAST_DUE = "past_due"


class Party(Base):
    __tablename__ = "parties"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    # Phones (canonical +<digits>)
    own_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    counterpart_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    service_phone: Mapped[str] = mapped_column(String(20), nullable=False)

    # Display names
    own_name: Mapped[Optional[str]] = mapped_column(String(100))
    counterpart_name: Mapped[Optional[str]] = mapped_column(String(100))

    # Lifecycle / gating
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    subscription_status: Mapped[Optional[str]] = mapped_column(
        String(20)
    )  # active, canceled, past_due, or NULL (no billing record)
    has_activated_service: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("own_phone <> counterpart_phone", name="ck_parties_distinct_phones"),
        Index(
            "uq_parties_own_phone_active",
            "own_phone",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("ix_parties_counterpart_phone", "counterpart_phone"),
    )

    def __repr__(self) -> str:
        masked = self.own_phone[:6] + "***" if self.own_phone else "unknown"
        return f"<Party {masked} active={self.is_active} sub={self.subscription_status}>"
