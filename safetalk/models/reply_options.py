"""
Reply option set - the three candidate replies offered for one message.
Resolved exactly once, by a selection or a custom reply. Never deleted.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import Text, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from safetalk.database import Base


class ReplyOptionSet(Base):
    __tablename__ = "reply_option_sets"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    message_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("messages.id"), nullable=False, unique=True
    )

    option1: Mapped[str] = mapped_column(Text, nullable=False)
    option2: Mapped[str] = mapped_column(Text, nullable=False)
    option3: Mapped[str] = mapped_column(Text, nullable=False)

    selected_response: Mapped[Optional[str]] = mapped_column(Text)
    custom_response: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    @property
    def is_resolved(self) -> bool:
        return bool(self.selected_response) or bool(self.custom_response)

    @property
    def options(self) -> list[str]:
        return [self.option1, self.option2, self.option3]

    def option_text(self, number: int) -> Optional[str]:
        """Stored text for option 1/2/3, None for anything else."""
        if number in (1, 2, 3):
            return self.options[number - 1]
        return None

    def __repr__(self) -> str:
        return f"<ReplyOptionSet message={self.message_id} resolved={self.is_resolved}>"
