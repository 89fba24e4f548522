"""
API response schemas for the webhook and message endpoints.
"""
import uuid
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from safetalk.models.message import DIRECTION_INCOMING
from safetalk.services.reply_parser import MAX_CUSTOM_REPLY_CHARS


class WebhookAck(BaseModel):
    """Always returned with 200 once a webhook has been accepted."""
    status: str = "ok"  # ok, duplicate, ignored, error
    outcome: Optional[str] = None


class MessageOut(BaseModel):
    id: uuid.UUID
    party_id: uuid.UUID
    direction: str
    category: Optional[str] = None
    status: str
    text: str
    created_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "MessageOut":
        # The client only ever sees the filtered version of what the counterpart wrote
        if record.direction == DIRECTION_INCOMING:
            text = record.filtered_text or ""
        else:
            text = record.filtered_text or record.original_text
        return cls(
            id=record.id,
            party_id=record.party_id,
            direction=record.direction,
            category=record.category,
            status=record.status,
            text=text,
            created_at=record.created_at,
            delivered_at=record.delivered_at,
        )


class ReplyOptionsOut(BaseModel):
    id: uuid.UUID
    message_id: uuid.UUID
    options: list[str]
    selected_response: Optional[str] = None
    custom_response: Optional[str] = None
    resolved_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, option_set) -> "ReplyOptionsOut":
        return cls(
            id=option_set.id,
            message_id=option_set.message_id,
            options=option_set.options,
            selected_response=option_set.selected_response,
            custom_response=option_set.custom_response,
            resolved_at=option_set.resolved_at,
        )


class MessageDetail(BaseModel):
    message: MessageOut
    options: Optional[ReplyOptionsOut] = None
    awaiting_reply: bool = False


class ConversationSummary(BaseModel):
    party_id: uuid.UUID
    total_messages: int
    messages_this_week: int
    last_activity: Optional[datetime] = None
    awaiting_reply: bool = False
    pending_message_id: Optional[uuid.UUID] = None
    recent: list[MessageOut] = []


class RespondRequest(BaseModel):
    """An app-side answer: option 1-3 or a custom reply, never both."""
    selected_option: Optional[int] = Field(default=None, ge=1, le=3)
    custom_response: Optional[str] = Field(default=None, max_length=MAX_CUSTOM_REPLY_CHARS)

    @model_validator(mode="after")
    def exactly_one_answer(self) -> "RespondRequest":
        has_custom = bool(self.custom_response and self.custom_response.strip())
        if (self.selected_option is not None) == has_custom:
            raise ValueError("provide either selected_option (1, 2 or 3) or custom_response")
        return self


class RespondAck(BaseModel):
    status: str  # sent, refused
    outcome: str
