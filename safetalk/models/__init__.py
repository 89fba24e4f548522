"""
Database models - import all models here so Alembic can discover them.
"""
from safetalk.models.party import Party
from safetalk.models.message import MessageRecord
from safetalk.models.reply_options import ReplyOptionSet
from safetalk.models.webhook_event import WebhookEvent

__all__ = [
    "Party",
    "MessageRecord",
    "ReplyOptionSet",
    "WebhookEvent",
]
