"""
Content transform results - what the filtering/generation layer hands back.
"""
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from safetalk.models.message import CATEGORY_INFORMATIONAL, CATEGORY_DECISION_MAKING

VALID_CATEGORIES = {CATEGORY_INFORMATIONAL, CATEGORY_DECISION_MAKING}


def _check_category(v: str) -> str:
    if v not in VALID_CATEGORIES:
        raise ValueError(f"unknown category: {v}")
    return v


def _check_options(v: list[str]) -> list[str]:
    cleaned = [o.strip() for o in v if o and o.strip()]
    if len(cleaned) != 3:
        raise ValueError("exactly 3 non-empty options required")
    return cleaned


class IncomingTransform(BaseModel):
    """Filtered counterpart message plus 3 reply options for the client."""
    filtered_text: str = Field(..., min_length=1)
    category: str
    options: list[str]
    context_reason: Optional[str] = None
    degraded: bool = False  # True when produced by the keyword fallback

    @field_validator("category")
    @classmethod
    def valid_category(cls, v: str) -> str:
        return _check_category(v)

    @field_validator("options")
    @classmethod
    def three_options(cls, v: list[str]) -> list[str]:
        return _check_options(v)


class OutgoingOptions(BaseModel):
    """3 phrasings of a client-authored draft."""
    options: list[str]
    category: str
    degraded: bool = False

    @field_validator("category")
    @classmethod
    def valid_category(cls, v: str) -> str:
        return _check_category(v)

    @field_validator("options")
    @classmethod
    def three_options(cls, v: list[str]) -> list[str]:
        return _check_options(v)


class ModeratedReply(BaseModel):
    """Result of moderating a custom reply. refused=True means do not send."""
    text: Optional[str] = None
    refused: bool = False
    degraded: bool = False

    def __bool__(self) -> bool:
        return not self.refused and bool(self.text)
