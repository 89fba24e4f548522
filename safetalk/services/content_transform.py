"""
Content transform - filtering, classification and reply generation.

ContentTransform is the contract the conductor depends on. AIContentTransform
asks the LLM for one JSON object per operation and validates it. When no
provider answers, or the answer is unusable, the keyword fallback runs and
the result is tagged degraded=True so operators can see the primary path is
failing.
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError

from safetalk.models.message import CATEGORY_DECISION_MAKING, CATEGORY_INFORMATIONAL
from safetalk.prompts.coparenting import (
    INCOMING_SYSTEM_PROMPT,
    MODERATE_SYSTEM_PROMPT,
    OUTGOING_SYSTEM_PROMPT,
)
from safetalk.schemas.transform import IncomingTransform, ModeratedReply, OutgoingOptions

logger = logging.getLogger(__name__)

NEUTRAL_SUMMARY = "Message regarding co-parenting communication"

HOSTILE_WORDS = ["stupid", "idiot", "hate", "terrible", "awful", "worst", "useless"]
_HOSTILE_PATTERN = re.compile(r"\b(?:" + "|".join(HOSTILE_WORDS) + r")\w*", re.IGNORECASE)

DECISION_KEYWORDS = ["need", "should", "could", "decide", "discuss", "plan", "schedule", "problem", "issue"]

DEFAULT_REPLIES = {
    CATEGORY_INFORMATIONAL: [
        "Thank you for letting me know.",
        "I understand.",
        "Got it, thanks.",
    ],
    CATEGORY_DECISION_MAKING: [
        "Let me think about this and get back to you.",
        "I can help with that. What works best for you?",
        "We can discuss this further to find a solution.",
    ],
}

# First match wins
CONTEXT_RULES = [
    (("work", "meeting", "job"), "there's a work meeting"),
    (("doctor", "appointment", "sick"), "there's a doctor appointment"),
    (("flight", "trip", "travel"), "there's travel planned"),
    (("emergency", "urgent", "hospital"), "there's a family emergency"),
    (("school", "event", "game"), "there's a school event"),
]


class ContentTransform(ABC):
    """Abstract filtering/generation collaborator."""

    @abstractmethod
    async def process_incoming(self, text: str) -> IncomingTransform:
        """Filter + classify a counterpart message and offer 3 replies."""
        ...

    @abstractmethod
    async def generate_outgoing_options(self, text: str) -> OutgoingOptions:
        """3 phrasings of a client draft."""
        ...

    @abstractmethod
    async def moderate_custom_reply(self, text: str) -> ModeratedReply:
        """Polished text, or refused=True when the reply must not be sent."""
        ...


# ---------------------------------------------------------------------------
# Keyword fallback
# ---------------------------------------------------------------------------

def basic_filter(text: str) -> str:
    """Mask hostile words and collapse shouting punctuation."""
    filtered = _HOSTILE_PATTERN.sub("[removed]", text or "")
    filtered = re.sub(r"!{2,}", ".", filtered)
    filtered = re.sub(r"\?{2,}", "?", filtered)
    return filtered.strip() or NEUTRAL_SUMMARY


def basic_classification(text: str) -> str:
    lower = (text or "").lower()
    if any(keyword in lower for keyword in DECISION_KEYWORDS):
        return CATEGORY_DECISION_MAKING
    return CATEGORY_INFORMATIONAL


def detect_context(text: str) -> Optional[str]:
    lower = (text or "").lower()
    for keywords, reason in CONTEXT_RULES:
        if any(k in lower for k in keywords):
            return reason
    return None


def is_hostile(text: str) -> bool:
    return bool(_HOSTILE_PATTERN.search(text or ""))


def default_replies(category: str) -> list[str]:
    return list(DEFAULT_REPLIES.get(category, DEFAULT_REPLIES[CATEGORY_INFORMATIONAL]))


def fallback_incoming(text: str) -> IncomingTransform:
    category = basic_classification(text)
    return IncomingTransform(
        filtered_text=basic_filter(text),
        category=category,
        options=default_replies(category),
        context_reason=detect_context(text),
        degraded=True,
    )


def fallback_outgoing(text: str) -> OutgoingOptions:
    # Client drafts drop hostile words instead of masking them
    cleaned = re.sub(r"\s{2,}", " ", _HOSTILE_PATTERN.sub("", text or ""))
    body = re.sub(r"[!?.,\s]+$", "", cleaned).strip() or NEUTRAL_SUMMARY
    return OutgoingOptions(
        options=[
            f"{body}.",
            f"Hi, {body[0].lower()}{body[1:]}. Thanks.",
            f"{body}. Let me know if that works for you.",
        ],
        category=basic_classification(text),
        degraded=True,
    )


def fallback_moderation(text: str) -> ModeratedReply:
    if is_hostile(text):
        return ModeratedReply(refused=True, degraded=True)
    return ModeratedReply(text=basic_filter(text), degraded=True)


# ---------------------------------------------------------------------------
# AI implementation
# ---------------------------------------------------------------------------

def _parse_json_object(content: str) -> dict:
    from safetalk.services.ai import strip_markdown_fences
    parsed = json.loads(strip_markdown_fences(content.strip()))
    if not isinstance(parsed, dict):
        raise ValueError("expected a JSON object")
    return parsed


class AIContentTransform(ContentTransform):
    """LLM-backed transform with keyword fallback."""

    def __init__(self, model_tier: str = "fast"):
        self.model_tier = model_tier

    async def _complete(self, operation: str, system_prompt: str, text: str) -> Optional[dict]:
        """JSON dict from the model, or None when the fallback should run."""
        from safetalk.services.ai import generate_response

        result = await generate_response(
            system_prompt=system_prompt,
            user_message=text,
            model_tier=self.model_tier,
            temperature=0.3,
        )
        if result.get("error"):
            logger.warning(
                "AI unavailable for %s, using keyword fallback: %s",
                operation, result["error"],
                extra={"operation": operation},
            )
            return None

        try:
            return _parse_json_object(result["content"])
        except (json.JSONDecodeError, ValueError, TypeError) as e:
            logger.warning(
                "Unparseable AI output for %s, using keyword fallback: %s. Content: %s",
                operation, str(e), result["content"][:200],
                extra={"operation": operation, "provider": result.get("provider")},
            )
            return None

    async def process_incoming(self, text: str) -> IncomingTransform:
        parsed = await self._complete("process_incoming", INCOMING_SYSTEM_PROMPT, text)
        if parsed is not None:
            try:
                context = parsed.get("context")
                return IncomingTransform(
                    filtered_text=(parsed.get("filtered") or "").strip() or NEUTRAL_SUMMARY,
                    category=parsed.get("category"),
                    options=parsed.get("options") or [],
                    context_reason=context if context and context != "null" else None,
                )
            except ValidationError as e:
                logger.warning(
                    "Invalid AI result for process_incoming: %s", str(e),
                    extra={"operation": "process_incoming"},
                )
        return fallback_incoming(text)

    async def generate_outgoing_options(self, text: str) -> OutgoingOptions:
        parsed = await self._complete("generate_outgoing_options", OUTGOING_SYSTEM_PROMPT, text)
        if parsed is not None:
            try:
                return OutgoingOptions(
                    options=parsed.get("options") or [],
                    category=parsed.get("category"),
                )
            except ValidationError as e:
                logger.warning(
                    "Invalid AI result for generate_outgoing_options: %s", str(e),
                    extra={"operation": "generate_outgoing_options"},
                )
        return fallback_outgoing(text)

    async def moderate_custom_reply(self, text: str) -> ModeratedReply:
        parsed = await self._complete("moderate_custom_reply", MODERATE_SYSTEM_PROMPT, text)
        if parsed is not None:
            if parsed.get("refused") is True:
                return ModeratedReply(refused=True)
            polished = parsed.get("text")
            if isinstance(polished, str) and polished.strip():
                return ModeratedReply(text=polished.strip())
            logger.warning(
                "AI moderation returned no text", extra={"operation": "moderate_custom_reply"},
            )
        return fallback_moderation(text)
