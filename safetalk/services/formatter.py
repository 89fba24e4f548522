"""
Outbound formatter - renders the SMS bodies the client sees.

Two renderings:
- filtered incoming: what the co-parent said (summarized) + 3 reply options
- outgoing options: 3 ways to phrase the client's own draft
Missing names fall back to "Hi" and "your co-parent".
"""
from datetime import datetime
from typing import Optional

from safetalk.utils.templates import render_template

GENERIC_COUNTERPART = "your co-parent"

# First match wins. Matched against the filtered text, lowercased.
SUMMARY_RULES = [
    (("schedule", "time"), "is requesting a schedule change"),
    (("pickup", "pick up", "drop"), "has a pickup/drop-off request"),
    (("school", "activity"), "sent information about school/activities"),
    (("health", "medical"), "shared health/medical information"),
    (("calendar",), "wants to discuss scheduling"),
    (("need", "want"), "has a request"),
]
DEFAULT_SUMMARY = "sent a message"


def greeting(own_name: Optional[str]) -> str:
    return f"Hey {own_name}" if own_name else "Hi"


def summarize(filtered_text: str) -> str:
    """Conversational phrase for the topic of a filtered message."""
    lower = (filtered_text or "").lower()
    for keywords, phrase in SUMMARY_RULES:
        if any(k in lower for k in keywords):
            return phrase
    return DEFAULT_SUMMARY


def number_options(options: list[str]) -> str:
    return "\n".join(f"{i}. {option}" for i, option in enumerate(options, start=1))


def format_filtered_incoming(
    filtered_text: str,
    options: list[str],
    own_name: Optional[str] = None,
    counterpart_name: Optional[str] = None,
    context_reason: Optional[str] = None,
) -> str:
    sender = counterpart_name or GENERIC_COUNTERPART
    summary = f"{sender} {summarize(filtered_text)}"
    if context_reason:
        summary += f" because {context_reason.strip().rstrip('.')}"
    summary = summary[0].upper() + summary[1:] + "."
    return render_template(
        "filtered_incoming",
        category="options",
        greeting=greeting(own_name),
        summary=f"{summary}\n\n\"{filtered_text}\"",
        options=number_options(options),
    )


def format_outgoing_options(
    options: list[str],
    own_name: Optional[str] = None,
    counterpart_name: Optional[str] = None,
) -> str:
    return render_template(
        "outgoing_options",
        category="options",
        greeting=greeting(own_name),
        counterpart=counterpart_name or GENERIC_COUNTERPART,
        options=number_options(options),
    )


def format_status(
    own_phone: str,
    counterpart_phone: str,
    total_messages: int,
    messages_this_week: int,
    last_activity: Optional[datetime],
) -> str:
    return render_template(
        "status",
        own_phone=own_phone,
        counterpart_phone=counterpart_phone,
        total_messages=total_messages,
        messages_this_week=messages_this_week,
        last_activity=last_activity.strftime("%b %d, %Y") if last_activity else "Never",
    )
