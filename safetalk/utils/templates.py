"""
SMS template engine - every fixed piece of SafeTalk copy lives here.
Templates use {variable} substitution. Never use URL shorteners.
"""
import logging

logger = logging.getLogger(__name__)

# === SYSTEM TEMPLATES (commands, onboarding, gating) ===

SYSTEM_TEMPLATES = {
    "help": (
        "SafeTalk Help:\n\n"
        "How to use:\n"
        "• Have your co-parent text this number\n"
        "• You'll receive filtered messages with 3 response options\n"
        "• Reply with \"1\", \"2\", or \"3\" to select a response\n"
        "• Or type your own custom response\n\n"
        "Commands:\n"
        "• \"help\" - Show this message\n"
        "• \"status\" - Show your account info\n"
        "• \"stop\" - Pause SafeTalk service\n\n"
        "Need more help? Visit {support_url}"
    ),
    "status": (
        "SafeTalk Status:\n\n"
        "Your number: {own_phone}\n"
        "Co-parent: {counterpart_phone}\n"
        "Total messages processed: {total_messages}\n"
        "Messages this week: {messages_this_week}\n"
        "Last activity: {last_activity}\n\n"
        "Service is active and filtering messages."
    ),
    "welcome": (
        "Welcome to SafeTalk!\n\n"
        "SafeTalk provides co-parenting coordination through AI-filtered SMS messaging.\n\n"
        "To get started:\n"
        "1. Subscribe at: {subscribe_url}\n"
        "2. Both co-parents text \"START\" to activate service\n"
        "3. Begin communicating through SafeTalk\n\n"
        "Questions? Reply HELP"
    ),
    "setup_received": (
        "Setup details received.\n\n"
        "Your name: {own_name}\n"
        "Co-parent: {counterpart_name} ({counterpart_phone})\n\n"
        "SafeTalk requires a subscription first. Please visit {subscribe_url} "
        "to finish setup. After subscribing, both of you text \"START\" to activate."
    ),
    "subscription_required": (
        "SafeTalk Subscription Required\n\n"
        "To use SafeTalk's co-parenting coordination service, please visit:\n"
        "{subscribe_url}\n\n"
        "After subscribing, both co-parents must text \"START\" to activate the service.\n\n"
        "Questions? Reply HELP"
    ),
    "activated": (
        "SafeTalk activated for {phone}!\n\n"
        "• Messages from your co-parent will be filtered and you'll get response options\n"
        "• Your messages will be reviewed before sending\n\n"
        "Start communicating through this SafeTalk number."
    ),
    "paused": "SafeTalk service paused. Text \"start\" to resume.",
    "resumed": "SafeTalk service resumed.",
    "error": "SafeTalk Error: {error}\n\nPlease try again or contact support.",
}

# === REPLY TEMPLATES (option resolution) ===

REPLY_TEMPLATES = {
    "sent": "Message sent successfully.",
    "refused": (
        "That message contains inappropriate language. "
        "Please select option 1, 2, or 3 from the previous message."
    ),
    "invalid_response": (
        "Invalid response. Please reply with:\n"
        "- \"1\", \"2\", or \"3\" to select a response option\n"
        "- Or type your own custom response\n\n"
        "Your message will be sent after AI processing."
    ),
    "nothing_pending": "No recent message to respond to.",
    "already_resolved": "Message sent. An earlier reply to that message was already recorded.",
    "apology": "Sorry, we couldn't process that right now. Please try again in a few minutes.",
}

# === OPTION RENDERINGS ===

OPTION_TEMPLATES = {
    "filtered_incoming": (
        "{greeting},\n\n"
        "{summary}\n\n"
        "Would you like to send any of these responses?\n\n"
        "{options}\n\n"
        "Reply with 1, 2, or 3, or write your own response."
    ),
    "outgoing_options": (
        "{greeting},\n\n"
        "Here are 3 ways to send your message to {counterpart}:\n\n"
        "{options}\n\n"
        "Reply with 1, 2, or 3, or write your own version."
    ),
}


def render_template(
    template_key: str,
    category: str = "system",
    **kwargs,
) -> str:
    """Render an SMS template with variable substitution."""
    templates = {
        "system": SYSTEM_TEMPLATES,
        "reply": REPLY_TEMPLATES,
        "options": OPTION_TEMPLATES,
    }

    template = templates.get(category, {}).get(template_key)

    if template is None:
        logger.warning("Unknown template %s/%s", category, template_key)
        return kwargs.get("fallback", "SafeTalk received your message.")

    try:
        return template.format_map(SafeDict(kwargs))
    except Exception as e:
        logger.debug("Template rendering failed for key substitution: %s", str(e))
        return template


class SafeDict(dict):
    """Dict that returns '{key}' for missing keys instead of raising KeyError."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"
