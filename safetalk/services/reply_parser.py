"""
Reply parser - turns raw inbound SMS text into something the conductor can act on.

Three independent, side-effect-free parsers:
1. Special commands (help/status/stop/start and their aliases)
2. Option selection (1/2/3, word forms) or a free-form custom reply
3. Setup/pairing messages (exactly one co-parent phone number + optional names)

Command parsing ALWAYS runs first. A message that is exactly "help" is never
treated as a custom reply.
"""
import logging
import re
from typing import Optional

from safetalk.utils.phone import normalize_phone, is_valid_phone

logger = logging.getLogger(__name__)

MAX_CUSTOM_REPLY_CHARS = 500
MAX_MESSAGE_CHARS = 1000

COMMAND_ALIASES = {
    "help": "help",
    "?": "help",
    "status": "status",
    "info": "status",
    "stop": "stop",
    "pause": "stop",
    "disable": "stop",
    "start": "start",
    "resume": "start",
    "enable": "start",
}

OPTION_WORDS = {
    1: {"1", "one", "first", "option 1", "option one"},
    2: {"2", "two", "second", "option 2", "option two"},
    3: {"3", "three", "third", "option 3", "option three"},
}

# Optional +1, optional punctuation/spacing, exactly 10 significant digits
PHONE_PATTERN = re.compile(r"(\+?1?[-.\s]?\(?[0-9]{3}\)?[-.\s]?[0-9]{3}[-.\s]?[0-9]{4})")

CONNECTOR_PATTERNS = [
    re.compile(
        r"\b(?:my name is|i'm|i am|my ex|ex is|ex:|ex-partner:|ex partner:|their name is)",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(?:your name:|your co-parent's name:|your co-parent's number:|name:"
        r"|co-parent name:|co-parent's name:|number:)",
        re.IGNORECASE,
    ),
]

NAME_STOPWORDS = {
    "and", "is", "the", "my", "ex", "partner", "name",
    "your", "co-parent", "co", "parent", "number",
}

_PHONE_REMNANT = re.compile(r"^[+\d\s\-()]+$")
_NAME_PUNCTUATION = re.compile(r"[,;:\n\r.!?]")
_WHITESPACE = re.compile(r"\s+")

# Emoji blocks: emoticons, symbols & pictographs, transport, flags
_EMOJI = re.compile(
    "[\U0001F600-\U0001F64F\U0001F300-\U0001F5FF\U0001F680-\U0001F6FF\U0001F1E0-\U0001F1FF\\s]"
)


class CommandParseResult:
    """Result of special-command parsing."""

    def __init__(self, command: Optional[str] = None):
        self.command = command

    @property
    def is_command(self) -> bool:
        return self.command is not None

    def __bool__(self) -> bool:
        return self.is_command

    def __repr__(self) -> str:
        return f"<CommandParseResult {self.command or 'none'}>"


class OptionParseResult:
    """
    Result of option-selection parsing. Exactly one of
    selected_option / custom_response / error is set.
    """

    def __init__(
        self,
        selected_option: Optional[int] = None,
        custom_response: Optional[str] = None,
        error: Optional[str] = None,
    ):
        self.selected_option = selected_option
        self.custom_response = custom_response
        self.error = error

    @property
    def is_valid(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> str:
        if self.selected_option is not None:
            return f"option_{self.selected_option}"
        if self.custom_response is not None:
            return "custom"
        return "error"

    def __repr__(self) -> str:
        return f"<OptionParseResult {self.kind}>"


class SetupParseResult:
    """Result of setup/pairing parsing."""

    def __init__(
        self,
        counterpart_phone: Optional[str] = None,
        own_name: Optional[str] = None,
        counterpart_name: Optional[str] = None,
        error: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        self.counterpart_phone = counterpart_phone
        self.own_name = own_name
        self.counterpart_name = counterpart_name
        self.error = error
        self.reason = reason

    @property
    def is_setup(self) -> bool:
        return self.error is None and self.counterpart_phone is not None

    def __bool__(self) -> bool:
        return self.is_setup

    def __repr__(self) -> str:
        return f"<SetupParseResult {'ok' if self.is_setup else self.reason}>"


class ContentValidation:
    """Result of message content validation."""

    def __init__(self, is_valid: bool, error: str = ""):
        self.is_valid = is_valid
        self.error = error

    def __bool__(self) -> bool:
        return self.is_valid

    def __repr__(self) -> str:
        return f"<ContentValidation {'ok' if self.is_valid else self.error}>"


def parse_special_command(text: str) -> CommandParseResult:
    """Exact (trimmed, case-insensitive) match against the command aliases."""
    normalized = (text or "").strip().lower()
    return CommandParseResult(COMMAND_ALIASES.get(normalized))


def parse_option_selection(text: str) -> OptionParseResult:
    """
    Interpret a reply as option 1/2/3 or a custom response.
    Only empty or over-length input is an error.
    """
    trimmed = (text or "").strip()
    lowered = trimmed.lower()

    for option, words in OPTION_WORDS.items():
        if lowered in words:
            return OptionParseResult(selected_option=option)

    if 0 < len(trimmed) <= MAX_CUSTOM_REPLY_CHARS:
        return OptionParseResult(custom_response=trimmed)

    return OptionParseResult(
        error=(
            "Response must be 1, 2, 3, or a custom message "
            f"(max {MAX_CUSTOM_REPLY_CHARS} characters)"
        )
    )


def parse_setup_message(
    text: str,
    country_code: str = "1",
) -> SetupParseResult:
    """
    Find exactly one co-parent phone number in a setup message and pull out
    the optional caller / co-parent names around it.
    """
    trimmed = (text or "").strip()
    matches = PHONE_PATTERN.findall(trimmed)

    if not matches:
        return SetupParseResult(
            error=(
                "No phone number found. Please provide your co-parent's "
                "phone number in format: +1234567890"
            ),
            reason="no_phone",
        )

    if len(matches) > 1:
        return SetupParseResult(
            error="Multiple phone numbers found. Please provide only one phone number.",
            reason="multiple_phones",
        )

    raw_phone = matches[0]
    phone = normalize_phone(raw_phone, country_code)
    if not is_valid_phone(phone):
        return SetupParseResult(
            error="Invalid phone number format. Please use format: +1234567890",
            reason="invalid_phone",
        )

    own_name, counterpart_name = extract_names(trimmed, raw_phone)
    return SetupParseResult(
        counterpart_phone=phone,
        own_name=own_name,
        counterpart_name=counterpart_name,
    )


def extract_names(text: str, phone_text: str) -> tuple[Optional[str], Optional[str]]:
    """
    Pull (own_name, counterpart_name) out of the words around the phone number.

    Supported shapes:
    - "Sarah +15551234567 John"
    - "My name is Sarah, ex is John +15551234567"
    - "I'm Sarah, my ex John 555-123-4567"

    1 word → own name only; 2 → own, counterpart; more → first and last.
    """
    remainder = text.replace(phone_text, " ", 1)
    for pattern in CONNECTOR_PATTERNS:
        remainder = pattern.sub(" ", remainder)
    remainder = _NAME_PUNCTUATION.sub(" ", remainder)
    remainder = _WHITESPACE.sub(" ", remainder).strip()

    if not remainder:
        return None, None

    words = [
        word for word in remainder.split(" ")
        if len(word) > 1
        and not _PHONE_REMNANT.match(word)
        and word.lower() not in NAME_STOPWORDS
    ]

    if not words:
        return None, None
    if len(words) == 1:
        return capitalize_name(words[0]), None
    return capitalize_name(words[0]), capitalize_name(words[-1])


def capitalize_name(name: str) -> str:
    """First letter upper, rest lower."""
    if not name:
        return name
    return name[0].upper() + name[1:].lower()


def is_non_text_message(text: str) -> bool:
    """True when fewer than 3 characters remain after stripping emoji and whitespace."""
    return len(_EMOJI.sub("", text or "")) < 3


def validate_message_content(text: str) -> ContentValidation:
    """Non-empty, at most 1000 characters, and not emoji-only."""
    if not text or not text.strip():
        return ContentValidation(False, "Empty message")

    if len(text) > MAX_MESSAGE_CHARS:
        return ContentValidation(
            False, f"Message too long (max {MAX_MESSAGE_CHARS} characters)"
        )

    if is_non_text_message(text):
        return ContentValidation(
            False, "Message contains only emojis or special characters"
        )

    return ContentValidation(True)
