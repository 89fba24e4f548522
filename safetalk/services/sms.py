"""
SMS delivery - Twilio primary, Telnyx failover.

Twilio error handling:
- 21211 / 21612 (invalid number): don't retry
- 21610 (recipient replied STOP at carrier level): don't retry
- 30006 (landline or unreachable): don't retry
- 30007 / 30008 / 30009 (filtered, unknown, missing segment): short backoff retry

Retries are kept short because every send happens inside a webhook request.
Without Twilio credentials (local development) sends are logged and mocked.
"""
import asyncio
import logging
import math
import time
from typing import Optional

from safetalk.utils.phone import mask_phone

logger = logging.getLogger(__name__)

# Twilio rejects bodies longer than this
MAX_BODY_CHARS = 1600

GSM_SINGLE_SEGMENT = 160
GSM_MULTI_SEGMENT = 153
UCS2_SINGLE_SEGMENT = 70
UCS2_MULTI_SEGMENT = 67

TWILIO_OUTBOUND_COST = 0.0079
TELNYX_OUTBOUND_COST = 0.0040

MAX_RETRIES = 2
RETRY_DELAYS_SECONDS = [1, 2]

PERMANENT_ERRORS = {
    "21211",  # Invalid "To" phone number
    "21610",  # Unsubscribed recipient
    "30006",  # Landline or unreachable
    "21612",  # Invalid "To" phone number for SMS
}

TRANSIENT_ERRORS = {
    "30007",  # Message filtered by carrier
    "30008",  # Unknown error
    "30009",  # Missing segment
}

TWILIO_CLIENT_TIMEOUT = 10

_GSM7_BASIC = set(
    "@£$¥èéùìòÇ\nØø\rÅåΔ_ΦΓΛΩΠΨΣΘΞ ÆæßÉ"
    " !\"#¤%&'()*+,-./0123456789:;<=>?"
    "¡ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "ÄÖÑÜabcdefghijklmnopqrstuvwxyz"
    "äöñüà§"
)
_GSM7_EXTENDED = set("^{}\\[~]|€")


def _get_twilio_client():
    from twilio.rest import Client as TwilioClient
    from twilio.http.http_client import TwilioHttpClient
    from safetalk.config import get_settings
    settings = get_settings()
    return TwilioClient(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        http_client=TwilioHttpClient(timeout=TWILIO_CLIENT_TIMEOUT),
    )


async def _run_sync(func, *args, **kwargs):
    """Run a blocking SDK call in the thread pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: func(*args, **kwargs))


def is_gsm7(message: str) -> bool:
    return all(c in _GSM7_BASIC or c in _GSM7_EXTENDED for c in message)


def count_segments(message: str) -> int:
    """Billable SMS segments, GSM-7 vs UCS-2 aware."""
    if is_gsm7(message):
        length = sum(2 if c in _GSM7_EXTENDED else 1 for c in message)
        if length <= GSM_SINGLE_SEGMENT:
            return 1
        return math.ceil(length / GSM_MULTI_SEGMENT)
    if len(message) <= UCS2_SINGLE_SEGMENT:
        return 1
    return math.ceil(len(message) / UCS2_MULTI_SEGMENT)


def enforce_message_length(message: str) -> str:
    if len(message) <= MAX_BODY_CHARS:
        return message
    logger.warning("Message truncated from %d to %d chars", len(message), MAX_BODY_CHARS)
    return message[:MAX_BODY_CHARS - 3] + "..."


def classify_error(error_code: Optional[str]) -> str:
    """Returns "permanent", "transient", or "unknown"."""
    if not error_code:
        return "unknown"
    code = str(error_code)
    if code in PERMANENT_ERRORS:
        return "permanent"
    if code in TRANSIENT_ERRORS:
        return "transient"
    return "unknown"


def _result(sid, status, provider, segments, cost, error=None, error_code=None) -> dict:
    return {
        "sid": sid,
        "status": status,
        "provider": provider,
        "segments": segments,
        "cost_usd": cost,
        "error": error,
        "error_code": error_code,
    }


async def send_sms(
    to: str,
    body: str,
    from_phone: Optional[str] = None,
    messaging_service_sid: Optional[str] = None,
) -> dict:
    """
    Send one SMS. Twilio with retries, then Telnyx if configured.

    Returns: {
        "sid": str|None, "status": str, "provider": str,
        "segments": int, "cost_usd": float,
        "error": str|None, "error_code": str|None,
    }
    """
    from safetalk.config import get_settings
    settings = get_settings()

    body = enforce_message_length(body)
    segments = count_segments(body)
    masked = mask_phone(to)

    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        sid = f"mock_{int(time.time() * 1000)}"
        logger.info(
            "Mock SMS to %s (%d segments): %s", masked, segments, body[:80],
            extra={"provider": "mock"},
        )
        return _result(sid, "sent", "mock", segments, 0.0)

    last_error = None
    last_error_code = None

    for attempt in range(MAX_RETRIES + 1):
        try:
            result = await _send_twilio(to, body, from_phone, messaging_service_sid)
            logger.info(
                "SMS sent via Twilio to %s (%d segments): %s",
                masked, segments, result["sid"],
                extra={"provider": "twilio"},
            )
            return _result(
                result["sid"], result.get("status") or "sent", "twilio",
                segments, segments * TWILIO_OUTBOUND_COST,
            )
        except Exception as e:
            error_code = _extract_error_code(e)
            last_error = str(e)
            last_error_code = error_code

            if classify_error(error_code) == "permanent":
                logger.warning(
                    "Twilio permanent error for %s: code=%s", masked, error_code,
                    extra={"provider": "twilio", "error_code": error_code},
                )
                return _result(None, "failed", "twilio", segments, 0.0, last_error, error_code)

            if attempt < MAX_RETRIES:
                delay = RETRY_DELAYS_SECONDS[min(attempt, len(RETRY_DELAYS_SECONDS) - 1)]
                logger.warning(
                    "Twilio transient error for %s (attempt %d/%d): %s. Retrying in %ds...",
                    masked, attempt + 1, MAX_RETRIES + 1, error_code or str(e), delay,
                )
                await asyncio.sleep(delay)
            else:
                logger.warning("Twilio exhausted retries for %s: %s", masked, str(e))

    if settings.telnyx_api_key:
        try:
            result = await _send_telnyx(to, body)
            logger.info(
                "SMS sent via Telnyx (failover) to %s (%d segments)", masked, segments,
                extra={"provider": "telnyx"},
            )
            return _result(
                result.get("id"), "sent", "telnyx", segments, segments * TELNYX_OUTBOUND_COST,
            )
        except Exception as e:
            logger.error("Telnyx failover also failed for %s: %s", masked, str(e))
            return _result(
                None, "failed", "none", segments, 0.0,
                f"All providers failed. Last: {str(e)}", last_error_code,
            )

    return _result(
        None, "failed", "none", segments, 0.0,
        f"Twilio failed ({last_error}) and Telnyx not configured", last_error_code,
    )


def _extract_error_code(error: Exception) -> Optional[str]:
    # Twilio REST exceptions carry .code
    code = getattr(error, "code", None)
    if code is not None:
        return str(code)
    msg = str(error)
    for known_code in PERMANENT_ERRORS | TRANSIENT_ERRORS:
        if known_code in msg:
            return known_code
    return None


async def _send_twilio(
    to: str,
    body: str,
    from_phone: Optional[str] = None,
    messaging_service_sid: Optional[str] = None,
) -> dict:
    from safetalk.config import get_settings
    settings = get_settings()
    client = _get_twilio_client()

    kwargs = {"to": to, "body": body}
    service_sid = messaging_service_sid or settings.twilio_messaging_service_sid
    if service_sid:
        kwargs["messaging_service_sid"] = service_sid
    elif from_phone or settings.twilio_phone_number:
        kwargs["from_"] = from_phone or settings.twilio_phone_number
    else:
        raise ValueError("Either from_phone or messaging_service_sid required")

    message = await _run_sync(client.messages.create, **kwargs)
    return {"sid": message.sid, "status": message.status}


async def _send_telnyx(to: str, body: str) -> dict:
    import httpx
    from safetalk.config import get_settings
    settings = get_settings()
    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.post(
            "https://api.telnyx.com/v2/messages",
            headers={
                "Authorization": f"Bearer {settings.telnyx_api_key}",
                "Content-Type": "application/json",
            },
            json={
                "from": settings.telnyx_messaging_profile_id,
                "to": to,
                "text": body,
                "messaging_profile_id": settings.telnyx_messaging_profile_id,
            },
        )
        response.raise_for_status()
        data = response.json()
        return {"id": data.get("data", {}).get("id")}
