"""
Webhook signature validation - verify Twilio webhooks are authentic.

Twilio signs each request with HMAC-SHA1 over the public URL and the form
params, sent in X-Twilio-Signature.
"""
import hashlib
import logging

logger = logging.getLogger(__name__)


def validate_twilio_signature(
    auth_token: str,
    signature: str,
    url: str,
    params: dict,
) -> bool:
    """
    Validate Twilio webhook signature using their RequestValidator.
    Returns True if valid, False if invalid or on error.
    """
    if not signature:
        logger.warning("Missing X-Twilio-Signature header")
        return False

    try:
        from twilio.request_validator import RequestValidator
        validator = RequestValidator(auth_token)
        return validator.validate(url, params, signature)
    except Exception as e:
        logger.error("Twilio signature validation error: %s", str(e))
        return False


def compute_payload_hash(body: bytes) -> str:
    """SHA-256 of the raw payload for the audit trail."""
    return hashlib.sha256(body).hexdigest()


async def get_webhook_url(request) -> str:
    """
    Reconstruct the public URL Twilio signed.
    Behind a reverse proxy request.url is the internal URL, so prefer
    X-Forwarded-Proto / X-Forwarded-Host when present.
    """
    proto = request.headers.get("x-forwarded-proto", "https")
    host = request.headers.get("x-forwarded-host") or request.headers.get("host", "")
    path = request.url.path
    query = request.url.query
    base = f"{proto}://{host}{path}"
    if query:
        return f"{base}?{query}"
    return base


async def validate_twilio_request(request, form_params: dict) -> bool:
    """
    Validate an inbound Twilio webhook.
    Without TWILIO_AUTH_TOKEN the request is accepted outside production, or
    in production only when ALLOW_UNSIGNED_WEBHOOKS is set.
    """
    from safetalk.config import get_settings
    settings = get_settings()

    if not settings.twilio_auth_token:
        if settings.app_env == "production" and not settings.allow_unsigned_webhooks:
            logger.error("Missing TWILIO_AUTH_TOKEN in production - rejecting webhook")
            return False
        logger.warning(
            "TWILIO_AUTH_TOKEN not set - accepting webhook without signature verification"
        )
        return True

    signature = request.headers.get("X-Twilio-Signature", "")
    url = await get_webhook_url(request)
    return validate_twilio_signature(
        settings.twilio_auth_token,
        signature,
        url,
        form_params,
    )
