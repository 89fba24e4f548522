"""
Inbound SMS deduplication - Redis SET NX with a 30-minute window.
Twilio retries a webhook when our response is slow; the retry carries the same
MessageSid and must not produce a second relay.
"""
import logging

logger = logging.getLogger(__name__)

# Redis client (lazily initialized)
_redis_client = None


async def get_redis():
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        from safetalk.config import get_settings
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


def make_dedup_key(external_id: str) -> str:
    return f"safetalk:dedup:sms:{external_id}"


async def is_duplicate_message(external_id: str) -> bool:
    """
    True if this provider message id was already seen inside the window.
    A new id is marked as seen. Messages without an id are never duplicates.
    """
    if not external_id:
        return False

    from safetalk.config import get_settings
    window = get_settings().dedup_window_seconds
    key = make_dedup_key(external_id)

    try:
        redis = await get_redis()
        was_set = await redis.set(key, "1", nx=True, ex=window)
        if was_set:
            return False
        logger.info("Duplicate inbound SMS detected: sid=%s", external_id)
        return True
    except Exception as e:
        # Redis being down must not block relaying
        logger.warning("Redis dedup check failed: %s. Assuming not duplicate.", str(e))
        return False
