"""
Health check endpoints - used by load balancers and monitoring.

- GET /health       - liveness (always 200 if the app is running)
- GET /health/ready - readiness (DB + Redis)
- GET /health/deep  - readiness plus Twilio account status (cached)
"""
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from safetalk.database import get_db

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])

VERSION = "1.0.0"

# Twilio account status is cached for 5 minutes
_twilio_cache: dict = {"status": None, "checked_at": None}
TWILIO_CACHE_TTL_SECONDS = 300


@router.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
    }


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Database and Redis reachable. Redis being down only degrades dedup."""
    checks = {
        "database": (await _check_database(db))["healthy"],
        "redis": (await _check_redis())["healthy"],
    }
    return {
        "status": "ready" if all(checks.values()) else "degraded",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/deep")
async def deep_health_check(db: AsyncSession = Depends(get_db)):
    checks = {
        "database": await _check_database(db),
        "redis": await _check_redis(),
        "twilio": await _check_twilio(),
    }

    all_healthy = all(c.get("healthy", False) for c in checks.values())
    if all_healthy:
        status = "healthy"
    elif checks["database"]["healthy"]:
        status = "degraded"
    else:
        status = "unhealthy"

    return {
        "status": status,
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
    }


async def _check_database(db: AsyncSession) -> dict:
    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        return {"healthy": True}
    except Exception as e:
        logger.error("Health: database check failed: %s", str(e))
        return {"healthy": False, "error": str(e)}


async def _check_redis() -> dict:
    try:
        from safetalk.utils.dedup import get_redis
        redis = await get_redis()
        await redis.ping()
        return {"healthy": True}
    except Exception as e:
        logger.warning("Health: Redis check failed: %s", str(e))
        return {"healthy": False, "error": str(e)}


async def _check_twilio() -> dict:
    global _twilio_cache
    now = datetime.now(timezone.utc)

    if (
        _twilio_cache["checked_at"]
        and (now - _twilio_cache["checked_at"]).total_seconds() < TWILIO_CACHE_TTL_SECONDS
    ):
        return _twilio_cache["status"]

    try:
        from safetalk.config import get_settings
        settings = get_settings()
        if not settings.twilio_account_sid:
            result = {"healthy": False, "error": "Twilio not configured"}
        else:
            from safetalk.services.sms import _get_twilio_client, _run_sync
            client = _get_twilio_client()
            account = await _run_sync(client.api.accounts(settings.twilio_account_sid).fetch)
            result = {
                "healthy": account.status == "active",
                "account_status": account.status,
            }
    except Exception as e:
        logger.warning("Health: Twilio check failed: %s", str(e))
        result = {"healthy": False, "error": str(e)}

    _twilio_cache = {"status": result, "checked_at": now}
    return result
