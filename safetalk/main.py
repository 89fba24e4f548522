"""
SafeTalk - AI-filtered SMS relay for co-parents.
Main FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from safetalk.config import get_settings
from safetalk.api.router import api_router
from safetalk.database import dispose_engine
from safetalk.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("safetalk")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("SafeTalk starting up (env=%s)", settings.app_env)

    if not settings.twilio_account_sid:
        logger.warning("TWILIO_ACCOUNT_SID not set - outbound SMS will be mocked")
    if not settings.anthropic_api_key and not settings.openai_api_key:
        logger.warning("No AI provider key set - messages will be filtered by keyword fallback only")

    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    yield

    from safetalk.utils.dedup import get_redis
    try:
        redis = await get_redis()
        await redis.aclose()
    except Exception as e:
        logger.debug("Redis close failed: %s", str(e))
    await dispose_engine()
    logger.info("SafeTalk shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="SafeTalk",
        description="AI-filtered SMS relay for co-parents",
        version="1.0.0",
        lifespan=lifespan,
    )
    application.add_middleware(CorrelationIdMiddleware)
    application.include_router(api_router)
    return application


app = create_app()
