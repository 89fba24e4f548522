"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from safetalk.api.webhooks import router as webhooks_router
from safetalk.api.messages import router as messages_router
from safetalk.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(webhooks_router)
api_router.include_router(messages_router)
api_router.include_router(health_router)
