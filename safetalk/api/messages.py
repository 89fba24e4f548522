"""
Message API - read access and app-side responses for polling clients.

- GET  /api/v1/messages/party/{party_id}          - recent messages, newest first
- GET  /api/v1/messages/party/{party_id}/summary  - counts and the pending message
- GET  /api/v1/messages/{message_id}              - one message with its options
- GET  /api/v1/messages/{message_id}/options      - the option set only
- POST /api/v1/messages/{message_id}/respond      - answer a pending set

Responses go through the same resolution path as SMS replies, so only the
party's current pending set can be answered.
"""
import hmac
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from safetalk.agents.conductor import AWAITING_CLIENT_REPLY, SUBSCRIPTION_BLOCKED, Conductor
from safetalk.api.webhooks import get_conductor
from safetalk.schemas.api_responses import (
    ConversationSummary,
    MessageDetail,
    MessageOut,
    ReplyOptionsOut,
    RespondAck,
    RespondRequest,
)
from safetalk.services.reply_parser import OptionParseResult
from safetalk.utils.errors import RecordStoreError

logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)

SUMMARY_RECENT = 5


async def require_app_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> None:
    """
    Bearer token check. Without APP_API_TOKEN the API is open outside
    production and closed in production.
    """
    from safetalk.config import get_settings
    settings = get_settings()

    if not settings.app_api_token:
        if settings.app_env == "production":
            logger.error("APP_API_TOKEN not set in production - rejecting message API call")
            raise HTTPException(status_code=401, detail="Message API not configured")
        return

    if credentials is None or not hmac.compare_digest(credentials.credentials, settings.app_api_token):
        raise HTTPException(status_code=401, detail="Invalid API token")


router = APIRouter(
    prefix="/api/v1/messages",
    tags=["messages"],
    dependencies=[Depends(require_app_token)],
)


def _store_unavailable(e: RecordStoreError) -> HTTPException:
    logger.error("Message API store failure: %s", str(e), extra={"operation": e.operation})
    return HTTPException(status_code=503, detail="Message store unavailable")


async def _load_party(conductor: Conductor, party_id: uuid.UUID):
    party = await conductor.store.get_party(party_id)
    if party is None:
        raise HTTPException(status_code=404, detail="Party not found")
    return party


async def _load_message(conductor: Conductor, message_id: uuid.UUID):
    message = await conductor.store.get_message(message_id)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return message


@router.get("/party/{party_id}", response_model=list[MessageOut])
async def list_party_messages(
    party_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=200),
    conductor: Conductor = Depends(get_conductor),
):
    try:
        await _load_party(conductor, party_id)
        records = await conductor.store.list_messages(party_id, limit=limit)
    except RecordStoreError as e:
        raise _store_unavailable(e)
    return [MessageOut.from_record(r) for r in records]


@router.get("/party/{party_id}/summary", response_model=ConversationSummary)
async def conversation_summary(
    party_id: uuid.UUID,
    conductor: Conductor = Depends(get_conductor),
):
    try:
        party = await _load_party(conductor, party_id)
        stats = await conductor.store.message_stats(party_id)
        recent = await conductor.store.list_messages(party_id, limit=SUMMARY_RECENT)
        pending = await conductor.pending_options(party)
    except RecordStoreError as e:
        raise _store_unavailable(e)

    return ConversationSummary(
        party_id=party_id,
        total_messages=stats["total_messages"],
        messages_this_week=stats["messages_this_week"],
        last_activity=stats["last_activity"],
        awaiting_reply=pending is not None,
        pending_message_id=pending.message.id if pending else None,
        recent=[MessageOut.from_record(r) for r in recent],
    )


@router.get("/{message_id}", response_model=MessageDetail)
async def get_message(
    message_id: uuid.UUID,
    conductor: Conductor = Depends(get_conductor),
):
    try:
        message = await _load_message(conductor, message_id)
        option_set = await conductor.store.get_option_set(message_id)
        party = await conductor.store.get_party(message.party_id)
        pending = await conductor.pending_options(party) if party else None
    except RecordStoreError as e:
        raise _store_unavailable(e)

    return MessageDetail(
        message=MessageOut.from_record(message),
        options=ReplyOptionsOut.from_record(option_set) if option_set else None,
        awaiting_reply=pending is not None and pending.message.id == message_id,
    )


@router.get("/{message_id}/options", response_model=ReplyOptionsOut)
async def get_reply_options(
    message_id: uuid.UUID,
    conductor: Conductor = Depends(get_conductor),
):
    try:
        option_set = await conductor.store.get_option_set(message_id)
    except RecordStoreError as e:
        raise _store_unavailable(e)
    if option_set is None:
        raise HTTPException(status_code=404, detail="Reply options not found")
    return ReplyOptionsOut.from_record(option_set)


@router.post("/{message_id}/respond", response_model=RespondAck)
async def respond(
    message_id: uuid.UUID,
    payload: RespondRequest,
    conductor: Conductor = Depends(get_conductor),
):
    """Answer the party's pending option set from the app."""
    try:
        message = await _load_message(conductor, message_id)
        party = await _load_party(conductor, message.party_id)
        state = await conductor.derive_state(party.own_phone)
    except RecordStoreError as e:
        raise _store_unavailable(e)

    if state.party is None or state.party.id != party.id:
        raise HTTPException(status_code=409, detail="Party is not active")
    if state.name == SUBSCRIPTION_BLOCKED:
        raise HTTPException(status_code=403, detail="Subscription inactive")
    if state.name != AWAITING_CLIENT_REPLY or state.pending.message.id != message_id:
        raise HTTPException(status_code=409, detail="Message has no pending options")

    if payload.selected_option is not None:
        parsed = OptionParseResult(selected_option=payload.selected_option)
    else:
        parsed = OptionParseResult(custom_response=payload.custom_response.strip())

    party_id = str(party.id)
    outcome = await conductor.resolve_from_app(state, parsed)
    logger.info("App response handled: %s", outcome, extra={"party_id": party_id, "operation": "app_respond"})

    if outcome in ("reply_sent", "reply_sent_concurrent"):
        return RespondAck(status="sent", outcome=outcome)
    if outcome == "reply_refused":
        return RespondAck(status="refused", outcome=outcome)
    if outcome == "error_apology":
        raise HTTPException(status_code=502, detail="Response could not be sent")
    raise HTTPException(status_code=409, detail="Message has no pending options")
