"""
Webhook endpoints - inbound SMS and delivery status callbacks from Twilio.

Security layers (in order):
1. Signature validation (X-Twilio-Signature)
2. Audit trail (webhook_events table)
3. Strict payload parse (400 on anything that is not a usable SMS)
4. MessageSid dedup (Twilio retries)
5. Conductor

Once a payload is accepted the response is always 200, even when processing
fails. A non-2xx makes Twilio retry, and a retried message must never be
relayed twice.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from safetalk.agents.conductor import Conductor
from safetalk.database import get_db
from safetalk.models.message import STATUS_DELIVERED, STATUS_FAILED, STATUS_SENT
from safetalk.models.webhook_event import WebhookEvent
from safetalk.schemas.api_responses import WebhookAck
from safetalk.schemas.webhook_payloads import DeliveryStatusUpdate, InboundSms
from safetalk.services.content_transform import AIContentTransform
from safetalk.services.record_store import SqlRecordStore
from safetalk.services.transport import TwilioTransport
from safetalk.utils.dedup import is_duplicate_message
from safetalk.utils.errors import RecordStoreError
from safetalk.utils.logging import get_correlation_id
from safetalk.utils.phone import mask_phone
from safetalk.utils.webhook_signatures import compute_payload_hash, validate_twilio_request

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/webhook", tags=["webhooks"])

# Twilio callback status → stored status. Anything else is intermediate.
DELIVERY_STATUS_MAP = {
    "sent": STATUS_SENT,
    "delivered": STATUS_DELIVERED,
    "undelivered": STATUS_FAILED,
    "failed": STATUS_FAILED,
}


async def get_conductor(db: AsyncSession = Depends(get_db)) -> Conductor:
    """A conductor bound to this request's session."""
    from safetalk.config import get_settings
    settings = get_settings()
    return Conductor.from_settings(
        store=SqlRecordStore(db),
        transport=TwilioTransport.from_settings(settings),
        transform=AIContentTransform(),
        settings=settings,
    )


async def _record_webhook_event(
    db: AsyncSession,
    source: str,
    event_type: str,
    raw_payload: dict,
    payload_hash: str,
    external_message_id: Optional[str] = None,
) -> uuid.UUID:
    """
    Record a webhook event in the audit trail before processing.
    Committed straight away so it survives a rollback later in the request.
    """
    event = WebhookEvent(
        source=source,
        event_type=event_type,
        payload_hash=payload_hash,
        raw_payload=raw_payload,
        external_message_id=external_message_id,
        processing_status="received",
        correlation_id=get_correlation_id(),
    )
    db.add(event)
    await db.commit()
    return event.id


async def _complete_webhook_event(
    db: AsyncSession,
    event_id: uuid.UUID,
    status: str,
    outcome: Optional[str] = None,
    party_id: Optional[uuid.UUID] = None,
    error_message: Optional[str] = None,
) -> None:
    """Mark a webhook event finished. Audit failures are logged, never raised."""
    values = {
        "processing_status": status,
        "processed_at": datetime.now(timezone.utc),
    }
    if outcome:
        values["outcome"] = outcome
    if party_id:
        values["party_id"] = party_id
    if error_message:
        values["error_message"] = error_message[:1000]

    try:
        await db.execute(update(WebhookEvent).where(WebhookEvent.id == event_id).values(**values))
        await db.commit()
    except Exception as e:
        logger.warning("Webhook event %s not updated: %s", event_id, str(e))
        await db.rollback()


async def _read_form(request: Request) -> tuple[bytes, dict]:
    body = await request.body()
    form = await request.form()
    return body, {k: str(v) for k, v in form.items()}


@router.post("/twilio/sms", response_model=WebhookAck)
async def twilio_sms_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    conductor: Conductor = Depends(get_conductor),
):
    """Twilio inbound SMS webhook. Every text to the service number lands here."""
    body, form_data = await _read_form(request)

    if not await validate_twilio_request(request, form_data):
        logger.warning("Rejected inbound SMS webhook: invalid signature")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    event_id = await _record_webhook_event(
        db,
        source="twilio",
        event_type="inbound_sms",
        raw_payload=form_data,
        payload_hash=compute_payload_hash(body),
        external_message_id=form_data.get("MessageSid"),
    )

    try:
        sms = InboundSms.from_twilio_form(form_data, country_code=conductor.country_code)
    except ValidationError as e:
        logger.warning("Rejected inbound SMS payload: %s", str(e))
        await _complete_webhook_event(db, event_id, "failed", error_message=str(e))
        raise HTTPException(status_code=400, detail="Invalid inbound SMS payload")

    if await is_duplicate_message(sms.external_message_id):
        await _complete_webhook_event(db, event_id, "duplicate")
        return WebhookAck(status="duplicate")

    logger.info(
        "Inbound SMS from %s sid=%s",
        mask_phone(sms.from_address), sms.external_message_id,
        extra={"provider": "twilio"},
    )

    try:
        result = await conductor.process(sms)
    except Exception as e:
        logger.error("Inbound SMS processing error: %s", str(e), exc_info=True)
        await db.rollback()
        await _complete_webhook_event(db, event_id, "failed", error_message=str(e))
        return WebhookAck(status="error")

    status = "failed" if result.outcome.startswith("error_") else "completed"
    await _complete_webhook_event(db, event_id, status, outcome=result.outcome, party_id=result.party_id)
    return WebhookAck(status="ok", outcome=result.outcome)


@router.post("/twilio/status", response_model=WebhookAck)
async def twilio_status_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Twilio delivery status callback for messages we sent."""
    body, form_data = await _read_form(request)

    if not await validate_twilio_request(request, form_data):
        logger.warning("Rejected status webhook: invalid signature")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        update_msg = DeliveryStatusUpdate(**form_data)
    except ValidationError as e:
        logger.warning("Rejected status callback payload: %s", str(e))
        raise HTTPException(status_code=400, detail="Invalid status callback payload")

    event_id = await _record_webhook_event(
        db,
        source="twilio",
        event_type="status_callback",
        raw_payload=form_data,
        payload_hash=compute_payload_hash(body),
        external_message_id=update_msg.MessageSid,
    )

    status = DELIVERY_STATUS_MAP.get(update_msg.MessageStatus)
    if status is None:
        await _complete_webhook_event(db, event_id, "completed", outcome="ignored")
        return WebhookAck(status="ignored")

    store = SqlRecordStore(db)
    try:
        record = await store.update_status_by_external_id(
            update_msg.MessageSid, status, error_code=update_msg.ErrorCode,
        )
    except RecordStoreError as e:
        logger.error("Status update failed for sid=%s: %s", update_msg.MessageSid, str(e))
        await _complete_webhook_event(db, event_id, "failed", error_message=str(e))
        return WebhookAck(status="error")

    if record is None:
        logger.info("Status callback for unknown sid=%s", update_msg.MessageSid)
        await _complete_webhook_event(db, event_id, "completed", outcome="unknown_message")
        return WebhookAck(status="ignored")

    if status == STATUS_FAILED:
        logger.warning(
            "SMS delivery failed: sid=%s error=%s",
            update_msg.MessageSid, update_msg.ErrorCode,
            extra={"party_id": str(record.party_id), "error_code": update_msg.ErrorCode, "provider": "twilio"},
        )

    await _complete_webhook_event(
        db, event_id, "completed", outcome=f"status_{status}", party_id=record.party_id,
    )
    return WebhookAck(status="ok", outcome=f"status_{status}")
