"""
Inbound filtering - the counterpart wrote to the service number.

The counterpart never hears back from the relay. Invalid content is dropped
silently; the filtered message and 3 reply options go to the client only.
"""
import logging

from safetalk.models.message import DIRECTION_INCOMING, STATUS_PROCESSING
from safetalk.models.party import Party
from safetalk.schemas.webhook_payloads import InboundSms
from safetalk.services.formatter import format_filtered_incoming
from safetalk.services.reply_parser import validate_message_content

logger = logging.getLogger(__name__)


async def handle_counterpart_message(conductor, party: Party, sms: InboundSms) -> str:
    log_extra = {"party_id": str(party.id), "direction": DIRECTION_INCOMING}

    validation = validate_message_content(sms.body_text)
    if not validation:
        logger.info("Dropped counterpart message: %s", validation.error, extra=log_extra)
        return "dropped"

    original = sms.body_text.strip()
    processed = await conductor.transform.process_incoming(original)
    if processed.degraded:
        logger.warning("Counterpart message filtered by keyword fallback", extra={**log_extra, "operation": "process_incoming"})

    record = await conductor.store.create_message(
        party_id=party.id,
        direction=DIRECTION_INCOMING,
        original_text=original,
        filtered_text=processed.filtered_text,
        category=processed.category,
        from_phone=sms.from_address,
        to_phone=party.own_phone,
        status=STATUS_PROCESSING,
        extra_data={
            "inbound_sid": sms.external_message_id,
            "context_reason": processed.context_reason,
            "degraded": processed.degraded,
        },
    )
    await conductor.store.create_option_set(record.id, processed.options)

    await conductor.offer_options(
        record.id,
        party.own_phone,
        format_filtered_incoming(
            processed.filtered_text,
            processed.options,
            own_name=party.own_name,
            counterpart_name=party.counterpart_name,
            context_reason=processed.context_reason,
        ),
        log_extra,
    )

    logger.info("Filtered message relayed to client", extra=log_extra)
    return "incoming_relayed"
