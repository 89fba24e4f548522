"""
Client initiation - the client starts a new message to the counterpart.

Nothing reaches the counterpart here. The draft becomes an outgoing_intent
record with 3 phrasings; the client picks one (or writes their own) and the
reply flow sends it.
"""
import logging

from safetalk.agents.commands import handle_command
from safetalk.models.message import DIRECTION_OUTGOING_INTENT, STATUS_PROCESSING
from safetalk.models.party import Party
from safetalk.schemas.webhook_payloads import InboundSms
from safetalk.services.formatter import format_outgoing_options
from safetalk.services.reply_parser import (
    parse_option_selection,
    parse_special_command,
    validate_message_content,
)

logger = logging.getLogger(__name__)


async def handle_initiation(conductor, party: Party, sms: InboundSms) -> str:
    command = parse_special_command(sms.body_text)
    if command:
        return await handle_command(conductor, party, command.command)

    log_extra = {"party_id": str(party.id), "direction": DIRECTION_OUTGOING_INTENT}

    # A bare "2" with nothing pending is a stale pick, not a new message
    if parse_option_selection(sms.body_text).selected_option is not None:
        await conductor.send(party.own_phone, conductor.reply_text("nothing_pending"))
        return "nothing_pending"

    validation = validate_message_content(sms.body_text)
    if not validation:
        await conductor.send(party.own_phone, conductor.system_text("error", error=validation.error))
        return "invalid_content"

    draft = sms.body_text.strip()
    generated = await conductor.transform.generate_outgoing_options(draft)
    if generated.degraded:
        logger.warning("Outgoing options from keyword fallback", extra={**log_extra, "operation": "generate_outgoing_options"})

    intent = await conductor.store.create_message(
        party_id=party.id,
        direction=DIRECTION_OUTGOING_INTENT,
        original_text=draft,
        category=generated.category,
        from_phone=party.own_phone,
        to_phone=party.counterpart_phone,
        status=STATUS_PROCESSING,
        extra_data={"inbound_sid": sms.external_message_id, "degraded": generated.degraded},
    )
    await conductor.store.create_option_set(intent.id, generated.options)

    await conductor.offer_options(
        intent.id,
        party.own_phone,
        format_outgoing_options(
            generated.options,
            own_name=party.own_name,
            counterpart_name=party.counterpart_name,
        ),
        log_extra,
    )

    logger.info("Outgoing options offered", extra=log_extra)
    return "options_sent"
