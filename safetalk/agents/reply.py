"""
Reply resolution - the client answers a pending option set.

Order: commands, then option parsing. A numbered pick sends the stored
option text verbatim; a custom reply is moderated first and never sent when
refused. After a successful send the outgoing record is written and the
option set is resolved. A store failure after the send is logged only: the
SMS is already out and is not taken back.
"""
import logging

from safetalk.agents.commands import handle_command
from safetalk.models.message import DIRECTION_OUTGOING, STATUS_SENT
from safetalk.models.party import Party
from safetalk.schemas.webhook_payloads import InboundSms
from safetalk.services.reply_parser import OptionParseResult, parse_option_selection, parse_special_command
from safetalk.utils.errors import OptionsAlreadyResolvedError, RecordStoreError

logger = logging.getLogger(__name__)


async def handle_reply(conductor, party: Party, pending, sms: InboundSms) -> str:
    command = parse_special_command(sms.body_text)
    if command:
        return await handle_command(conductor, party, command.command)
    return await resolve_reply(conductor, party, pending, parse_option_selection(sms.body_text))


async def resolve_reply(conductor, party: Party, pending, parsed: OptionParseResult) -> str:
    """
    Resolve a pending set from an already-parsed answer. Shared by SMS
    replies and app responses; the client gets the same SMS confirmations.
    """
    # Plain values: a failed write rolls back and expires the loaded rows
    own_phone, counterpart_phone = party.own_phone, party.counterpart_phone
    option_set_id, category = pending.option_set.id, pending.message.category
    in_reply_to = str(pending.message.id)
    log_extra = {"party_id": str(party.id), "direction": pending.direction}

    if not parsed.is_valid:
        await conductor.send(own_phone, conductor.reply_text("invalid_response"))
        return "invalid_response"

    custom_text = None
    if parsed.selected_option is not None:
        final_text = pending.option_set.option_text(parsed.selected_option)
        if not final_text:
            logger.warning("Option %d missing from pending set", parsed.selected_option, extra=log_extra)
            await conductor.send(own_phone, conductor.reply_text("nothing_pending"))
            return "nothing_pending"
    else:
        moderated = await conductor.transform.moderate_custom_reply(parsed.custom_response)
        if moderated.degraded:
            logger.warning(
                "Custom reply moderated by keyword fallback",
                extra={**log_extra, "operation": "moderate_custom_reply"},
            )
        if not moderated:
            logger.info("Custom reply refused", extra=log_extra)
            await conductor.send(own_phone, conductor.reply_text("refused"))
            return "reply_refused"
        final_text = moderated.text
        custom_text = final_text

    external_id = await conductor.send(counterpart_phone, final_text)

    try:
        await conductor.store.create_message(
            party_id=party.id,
            direction=DIRECTION_OUTGOING,
            original_text=parsed.custom_response or final_text,
            filtered_text=final_text,
            category=category,
            from_phone=own_phone,
            to_phone=counterpart_phone,
            status=STATUS_SENT,
            external_id=external_id,
            extra_data={
                "in_reply_to": in_reply_to,
                "selected_option": parsed.selected_option,
            },
        )
    except RecordStoreError as e:
        logger.error(
            "Outgoing record not saved after send: %s", str(e),
            extra={**log_extra, "operation": e.operation},
        )

    outcome = "reply_sent"
    try:
        if custom_text is not None:
            await conductor.store.resolve_options(option_set_id, custom_response=custom_text)
        else:
            await conductor.store.resolve_options(option_set_id, selected_response=final_text)
    except OptionsAlreadyResolvedError:
        # Two replies raced on the same set; both were sent
        logger.warning("Option set resolved concurrently", extra={**log_extra, "operation": "resolve_options"})
        outcome = "reply_sent_concurrent"
    except RecordStoreError as e:
        logger.error(
            "Option set not resolved after send: %s", str(e),
            extra={**log_extra, "operation": e.operation},
        )

    key = "already_resolved" if outcome == "reply_sent_concurrent" else "sent"
    await conductor.send(own_phone, conductor.reply_text(key))
    return outcome
