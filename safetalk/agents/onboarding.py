"""
Onboarding - senders the relay can't serve yet.

New party: nobody knows this phone. Answer help, resume a paused pairing on
start, acknowledge a setup message, or send the welcome. Never creates a party;
pairings are created by the subscription flow.

Gated party: known, but the subscription isn't active or START hasn't been
texted yet. Answer help, activate on start when that's the only thing missing,
otherwise point at the subscribe page.

Neither path writes a message record.
"""
import logging

from safetalk.models.party import SUBSCRIPTION_ACTIVE, Party
from safetalk.schemas.webhook_payloads import InboundSms
from safetalk.services.reply_parser import parse_setup_message, parse_special_command
from safetalk.utils.phone import mask_phone

logger = logging.getLogger(__name__)


async def handle_new_party(conductor, sms: InboundSms) -> str:
    sender = sms.from_address
    command = parse_special_command(sms.body_text)

    if command.command == "help":
        await conductor.send(sender, conductor.system_text("help"))
        return "help_sent"

    if command.command == "start":
        paused = await conductor.registry.find_inactive_by_own_phone(sender)
        if paused is not None:
            await conductor.registry.reactivate(paused.id)
            await conductor.send(sender, conductor.system_text("resumed"))
            return "resumed"

    setup = parse_setup_message(sms.body_text, conductor.country_code)
    if setup:
        logger.info("Setup message from unregistered %s", mask_phone(sender))
        await conductor.send(
            sender,
            conductor.system_text(
                "setup_received",
                own_name=setup.own_name or "Not provided",
                counterpart_name=setup.counterpart_name or "Not provided",
                counterpart_phone=setup.counterpart_phone,
            ),
        )
        return "setup_received"

    if setup.reason in ("multiple_phones", "invalid_phone"):
        await conductor.send(sender, conductor.system_text("error", error=setup.error))
        return "setup_error"

    await conductor.send(sender, conductor.system_text("welcome"))
    return "welcome_sent"


async def handle_gated(conductor, party: Party, sms: InboundSms) -> str:
    sender = sms.from_address
    command = parse_special_command(sms.body_text)

    if command.command == "help":
        await conductor.send(sender, conductor.system_text("help"))
        return "help_sent"

    if (
        command.command == "start"
        and party.subscription_status == SUBSCRIPTION_ACTIVE
        and not party.has_activated_service
    ):
        await conductor.registry.mark_activated(party.id)
        await conductor.send(sender, conductor.system_text("activated", phone=sender))
        return "activated"

    logger.info(
        "Gated party: subscription=%s activated=%s",
        party.subscription_status, party.has_activated_service,
        extra={"party_id": str(party.id)},
    )
    await conductor.send(sender, conductor.system_text("subscription_required"))
    return "subscription_required"
