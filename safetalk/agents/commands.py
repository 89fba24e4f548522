"""
Shared command handling for a known, gated-in client.
"""
import logging

from safetalk.models.party import Party
from safetalk.services.formatter import format_status

logger = logging.getLogger(__name__)


async def handle_command(conductor, party: Party, command: str) -> str:
    """Run help/status/stop/start for the client and reply to them."""
    to = party.own_phone

    if command == "help":
        await conductor.send(to, conductor.system_text("help"))
    elif command == "status":
        stats = await conductor.store.message_stats(party.id)
        await conductor.send(
            to,
            format_status(
                own_phone=party.own_phone,
                counterpart_phone=party.counterpart_phone,
                total_messages=stats["total_messages"],
                messages_this_week=stats["messages_this_week"],
                last_activity=stats["last_activity"],
            ),
        )
    elif command == "stop":
        await conductor.registry.deactivate(party.id)
        await conductor.send(to, conductor.system_text("paused"))
    elif command == "start":
        await conductor.send(to, conductor.system_text("resumed"))
    else:
        logger.warning("Unknown command %s", command, extra={"party_id": str(party.id)})
        return "command_unknown"

    logger.info("Command %s handled", command, extra={"party_id": str(party.id), "operation": "command"})
    return f"command_{command}"
