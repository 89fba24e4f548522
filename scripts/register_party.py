"""
Register (or update) a co-parenting pair.

Stands in for the subscription sign-up flow: creates the party the service
number will recognize. Running it again for the same client phone updates the
counterpart and names.

Usage:
    python scripts/register_party.py --own "+15551234567" --counterpart "+15557654321"
    python scripts/register_party.py --own "+15551234567" --counterpart "+15557654321" \
        --own-name Alex --counterpart-name Sam --subscription active
"""
import argparse
import asyncio
import logging

from safetalk.config import get_settings
from safetalk.database import session_scope
from safetalk.services.party_registry import PartyRegistry
from safetalk.services.record_store import SqlRecordStore
from safetalk.utils.errors import PartyValidationError
from safetalk.utils.phone import mask_phone

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def register(args) -> int:
    settings = get_settings()
    async with session_scope() as session:
        registry = PartyRegistry(SqlRecordStore(session), country_code=settings.default_country_code)
        try:
            party = await registry.create_or_update(
                own_phone=args.own,
                counterpart_phone=args.counterpart,
                service_phone=args.service or settings.twilio_phone_number,
                own_name=args.own_name,
                counterpart_name=args.counterpart_name,
                subscription_status=args.subscription,
            )
        except PartyValidationError as e:
            logger.error("Registration rejected: %s", str(e))
            return 1
        logger.info(
            "Registered party %s: %s <-> %s",
            party.id, mask_phone(party.own_phone), mask_phone(party.counterpart_phone),
        )
    return 0


def main():
    parser = argparse.ArgumentParser(description="Register a SafeTalk party")
    parser.add_argument("--own", required=True, help="Client phone")
    parser.add_argument("--counterpart", required=True, help="Co-parent phone")
    parser.add_argument("--service", default=None, help="Service number (defaults to TWILIO_PHONE_NUMBER)")
    parser.add_argument("--own-name", default=None)
    parser.add_argument("--counterpart-name", default=None)
    parser.add_argument(
        "--subscription", default=None, choices=["active", "canceled", "past_due"],
        help="Billing state; omit for no billing record",
    )
    raise SystemExit(asyncio.run(register(parser.parse_args())))


if __name__ == "__main__":
    main()
