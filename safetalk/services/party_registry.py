"""
Party registry - create, find and update the client/counterpart pairing.

Lookups always say which role matched. When a phone is both the own phone of
one party and the counterpart phone of another, the own-phone match wins:
a subscriber texting the service number is acting as a client.
"""
import logging
import uuid
from typing import Optional

from safetalk.models.party import ROLE_CLIENT, ROLE_COUNTERPART, Party
from safetalk.services.record_store import RecordStore
from safetalk.utils.errors import PartyValidationError
from safetalk.utils.phone import DEFAULT_COUNTRY_CODE, is_valid_phone, mask_phone, normalize_phone

logger = logging.getLogger(__name__)


class PartyRegistry:
    def __init__(self, store: RecordStore, country_code: str = DEFAULT_COUNTRY_CODE):
        self.store = store
        self.country_code = country_code

    async def find_by_either_role(self, phone: str) -> tuple[Optional[Party], Optional[str]]:
        """
        Returns (party, role) where role is "client" or "counterpart",
        or (None, None) when no active party knows this phone.
        """
        canonical = normalize_phone(phone, self.country_code)

        party = await self.store.find_active_party_by_own_phone(canonical)
        if party is not None:
            return party, ROLE_CLIENT

        party = await self.store.find_active_party_by_counterpart_phone(canonical)
        if party is not None:
            return party, ROLE_COUNTERPART

        return None, None

    def validate_pair(self, own_phone: str, counterpart_phone: str) -> tuple[str, str]:
        """Canonical (own, counterpart). Raises PartyValidationError before any write."""
        own = normalize_phone(own_phone, self.country_code)
        counterpart = normalize_phone(counterpart_phone, self.country_code)

        if not is_valid_phone(own):
            raise PartyValidationError(f"Invalid phone number: {own_phone}")
        if not is_valid_phone(counterpart):
            raise PartyValidationError(f"Invalid co-parent phone number: {counterpart_phone}")
        if own == counterpart:
            raise PartyValidationError("Your number and your co-parent's number must be different")
        return own, counterpart

    async def create_or_update(
        self,
        own_phone: str,
        counterpart_phone: str,
        service_phone: str,
        own_name: Optional[str] = None,
        counterpart_name: Optional[str] = None,
        subscription_status: Optional[str] = None,
    ) -> Party:
        """
        Create the pairing, or update the existing one for this own phone.
        On update the counterpart phone is overwritten and names only when given.
        """
        own, counterpart = self.validate_pair(own_phone, counterpart_phone)
        service = normalize_phone(service_phone, self.country_code)

        party = await self.store.find_party_by_own_phone(own)
        if party is None:
            party = Party(
                own_phone=own,
                counterpart_phone=counterpart,
                service_phone=service,
                own_name=own_name,
                counterpart_name=counterpart_name,
                is_active=True,
                subscription_status=subscription_status,
                has_activated_service=False,
            )
            await self.store.save_party(party)
            logger.info("Created party for %s", mask_phone(own), extra={"party_id": str(party.id)})
            return party

        party.counterpart_phone = counterpart
        party.service_phone = service
        party.is_active = True
        if own_name:
            party.own_name = own_name
        if counterpart_name:
            party.counterpart_name = counterpart_name
        if subscription_status:
            party.subscription_status = subscription_status
        await self.store.save_party(party)
        logger.info("Updated party for %s", mask_phone(own), extra={"party_id": str(party.id)})
        return party

    async def deactivate(self, party_id: uuid.UUID) -> None:
        await self.store.update_party(party_id, is_active=False)
        logger.info("Deactivated party", extra={"party_id": str(party_id)})

    async def reactivate(self, party_id: uuid.UUID) -> None:
        await self.store.update_party(party_id, is_active=True)
        logger.info("Reactivated party", extra={"party_id": str(party_id)})

    async def mark_activated(self, party_id: uuid.UUID) -> None:
        await self.store.update_party(party_id, has_activated_service=True)
        logger.info("Service activated", extra={"party_id": str(party_id)})

    async def find_inactive_by_own_phone(self, phone: str) -> Optional[Party]:
        party = await self.store.find_party_by_own_phone(normalize_phone(phone, self.country_code))
        if party is not None and not party.is_active:
            return party
        return None
