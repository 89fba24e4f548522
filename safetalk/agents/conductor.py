"""
Conductor - the conversation state resolver.

Given one inbound SMS it works out who sent it (client, counterpart or
stranger), whether the client owes a reply to a pending option set, and hands
the message to exactly one flow:

    UNKNOWN_SENDER          → onboarding.handle_new_party
    SUBSCRIPTION_BLOCKED    → onboarding.handle_gated
    AWAITING_CLIENT_REPLY   → reply.handle_reply
    CLIENT_FREE_TO_INITIATE → initiate.handle_initiation
    COUNTERPART_MESSAGE     → inbound.handle_counterpart_message

State is derived on every request from the record store; nothing is kept in
process. Pending options are looked up in one place (pending_options) and
`incoming` always wins over `outgoing_intent`: an unanswered message from the
counterpart is never superseded by the client's own draft.
"""
import logging
import uuid
from typing import Optional

from safetalk.models.message import (
    DIRECTION_INCOMING,
    DIRECTION_OUTGOING_INTENT,
    STATUS_FAILED,
    STATUS_SENT,
    MessageRecord,
)
from safetalk.models.party import ROLE_CLIENT, ROLE_COUNTERPART, SUBSCRIPTION_ACTIVE, Party
from safetalk.models.reply_options import ReplyOptionSet
from safetalk.schemas.webhook_payloads import InboundSms
from safetalk.services.content_transform import ContentTransform
from safetalk.services.party_registry import PartyRegistry
from safetalk.services.record_store import RecordStore
from safetalk.services.transport import MessageTransport
from safetalk.utils.errors import CollaboratorError, RecordStoreError, TransportError
from safetalk.utils.metrics import Timer
from safetalk.utils.phone import DEFAULT_COUNTRY_CODE, mask_phone
from safetalk.utils.templates import render_template

logger = logging.getLogger(__name__)

UNKNOWN_SENDER = "unknown_sender"
SUBSCRIPTION_BLOCKED = "subscription_blocked"
AWAITING_CLIENT_REPLY = "awaiting_client_reply"
CLIENT_FREE_TO_INITIATE = "client_free_to_initiate"
COUNTERPART_MESSAGE = "counterpart_message"

# Checked in this order
PENDING_DIRECTIONS = (DIRECTION_INCOMING, DIRECTION_OUTGOING_INTENT)


class PendingOptions:
    """An unresolved option set and the message it belongs to."""

    def __init__(self, direction: str, message: MessageRecord, option_set: ReplyOptionSet):
        self.direction = direction
        self.message = message
        self.option_set = option_set

    def __repr__(self) -> str:
        return f"<PendingOptions {self.direction} set={self.option_set.id}>"


class ConversationState:
    """Derived per request. Never stored."""

    def __init__(
        self,
        name: str,
        party: Optional[Party] = None,
        role: Optional[str] = None,
        pending: Optional[PendingOptions] = None,
    ):
        self.name = name
        self.party = party
        self.role = role
        self.pending = pending

    def __repr__(self) -> str:
        return f"<ConversationState {self.name} role={self.role}>"


class InboundResult:
    """Outcome of one inbound SMS."""

    def __init__(self, outcome: str, party_id: Optional[uuid.UUID] = None):
        self.outcome = outcome
        self.party_id = party_id

    def __repr__(self) -> str:
        return f"<InboundResult {self.outcome}>"


def passes_gate(party: Party) -> bool:
    """
    No billing record → allowed. Otherwise the subscription must be active
    and both sides must have texted START.
    """
    if party.subscription_status is None:
        return True
    if party.subscription_status != SUBSCRIPTION_ACTIVE:
        return False
    return bool(party.has_activated_service)


class Conductor:
    """Routes inbound SMS. All collaborators are injected."""

    def __init__(
        self,
        store: RecordStore,
        transport: MessageTransport,
        transform: ContentTransform,
        service_phone: str = "",
        country_code: str = DEFAULT_COUNTRY_CODE,
        subscribe_url: str = "",
        support_url: str = "",
    ):
        self.store = store
        self.transport = transport
        self.transform = transform
        self.registry = PartyRegistry(store, country_code=country_code)
        self.service_phone = service_phone
        self.country_code = country_code
        self.subscribe_url = subscribe_url
        self.support_url = support_url

    @classmethod
    def from_settings(cls, store, transport, transform, settings) -> "Conductor":
        return cls(
            store=store,
            transport=transport,
            transform=transform,
            service_phone=settings.twilio_phone_number,
            country_code=settings.default_country_code,
            subscribe_url=settings.subscribe_url,
            support_url=settings.support_url,
        )

    # --- state derivation ---

    async def pending_options(self, party: Party) -> Optional[PendingOptions]:
        for direction in PENDING_DIRECTIONS:
            found = await self.store.latest_unresolved_options(party.id, direction)
            if found is not None:
                message, option_set = found
                return PendingOptions(direction, message, option_set)
        return None

    async def derive_state(self, from_address: str) -> ConversationState:
        party, role = await self.registry.find_by_either_role(from_address)
        if party is None:
            return ConversationState(UNKNOWN_SENDER)

        if not passes_gate(party):
            return ConversationState(SUBSCRIPTION_BLOCKED, party=party, role=role)

        if role == ROLE_COUNTERPART:
            return ConversationState(COUNTERPART_MESSAGE, party=party, role=role)

        pending = await self.pending_options(party)
        if pending is not None:
            return ConversationState(AWAITING_CLIENT_REPLY, party=party, role=ROLE_CLIENT, pending=pending)
        return ConversationState(CLIENT_FREE_TO_INITIATE, party=party, role=ROLE_CLIENT)

    # --- dispatch ---

    async def handle_inbound(self, sms: InboundSms) -> str:
        """Process one inbound SMS and return its outcome label."""
        return (await self.process(sms)).outcome

    async def process(self, sms: InboundSms) -> InboundResult:
        """
        Process one inbound SMS. The result carries the outcome label and the
        party the message was routed to, as resolved before any flow ran.
        Collaborator failures never escape.
        """
        from safetalk.agents import inbound, initiate, onboarding, reply

        timer = Timer().start()
        sender = mask_phone(sms.from_address)

        try:
            state = await self.derive_state(sms.from_address)
        except CollaboratorError as e:
            logger.error(
                "State lookup failed for %s: %s", sender, str(e),
                extra={"operation": e.operation},
            )
            return InboundResult("error_state_lookup")

        # Captured up front: a rollback inside a flow expires loaded rows
        party_uuid = state.party.id if state.party else None
        party_id = str(party_uuid) if party_uuid else None
        logger.info(
            "Inbound SMS from %s resolved to %s", sender, state.name,
            extra={"party_id": party_id},
        )

        if state.name == UNKNOWN_SENDER:
            outcome = await self._client_facing(
                onboarding.handle_new_party(self, sms), sms.from_address, None, "new_party",
            )
        elif state.name == SUBSCRIPTION_BLOCKED:
            outcome = await self._client_facing(
                onboarding.handle_gated(self, state.party, sms), sms.from_address, state.party, "gated",
            )
        elif state.name == COUNTERPART_MESSAGE:
            outcome = await self._counterpart_facing(
                inbound.handle_counterpart_message(self, state.party, sms), state.party,
            )
        elif state.name == AWAITING_CLIENT_REPLY:
            outcome = await self._client_facing(
                reply.handle_reply(self, state.party, state.pending, sms),
                state.party.own_phone, state.party, state.pending.direction,
            )
        else:
            outcome = await self._client_facing(
                initiate.handle_initiation(self, state.party, sms),
                state.party.own_phone, state.party, DIRECTION_OUTGOING_INTENT,
            )

        logger.info(
            "Inbound SMS handled: state=%s outcome=%s (%dms)", state.name, outcome, timer.stop(),
            extra={"party_id": party_id},
        )
        return InboundResult(outcome, party_id=party_uuid)

    async def resolve_from_app(self, state: ConversationState, parsed) -> str:
        """Resolve the pending set of an AWAITING_CLIENT_REPLY state from an app response."""
        from safetalk.agents import reply

        return await self._client_facing(
            reply.resolve_reply(self, state.party, state.pending, parsed),
            state.party.own_phone, state.party, state.pending.direction,
        )

    async def _client_facing(self, flow, reply_to: str, party: Optional[Party], direction: Optional[str]) -> str:
        party_id = str(party.id) if party else None
        try:
            return await flow
        except CollaboratorError as e:
            logger.error(
                "Client flow failed during %s: %s", e.operation, str(e),
                extra={
                    "party_id": party_id,
                    "direction": direction,
                    "operation": e.operation,
                    "error_code": getattr(e, "error_code", None),
                },
            )
            try:
                await self.transport.send(reply_to, render_template("apology", category="reply"))
            except CollaboratorError as send_error:
                logger.error(
                    "Apology to %s also failed: %s", mask_phone(reply_to), str(send_error),
                    extra={"operation": send_error.operation},
                )
            return "error_apology"

    async def _counterpart_facing(self, flow, party: Party) -> str:
        party_id = str(party.id)
        try:
            return await flow
        except CollaboratorError as e:
            # The counterpart is never told anything
            logger.error(
                "Counterpart flow failed during %s: %s", e.operation, str(e),
                extra={
                    "party_id": party_id,
                    "direction": DIRECTION_INCOMING,
                    "operation": e.operation,
                    "error_code": getattr(e, "error_code", None),
                },
            )
            return "error_logged"

    # --- helpers shared by the flows ---

    async def send(self, to_address: str, body: str) -> str:
        return await self.transport.send(to_address, body)

    async def offer_options(self, record_id, to_address: str, body: str, log_extra: dict) -> None:
        """
        Send an options SMS for a stored record and mark the record with the
        outcome. A set only becomes pending once its record is marked sent.
        """
        try:
            external_id = await self.transport.send(to_address, body)
        except TransportError:
            try:
                await self.store.update_message_status(record_id, STATUS_FAILED)
            except RecordStoreError as e:
                logger.error("Failed offer not marked: %s", str(e), extra={**log_extra, "operation": e.operation})
            raise

        try:
            await self.store.update_message_status(record_id, STATUS_SENT, external_id=external_id)
        except RecordStoreError as e:
            logger.error("Offer status not updated: %s", str(e), extra={**log_extra, "operation": e.operation})

    def system_text(self, key: str, **kwargs) -> str:
        kwargs.setdefault("subscribe_url", self.subscribe_url)
        kwargs.setdefault("support_url", self.support_url)
        return render_template(key, category="system", **kwargs)

    def reply_text(self, key: str, **kwargs) -> str:
        return render_template(key, category="reply", **kwargs)
