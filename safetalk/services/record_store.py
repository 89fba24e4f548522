"""
Record store - durable state for parties, messages and reply option sets.

The conductor never touches a session directly. SqlRecordStore commits after
every write so a failed write never takes an earlier one (or an SMS that was
already sent) down with it. SQLAlchemy failures surface as RecordStoreError.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from safetalk.models.message import (
    STATUS_DELIVERED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSING,
    TERMINAL_STATUSES,
    MessageRecord,
)
from safetalk.models.party import Party
from safetalk.models.reply_options import ReplyOptionSet
from safetalk.utils.errors import OptionsAlreadyResolvedError, RecordStoreError

logger = logging.getLogger(__name__)

STATS_WINDOW_DAYS = 7

# Options on these records never reached the client
UNOFFERED_STATUSES = {STATUS_PENDING, STATUS_PROCESSING, STATUS_FAILED}


class RecordStore(ABC):
    """Abstract persistence for the relay."""

    # --- parties ---

    @abstractmethod
    async def get_party(self, party_id: uuid.UUID) -> Optional[Party]:
        ...

    @abstractmethod
    async def find_active_party_by_own_phone(self, phone: str) -> Optional[Party]:
        ...

    @abstractmethod
    async def find_active_party_by_counterpart_phone(self, phone: str) -> Optional[Party]:
        ...

    @abstractmethod
    async def find_party_by_own_phone(self, phone: str) -> Optional[Party]:
        """Latest party for this own phone, active or not."""
        ...

    @abstractmethod
    async def save_party(self, party: Party) -> Party:
        ...

    @abstractmethod
    async def update_party(self, party_id: uuid.UUID, **values) -> None:
        ...

    # --- messages and option sets ---

    @abstractmethod
    async def create_message(
        self,
        party_id: uuid.UUID,
        direction: str,
        original_text: str,
        from_phone: str = "",
        to_phone: str = "",
        filtered_text: Optional[str] = None,
        category: Optional[str] = None,
        status: str = STATUS_PENDING,
        external_id: Optional[str] = None,
        extra_data: Optional[dict] = None,
    ) -> MessageRecord:
        ...

    @abstractmethod
    async def create_option_set(self, message_id: uuid.UUID, options: list[str]) -> ReplyOptionSet:
        ...

    @abstractmethod
    async def get_message(self, message_id: uuid.UUID) -> Optional[MessageRecord]:
        ...

    @abstractmethod
    async def get_option_set(self, message_id: uuid.UUID) -> Optional[ReplyOptionSet]:
        ...

    @abstractmethod
    async def list_messages(self, party_id: uuid.UUID, limit: int = 50) -> list[MessageRecord]:
        """Newest first."""
        ...

    @abstractmethod
    async def latest_unresolved_options(
        self, party_id: uuid.UUID, direction: str,
    ) -> Optional[tuple[MessageRecord, ReplyOptionSet]]:
        """
        The option set of the party's most recent message in `direction`, if
        that set is still unresolved and its message reached the client.
        Older messages are never consulted.
        """
        ...

    @abstractmethod
    async def resolve_options(
        self,
        option_set_id: uuid.UUID,
        selected_response: Optional[str] = None,
        custom_response: Optional[str] = None,
    ) -> None:
        """First write wins. Raises OptionsAlreadyResolvedError afterwards."""
        ...

    @abstractmethod
    async def update_message_status(
        self, message_id: uuid.UUID, status: str, external_id: Optional[str] = None,
    ) -> None:
        ...

    @abstractmethod
    async def update_status_by_external_id(
        self, external_id: str, status: str, error_code: Optional[str] = None,
    ) -> Optional[MessageRecord]:
        ...

    @abstractmethod
    async def message_stats(self, party_id: uuid.UUID) -> dict:
        """{"total_messages": int, "messages_this_week": int, "last_activity": datetime|None}"""
        ...


class SqlRecordStore(RecordStore):
    """SQLAlchemy async implementation over one request-scoped session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _commit(self, operation: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Record store %s failed: %s", operation, str(e), extra={"operation": operation})
            raise RecordStoreError(str(e), operation=operation) from e

    async def _scalar(self, operation: str, stmt):
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Record store %s failed: %s", operation, str(e), extra={"operation": operation})
            raise RecordStoreError(str(e), operation=operation) from e
        return result.scalar_one_or_none()

    # --- parties ---

    async def get_party(self, party_id: uuid.UUID) -> Optional[Party]:
        return await self._scalar("get_party", select(Party).where(Party.id == party_id))

    async def find_active_party_by_own_phone(self, phone: str) -> Optional[Party]:
        return await self._scalar(
            "find_party",
            select(Party).where(and_(Party.own_phone == phone, Party.is_active.is_(True))).limit(1),
        )

    async def find_active_party_by_counterpart_phone(self, phone: str) -> Optional[Party]:
        # Several clients may list the same counterpart; the newest pairing wins
        return await self._scalar(
            "find_party",
            select(Party)
            .where(and_(Party.counterpart_phone == phone, Party.is_active.is_(True)))
            .order_by(Party.created_at.desc())
            .limit(1),
        )

    async def find_party_by_own_phone(self, phone: str) -> Optional[Party]:
        return await self._scalar(
            "find_party",
            select(Party)
            .where(Party.own_phone == phone)
            .order_by(Party.is_active.desc(), Party.created_at.desc())
            .limit(1),
        )

    async def save_party(self, party: Party) -> Party:
        self.session.add(party)
        await self._commit("save_party")
        return party

    async def update_party(self, party_id: uuid.UUID, **values) -> None:
        values["updated_at"] = datetime.now(timezone.utc)
        try:
            await self.session.execute(
                update(Party)
                .where(Party.id == party_id)
                .values(**values)
                .execution_options(synchronize_session="fetch")
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise RecordStoreError(str(e), operation="update_party") from e
        await self._commit("update_party")

    # --- messages and option sets ---

    async def create_message(
        self,
        party_id: uuid.UUID,
        direction: str,
        original_text: str,
        from_phone: str = "",
        to_phone: str = "",
        filtered_text: Optional[str] = None,
        category: Optional[str] = None,
        status: str = STATUS_PENDING,
        external_id: Optional[str] = None,
        extra_data: Optional[dict] = None,
    ) -> MessageRecord:
        record = MessageRecord(
            party_id=party_id,
            direction=direction,
            original_text=original_text,
            from_phone=from_phone,
            to_phone=to_phone,
            filtered_text=filtered_text,
            category=category,
            status=status,
            external_id=external_id,
            extra_data=extra_data or {},
        )
        self.session.add(record)
        await self._commit("create_message")
        return record

    async def create_option_set(self, message_id: uuid.UUID, options: list[str]) -> ReplyOptionSet:
        if len(options) != 3:
            raise ValueError("a reply option set holds exactly 3 options")
        option_set = ReplyOptionSet(
            message_id=message_id,
            option1=options[0],
            option2=options[1],
            option3=options[2],
        )
        self.session.add(option_set)
        await self._commit("create_option_set")
        return option_set

    async def get_message(self, message_id: uuid.UUID) -> Optional[MessageRecord]:
        return await self._scalar("get_message", select(MessageRecord).where(MessageRecord.id == message_id))

    async def get_option_set(self, message_id: uuid.UUID) -> Optional[ReplyOptionSet]:
        return await self._scalar(
            "get_option_set",
            select(ReplyOptionSet)
            .where(ReplyOptionSet.message_id == message_id)
            .execution_options(populate_existing=True),
        )

    async def list_messages(self, party_id: uuid.UUID, limit: int = 50) -> list[MessageRecord]:
        try:
            result = await self.session.execute(
                select(MessageRecord)
                .where(MessageRecord.party_id == party_id)
                .order_by(MessageRecord.created_at.desc())
                .limit(limit)
            )
        except SQLAlchemyError as e:
            raise RecordStoreError(str(e), operation="list_messages") from e
        return list(result.scalars().all())

    async def latest_unresolved_options(
        self, party_id: uuid.UUID, direction: str,
    ) -> Optional[tuple[MessageRecord, ReplyOptionSet]]:
        latest = await self._scalar(
            "pending_options",
            select(MessageRecord)
            .where(and_(MessageRecord.party_id == party_id, MessageRecord.direction == direction))
            .order_by(MessageRecord.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True),
        )
        if latest is None or latest.status in UNOFFERED_STATUSES:
            return None

        option_set = await self._scalar(
            "pending_options",
            select(ReplyOptionSet).where(ReplyOptionSet.message_id == latest.id),
        )
        if option_set is None or option_set.is_resolved:
            return None
        return latest, option_set

    async def resolve_options(
        self,
        option_set_id: uuid.UUID,
        selected_response: Optional[str] = None,
        custom_response: Optional[str] = None,
    ) -> None:
        if bool(selected_response) == bool(custom_response):
            raise ValueError("exactly one of selected_response / custom_response is required")

        # Conditional write: only an unresolved row matches
        stmt = (
            update(ReplyOptionSet)
            .where(
                and_(
                    ReplyOptionSet.id == option_set_id,
                    ReplyOptionSet.selected_response.is_(None),
                    ReplyOptionSet.custom_response.is_(None),
                )
            )
            .values(
                selected_response=selected_response,
                custom_response=custom_response,
                resolved_at=datetime.now(timezone.utc),
            )
            # rowcount picks the winner; keep RETURNING off this statement
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise RecordStoreError(str(e), operation="resolve_options") from e

        await self._commit("resolve_options")
        if result.rowcount == 0:
            raise OptionsAlreadyResolvedError(option_set_id)

        # Bring any loaded copy of the row up to date
        await self._scalar(
            "resolve_options",
            select(ReplyOptionSet)
            .where(ReplyOptionSet.id == option_set_id)
            .execution_options(populate_existing=True),
        )

    async def update_message_status(
        self, message_id: uuid.UUID, status: str, external_id: Optional[str] = None,
    ) -> None:
        values = {"status": status}
        if external_id:
            values["external_id"] = external_id
        try:
            await self.session.execute(
                update(MessageRecord)
                .where(MessageRecord.id == message_id)
                .values(**values)
                .execution_options(synchronize_session="fetch")
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise RecordStoreError(str(e), operation="update_message_status") from e
        await self._commit("update_message_status")

    async def update_status_by_external_id(
        self, external_id: str, status: str, error_code: Optional[str] = None,
    ) -> Optional[MessageRecord]:
        record = await self._scalar(
            "update_delivery_status",
            select(MessageRecord).where(MessageRecord.external_id == external_id).limit(1),
        )
        if record is None:
            return None
        if record.status in TERMINAL_STATUSES and status not in TERMINAL_STATUSES:
            # Late "sent" callback after "delivered"
            return record

        record.status = status
        if status == STATUS_FAILED and error_code:
            record.delivery_error_code = error_code
        if status == STATUS_DELIVERED:
            record.delivered_at = datetime.now(timezone.utc)
        await self._commit("update_delivery_status")
        return record

    async def message_stats(self, party_id: uuid.UUID) -> dict:
        week_ago = datetime.now(timezone.utc) - timedelta(days=STATS_WINDOW_DAYS)
        try:
            total = await self.session.scalar(
                select(func.count(MessageRecord.id)).where(MessageRecord.party_id == party_id)
            )
            this_week = await self.session.scalar(
                select(func.count(MessageRecord.id)).where(
                    and_(MessageRecord.party_id == party_id, MessageRecord.created_at >= week_ago)
                )
            )
            last_activity = await self.session.scalar(
                select(func.max(MessageRecord.created_at)).where(MessageRecord.party_id == party_id)
            )
        except SQLAlchemyError as e:
            raise RecordStoreError(str(e), operation="message_stats") from e

        return {
            "total_messages": total or 0,
            "messages_this_week": this_week or 0,
            "last_activity": last_activity,
        }
