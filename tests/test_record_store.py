"""
Record store tests - messages, option sets, pending lookup, resolution, delivery status.
"""
import uuid

import pytest

from safetalk.models.message import (
    DIRECTION_INCOMING,
    DIRECTION_OUTGOING,
    DIRECTION_OUTGOING_INTENT,
    STATUS_DELIVERED,
    STATUS_FAILED,
    STATUS_PROCESSING,
    STATUS_SENT,
)
from safetalk.utils.errors import OptionsAlreadyResolvedError

OPTIONS = ["Option A", "Option B", "Option C"]


async def _message_with_options(store, party, direction=DIRECTION_INCOMING, text="hello", external_id=None):
    record = await store.create_message(
        party_id=party.id,
        direction=direction,
        original_text=text,
        status=STATUS_SENT,
        external_id=external_id,
    )
    option_set = await store.create_option_set(record.id, OPTIONS)
    return record, option_set


class TestOptionSets:
    async def test_exactly_three_options_required(self, store, party):
        record = await store.create_message(party_id=party.id, direction=DIRECTION_INCOMING, original_text="x")
        with pytest.raises(ValueError):
            await store.create_option_set(record.id, ["only", "two"])

    async def test_option_text_lookup(self, store, party):
        _, option_set = await _message_with_options(store, party)
        assert option_set.option_text(2) == "Option B"
        assert option_set.option_text(4) is None


class TestLatestUnresolved:
    async def test_none_when_no_messages(self, store, party):
        assert await store.latest_unresolved_options(party.id, DIRECTION_INCOMING) is None

    async def test_found_per_direction(self, store, party):
        record, option_set = await _message_with_options(store, party, DIRECTION_OUTGOING_INTENT)

        assert await store.latest_unresolved_options(party.id, DIRECTION_INCOMING) is None
        found_record, found_set = await store.latest_unresolved_options(party.id, DIRECTION_OUTGOING_INTENT)
        assert found_record.id == record.id
        assert found_set.id == option_set.id

    async def test_only_most_recent_message_counts(self, store, party):
        await _message_with_options(store, party, text="older")
        newer, newer_set = await _message_with_options(store, party, text="newer")
        await store.resolve_options(newer_set.id, selected_response="Option A")

        # The older set is still unresolved but is not the most recent
        assert await store.latest_unresolved_options(party.id, DIRECTION_INCOMING) is None

    async def test_not_pending_until_offered(self, store, party):
        record = await store.create_message(
            party_id=party.id, direction=DIRECTION_INCOMING, original_text="x", status=STATUS_PROCESSING,
        )
        await store.create_option_set(record.id, OPTIONS)
        assert await store.latest_unresolved_options(party.id, DIRECTION_INCOMING) is None

        await store.update_message_status(record.id, STATUS_SENT, external_id="SM_9")
        found_record, _ = await store.latest_unresolved_options(party.id, DIRECTION_INCOMING)
        assert found_record.id == record.id

    async def test_failed_offer_not_pending(self, store, party):
        await _message_with_options(store, party, external_id="SM_10")
        await store.update_status_by_external_id("SM_10", STATUS_FAILED, error_code="30003")

        assert await store.latest_unresolved_options(party.id, DIRECTION_INCOMING) is None

    async def test_delivered_offer_still_pending(self, store, party):
        await _message_with_options(store, party, external_id="SM_11")
        await store.update_status_by_external_id("SM_11", STATUS_DELIVERED)

        assert await store.latest_unresolved_options(party.id, DIRECTION_INCOMING) is not None

    async def test_gone_after_resolution(self, store, party):
        _, option_set = await _message_with_options(store, party)
        await store.resolve_options(option_set.id, custom_response="Fine by me")
        assert await store.latest_unresolved_options(party.id, DIRECTION_INCOMING) is None


class TestResolveOptions:
    async def test_selected_response(self, store, party):
        _, option_set = await _message_with_options(store, party)

        await store.resolve_options(option_set.id, selected_response="Option B")

        assert option_set.selected_response == "Option B"
        assert option_set.custom_response is None
        assert option_set.resolved_at is not None
        assert option_set.is_resolved

    async def test_second_resolution_rejected(self, store, party):
        _, option_set = await _message_with_options(store, party)
        await store.resolve_options(option_set.id, selected_response="Option A")

        with pytest.raises(OptionsAlreadyResolvedError):
            await store.resolve_options(option_set.id, custom_response="Changed my mind")

        assert option_set.selected_response == "Option A"
        assert option_set.custom_response is None

    async def test_exactly_one_response_kind(self, store, party):
        _, option_set = await _message_with_options(store, party)
        with pytest.raises(ValueError):
            await store.resolve_options(option_set.id)
        with pytest.raises(ValueError):
            await store.resolve_options(option_set.id, selected_response="a", custom_response="b")

    async def test_unknown_set_rejected(self, store):
        with pytest.raises(OptionsAlreadyResolvedError):
            await store.resolve_options(uuid.uuid4(), selected_response="a")


class TestDeliveryStatus:
    async def test_delivered(self, store, party):
        await _message_with_options(store, party, external_id="SM_1")

        record = await store.update_status_by_external_id("SM_1", STATUS_DELIVERED)

        assert record.status == STATUS_DELIVERED
        assert record.delivered_at is not None

    async def test_failed_records_error_code(self, store, party):
        await _message_with_options(store, party, external_id="SM_2")

        record = await store.update_status_by_external_id("SM_2", STATUS_FAILED, error_code="30007")

        assert record.status == STATUS_FAILED
        assert record.delivery_error_code == "30007"

    async def test_late_sent_does_not_downgrade(self, store, party):
        await _message_with_options(store, party, external_id="SM_3")
        await store.update_status_by_external_id("SM_3", STATUS_DELIVERED)

        record = await store.update_status_by_external_id("SM_3", STATUS_SENT)

        assert record.status == STATUS_DELIVERED

    async def test_unknown_external_id(self, store):
        assert await store.update_status_by_external_id("SM_missing", STATUS_DELIVERED) is None


class TestMessageReads:
    async def test_get_message_and_options(self, store, party):
        record, option_set = await _message_with_options(store, party)

        assert (await store.get_message(record.id)).original_text == "hello"
        assert (await store.get_option_set(record.id)).id == option_set.id
        assert await store.get_message(uuid.uuid4()) is None
        assert await store.get_option_set(uuid.uuid4()) is None

    async def test_list_newest_first_with_limit(self, store, party):
        for text in ("first", "second", "third"):
            await _message_with_options(store, party, text=text)

        texts = [m.original_text for m in await store.list_messages(party.id, limit=2)]

        assert texts == ["third", "second"]
        assert await store.list_messages(uuid.uuid4()) == []


class TestMessageStats:
    async def test_counts(self, store, party):
        await store.create_message(party_id=party.id, direction=DIRECTION_INCOMING, original_text="a")
        await store.create_message(party_id=party.id, direction=DIRECTION_OUTGOING, original_text="b")

        stats = await store.message_stats(party.id)

        assert stats["total_messages"] == 2
        assert stats["messages_this_week"] == 2
        assert stats["last_activity"] is not None

    async def test_empty(self, store, party):
        stats = await store.message_stats(party.id)
        assert stats == {"total_messages": 0, "messages_this_week": 0, "last_activity": None}
