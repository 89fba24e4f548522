"""
Tests for safetalk/api/messages.py - message reads and app-side responses.

Handlers are called directly with the SQLite-backed conductor fixture.
"""
import uuid
from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import ValidationError

from safetalk.agents.conductor import CLIENT_FREE_TO_INITIATE
from safetalk.api.messages import (
    conversation_summary,
    get_message,
    get_reply_options,
    list_party_messages,
    require_app_token,
    respond,
)
from safetalk.models.message import DIRECTION_INCOMING, DIRECTION_OUTGOING
from safetalk.models.party import SUBSCRIPTION_CANCELED
from safetalk.schemas.api_responses import RespondRequest

CLIENT = "+15551234567"
COUNTERPART = "+15557654321"

INCOMING_OPTIONS = [
    "I'll make sure to be on time.",
    "Sorry about that, it won't happen again.",
    "Can we talk about a pickup time that works for both of us?",
]


@pytest.fixture
async def incoming(conductor, party, make_sms):
    """A filtered counterpart message waiting for the client's answer."""
    await conductor.handle_inbound(make_sms(COUNTERPART, "Where the hell are you?? Late AGAIN"))
    [record] = await conductor.store.list_messages(party.id)
    return record


def _settings(**overrides):
    values = {"app_api_token": "", "app_env": "development"}
    values.update(overrides)
    settings = MagicMock()
    for key, value in values.items():
        setattr(settings, key, value)
    return settings


class TestAppToken:
    async def test_open_in_development_without_token(self):
        with patch("safetalk.config.get_settings", return_value=_settings()):
            assert await require_app_token(None) is None

    async def test_closed_in_production_without_token(self):
        with patch("safetalk.config.get_settings", return_value=_settings(app_env="production")):
            with pytest.raises(HTTPException) as exc_info:
                await require_app_token(None)
        assert exc_info.value.status_code == 401

    async def test_matching_bearer_accepted(self):
        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="s3cret")
        with patch("safetalk.config.get_settings", return_value=_settings(app_api_token="s3cret")):
            assert await require_app_token(creds) is None

    async def test_wrong_or_missing_bearer_rejected(self):
        wrong = HTTPAuthorizationCredentials(scheme="Bearer", credentials="nope")
        with patch("safetalk.config.get_settings", return_value=_settings(app_api_token="s3cret")):
            for creds in (wrong, None):
                with pytest.raises(HTTPException) as exc_info:
                    await require_app_token(creds)
                assert exc_info.value.status_code == 401


class TestReads:
    async def test_list_shows_filtered_text_only(self, conductor, party, incoming):
        messages = await list_party_messages(party.id, limit=50, conductor=conductor)

        assert len(messages) == 1
        assert messages[0].direction == DIRECTION_INCOMING
        assert messages[0].text == "Please try to be on time for pickup."
        assert "hell" not in messages[0].text

    async def test_list_unknown_party(self, conductor):
        with pytest.raises(HTTPException) as exc_info:
            await list_party_messages(uuid.uuid4(), limit=50, conductor=conductor)
        assert exc_info.value.status_code == 404

    async def test_message_detail_with_pending_options(self, conductor, incoming):
        detail = await get_message(incoming.id, conductor=conductor)

        assert detail.message.id == incoming.id
        assert detail.options.options == INCOMING_OPTIONS
        assert detail.awaiting_reply is True

    async def test_unknown_message(self, conductor):
        with pytest.raises(HTTPException) as exc_info:
            await get_message(uuid.uuid4(), conductor=conductor)
        assert exc_info.value.status_code == 404

    async def test_options_endpoint(self, conductor, incoming):
        options = await get_reply_options(incoming.id, conductor=conductor)

        assert options.message_id == incoming.id
        assert options.selected_response is None

    async def test_options_missing(self, conductor):
        with pytest.raises(HTTPException) as exc_info:
            await get_reply_options(uuid.uuid4(), conductor=conductor)
        assert exc_info.value.status_code == 404

    async def test_summary(self, conductor, party, incoming):
        summary = await conversation_summary(party.id, conductor=conductor)

        assert summary.total_messages == 1
        assert summary.messages_this_week == 1
        assert summary.awaiting_reply is True
        assert summary.pending_message_id == incoming.id
        assert [m.id for m in summary.recent] == [incoming.id]


class TestRespondRequest:
    def test_needs_exactly_one_answer(self):
        with pytest.raises(ValidationError):
            RespondRequest()
        with pytest.raises(ValidationError):
            RespondRequest(selected_option=1, custom_response="Sure")
        with pytest.raises(ValidationError):
            RespondRequest(custom_response="   ")

    def test_option_range(self):
        with pytest.raises(ValidationError):
            RespondRequest(selected_option=4)

    def test_custom_length(self):
        with pytest.raises(ValidationError):
            RespondRequest(custom_response="x" * 501)


class TestRespond:
    async def test_selected_option_sent_verbatim(self, conductor, party, transport, incoming):
        ack = await respond(incoming.id, RespondRequest(selected_option=2), conductor=conductor)

        assert ack.status == "sent"
        assert ack.outcome == "reply_sent"
        assert transport.to(COUNTERPART) == [INCOMING_OPTIONS[1]]
        assert "sent successfully" in transport.to(CLIENT)[-1]
        assert (await conductor.derive_state(CLIENT)).name == CLIENT_FREE_TO_INITIATE

        options = await get_reply_options(incoming.id, conductor=conductor)
        assert options.selected_response == INCOMING_OPTIONS[1]

    async def test_custom_reply_is_moderated(self, conductor, party, transport, transform, incoming):
        ack = await respond(incoming.id, RespondRequest(custom_response="  On my way now  "), conductor=conductor)

        assert ack.status == "sent"
        assert transport.to(COUNTERPART) == ["On my way now"]
        assert ("moderate_custom_reply", "On my way now") in transform.calls
        outgoing = [m for m in await conductor.store.list_messages(party.id) if m.direction == DIRECTION_OUTGOING]
        assert len(outgoing) == 1

    async def test_custom_text_that_looks_like_a_command_is_still_a_reply(self, conductor, party, transport, incoming):
        ack = await respond(incoming.id, RespondRequest(custom_response="stop"), conductor=conductor)

        assert ack.status == "sent"
        assert transport.to(COUNTERPART) == ["stop"]
        assert (await conductor.store.get_party(party.id)).is_active

    async def test_hostile_custom_reply_refused(self, conductor, transport, incoming):
        ack = await respond(incoming.id, RespondRequest(custom_response="You are an idiot"), conductor=conductor)

        assert ack.status == "refused"
        assert transport.to(COUNTERPART) == []

    async def test_second_response_rejected(self, conductor, transport, incoming):
        await respond(incoming.id, RespondRequest(selected_option=1), conductor=conductor)

        with pytest.raises(HTTPException) as exc_info:
            await respond(incoming.id, RespondRequest(selected_option=3), conductor=conductor)

        assert exc_info.value.status_code == 409
        assert transport.to(COUNTERPART) == [INCOMING_OPTIONS[0]]

    async def test_superseded_message_rejected(self, conductor, party, make_sms, incoming):
        await conductor.handle_inbound(make_sms(COUNTERPART, "Also, bring his jacket"))

        with pytest.raises(HTTPException) as exc_info:
            await respond(incoming.id, RespondRequest(selected_option=1), conductor=conductor)
        assert exc_info.value.status_code == 409

    async def test_gated_party_forbidden(self, conductor, party, store, incoming):
        await store.update_party(party.id, subscription_status=SUBSCRIPTION_CANCELED)

        with pytest.raises(HTTPException) as exc_info:
            await respond(incoming.id, RespondRequest(selected_option=1), conductor=conductor)
        assert exc_info.value.status_code == 403

    async def test_send_failure_reported(self, conductor, transport, incoming):
        transport.fail_for.add(COUNTERPART)

        with pytest.raises(HTTPException) as exc_info:
            await respond(incoming.id, RespondRequest(selected_option=1), conductor=conductor)

        assert exc_info.value.status_code == 502
        assert "Sorry, we couldn't process that" in transport.to(CLIENT)[-1]
