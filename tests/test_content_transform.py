"""
Content transform tests - AI JSON handling and the tagged keyword fallback.
"""
import json

import pytest

from safetalk.models.message import CATEGORY_DECISION_MAKING, CATEGORY_INFORMATIONAL
from safetalk.services.content_transform import (
    NEUTRAL_SUMMARY,
    AIContentTransform,
    basic_classification,
    basic_filter,
    detect_context,
    fallback_incoming,
    fallback_moderation,
    fallback_outgoing,
    is_hostile,
)


def _ai_result(content: str, error=None) -> dict:
    return {
        "content": content,
        "provider": "anthropic" if error is None else "none",
        "model": "claude-haiku",
        "latency_ms": 100,
        "cost_usd": 0.0005,
        "input_tokens": 50,
        "output_tokens": 40,
        "error": error,
    }


class TestKeywordFallback:
    def test_filter_masks_hostile_words(self):
        filtered = basic_filter("You are so stupid and useless!!")
        assert "stupid" not in filtered
        assert "useless" not in filtered
        assert "[removed]" in filtered
        assert "!!" not in filtered

    def test_filter_never_empty(self):
        assert basic_filter("   ") == NEUTRAL_SUMMARY

    def test_classification(self):
        assert basic_classification("We need to discuss the holidays") == CATEGORY_DECISION_MAKING
        assert basic_classification("He ate lunch") == CATEGORY_INFORMATIONAL

    def test_context(self):
        assert detect_context("I have a work meeting at 5") == "there's a work meeting"
        assert detect_context("See you soon") is None

    def test_hostile_matches_word_forms(self):
        assert is_hostile("I hated that")
        assert not is_hostile("That was great")

    def test_incoming_fallback_is_degraded(self):
        result = fallback_incoming("You idiot, I need the schedule changed")
        assert result.degraded is True
        assert result.category == CATEGORY_DECISION_MAKING
        assert len(result.options) == 3
        assert "idiot" not in result.filtered_text

    def test_outgoing_fallback_drops_hostile_words(self):
        result = fallback_outgoing("Pick him up at 5, you idiot!!")
        assert result.degraded is True
        assert len(result.options) == 3
        assert all("idiot" not in option for option in result.options)
        assert result.options[0] == "Pick him up at 5, you."

    def test_moderation_fallback(self):
        assert fallback_moderation("You're an idiot").refused is True
        accepted = fallback_moderation("See you at 5")
        assert accepted
        assert accepted.text == "See you at 5"
        assert accepted.degraded is True


class TestAIContentTransform:
    async def test_process_incoming_from_json(self, mock_ai):
        mock_ai.return_value = _ai_result(json.dumps({
            "filtered": "Please be on time for pickup.",
            "category": "decision_making",
            "options": ["Will do.", "Sorry about that.", "Can we talk about timing?"],
            "context": None,
        }))

        result = await AIContentTransform().process_incoming("you never bring him on time!!")

        assert result.degraded is False
        assert result.filtered_text == "Please be on time for pickup."
        assert result.category == CATEGORY_DECISION_MAKING
        assert result.options == ["Will do.", "Sorry about that.", "Can we talk about timing?"]
        assert result.context_reason is None

    async def test_fenced_json_accepted(self, mock_ai):
        mock_ai.return_value = _ai_result(
            '```json\n{"options": ["a", "b", "c"], "category": "informational"}\n```'
        )

        result = await AIContentTransform().generate_outgoing_options("draft")

        assert result.degraded is False
        assert result.options == ["a", "b", "c"]

    async def test_provider_error_falls_back(self, mock_ai):
        mock_ai.return_value = _ai_result("", error="No AI provider available (check API keys)")

        result = await AIContentTransform().process_incoming("Where are you??")

        assert result.degraded is True
        assert len(result.options) == 3

    async def test_bad_json_falls_back(self, mock_ai):
        mock_ai.return_value = _ai_result("Sure! Here is a nicer version.")

        result = await AIContentTransform().generate_outgoing_options("Pick him up at 5")

        assert result.degraded is True

    async def test_wrong_option_count_falls_back(self, mock_ai):
        mock_ai.return_value = _ai_result(json.dumps({
            "filtered": "ok", "category": "informational", "options": ["only one"],
        }))

        result = await AIContentTransform().process_incoming("ok then")

        assert result.degraded is True

    async def test_unknown_category_falls_back(self, mock_ai):
        mock_ai.return_value = _ai_result(json.dumps({
            "options": ["a", "b", "c"], "category": "angry",
        }))

        result = await AIContentTransform().generate_outgoing_options("draft")

        assert result.degraded is True

    async def test_moderation_refusal(self, mock_ai):
        mock_ai.return_value = _ai_result('{"refused": true, "text": null}')

        result = await AIContentTransform().moderate_custom_reply("fix it yourself")

        assert result.refused is True
        assert not result

    async def test_moderation_text(self, mock_ai):
        mock_ai.return_value = _ai_result('{"refused": false, "text": "I can do 5pm."}')

        result = await AIContentTransform().moderate_custom_reply("5pm i guess")

        assert result.text == "I can do 5pm."
        assert result.degraded is False

    async def test_model_tier_passed_through(self, mock_ai):
        await AIContentTransform(model_tier="smart").moderate_custom_reply("ok")
        assert mock_ai.call_args.kwargs["model_tier"] == "smart"
