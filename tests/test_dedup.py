"""
Inbound SMS deduplication tests.
"""
from unittest.mock import AsyncMock, patch

from safetalk.utils.dedup import is_duplicate_message, make_dedup_key


class TestDedupKey:
    def test_same_sid_same_key(self):
        assert make_dedup_key("SM_1") == make_dedup_key("SM_1")

    def test_different_sid_different_key(self):
        assert make_dedup_key("SM_1") != make_dedup_key("SM_2")

    def test_key_format(self):
        assert make_dedup_key("SM_1") == "safetalk:dedup:sms:SM_1"


class TestIsDuplicateMessage:
    async def test_new_message_returns_false(self, mock_redis):
        mock_redis.set = AsyncMock(return_value=True)

        assert await is_duplicate_message("SM_1") is False
        args, kwargs = mock_redis.set.call_args
        assert args[0] == "safetalk:dedup:sms:SM_1"
        assert kwargs["nx"] is True
        assert kwargs["ex"] == 1800

    async def test_retry_returns_true(self, mock_redis):
        mock_redis.set = AsyncMock(return_value=None)
        assert await is_duplicate_message("SM_1") is True

    async def test_empty_sid_never_duplicate(self, mock_redis):
        assert await is_duplicate_message("") is False
        mock_redis.set.assert_not_awaited()

    async def test_redis_failure_fails_open(self):
        with patch("safetalk.utils.dedup.get_redis", side_effect=Exception("Redis connection refused")):
            assert await is_duplicate_message("SM_1") is False
