"""
TwilioTransport tests - send_sms results become external ids or TransportError.
"""
import pytest
from unittest.mock import MagicMock

from safetalk.services.transport import TwilioTransport
from safetalk.utils.errors import TransportError


class TestTwilioTransport:
    async def test_send_returns_sid(self, mock_sms):
        transport = TwilioTransport(from_phone="+15559990000")

        sid = await transport.send("+15551234567", "Hello")

        assert sid == "SM_test_123"
        mock_sms.assert_awaited_once_with(
            to="+15551234567",
            body="Hello",
            from_phone="+15559990000",
            messaging_service_sid=None,
        )

    async def test_send_failure_raises_with_error_code(self, mock_sms):
        mock_sms.return_value = {
            "sid": None, "status": "failed", "provider": "twilio",
            "segments": 1, "cost_usd": 0.0, "error": "Invalid number", "error_code": "21211",
        }

        with pytest.raises(TransportError) as exc_info:
            await TwilioTransport().send("+15551234567", "Hello")

        assert exc_info.value.error_code == "21211"
        assert exc_info.value.operation == "transport_send"

    async def test_missing_sid_is_failure(self, mock_sms):
        mock_sms.return_value = {"sid": None, "status": "sent", "provider": "telnyx", "error": None}

        with pytest.raises(TransportError):
            await TwilioTransport().send("+15551234567", "Hello")

    def test_from_settings(self):
        settings = MagicMock()
        settings.twilio_phone_number = "+15559990000"
        settings.twilio_messaging_service_sid = ""
        settings.default_country_code = "44"

        transport = TwilioTransport.from_settings(settings)

        assert transport.from_phone == "+15559990000"
        assert transport.messaging_service_sid is None
        assert transport.normalize_address("2079460958") == "+442079460958"

    def test_address_validity(self):
        transport = TwilioTransport()
        assert transport.is_valid_address(transport.normalize_address("(555) 123-4567")) is True
        assert transport.is_valid_address(transport.normalize_address("12345")) is False
