"""
Message transport - how the relay talks to SMS.

The conductor only sees MessageTransport. TwilioTransport sits on top of
services/sms.send_sms, which owns retries and the Telnyx failover.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from safetalk.utils.errors import TransportError
from safetalk.utils.phone import (
    DEFAULT_COUNTRY_CODE,
    is_valid_phone,
    mask_phone,
    normalize_phone,
)

logger = logging.getLogger(__name__)


class MessageTransport(ABC):
    """Abstract SMS transport."""

    @abstractmethod
    async def send(self, to_address: str, body: str) -> str:
        """
        Send one SMS.
        Returns the provider's external message id. Raises TransportError on failure.
        """
        ...

    @abstractmethod
    def normalize_address(self, raw: str) -> str:
        ...

    @abstractmethod
    def is_valid_address(self, canonical: str) -> bool:
        ...


class TwilioTransport(MessageTransport):
    """Sends from the shared service number via Twilio (Telnyx on failover)."""

    def __init__(
        self,
        from_phone: Optional[str] = None,
        messaging_service_sid: Optional[str] = None,
        country_code: str = DEFAULT_COUNTRY_CODE,
    ):
        self.from_phone = from_phone
        self.messaging_service_sid = messaging_service_sid
        self.country_code = country_code

    @classmethod
    def from_settings(cls, settings) -> "TwilioTransport":
        return cls(
            from_phone=settings.twilio_phone_number or None,
            messaging_service_sid=settings.twilio_messaging_service_sid or None,
            country_code=settings.default_country_code,
        )

    async def send(self, to_address: str, body: str) -> str:
        from safetalk.services.sms import send_sms

        result = await send_sms(
            to=to_address,
            body=body,
            from_phone=self.from_phone,
            messaging_service_sid=self.messaging_service_sid,
        )
        if result.get("error") or not result.get("sid"):
            logger.error(
                "SMS send to %s failed: %s", mask_phone(to_address), result.get("error"),
                extra={
                    "operation": "transport_send",
                    "provider": result.get("provider"),
                    "error_code": result.get("error_code"),
                },
            )
            raise TransportError(
                result.get("error") or "SMS provider returned no message id",
                error_code=result.get("error_code"),
            )
        return result["sid"]

    def normalize_address(self, raw: str) -> str:
        return normalize_phone(raw, self.country_code)

    def is_valid_address(self, canonical: str) -> bool:
        return is_valid_phone(canonical)
