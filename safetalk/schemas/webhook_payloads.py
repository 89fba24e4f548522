"""
Webhook payload schemas - strict parse-or-reject at the HTTP boundary.
Anything that fails validation here never reaches the resolver.
"""
from typing import Optional
from pydantic import BaseModel, Field, ValidationInfo, field_validator

from safetalk.utils.phone import DEFAULT_COUNTRY_CODE, normalize_phone, is_valid_phone


def _country_code(info: ValidationInfo) -> str:
    return (info.context or {}).get("country_code") or DEFAULT_COUNTRY_CODE


class InboundSms(BaseModel):
    """A validated inbound SMS, built from Twilio's From/To/Body/MessageSid."""
    from_address: str = Field(..., min_length=1)
    to_address: str = ""
    body_text: str = ""
    external_message_id: str = Field(..., min_length=1)

    @field_validator("from_address")
    @classmethod
    def from_must_be_phone(cls, v: str, info: ValidationInfo) -> str:
        canonical = normalize_phone(v, _country_code(info))
        if not is_valid_phone(canonical):
            raise ValueError("sender is not a valid phone number")
        return canonical

    @field_validator("to_address")
    @classmethod
    def normalize_to(cls, v: str, info: ValidationInfo) -> str:
        return normalize_phone(v, _country_code(info)) if v else v

    @classmethod
    def from_twilio_form(cls, form: dict, country_code: str = DEFAULT_COUNTRY_CODE) -> "InboundSms":
        """
        Raises pydantic.ValidationError on a missing sender or message id.
        Ten-digit numbers get `country_code`.
        """
        return cls.model_validate(
            {
                "from_address": form.get("From") or "",
                "to_address": form.get("To") or "",
                "body_text": form.get("Body") or "",
                "external_message_id": form.get("MessageSid") or "",
            },
            context={"country_code": country_code},
        )


class DeliveryStatusUpdate(BaseModel):
    """Twilio delivery status callback."""
    MessageSid: str = Field(..., min_length=1)
    MessageStatus: str  # queued, sending, sent, delivered, undelivered, failed
    ErrorCode: Optional[str] = None
    ErrorMessage: Optional[str] = None
    To: Optional[str] = None
    From: Optional[str] = None
