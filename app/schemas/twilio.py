"""Pydantic schemas for Twilio webhook requests.

This module defines validation rules for incoming Twilio SMS webhooks.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from app.services.contact import ContactNormalizer


class TwilioWebhookRequest(BaseModel):
    """Twilio SMS webhook request schema.

    Represents an incoming SMS message from Twilio's webhook. Twilio sends
    these fields as form data when a message is received.

    Attributes:
        MessageSid: Unique identifier for the message (34 characters)
        AccountSid: Twilio account identifier (34 characters)
        From: Sender's phone number (E.164 from Twilio, normalized on use)
        To: Our Twilio number
        Body: Text content of the SMS message

    Example:
        {
            "MessageSid": "SM1234567890abcdef1234567890abcdef",
            "AccountSid": "AC1234567890abcdef1234567890abcdef",
            "From": "+15551234567",
            "To": "+15559876543",
            "Body": "42",
            "NumMedia": "0"
        }
    """

    MessageSid: Optional[str] = Field(
        default=None,
        description="Unique message identifier from Twilio"
    )
    AccountSid: Optional[str] = Field(
        default=None,
        description="Twilio account identifier"
    )
    From: str = Field(
        ...,
        min_length=1,
        description="Sender phone number"
    )
    To: Optional[str] = Field(
        default=None,
        description="Recipient phone number"
    )
    Body: str = Field(
        default="",
        description="SMS message text content"
    )
    NumMedia: str = Field(
        default="0",
        description="Number of media attachments"
    )

    model_config = {
        "populate_by_name": True,
        "str_strip_whitespace": True
    }

    @field_validator("From")
    @classmethod
    def validate_sender_has_digits(cls, v: str) -> str:
        """Reject senders that cannot be normalized to a phone number."""
        if ContactNormalizer.normalize_phone(v) is None:
            raise ValueError(f"From must contain a phone number. Got: {v}")
        return v

    @field_validator("MessageSid", "AccountSid")
    @classmethod
    def validate_sid_format(cls, v: Optional[str], info) -> Optional[str]:
        """Validate SID format matches Twilio's pattern when present.

        - MessageSid starts with 'SM' or 'MM'
        - AccountSid starts with 'AC'
        """
        if v is None:
            return v

        field_name = info.field_name
        if len(v) != 34:
            raise ValueError(f"{field_name} must be 34 characters. Got {len(v)}")

        if field_name == "MessageSid":
            if not (v.startswith("SM") or v.startswith("MM")):
                raise ValueError(
                    f"MessageSid must start with 'SM' or 'MM'. Got: {v[:2]}"
                )
        elif field_name == "AccountSid":
            if not v.startswith("AC"):
                raise ValueError(
                    f"AccountSid must start with 'AC'. Got: {v[:2]}"
                )

        return v

    @property
    def sender(self) -> str:
        """Normalized sender number used for participant matching."""
        return ContactNormalizer.normalize_phone(self.From)

    @property
    def has_media(self) -> bool:
        """Check if message has media attachments."""
        try:
            return int(self.NumMedia) > 0
        except ValueError:
            return False
