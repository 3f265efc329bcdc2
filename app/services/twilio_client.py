"""Twilio messaging transport.

Outbound SMS go through the Twilio REST API; inbound webhooks are answered
with an empty TwiML document. `SmsSender.send` never raises: every failure is
logged and reported in the returned SendResult so callers can decide whether
to keep or retry the state change that triggered the message.
"""

from dataclasses import dataclass
from typing import Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client
from twilio.twiml.messaging_response import MessagingResponse

from app.config import Settings, get_settings
from app.services.contact import ContactNormalizer
from app.logging_config import get_logger


logger = get_logger(__name__)

# Twilio's maximum message length
MAX_MESSAGE_LENGTH = 1600

# Twilio error codes worth a specific log line
TRIAL_UNVERIFIED_NUMBER = 21608
REGION_NOT_PERMITTED = 21408


@dataclass(frozen=True)
class SendResult:
    """Outcome of one outbound message.

    Attributes:
        success: Whether Twilio accepted the message
        sid: Twilio message SID on success
        error: Short error description on failure
    """
    success: bool
    sid: Optional[str] = None
    error: Optional[str] = None


class SmsSender:
    """Sends single SMS messages through the Twilio REST API.

    The REST client is created lazily so the application can start (and tests
    can run) without Twilio credentials; sends are then skipped and reported
    as failures with error "twilio_not_configured".

    Usage:
        sender = get_sms_sender()
        result = sender.send("+15551234567", "What is your height?")
        if not result.success:
            logger.warning(f"SMS not delivered: {result.error}")
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Client] = None):
        self.settings = settings or get_settings()
        self._client = client

        if not self.settings.twilio_configured:
            logger.warning(
                "Twilio environment variables are not all set. SMS will fail until configured."
            )

    def _get_client(self) -> Optional[Client]:
        if self._client is None and self.settings.twilio_configured:
            self._client = Client(
                self.settings.twilio_account_sid,
                self.settings.twilio_auth_token,
            )
        return self._client

    def send(self, to: Optional[str], body: str) -> SendResult:
        """Send one SMS.

        Args:
            to: Destination phone number
            body: Message text (truncated to 1600 characters)

        Returns:
            SendResult; never raises
        """
        masked = ContactNormalizer.mask_for_logging(to)

        if not to:
            logger.error("SMS send skipped: no destination number")
            return SendResult(success=False, error="missing_destination")
        if not body or not body.strip():
            logger.error(f"SMS send to {masked} skipped: empty message")
            return SendResult(success=False, error="empty_message")

        if len(body) > MAX_MESSAGE_LENGTH:
            logger.warning(
                f"Message length ({len(body)}) exceeds Twilio limit ({MAX_MESSAGE_LENGTH}). "
                "Message will be truncated."
            )
            body = body[:MAX_MESSAGE_LENGTH]

        client = self._get_client()
        if client is None:
            logger.error(
                "Twilio credentials missing; skipping send. Check TWILIO_ACCOUNT_SID, "
                "TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER."
            )
            return SendResult(success=False, error="twilio_not_configured")

        logger.info(
            f"Sending SMS to {masked} ({len(body)} chars)",
            extra={"phone_last4": ContactNormalizer.last4(to)},
        )
        try:
            message = client.messages.create(
                body=body,
                from_=self.settings.twilio_phone_number,
                to=to,
            )
        except TwilioRestException as e:
            if e.code == TRIAL_UNVERIFIED_NUMBER:
                logger.error(
                    f"TRIAL ERROR: The number {masked} is not verified. On a trial account "
                    "you can only send to verified caller IDs."
                )
            elif e.code == REGION_NOT_PERMITTED:
                logger.error(
                    "PERMISSION ERROR: International permission not enabled for this region "
                    "in the Twilio console."
                )
            else:
                logger.error(f"Twilio API error sending to {masked}: {e.code} {e.msg}")
            return SendResult(success=False, error=f"twilio_error_{e.code}")
        except Exception as e:
            logger.error(f"SMS send error for {masked}: {e}", exc_info=True)
            return SendResult(success=False, error=str(e))

        logger.info(f"SMS sent to {masked}: sid={message.sid}")
        return SendResult(success=True, sid=message.sid)


def create_empty_response() -> str:
    """Empty TwiML document acknowledging an inbound message.

    Replies to participants are sent through the REST API, so the webhook
    never embeds a <Message>; the empty response just stops Twilio retrying.
    """
    return str(MessagingResponse())


# Global singleton instance
_sender_instance: Optional[SmsSender] = None


def get_sms_sender() -> SmsSender:
    """Get global SmsSender instance (FastAPI dependency)."""
    global _sender_instance
    if _sender_instance is None:
        _sender_instance = SmsSender()
    return _sender_instance
