"""Twilio signature verification for the inbound SMS webhook.

Twilio signs every webhook with an HMAC-SHA1 of the full URL and the POST
parameters, keyed by the account's auth token. Verification is switched on
with VERIFY_TWILIO_SIGNATURE; it stays off by default so the webhook can be
exercised locally (curl, ngrok) without a signing proxy.

Reference:
    https://www.twilio.com/docs/usage/security#validating-requests
"""

from typing import Dict, Optional

from fastapi import HTTPException, Request
from twilio.request_validator import RequestValidator

from app.config import Settings, get_settings
from app.logging_config import get_logger


logger = get_logger(__name__)


class TwilioSignatureValidator:
    """Checks X-Twilio-Signature values against the configured auth token.

    Security Notes:
        - NEVER log auth tokens or signature values
        - Log invalid signatures with the client IP
    """

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.validator = RequestValidator(settings.twilio_auth_token)

    def is_valid(self, url: str, params: Dict[str, str], signature: str, client_ip: str) -> bool:
        """Return True when `signature` matches the URL and parameters."""
        if self.validator.validate(url, params, signature):
            return True
        logger.warning(
            f"Invalid Twilio signature from IP: {client_ip}",
            extra={"client_ip": client_ip, "url": url},
        )
        return False


async def verify_twilio_signature(request: Request) -> None:
    """FastAPI dependency enforcing Twilio signatures when enabled.

    Raises:
        HTTPException(403): Signature missing or invalid while verification is on

    Usage:
        @router.post("/sms", dependencies=[Depends(verify_twilio_signature)])
    """
    settings = get_settings()
    if not settings.verify_twilio_signature:
        return

    client_ip = request.client.host if request.client else "unknown"
    signature = request.headers.get("X-Twilio-Signature")
    if not signature:
        logger.warning(
            f"Missing X-Twilio-Signature header from IP: {client_ip}",
            extra={"client_ip": client_ip},
        )
        raise HTTPException(status_code=403, detail="Missing Twilio signature")

    form_data = await request.form()
    params = {key: str(value) for key, value in form_data.items()}

    validator = TwilioSignatureValidator(settings)
    if not validator.is_valid(str(request.url), params, signature, client_ip):
        raise HTTPException(status_code=403, detail="Invalid Twilio signature")
