"""Step-B capability tokens.

A token is an HS256 JWT binding {email, iat, exp}. Holding one grants access
to exactly one participant's Step-B form until it expires. Signing and
verification take an injectable clock so expiry can be tested without
waiting.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple
from urllib.parse import quote

from jose import JWTError, jwt

from app.config import get_settings
from app.exceptions import InvalidToken
from app.models.submission import utcnow
from app.logging_config import get_logger

logger = get_logger(__name__)

ALGORITHM = "HS256"

Clock = Callable[[], datetime]


class StepBTokenService:
    """Sign/verify pair for Step-B tokens.

    Example:
        >>> service = StepBTokenService("secret", ttl_days=7)
        >>> token, issued_at = service.sign("ada@example.com")
        >>> service.verify(token)
        'ada@example.com'
    """

    def __init__(self, secret: str, ttl_days: int = 7, clock: Optional[Clock] = None):
        if not secret:
            raise ValueError("Token secret must not be empty")
        self.secret = secret
        self.ttl = timedelta(days=ttl_days)
        self.clock = clock or utcnow

    def sign(self, email: str) -> Tuple[str, datetime]:
        """Issue a token for an email.

        Returns:
            (token, issued_at)
        """
        issued_at = self.clock()
        claims = {
            "email": email,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.ttl).timestamp()),
        }
        return jwt.encode(claims, self.secret, algorithm=ALGORITHM), issued_at

    def verify(self, token: Optional[str]) -> str:
        """Validate a token and return the email it was issued for.

        Raises:
            InvalidToken: Missing, malformed, forged, expired or email-less token
        """
        if not token:
            raise InvalidToken("missing token")

        try:
            # Expiry is checked below against the injected clock.
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                options={"verify_exp": False, "verify_iat": False},
            )
        except JWTError as e:
            logger.warning(f"Step-B token verification failed: {e} (prefix={token[:8]})")
            raise InvalidToken("invalid or expired token")

        exp = claims.get("exp")
        if not isinstance(exp, (int, float)) or self.clock().timestamp() >= exp:
            logger.warning(f"Step-B token expired or without expiry (prefix={token[:8]})")
            raise InvalidToken("invalid or expired token")

        email = claims.get("email")
        if not email:
            logger.warning(f"Step-B token decoded but missing email (prefix={token[:8]})")
            raise InvalidToken("invalid token")

        return email


def build_step_b_link(base_url: str, token: str) -> str:
    """Public URL of the Step-B page for a token."""
    return f"{base_url.rstrip('/')}/stepb.html?token={quote(token, safe='')}"


def get_token_service() -> StepBTokenService:
    """Token service configured from settings (FastAPI dependency)."""
    settings = get_settings()
    return StepBTokenService(settings.token_secret, ttl_days=settings.token_ttl_days)
