"""Shared-secret authentication for the admin endpoints.

Admin routes are disabled (503) until ADMIN_API_KEY is configured; callers
send the key in the X-Admin-Key header.
"""

import secrets
from typing import Optional

from fastapi import Header, HTTPException, Request

from app.config import get_settings
from app.logging_config import get_logger

logger = get_logger(__name__)


async def require_admin_key(
    request: Request,
    x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key"),
) -> None:
    """FastAPI dependency guarding admin routes.

    Raises:
        HTTPException(503): If no admin key is configured
        HTTPException(401): If the header is missing or wrong

    Usage:
        @router.get("/cors", dependencies=[Depends(require_admin_key)])
    """
    expected = get_settings().admin_api_key
    if not expected:
        raise HTTPException(status_code=503, detail="admin key not configured")

    if not x_admin_key or not secrets.compare_digest(x_admin_key.encode(), expected.encode()):
        client_ip = request.client.host if request.client else "unknown"
        logger.warning(
            f"Unauthorized admin access attempt from IP: {client_ip}",
            extra={"client_ip": client_ip},
        )
        raise HTTPException(status_code=401, detail="unauthorized")
