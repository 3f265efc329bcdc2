"""CORS middleware backed by the runtime allowlist.

Starlette's CORSMiddleware fixes its origins at construction time; this
subclass asks the CorsAllowlist on every request instead, so origins added
through the admin API take effect immediately.
"""

from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp

from app.services.cors_allowlist import CorsAllowlist


class DynamicCORSMiddleware(CORSMiddleware):
    """CORSMiddleware whose origin check consults a CorsAllowlist."""

    def __init__(self, app: ASGIApp, allowlist: CorsAllowlist, **kwargs) -> None:
        kwargs.pop("allow_origins", None)
        super().__init__(app, allow_origins=(), **kwargs)
        self.allowlist = allowlist

    def is_allowed_origin(self, origin: str) -> bool:
        return self.allowlist.is_allowed(origin)
