"""Routes package for FastAPI endpoints.

This package contains all API route modules for the intake service.
"""

from app.routes import admin, forms, health, webhook

__all__ = ["admin", "forms", "health", "webhook"]
