"""Database models and session management.

This package contains all SQLAlchemy ORM models and database utilities.
"""

from app.models.database import Base, engine, SessionLocal, get_db, init_db
from app.models.submission import Submission, SubmissionStatus
from app.models.history import ChangeType, SubmissionHistory

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "init_db",
    "Submission",
    "SubmissionStatus",
    "ChangeType",
    "SubmissionHistory",
]
