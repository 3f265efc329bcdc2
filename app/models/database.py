"""Database setup and session management using SQLAlchemy 2.0.

This module configures the database engine, session factory, and base class
for all ORM models using modern SQLAlchemy 2.0 patterns.
"""

from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.config import get_settings
from app.exceptions import ConflictError, IntakeError, PersistenceError
from app.logging_config import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


settings = get_settings()

engine_kwargs = {
    "pool_pre_ping": True,  # Verify connections before using
    "echo": False,
}

# SQLite doesn't support pool_size/max_overflow, so use them conditionally
if settings.database_url.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    engine_kwargs["pool_size"] = settings.database_pool_size
    engine_kwargs["max_overflow"] = settings.database_max_overflow

engine = create_engine(settings.database_url, **engine_kwargs)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,  # Prevent lazy loading after commit
)


def init_db() -> None:
    """Create all tables that do not exist yet.

    Only used outside production; production schemas are managed by the
    operators' migration tooling.
    """
    # Import models so they register with Base.metadata
    from app.models import history, submission  # noqa: F401

    Base.metadata.create_all(bind=engine)


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit the enclosed writes as one unit or roll all of them back.

    Domain errors raised inside the block propagate unchanged after the
    rollback. Unique-constraint violations become ConflictError (a concurrent
    request registered the same contact first); any other database failure
    becomes PersistenceError.

    Example:
        with transaction(db):
            submission.advance_step()
            SubmissionHistory.record(db, submission.id, ChangeType.SMS_ADVANCE)
    """
    try:
        yield db
        db.commit()
    except IntakeError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Integrity error, transaction rolled back: {e.orig}")
        raise ConflictError("contact already registered by another record", matches=[])
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error, transaction rolled back: {e}", exc_info=True)
        raise PersistenceError(f"database transaction failed: {e.__class__.__name__}")
    except Exception:
        db.rollback()
        raise


def get_db() -> Generator[Session, None, None]:
    """Dependency function for FastAPI to provide database sessions.

    Yields:
        Session: SQLAlchemy database session

    Note:
        The session is automatically closed after the request completes,
        even if an exception occurs.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
