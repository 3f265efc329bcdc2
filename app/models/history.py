"""SubmissionHistory model: the append-only audit trail.

Every state-changing operation on a submission writes exactly one entry.
Entries are never updated or read back to drive behavior, with one exception:
`idempotency` entries hold the response of a registration so a retried
request can be answered verbatim.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    Index,
    Integer,
    JSON,
    String,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column

from app.models.database import Base
from app.models.submission import utcnow


class ChangeType:
    """Change types written to the audit trail."""
    WEB_SUBMIT_CREATE = "web-submit-create"
    WEB_SUBMIT_UPDATE = "web-submit-update"
    INITIAL_CREATE = "initial-create"
    INITIAL_UPDATE = "initial-update"
    REGISTER_CREATE = "web-register-create"
    REGISTER_UPDATE = "web-register-update"
    IDEMPOTENCY = "idempotency"
    SMS_ANSWER = "sms-answer"
    SMS_ADVANCE = "sms-advance"
    SMS_COMPLETE = "sms-complete"
    SURVEY_NUDGE = "survey-nudge"
    STEP_B_RESEND = "stepb-resend"
    STEP_B_NUDGE = "stepb-nudge"
    STEP_B_SUBMIT = "stepb-submit"


class SubmissionHistory(Base):
    """Immutable audit entry.

    Attributes:
        submission_id: Submission the change applies to
        change_type: One of ChangeType
        idempotency_key: Set only on idempotency entries, for lookup
        data: Before/after snapshots, payload, or step details
        created_at: When the change was recorded
    """

    __tablename__ = "submission_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    change_type: Mapped[str] = mapped_column(String(50), nullable=False)
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        Index("idx_history_idempotency", "change_type", "idempotency_key"),
    )

    @classmethod
    def record(
        cls,
        db: Session,
        submission_id: int,
        change_type: str,
        data: Optional[dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> "SubmissionHistory":
        """Append an entry to the current transaction.

        The caller commits; an entry never outlives a rolled-back mutation.
        """
        entry = cls(
            submission_id=submission_id,
            change_type=change_type,
            data=data or {},
            idempotency_key=idempotency_key,
            created_at=utcnow(),
        )
        db.add(entry)
        return entry

    @classmethod
    def find_idempotent_response(cls, db: Session, idempotency_key: str) -> Optional[dict]:
        """Return the response recorded under an idempotency key, if any.

        Example:
            previous = SubmissionHistory.find_idempotent_response(db, "abc-123")
            if previous is not None:
                return previous
        """
        entry = db.execute(
            select(cls)
            .where(
                cls.change_type == ChangeType.IDEMPOTENCY,
                cls.idempotency_key == idempotency_key,
            )
            .order_by(cls.id)
            .limit(1)
        ).scalar_one_or_none()

        if entry is None:
            return None
        response = (entry.data or {}).get("response")
        if not response:
            return None
        return response

    @classmethod
    def for_submission(cls, db: Session, submission_id: int) -> list["SubmissionHistory"]:
        """All entries for one submission, oldest first."""
        return list(
            db.execute(
                select(cls)
                .where(cls.submission_id == submission_id)
                .order_by(cls.id)
            ).scalars()
        )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<SubmissionHistory(id={self.id}, "
            f"submission_id={self.submission_id}, "
            f"change_type={self.change_type})>"
        )
