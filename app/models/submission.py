"""Submission model for a participant's intake lifecycle.

One row per participant holds identity, SMS survey progress, Step-B state and
the derived health fields. Lifecycle transitions live here as small helper
methods; services decide *when* to call them and own the transaction.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.database import Base

US_DISPLAY_TZ = ZoneInfo("America/New_York")
KG_PER_LB = 2.2046226218
CM_PER_INCH = 2.54


class SubmissionStatus(str, Enum):
    """SMS survey status. STARTED is the only non-terminal state."""
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def derive_full_name(
    first_name: Optional[str],
    last_name: Optional[str],
    name: Optional[str] = None,
) -> Optional[str]:
    """Build the display name stored in `name`.

    An explicit name wins; otherwise first and last name are joined.

    Example:
        >>> derive_full_name("Ada", "Lovelace")
        'Ada Lovelace'
        >>> derive_full_name(None, None, "Grace")
        'Grace'
    """
    if name and name.strip():
        return name.strip()
    full = f"{first_name or ''} {last_name or ''}".strip()
    return full or None


def format_created_at_us(value: datetime) -> str:
    """Render a timestamp the way US staff read it (Eastern time)."""
    local = as_utc(value).astimezone(US_DISPLAY_TZ)
    return f"{local.month}/{local.day}/{local.year}, {local.strftime('%I:%M:%S %p').lstrip('0')}"


def _json_safe(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


class Submission(Base):
    """A participant's intake record.

    Attributes:
        email: Normalized email (unique)
        mobile: Normalized E.164 phone (unique)
        phone: Contact phone, usually equal to mobile
        current_step: Index of the SMS question awaiting an answer
        status: STARTED or COMPLETED
        last_active: Last inbound answer or survey reminder
        answers: Mapping of q{n}_answer to the raw SMS text
        survey_nudge_count: Survey reminders sent since the last answer
        step_b_token: Most recently issued Step-B capability token
        step_b_nudge_count: Step-B reminders and resends sent so far
        bmi: Derived from height and weight, never accepted from input
    """

    __tablename__ = "form_submissions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Identity
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    mobile: Mapped[Optional[str]] = mapped_column(String(32), unique=True, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Demographics (web form)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    street_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    postal_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Health fields
    height_feet: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    height_inches: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    weight_lbs: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    bmi: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    interested_procedure: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    prior_weight_loss_surgery: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    wheelchair_usage: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_secondary_insurance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    insurance_employer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    image_objects: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # SMS survey state
    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SubmissionStatus.STARTED.value,
    )
    last_active: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    answers: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    survey_nudge_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Step-B state
    step_b_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    step_b_token_issued_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    step_b_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    step_b_completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    step_b_nudge_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    step_b_last_nudge_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    created_at_us: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        # Scheduler scans
        Index("idx_status_last_active", "status", "last_active"),
        Index("idx_step_b_completed", "step_b_completed"),
    )

    @property
    def contact_number(self) -> Optional[str]:
        """Number outbound SMS should go to."""
        return self.mobile or self.phone

    @property
    def is_started(self) -> bool:
        return self.status == SubmissionStatus.STARTED.value

    def stamp_created(self, now: Optional[datetime] = None) -> None:
        """Fill creation timestamps; call once before the first flush."""
        now = now or utcnow()
        self.created_at = now
        self.created_at_us = format_created_at_us(now)

    def record_answer(self, step: int, text: str, now: Optional[datetime] = None) -> None:
        """Store the answer for `step` and mark the participant active.

        Note:
            JSON columns need a new dict to trigger SQLAlchemy change tracking.
        """
        new_answers = dict(self.answers or {})
        new_answers[f"q{step}_answer"] = text
        self.answers = new_answers
        self.last_active = now or utcnow()
        self.survey_nudge_count = 0

    def advance_step(self) -> None:
        self.current_step = (self.current_step or 0) + 1

    def mark_completed(self) -> None:
        self.status = SubmissionStatus.COMPLETED.value

    def restart_survey(self, now: Optional[datetime] = None) -> None:
        """Re-enter the SMS survey from the first question."""
        self.status = SubmissionStatus.STARTED.value
        self.current_step = 0
        self.answers = {}
        self.survey_nudge_count = 0
        self.last_active = now or utcnow()

    def issue_step_b_token(self, token: str, issued_at: datetime, reopen: bool = True) -> None:
        """Attach a freshly signed Step-B token.

        Registration paths reopen Step B; a resend only replaces the link.
        """
        self.step_b_token = token
        self.step_b_token_issued_at = issued_at
        if reopen:
            self.step_b_completed = False

    def record_step_b_nudge(self, now: Optional[datetime] = None) -> None:
        self.step_b_nudge_count = (self.step_b_nudge_count or 0) + 1
        self.step_b_last_nudge_at = now or utcnow()

    def record_survey_nudge(self, now: Optional[datetime] = None) -> None:
        self.survey_nudge_count = (self.survey_nudge_count or 0) + 1
        self.last_active = now or utcnow()

    def mark_step_b_completed(self, now: Optional[datetime] = None) -> None:
        self.step_b_completed = True
        self.step_b_completed_at = now or utcnow()

    def snapshot(self) -> dict:
        """JSON-safe copy of every column, used for audit before/after data."""
        return {
            column.key: _json_safe(getattr(self, column.key))
            for column in self.__table__.columns
        }

    def to_public(self) -> dict:
        """Compact representation for API consumers.

        Height is reported in centimeters and weight in kilograms; BMI falls
        back to a metric computation when it was never stored.
        """
        height = None
        if self.height_feet is not None or self.height_inches is not None:
            total_inches = (self.height_feet or 0) * 12 + (self.height_inches or 0)
            if total_inches > 0:
                height = round(total_inches * CM_PER_INCH)

        weight = None
        if self.weight_lbs is not None:
            weight = self.weight_lbs / KG_PER_LB

        bmi = self.bmi
        if bmi is None and height and weight:
            meters = height / 100
            bmi = weight / (meters * meters)

        return {
            "id": self.id,
            "fullName": self.name or derive_full_name(self.first_name, self.last_name),
            "email": self.email,
            "mobile": self.contact_number,
            "status": self.status,
            "current_step": self.current_step or 0,
            "last_active": _json_safe(self.last_active or self.updated_at),
            "answers": self.answers or {},
            "height": height,
            "weight": round(weight, 1) if weight is not None else None,
            "bmi": round(bmi, 1) if bmi is not None else None,
            "stepBCompleted": bool(self.step_b_completed),
            "stepBNudgeCount": self.step_b_nudge_count or 0,
            "stepBLastNudgeAt": _json_safe(self.step_b_last_nudge_at),
            "imageObjects": self.image_objects or [],
            "createdAt": _json_safe(self.created_at),
            "updatedAt": _json_safe(self.updated_at),
        }

    def __repr__(self) -> str:
        """String representation for debugging."""
        last4 = (self.contact_number or "")[-4:]
        return (
            f"<Submission(id={self.id}, "
            f"mobile=...{last4}, "
            f"status={self.status}, "
            f"current_step={self.current_step}, "
            f"step_b_completed={self.step_b_completed})>"
        )
