"""Reminder scheduler for stalled SMS surveys and unfinished Step-B forms.

Two independent tracks are evaluated on every pass:

- Survey track: a STARTED participant who has not answered for
  STUCK_SURVEY_HOURS gets the pending question again.
- Step-B track: a participant with an open Step-B form gets the link again
  once `reminder_days[step_b_nudge_count]` whole days have passed since the
  token was issued.

Due checks are pure functions of (submission, now, config). A pass handles
each record in its own transaction: the SMS is sent first and the counters
are committed only when the send succeeded, so a failed send is retried on
the next pass and one bad record never stops the others.

Usage:
    python -m app.services.reminders --once [--dry-run]
"""

import argparse
import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.models.history import ChangeType, SubmissionHistory
from app.models.submission import Submission, SubmissionStatus, as_utc, utcnow
from app.services.contact import ContactNormalizer
from app.services.messaging import Messenger
from app.services.step_b_tokens import build_step_b_link
from app.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class ReminderConfig:
    """Thresholds for both reminder tracks.

    Attributes:
        stuck_survey_after: Inactivity before a survey reminder
        survey_max_nudges: Cap on survey reminders per stall (None = unlimited)
        reminder_days: Ascending day offsets for Step-B reminders
        form_base_url: Base URL for Step-B links
        dry_run: Log instead of sending or mutating
    """
    stuck_survey_after: timedelta = timedelta(hours=24)
    survey_max_nudges: Optional[int] = None
    reminder_days: List[int] = field(default_factory=lambda: [3, 7, 30, 60])
    form_base_url: str = "http://localhost:3000"
    dry_run: bool = False

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ReminderConfig":
        settings = settings or get_settings()
        return cls(
            stuck_survey_after=timedelta(hours=settings.stuck_survey_hours),
            survey_max_nudges=settings.survey_max_nudges,
            reminder_days=settings.get_reminder_days(),
            form_base_url=settings.form_base_url,
            dry_run=settings.reminder_dry_run,
        )


@dataclass
class ReminderRunResult:
    """Counts from one scheduler pass."""
    survey_sent: int = 0
    step_b_sent: int = 0
    failures: int = 0
    skipped: int = 0


def elapsed_days(since: Optional[datetime], now: datetime) -> int:
    """Whole days between two instants (floor), 0 when `since` is unknown."""
    if since is None:
        return 0
    seconds = (as_utc(now) - as_utc(since)).total_seconds()
    return int(seconds // SECONDS_PER_DAY)


def is_survey_reminder_due(
    submission: Submission,
    now: datetime,
    config: ReminderConfig,
    total_questions: int,
) -> bool:
    """
    Whether a stalled SMS survey should get a reminder.

    Example:
        >>> sub = Submission(status="STARTED", current_step=1,
        ...                  last_active=utcnow() - timedelta(hours=30))
        >>> is_survey_reminder_due(sub, utcnow(), ReminderConfig(), 6)
        True
    """
    if submission.status != SubmissionStatus.STARTED.value:
        return False
    if (submission.current_step or 0) >= total_questions:
        return False
    if submission.last_active is None:
        return False
    if as_utc(now) - as_utc(submission.last_active) < config.stuck_survey_after:
        return False
    if config.survey_max_nudges is not None:
        return (submission.survey_nudge_count or 0) < config.survey_max_nudges
    return True


def is_step_b_reminder_due(submission: Submission, now: datetime, config: ReminderConfig) -> bool:
    """
    Whether an open Step-B form has reached its next reminder offset.

    The offset index is the number of nudges already sent; once it reaches
    len(reminder_days) the track is exhausted for this participant.
    """
    if submission.step_b_completed:
        return False
    count = submission.step_b_nudge_count or 0
    if count >= len(config.reminder_days):
        return False
    issued_at = submission.step_b_token_issued_at or submission.created_at
    return elapsed_days(issued_at, now) >= config.reminder_days[count]


class ReminderScheduler:
    """Runs reminder passes against the database.

    Args:
        session_factory: Callable returning a new SQLAlchemy session
        messenger: Outbound message sender
        config: Reminder thresholds
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        messenger: Messenger,
        config: Optional[ReminderConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory
        self.messenger = messenger
        self.config = config or ReminderConfig.from_settings()
        self.clock = clock or utcnow

    def run_once(self, db: Optional[Session] = None) -> ReminderRunResult:
        """Evaluate both tracks once and return the counts."""
        owns_session = db is None
        db = db or self.session_factory()
        result = ReminderRunResult()
        try:
            now = self.clock()
            self._run_survey_track(db, now, result)
            if self.config.reminder_days:
                self._run_step_b_track(db, now, result)
        finally:
            if owns_session:
                db.close()

        logger.info(
            f"Reminder pass finished: survey_sent={result.survey_sent} "
            f"step_b_sent={result.step_b_sent} failures={result.failures} "
            f"skipped={result.skipped}{' (dry run)' if self.config.dry_run else ''}"
        )
        return result

    def _candidate_ids(self, db: Session, *criteria) -> List[int]:
        ids = list(db.execute(select(Submission.id).where(*criteria).order_by(Submission.id)).scalars())
        db.rollback()
        return ids

    def _load(self, db: Session, submission_id: int) -> Optional[Submission]:
        return db.execute(
            select(Submission).where(Submission.id == submission_id).with_for_update()
        ).scalar_one_or_none()

    def _run_survey_track(self, db: Session, now: datetime, result: ReminderRunResult) -> None:
        total = len(self.messenger.question_set)
        ids = self._candidate_ids(db, Submission.status == SubmissionStatus.STARTED.value)
        for submission_id in ids:
            try:
                submission = self._load(db, submission_id)
                # Re-check: an answer may have arrived since the scan.
                if submission is None or not is_survey_reminder_due(submission, now, self.config, total):
                    db.rollback()
                    continue

                destination = submission.contact_number
                if not destination:
                    result.skipped += 1
                    db.rollback()
                    continue

                step = submission.current_step or 0
                question = self.messenger.question_set.question_at(step)

                if self.config.dry_run:
                    body = self.messenger.render("survey_reminder", question=question)
                    logger.info(f"[dry run] would send survey reminder: {body!r}", extra={"submission_id": submission_id})
                    result.survey_sent += 1
                    db.rollback()
                    continue

                send = self.messenger.send(destination, "survey_reminder", question=question)
                if not send.success:
                    logger.warning(
                        f"Survey reminder not delivered: {send.error}",
                        extra={"submission_id": submission_id, "phone_last4": ContactNormalizer.last4(destination)},
                    )
                    result.failures += 1
                    db.rollback()
                    continue

                submission.record_survey_nudge(now)
                SubmissionHistory.record(
                    db,
                    submission_id,
                    ChangeType.SURVEY_NUDGE,
                    {"step": step, "nudgeCount": submission.survey_nudge_count, "sid": send.sid},
                )
                db.commit()
                result.survey_sent += 1
            except Exception as e:
                db.rollback()
                result.failures += 1
                logger.error(
                    f"Survey reminder failed: {e}",
                    exc_info=True,
                    extra={"submission_id": submission_id},
                )

    def _run_step_b_track(self, db: Session, now: datetime, result: ReminderRunResult) -> None:
        ids = self._candidate_ids(db, Submission.step_b_completed.is_(False))
        for submission_id in ids:
            try:
                submission = self._load(db, submission_id)
                if submission is None or not is_step_b_reminder_due(submission, now, self.config):
                    db.rollback()
                    continue

                destination = submission.contact_number
                if not destination or not submission.step_b_token:
                    result.skipped += 1
                    db.rollback()
                    continue

                link = build_step_b_link(self.config.form_base_url, submission.step_b_token)

                if self.config.dry_run:
                    logger.info(
                        f"[dry run] would send Step-B reminder #{(submission.step_b_nudge_count or 0) + 1}",
                        extra={"submission_id": submission_id},
                    )
                    result.step_b_sent += 1
                    db.rollback()
                    continue

                send = self.messenger.send(destination, "step_b_reminder", link=link)
                if not send.success:
                    logger.warning(
                        f"Step-B reminder not delivered: {send.error}",
                        extra={"submission_id": submission_id, "phone_last4": ContactNormalizer.last4(destination)},
                    )
                    result.failures += 1
                    db.rollback()
                    continue

                submission.record_step_b_nudge(now)
                SubmissionHistory.record(
                    db,
                    submission_id,
                    ChangeType.STEP_B_NUDGE,
                    {"nudgeCount": submission.step_b_nudge_count, "sid": send.sid},
                )
                db.commit()
                result.step_b_sent += 1
            except Exception as e:
                db.rollback()
                result.failures += 1
                logger.error(
                    f"Step-B reminder failed: {e}",
                    exc_info=True,
                    extra={"submission_id": submission_id},
                )

    async def run_forever(self, interval_seconds: float) -> None:
        """Run a pass every `interval_seconds` until cancelled.

        Passes run in a worker thread; the database driver is synchronous.
        """
        logger.info(f"Reminder scheduler started (every {interval_seconds}s)")
        while True:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception as e:
                logger.error(f"Reminder pass crashed: {e}", exc_info=True)
            await asyncio.sleep(interval_seconds)


def build_scheduler(settings: Optional[Settings] = None) -> ReminderScheduler:
    """Scheduler wired to the configured database, Twilio and question set."""
    from app.models.database import SessionLocal
    from app.services.question_loader import get_question_set
    from app.services.twilio_client import get_sms_sender

    settings = settings or get_settings()
    messenger = Messenger(get_sms_sender(), get_question_set(), settings=settings)
    return ReminderScheduler(SessionLocal, messenger, ReminderConfig.from_settings(settings))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m app.services.reminders")
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    parser.add_argument("--dry-run", action="store_true", help="Log reminders without sending")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging()
    settings = get_settings()
    scheduler = build_scheduler(settings)
    if args.dry_run:
        scheduler.config = replace(scheduler.config, dry_run=True)

    if args.once:
        result = scheduler.run_once()
        return 1 if result.failures else 0

    try:
        asyncio.run(scheduler.run_forever(settings.reminder_interval_seconds))
    except KeyboardInterrupt:
        logger.info("Reminder scheduler stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
