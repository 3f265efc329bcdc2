"""Survey engine for the SMS question sequence.

This module advances a participant through the ordered question set one
inbound answer at a time. State is committed before any outbound message
so a failed send can never roll back a recorded answer.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.models.database import transaction
from app.models.history import ChangeType, SubmissionHistory
from app.models.submission import Submission, SubmissionStatus, utcnow
from app.schemas.questions import QuestionSet
from app.services.contact import ContactNormalizer
from app.services.messaging import Messenger
from app.services.twilio_client import SendResult
from app.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class AnswerOutcome:
    """Result of processing one inbound answer.

    Attributes:
        submission_id: Participant the answer was recorded for
        answered_step: Step index the answer was stored under
        completed: Whether the answer finished the survey
        send_result: Outcome of the follow-up SMS, if one was sent
    """
    submission_id: int
    answered_step: int
    completed: bool
    send_result: Optional[SendResult] = None


class SurveyEngine:
    """Main survey orchestration service.

    Matches inbound SMS to a STARTED submission, records the answer, and
    either sends the next question or completes the survey.
    """

    def __init__(self, db: Session, question_set: QuestionSet, messenger: Messenger):
        """Initialize survey engine.

        Args:
            db: SQLAlchemy database session
            question_set: Ordered SMS questions and message templates
            messenger: Outbound message sender
        """
        self.db = db
        self.question_set = question_set
        self.messenger = messenger

    def find_active_by_phone(self, phone: str) -> Optional[Submission]:
        """First STARTED submission whose mobile or phone equals `phone`.

        The row is locked (SELECT ... FOR UPDATE) so two messages arriving
        together from the same number cannot both answer the same step.
        """
        return self.db.execute(
            select(Submission)
            .where(
                Submission.status == SubmissionStatus.STARTED.value,
                or_(Submission.mobile == phone, Submission.phone == phone),
            )
            .order_by(Submission.id)
            .limit(1)
            .with_for_update()
        ).scalar_one_or_none()

    def process_answer(self, from_number: str, body: str) -> Optional[AnswerOutcome]:
        """Record an inbound answer and send the follow-up message.

        Args:
            from_number: Sender number as received from Twilio
            body: Raw message text

        Returns:
            AnswerOutcome, or None when no active survey matches the sender

        Raises:
            PersistenceError: If the state change could not be committed

        Example:
            >>> engine = SurveyEngine(db, question_set, messenger)
            >>> outcome = engine.process_answer("+1 (555) 123-4567", "Yes")
            >>> outcome.completed
            False
        """
        phone = ContactNormalizer.normalize_phone(from_number)
        if not phone:
            return None

        total = len(self.question_set)
        text = (body or "").strip()
        next_question = None

        with transaction(self.db):
            submission = self.find_active_by_phone(phone)
            if submission is None:
                logger.info(
                    "Inbound SMS with no active survey",
                    extra={"phone_last4": ContactNormalizer.last4(phone)},
                )
                return None

            step = submission.current_step or 0
            if step >= total:
                # Question set shrank underneath an in-flight participant; the
                # reply has no question to belong to, so it is kept on the audit entry.
                logger.warning(
                    f"Submission {submission.id} at step {step} beyond {total} questions; completing",
                    extra={"submission_id": submission.id},
                )
                completed = True
                submission.mark_completed()
                SubmissionHistory.record(
                    self.db,
                    submission.id,
                    ChangeType.SMS_COMPLETE,
                    {"step": step, "unplacedAnswer": text},
                )
            else:
                now = utcnow()
                submission.record_answer(step, text, now)
                SubmissionHistory.record(
                    self.db, submission.id, ChangeType.SMS_ANSWER, {"step": step, "answer": text}
                )

                completed = step + 1 >= total
                if completed:
                    submission.mark_completed()
                    SubmissionHistory.record(
                        self.db, submission.id, ChangeType.SMS_COMPLETE, {"step": step}
                    )
                else:
                    submission.advance_step()
                    next_question = self.question_set.question_at(step + 1)
                    SubmissionHistory.record(
                        self.db,
                        submission.id,
                        ChangeType.SMS_ADVANCE,
                        {"from": step, "to": step + 1, "question": next_question},
                    )

            submission_id = submission.id
            destination = submission.contact_number

        logger.info(
            f"Recorded answer for step {step} "
            f"({'completed' if completed else f'next step {step + 1}'})",
            extra={"submission_id": submission_id, "phone_last4": ContactNormalizer.last4(phone)},
        )

        if completed:
            result = self.messenger.send(destination, "completion")
        else:
            result = self.messenger.sender.send(destination, next_question)

        if not result.success:
            logger.warning(
                f"Follow-up SMS not delivered: {result.error}",
                extra={"submission_id": submission_id},
            )
        return AnswerOutcome(submission_id, step, completed, result)
