"""Step-B form operations behind a capability token.

Every token-bearing operation verifies the token first and resolves the
submission by the email it was issued for. Resends are keyed by email alone
and capped by MAX_NUDGES.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.exceptions import IntakeError, LimitExceeded, NotFoundError, ValidationError
from app.models.database import transaction
from app.models.history import ChangeType, SubmissionHistory
from app.models.submission import Submission, utcnow
from app.schemas.forms import PresignRequest, StepBSubmission
from app.services.contact import ContactNormalizer
from app.services.health_metrics import resolve_body_metrics
from app.services.messaging import Messenger
from app.services.object_store import ObjectStore
from app.services.step_b_tokens import StepBTokenService, build_step_b_link
from app.logging_config import get_logger

logger = get_logger(__name__)


class StepBService:
    """Presign, status, submit and resend for the Step-B form."""

    def __init__(
        self,
        db: Session,
        token_service: StepBTokenService,
        object_store: ObjectStore,
        messenger: Messenger,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.tokens = token_service
        self.store = object_store
        self.messenger = messenger
        self.settings = settings or get_settings()

    def _find_by_email(self, email: str, lock: bool = False) -> Optional[Submission]:
        query = select(Submission).where(Submission.email == email).order_by(Submission.id).limit(1)
        if lock:
            query = query.with_for_update()
        return self.db.execute(query).scalar_one_or_none()

    def submission_for_token(self, token: Optional[str], lock: bool = False) -> Submission:
        """
        Verify a token and load the submission it grants access to.

        Raises:
            InvalidToken: Token missing, forged or expired
            NotFoundError: No submission for the token's email
        """
        email = ContactNormalizer.normalize_email(self.tokens.verify(token))
        submission = self._find_by_email(email, lock=lock)
        if submission is None:
            raise NotFoundError()
        return submission

    def presign(self, token: Optional[str], request: PresignRequest) -> dict:
        """Upload targets for the participant's image files."""
        submission = self.submission_for_token(token)
        if not request.files:
            raise ValidationError("files array required")

        files = [{"name": f.name, "contentType": f.content_type} for f in request.files]
        presigned = self.store.presign(submission.email, files)
        logger.info(
            f"Presigned {len(presigned)} upload(s)",
            extra={"submission_id": submission.id},
        )
        return {"success": True, "presigned": presigned}

    def status(self, token: Optional[str]) -> dict:
        submission = self.submission_for_token(token)
        return {
            "success": True,
            "stepBCompleted": bool(submission.step_b_completed),
            "stepBNudgeCount": submission.step_b_nudge_count or 0,
            "submission": submission.to_public(),
        }

    def submit(self, token: Optional[str], payload: StepBSubmission) -> dict:
        """
        Merge the final Step-B form into the submission and mark it complete.

        BMI is recomputed from the payload, falling back on stored height or
        weight, and is never taken from the client. A lone metric height or
        weight is still converted and stored. Image objects sent in the
        payload replace the stored list; objects no longer referenced are
        deleted after the commit.

        Raises:
            InvalidToken: Token missing, forged or expired
            NotFoundError: No submission for the token's email
            PersistenceError: The update could not be committed
        """
        with transaction(self.db):
            submission = self.submission_for_token(token, lock=True)
            before = submission.snapshot()
            now = utcnow()

            updates = payload.field_updates()
            metrics = resolve_body_metrics(payload.metric_inputs(), submission)
            if metrics is not None:
                updates.update(metrics.as_updates())

            removed_keys = []
            if "image_objects" in payload.model_fields_set:
                new_images = [image.to_stored() for image in payload.image_objects]
                new_keys = {image.get("key") for image in new_images if image.get("key")}
                removed_keys = [
                    image.get("key")
                    for image in (submission.image_objects or [])
                    if image.get("key") and image.get("key") not in new_keys
                ]
                updates["image_objects"] = new_images

            for field, value in updates.items():
                setattr(submission, field, value)
            submission.mark_step_b_completed(now)

            SubmissionHistory.record(
                self.db,
                submission.id,
                ChangeType.STEP_B_SUBMIT,
                {
                    "before": before,
                    "after": submission.snapshot(),
                    "removedImageKeys": removed_keys,
                },
            )
            submission_id = submission.id
            destination = submission.contact_number

        logger.info(
            f"Step-B submitted (bmi={updates.get('bmi')})",
            extra={"submission_id": submission_id, "change_type": ChangeType.STEP_B_SUBMIT},
        )

        if removed_keys:
            try:
                self.store.delete(removed_keys)
            except IntakeError as e:
                logger.error(
                    f"Failed to delete {len(removed_keys)} replaced image(s): {e.message}",
                    extra={"submission_id": submission_id},
                )

        self.messenger.send(destination, "step_b_thanks")
        return {"success": True, "message": "Submission saved"}

    def resend(self, email: Optional[str]) -> dict:
        """
        Reissue the Step-B link and text it to the participant again.

        Raises:
            ValidationError: Email missing
            NotFoundError: No submission for the email
            LimitExceeded: MAX_NUDGES resends already sent
        """
        email = ContactNormalizer.normalize_email(email)
        if not email:
            raise ValidationError("email required")

        with transaction(self.db):
            submission = self._find_by_email(email, lock=True)
            if submission is None:
                raise NotFoundError()

            count = submission.step_b_nudge_count or 0
            if count >= self.settings.max_nudges:
                logger.info(
                    f"Resend refused after {count} nudges",
                    extra={"submission_id": submission.id},
                )
                raise LimitExceeded()

            now = utcnow()
            token, issued_at = self.tokens.sign(email)
            submission.issue_step_b_token(token, issued_at, reopen=False)
            submission.record_step_b_nudge(now)
            SubmissionHistory.record(
                self.db,
                submission.id,
                ChangeType.STEP_B_RESEND,
                {"nudgeCount": submission.step_b_nudge_count},
            )
            destination = submission.contact_number

        link = build_step_b_link(self.settings.form_base_url, token)
        self.messenger.send(destination, "step_b_resend", link=link)
        return {"success": True, "message": "Resent"}
