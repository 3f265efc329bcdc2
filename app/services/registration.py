"""Registration flows: web form, Step A initial submit and register.

All three entry points normalize contacts, resolve identity, and write the
submission plus its audit entry in one transaction. Outbound SMS are sent
only after that transaction has committed.
"""

from typing import Optional

from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.exceptions import ValidationError
from app.models.database import transaction
from app.models.history import ChangeType, SubmissionHistory
from app.models.submission import Submission, SubmissionStatus, derive_full_name, utcnow
from app.schemas.forms import InitialSubmitRequest, RegisterRequest, WebFormSubmission
from app.services.contact import ContactNormalizer
from app.services.identity_resolver import IdentityResolver, compute_changes, exists_note
from app.services.messaging import Messenger
from app.services.step_b_tokens import StepBTokenService, build_step_b_link
from app.logging_config import get_logger

logger = get_logger(__name__)

CONTACT_FIELDS = ("email", "mobile", "phone")
RESTART_FIELDS = ["status", "current_step", "answers"]


class RegistrationService:
    """Creates and updates submissions from web entry points."""

    def __init__(
        self,
        db: Session,
        messenger: Messenger,
        token_service: StepBTokenService,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.messenger = messenger
        self.tokens = token_service
        self.settings = settings or get_settings()
        self.resolver = IdentityResolver(db)

    # ------------------------------------------------------------------
    # Register (duplicate detection + confirm-update + idempotency)
    # ------------------------------------------------------------------

    def register(self, request: RegisterRequest) -> dict:
        """
        Register a participant or update an existing one.

        Returns one of:
            {"status": "created", ...}  new submission, Step-B link sent
            {"status": "exists", ...}   match found, caller must confirm
            {"status": "updated", ...}  confirmed update (or no changes)

        Raises:
            ValidationError: Name, email or phone missing
            ConflictError: Contact matches more than one submission
        """
        name = (request.name or "").strip()
        first_name = (request.first_name or "").strip()
        last_name = (request.last_name or "").strip()
        email = ContactNormalizer.normalize_email(request.email)
        phone = ContactNormalizer.normalize_phone(request.phone or request.mobile)

        if not name and (not first_name or not last_name):
            raise ValidationError("name or firstName+lastName required")
        if not email:
            raise ValidationError("email required")
        if not phone:
            raise ValidationError("phone required")

        key = request.idempotency_key
        if key:
            previous = SubmissionHistory.find_idempotent_response(self.db, key)
            if previous is not None:
                logger.info(f"Replaying idempotent register response for key {key[:12]}")
                return previous

        full_name = derive_full_name(first_name, last_name, name)

        with transaction(self.db):
            existing = self.resolver.resolve(email, phone)

            if existing is not None and not request.confirm_update:
                return self._exists_response(existing, email, phone)

            if existing is None:
                response, token = self._create_registered(
                    full_name, first_name, last_name, email, phone, key
                )
                template = "step_b_registered"
            else:
                response, token = self._update_registered(
                    existing, request, full_name, first_name, last_name, email, phone, key
                )
                template = "step_b_updated"

        if token is not None:
            link = build_step_b_link(self.settings.form_base_url, token)
            self.messenger.send(phone, template, link=link)
        return response

    def _exists_response(self, existing: Submission, email: str, phone: str) -> dict:
        return {
            "status": "exists",
            "message": "User already exists. Do you want to update your information?",
            "existingUserId": existing.id,
            "note": exists_note(existing, email, phone),
            "phoneLast4": ContactNormalizer.last4(existing.contact_number),
            "promptRestartSurvey": True,
            "currentSurveyStatus": {
                "status": existing.status,
                "current_step": existing.current_step or 0,
            },
        }

    def _create_registered(self, full_name, first_name, last_name, email, phone, key):
        now = utcnow()
        payload = {
            "name": full_name,
            "first_name": first_name or None,
            "last_name": last_name or None,
            "email": email,
            "phone": phone,
            "mobile": phone,
            "status": SubmissionStatus.STARTED.value,
        }
        submission = Submission(**payload, last_active=now, step_b_nudge_count=0)
        submission.stamp_created(now)
        self.db.add(submission)
        self.db.flush()

        token, issued_at = self.tokens.sign(email)
        submission.issue_step_b_token(token, issued_at)

        response = {
            "status": "created",
            "message": "User created",
            "id": submission.id,
            "phoneLast4": ContactNormalizer.last4(phone),
        }
        if key:
            SubmissionHistory.record(
                self.db,
                submission.id,
                ChangeType.IDEMPOTENCY,
                {"idempotencyKey": key, "response": response},
                idempotency_key=key,
            )
        SubmissionHistory.record(
            self.db, submission.id, ChangeType.REGISTER_CREATE, {"payload": payload}
        )
        logger.info(
            f"Registered new submission {submission.id}",
            extra={"submission_id": submission.id, "change_type": ChangeType.REGISTER_CREATE},
        )
        return response, token

    def _update_registered(
        self, existing, request, full_name, first_name, last_name, email, phone, key
    ):
        before = existing.snapshot()
        changes = compute_changes(existing, {
            "name": full_name,
            "first_name": first_name or None,
            "last_name": last_name or None,
            "email": email,
            "mobile": phone,
            "phone": phone,
        })

        changed = list(changes)
        if request.restart_survey:
            changed += RESTART_FIELDS

        if not changed:
            return {
                "status": "updated",
                "message": "No changes detected",
                "existingUserId": existing.id,
            }, None

        now = utcnow()
        for field, value in changes.items():
            setattr(existing, field, value)
        if request.restart_survey:
            existing.restart_survey(now)
        existing.last_active = now

        token = None
        if any(field in changes for field in CONTACT_FIELDS):
            token, issued_at = self.tokens.sign(existing.email)
            existing.issue_step_b_token(token, issued_at)

        self.db.flush()
        SubmissionHistory.record(
            self.db,
            existing.id,
            ChangeType.REGISTER_UPDATE,
            {"before": before, "after": existing.snapshot(), "changed": changed},
        )

        response = {
            "status": "updated",
            "message": "User updated",
            "existingUserId": existing.id,
            "changed": changed,
            "phoneLast4": ContactNormalizer.last4(existing.contact_number),
            "restartApplied": bool(request.restart_survey),
        }
        if key:
            SubmissionHistory.record(
                self.db,
                existing.id,
                ChangeType.IDEMPOTENCY,
                {"idempotencyKey": key, "response": response},
                idempotency_key=key,
            )
        logger.info(
            f"Updated submission {existing.id}: {changed}",
            extra={"submission_id": existing.id, "change_type": ChangeType.REGISTER_UPDATE},
        )
        return response, token

    # ------------------------------------------------------------------
    # Step A initial submit
    # ------------------------------------------------------------------

    def initial_submit(self, request: InitialSubmitRequest) -> dict:
        """
        Record the Step A form and text the participant their Step-B link.

        Raises:
            ValidationError: Missing email/phone, consent, or names
            ConflictError: Email and phone belong to different submissions
        """
        email = ContactNormalizer.normalize_email(request.email)
        phone = ContactNormalizer.normalize_phone(request.phone or request.mobile)
        first_name = (request.first_name or "").strip()
        last_name = (request.last_name or "").strip()

        missing = [label for label, value in (("email", email), ("phone", phone)) if not value]
        if missing:
            raise ValidationError(f"{' and '.join(missing)} are required")
        if not request.consent:
            raise ValidationError("consent is required")
        if not first_name or not last_name:
            raise ValidationError("firstName and lastName are required")

        full_name = derive_full_name(first_name, last_name)

        with transaction(self.db):
            submission = self.resolver.resolve(email, phone)
            token, issued_at = self.tokens.sign(email)
            created = submission is None

            if created:
                payload = {"email": email, "firstName": first_name, "lastName": last_name, "phone": phone}
                submission = Submission(
                    email=email,
                    first_name=first_name,
                    last_name=last_name,
                    name=full_name,
                    phone=phone,
                    mobile=phone,
                    step_b_nudge_count=0,
                )
                submission.stamp_created(issued_at)
                submission.issue_step_b_token(token, issued_at)
                self.db.add(submission)
                self.db.flush()
                before = None
                SubmissionHistory.record(
                    self.db, submission.id, ChangeType.INITIAL_CREATE, payload
                )
            else:
                before = submission.snapshot()
                submission.email = email
                submission.first_name = first_name
                submission.last_name = last_name
                submission.name = full_name
                submission.phone = phone
                submission.mobile = phone
                submission.issue_step_b_token(token, issued_at)
                self.db.flush()
                SubmissionHistory.record(
                    self.db,
                    submission.id,
                    ChangeType.INITIAL_UPDATE,
                    {"before": before, "after": submission.snapshot()},
                )

        link = build_step_b_link(self.settings.form_base_url, token)
        self.messenger.send(phone, "step_b_invite", name=first_name, link=link)

        last4 = ContactNormalizer.last4(phone)
        if created:
            note = f"New registration created for email {email} and phone ending {last4 or '****'}."
        elif before.get("email") and before["email"] != email:
            note = f"This number was already registered to {before['email']}; updated to {email}."
        elif before.get("mobile") and before["mobile"] != phone:
            note = f"This email was previously registered with {before['mobile']}; updated to {phone}."
        else:
            note = f"Updated registration for {email} and phone ending {last4 or '****'}."

        return {
            "success": True,
            "message": "Step B link sent",
            "created": created,
            "note": note,
            "phoneLast4": last4,
        }

    # ------------------------------------------------------------------
    # Web form (starts the SMS survey)
    # ------------------------------------------------------------------

    def submit_web_form(self, request: WebFormSubmission) -> dict:
        """
        Start, or restart, the SMS survey for a mobile number.

        Raises:
            ValidationError: Consent or mobile missing
            ConflictError: Mobile matches more than one submission
        """
        if not request.consent:
            raise ValidationError("Consent is required")
        mobile = ContactNormalizer.normalize_phone(request.mobile or request.phone)
        if not mobile:
            raise ValidationError("Mobile is required")

        fields = {
            "name": (request.name or "").strip() or None,
            "mobile": mobile,
            "phone": mobile,
            "age": request.age,
            "gender": request.gender or None,
            "address": request.address or None,
            "country": request.country or None,
            "postal_address": request.postal_address or None,
        }

        with transaction(self.db):
            submission = self.resolver.resolve(None, mobile)
            now = utcnow()
            created = submission is None

            if created:
                submission = Submission(**fields)
                submission.stamp_created(now)
                submission.restart_survey(now)
                self.db.add(submission)
                self.db.flush()
                SubmissionHistory.record(
                    self.db, submission.id, ChangeType.WEB_SUBMIT_CREATE, {"defaults": fields}
                )
            else:
                before = submission.snapshot()
                for field, value in fields.items():
                    setattr(submission, field, value)
                submission.restart_survey(now)
                self.db.flush()
                SubmissionHistory.record(
                    self.db,
                    submission.id,
                    ChangeType.WEB_SUBMIT_UPDATE,
                    {"before": before, "after": submission.snapshot()},
                )

        logger.info(
            f"Web form {'created' if created else 'restarted'} survey for submission {submission.id}",
            extra={"submission_id": submission.id},
        )
        self.messenger.send(
            mobile,
            "greeting",
            name=fields["name"] or "Participant",
            question=self.messenger.question_set.question_at(0),
        )

        return {
            "success": True,
            "created": created,
            "message": "Survey initiated" if created else "Survey restarted",
        }
