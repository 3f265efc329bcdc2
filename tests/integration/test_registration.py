"""Integration tests for the registration flows."""

import pytest
from sqlalchemy import func, select

from app.exceptions import ConflictError, ValidationError
from app.models.history import ChangeType, SubmissionHistory
from app.models.submission import Submission, SubmissionStatus
from app.schemas.forms import InitialSubmitRequest, RegisterRequest, WebFormSubmission
from app.services.registration import RegistrationService


@pytest.fixture
def service(db_session, messenger, token_service, settings):
    return RegistrationService(db_session, messenger, token_service, settings=settings)


def count_submissions(db_session) -> int:
    return db_session.execute(select(func.count(Submission.id))).scalar_one()


def history_types(db_session, submission_id):
    return [entry.change_type for entry in SubmissionHistory.for_submission(db_session, submission_id)]


def register_payload(**overrides) -> RegisterRequest:
    data = {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": "Ada@Example.com",
        "phone": "(555) 123-4567",
    }
    data.update(overrides)
    return RegisterRequest(**data)


class TestRegisterCreate:

    def test_creates_submission_with_token(self, service, db_session, token_service, sms_sender):
        response = service.register(register_payload())

        assert response["status"] == "created"
        assert response["phoneLast4"] == "4567"

        sub = db_session.get(Submission, response["id"])
        assert sub.email == "ada@example.com"
        assert sub.mobile == "+5551234567"
        assert sub.name == "Ada Lovelace"
        assert sub.status == SubmissionStatus.STARTED.value
        assert token_service.verify(sub.step_b_token) == "ada@example.com"
        assert history_types(db_session, sub.id) == [ChangeType.REGISTER_CREATE]

        [(to, body)] = sms_sender.sent
        assert to == "+5551234567"
        assert "https://forms.example.com/stepb.html?token=" in body

    @pytest.mark.parametrize("overrides, message", [
        ({"firstName": None, "lastName": None}, "name or firstName\\+lastName required"),
        ({"email": "  "}, "email required"),
        ({"phone": "n/a"}, "phone required"),
    ])
    def test_validation(self, service, db_session, overrides, message):
        with pytest.raises(ValidationError, match=message):
            service.register(register_payload(**overrides))

        assert count_submissions(db_session) == 0

    def test_single_name_is_enough(self, service):
        response = service.register(register_payload(firstName=None, lastName=None, name="Ada"))

        assert response["status"] == "created"


class TestIdempotency:

    def test_same_key_replays_response(self, service, db_session, sms_sender):
        first = service.register(register_payload(idempotencyKey="key-1"))
        second = service.register(register_payload(idempotencyKey="key-1"))

        assert first == second
        assert count_submissions(db_session) == 1
        assert len(sms_sender.sent) == 1

    def test_key_recorded_in_same_transaction(self, service, db_session):
        response = service.register(register_payload(idempotencyKey="key-2"))

        assert SubmissionHistory.find_idempotent_response(db_session, "key-2") == response

    def test_unknown_key_is_processed(self, service, db_session):
        service.register(register_payload(idempotencyKey="key-3"))
        response = service.register(register_payload(
            idempotencyKey="key-4", email="other@example.com", phone="5550000000"
        ))

        assert response["status"] == "created"
        assert count_submissions(db_session) == 2


class TestRegisterExisting:

    def test_exists_without_confirmation(self, service, db_session, make_submission, sms_sender):
        existing = make_submission(email="ada@example.com", mobile="+15559990000", current_step=2)

        response = service.register(register_payload())

        assert response["status"] == "exists"
        assert response["existingUserId"] == existing.id
        assert response["phoneLast4"] == "0000"
        assert response["note"] == "This email is registered with 0000"
        assert response["promptRestartSurvey"] is True
        assert response["currentSurveyStatus"] == {"status": "STARTED", "current_step": 2}
        assert history_types(db_session, existing.id) == []
        assert sms_sender.sent == []

    def test_confirmed_update_writes_diff_and_reissues_token(
        self, service, db_session, make_submission, sms_sender, token_service
    ):
        existing = make_submission(
            email="ada@example.com", mobile="+15559990000", phone="+15559990000", name="Ada"
        )

        response = service.register(register_payload(confirmUpdate=True))

        assert response["status"] == "updated"
        assert response["existingUserId"] == existing.id
        assert set(response["changed"]) == {"name", "first_name", "last_name", "mobile", "phone"}
        assert response["restartApplied"] is False

        db_session.refresh(existing)
        assert existing.mobile == "+5551234567"
        assert token_service.verify(existing.step_b_token) == "ada@example.com"

        [entry] = SubmissionHistory.for_submission(db_session, existing.id)
        assert entry.change_type == ChangeType.REGISTER_UPDATE
        assert entry.data["before"]["mobile"] == "+15559990000"
        assert entry.data["after"]["mobile"] == "+5551234567"

        [(to, body)] = sms_sender.sent
        assert to == "+5551234567"
        assert "updated" in body

    def test_name_only_change_sends_nothing(self, service, make_submission, sms_sender):
        make_submission(email="ada@example.com", mobile="+5551234567", phone="+5551234567", name="Ada")

        response = service.register(register_payload(confirmUpdate=True))

        assert response["status"] == "updated"
        assert "mobile" not in response["changed"]
        assert sms_sender.sent == []

    def test_no_changes_detected(self, service, db_session, make_submission):
        existing = make_submission(
            email="ada@example.com",
            mobile="+5551234567",
            phone="+5551234567",
            name="Ada Lovelace",
            first_name="Ada",
            last_name="Lovelace",
        )

        response = service.register(register_payload(confirmUpdate=True, idempotencyKey="k"))

        assert response == {
            "status": "updated",
            "message": "No changes detected",
            "existingUserId": existing.id,
        }
        assert history_types(db_session, existing.id) == []
        assert SubmissionHistory.find_idempotent_response(db_session, "k") is None

    def test_restart_survey(self, service, db_session, make_submission):
        existing = make_submission(
            email="ada@example.com",
            mobile="+5551234567",
            phone="+5551234567",
            name="Ada Lovelace",
            first_name="Ada",
            last_name="Lovelace",
            status=SubmissionStatus.COMPLETED.value,
            current_step=3,
            answers={"q0_answer": "x"},
        )

        response = service.register(register_payload(confirmUpdate=True, restartSurvey=True))

        assert response["changed"] == ["status", "current_step", "answers"]
        assert response["restartApplied"] is True
        db_session.refresh(existing)
        assert existing.status == SubmissionStatus.STARTED.value
        assert existing.current_step == 0
        assert existing.answers == {}

    def test_conflict_leaves_database_untouched(self, service, db_session, make_submission):
        make_submission(email="x@example.com", mobile="+5551234567")
        make_submission(email="ada@example.com", mobile="+15550000000")

        with pytest.raises(ConflictError) as exc_info:
            service.register(register_payload(confirmUpdate=True))

        assert len(exc_info.value.matches) == 2
        assert count_submissions(db_session) == 2
        assert db_session.execute(select(func.count(SubmissionHistory.id))).scalar_one() == 0


class TestInitialSubmit:

    def payload(self, **overrides):
        data = {
            "email": "ada@example.com",
            "firstName": "Ada",
            "lastName": "Lovelace",
            "phone": "+1 555 123 4567",
            "consent": True,
        }
        data.update(overrides)
        return InitialSubmitRequest(**data)

    def test_creates_and_sends_invite(self, service, db_session, sms_sender, token_service):
        response = service.initial_submit(self.payload())

        assert response["success"] is True
        assert response["created"] is True
        assert response["phoneLast4"] == "4567"

        sub = db_session.execute(select(Submission)).scalar_one()
        assert sub.step_b_completed is False
        assert token_service.verify(sub.step_b_token) == "ada@example.com"
        assert history_types(db_session, sub.id) == [ChangeType.INITIAL_CREATE]

        [(to, body)] = sms_sender.sent
        assert to == "+15551234567"
        assert "Ada" in body and "stepb.html?token=" in body

    def test_updates_existing_and_notes_moved_email(self, service, db_session, make_submission):
        existing = make_submission(email="old@example.com", mobile="+15551234567", step_b_completed=True)

        response = service.initial_submit(self.payload())

        assert response["created"] is False
        assert "old@example.com" in response["note"]
        db_session.refresh(existing)
        assert existing.email == "ada@example.com"
        assert existing.step_b_completed is False
        assert history_types(db_session, existing.id) == [ChangeType.INITIAL_UPDATE]

    @pytest.mark.parametrize("overrides, message", [
        ({"email": None}, "email are required"),
        ({"email": None, "phone": None}, "email and phone are required"),
        ({"consent": False}, "consent is required"),
        ({"lastName": ""}, "firstName and lastName are required"),
    ])
    def test_validation(self, service, overrides, message):
        with pytest.raises(ValidationError, match=message):
            service.initial_submit(self.payload(**overrides))


class TestWebForm:

    def test_new_mobile_starts_survey(self, service, db_session, sms_sender, question_set):
        response = service.submit_web_form(WebFormSubmission(
            name="Ada", mobile="555-123-4567", age=44, consent=True
        ))

        assert response == {"success": True, "created": True, "message": "Survey initiated"}
        sub = db_session.execute(select(Submission)).scalar_one()
        assert sub.status == SubmissionStatus.STARTED.value
        assert sub.current_step == 0
        assert sub.age == 44
        assert sms_sender.sent == [("+5551234567", f"Hi Ada! {question_set.question_at(0)}")]

    def test_existing_mobile_restarts(self, service, db_session, make_submission):
        existing = make_submission(
            mobile="+5551234567", status=SubmissionStatus.COMPLETED.value, current_step=3
        )

        response = service.submit_web_form(WebFormSubmission(mobile="5551234567", consent=True))

        assert response["message"] == "Survey restarted"
        db_session.refresh(existing)
        assert existing.status == SubmissionStatus.STARTED.value
        assert existing.current_step == 0
        assert history_types(db_session, existing.id) == [ChangeType.WEB_SUBMIT_UPDATE]

    def test_greets_participant_without_name(self, service, sms_sender):
        service.submit_web_form(WebFormSubmission(mobile="5551234567", consent=True))

        assert sms_sender.sent[0][1].startswith("Hi Participant!")

    def test_consent_required(self, service):
        with pytest.raises(ValidationError, match="Consent is required"):
            service.submit_web_form(WebFormSubmission(mobile="5551234567"))

    def test_mobile_required(self, service):
        with pytest.raises(ValidationError, match="Mobile is required"):
            service.submit_web_form(WebFormSubmission(consent=True))
