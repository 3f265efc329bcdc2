"""Integration tests for the SMS survey engine."""

import pytest

from app.models.history import ChangeType, SubmissionHistory
from app.models.submission import SubmissionStatus
from app.services.survey_engine import SurveyEngine

PHONE = "+15551234567"


@pytest.fixture
def engine(db_session, question_set, messenger):
    return SurveyEngine(db_session, question_set, messenger)


def history_types(db_session, submission_id):
    return [entry.change_type for entry in SubmissionHistory.for_submission(db_session, submission_id)]


class TestProcessAnswer:

    def test_first_answer_advances(self, engine, db_session, make_submission, sms_sender):
        sub = make_submission(mobile=PHONE, survey_nudge_count=2)

        outcome = engine.process_answer("+1 (555) 123-4567", "  1980-12-10 ")

        assert outcome.answered_step == 0
        assert outcome.completed is False
        assert outcome.send_result.success is True

        db_session.refresh(sub)
        assert sub.current_step == 1
        assert sub.answers == {"q0_answer": "1980-12-10"}
        assert sub.survey_nudge_count == 0
        assert sms_sender.sent == [(PHONE, "What is your height?")]
        assert history_types(db_session, sub.id) == [ChangeType.SMS_ANSWER, ChangeType.SMS_ADVANCE]

    def test_last_answer_completes(self, engine, db_session, make_submission, sms_sender):
        sub = make_submission(mobile=PHONE, current_step=2, answers={"q0_answer": "a", "q1_answer": "b"})

        outcome = engine.process_answer(PHONE, "180 lbs")

        assert outcome.completed is True
        db_session.refresh(sub)
        assert sub.status == SubmissionStatus.COMPLETED.value
        assert sub.current_step == 2
        assert sub.answers["q2_answer"] == "180 lbs"
        assert history_types(db_session, sub.id) == [ChangeType.SMS_ANSWER, ChangeType.SMS_COMPLETE]

        [(to, body)] = sms_sender.sent
        assert to == PHONE
        assert body.startswith("Thank you! You have completed the survey.")

    def test_step_beyond_questions_completes_and_keeps_reply(
        self, engine, db_session, make_submission, sms_sender
    ):
        sub = make_submission(mobile=PHONE, current_step=5)

        outcome = engine.process_answer(PHONE, "late")

        assert outcome.completed is True
        db_session.refresh(sub)
        assert sub.status == SubmissionStatus.COMPLETED.value
        assert sub.answers == {}

        [entry] = SubmissionHistory.for_submission(db_session, sub.id)
        assert entry.change_type == ChangeType.SMS_COMPLETE
        assert entry.data == {"step": 5, "unplacedAnswer": "late"}

        [(to, body)] = sms_sender.sent
        assert to == PHONE
        assert body.startswith("Thank you! You have completed the survey.")

    def test_matches_secondary_phone(self, engine, db_session, make_submission, sms_sender):
        sub = make_submission(phone=PHONE)

        outcome = engine.process_answer(PHONE, "yes")

        assert outcome.submission_id == sub.id
        assert sms_sender.sent[0][0] == PHONE

    def test_full_sequence(self, engine, db_session, make_submission, sms_sender):
        sub = make_submission(mobile=PHONE)

        for answer in ("1980-12-10", "5ft 10in", "180"):
            engine.process_answer(PHONE, answer)

        db_session.refresh(sub)
        assert sub.status == SubmissionStatus.COMPLETED.value
        assert sub.answers == {"q0_answer": "1980-12-10", "q1_answer": "5ft 10in", "q2_answer": "180"}
        assert len(sms_sender.bodies_to(PHONE)) == 3


class TestNoActiveSurvey:

    def test_unknown_number(self, engine, sms_sender):
        assert engine.process_answer("+15550009999", "hello") is None
        assert sms_sender.sent == []

    def test_completed_submission_ignored(self, engine, make_submission):
        make_submission(mobile=PHONE, status=SubmissionStatus.COMPLETED.value)

        assert engine.process_answer(PHONE, "hello") is None

    def test_number_without_digits(self, engine):
        assert engine.process_answer("anonymous", "hello") is None


def test_failed_send_keeps_recorded_answer(engine, db_session, make_submission, sms_sender):
    sub = make_submission(mobile=PHONE)
    sms_sender.failing.add(PHONE)

    outcome = engine.process_answer(PHONE, "1980-12-10")

    assert outcome.send_result.success is False
    db_session.refresh(sub)
    assert sub.current_step == 1
    assert sub.answers == {"q0_answer": "1980-12-10"}
