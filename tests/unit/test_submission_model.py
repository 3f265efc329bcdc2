"""Unit tests for Submission model helper methods.

These tests verify lifecycle helpers without requiring a database connection.
"""

from datetime import datetime, timezone

from app.models.submission import (
    Submission,
    SubmissionStatus,
    derive_full_name,
    format_created_at_us,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def make(**fields) -> Submission:
    values = {
        "status": SubmissionStatus.STARTED.value,
        "current_step": 0,
        "answers": {},
        "survey_nudge_count": 0,
        "step_b_nudge_count": 0,
    }
    values.update(fields)
    return Submission(**values)


class TestSurveyHelpers:

    def test_record_answer_stores_under_step_key(self):
        sub = make(survey_nudge_count=3)

        sub.record_answer(2, "Sleeve", NOW)

        assert sub.answers == {"q2_answer": "Sleeve"}
        assert sub.last_active == NOW
        assert sub.survey_nudge_count == 0

    def test_record_answer_assigns_new_dict(self):
        original = {"q0_answer": "01/01/1980"}
        sub = make(answers=original)

        sub.record_answer(1, "5ft 10in", NOW)

        assert sub.answers is not original
        assert original == {"q0_answer": "01/01/1980"}

    def test_restart_survey(self):
        sub = make(
            status=SubmissionStatus.COMPLETED.value,
            current_step=5,
            answers={"q0_answer": "x"},
            survey_nudge_count=2,
        )

        sub.restart_survey(NOW)

        assert sub.status == SubmissionStatus.STARTED.value
        assert sub.current_step == 0
        assert sub.answers == {}
        assert sub.survey_nudge_count == 0
        assert sub.last_active == NOW

    def test_advance_and_complete(self):
        sub = make(current_step=1)

        sub.advance_step()
        sub.mark_completed()

        assert sub.current_step == 2
        assert sub.is_started is False


class TestStepBHelpers:

    def test_issue_token_reopens_step_b(self):
        sub = make(step_b_completed=True)

        sub.issue_step_b_token("tok", NOW)

        assert sub.step_b_token == "tok"
        assert sub.step_b_token_issued_at == NOW
        assert sub.step_b_completed is False

    def test_issue_token_without_reopen(self):
        sub = make(step_b_completed=True)

        sub.issue_step_b_token("tok", NOW, reopen=False)

        assert sub.step_b_token == "tok"
        assert sub.step_b_completed is True

    def test_record_nudge(self):
        sub = make(step_b_nudge_count=1)

        sub.record_step_b_nudge(NOW)

        assert sub.step_b_nudge_count == 2
        assert sub.step_b_last_nudge_at == NOW


class TestPresentation:

    def test_derive_full_name(self):
        assert derive_full_name("Ada", "Lovelace") == "Ada Lovelace"
        assert derive_full_name("Ada", None) == "Ada"
        assert derive_full_name("Ada", "Lovelace", "Countess") == "Countess"
        assert derive_full_name(None, None) is None

    def test_created_at_us_uses_eastern_time(self):
        assert format_created_at_us(NOW) == "3/1/2025, 7:00:00 AM"

    def test_contact_number_prefers_mobile(self):
        assert make(mobile="+1555", phone="+1666").contact_number == "+1555"
        assert make(phone="+1666").contact_number == "+1666"

    def test_to_public_reports_metric_units(self):
        sub = make(
            id=4,
            first_name="Ada",
            last_name="Lovelace",
            height_feet=5,
            height_inches=10,
            weight_lbs=180.0,
            bmi=25.82,
        )

        public = sub.to_public()

        assert public["fullName"] == "Ada Lovelace"
        assert public["height"] == 178
        assert public["weight"] == 81.6
        assert public["bmi"] == 25.8

    def test_repr_masks_phone(self):
        assert "...4567" in repr(make(mobile="+15551234567"))
        assert "+1555" not in repr(make(mobile="+15551234567"))
