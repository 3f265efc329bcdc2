"""Unit tests for BMI and body metric derivation."""

from types import SimpleNamespace

import pytest

from app.services.health_metrics import (
    compute_bmi,
    resolve_body_metrics,
    resolve_height_inches,
    resolve_weight_lbs,
)


class TestComputeBmi:

    def test_imperial_formula_rounded_to_two_decimals(self):
        # 5ft10in, 180 lb
        assert compute_bmi(180, 70) == 25.82

    def test_non_positive_height_rejected(self):
        with pytest.raises(ValueError):
            compute_bmi(180, 0)


class TestResolveInputs:

    def test_pounds_win_over_kilograms(self):
        assert resolve_weight_lbs({"weight_lbs": 150, "weight_kg": 90}) == 150

    def test_kilograms_converted(self):
        assert resolve_weight_lbs({"weight_kg": 100}) == pytest.approx(220.46226218)

    def test_weight_falls_back_to_stored_value(self):
        existing = SimpleNamespace(weight_lbs=200.0)
        assert resolve_weight_lbs({}, existing) == 200.0

    def test_feet_and_inches_combined(self):
        assert resolve_height_inches({"height_feet": 5, "height_inches": 10}) == 70

    def test_centimeters_converted(self):
        assert resolve_height_inches({"height_cm": 177.8}) == pytest.approx(70.0)

    def test_height_falls_back_to_stored_value(self):
        existing = SimpleNamespace(height_feet=6, height_inches=1)
        assert resolve_height_inches({}, existing) == 73


class TestResolveBodyMetrics:

    def test_imperial_payload(self):
        metrics = resolve_body_metrics(
            {"height_feet": 5, "height_inches": 10, "weight_lbs": 180}
        )

        assert metrics.bmi == 25.82
        assert metrics.height_feet == 5
        assert metrics.height_inches == 10
        assert metrics.weight_lbs == 180

    def test_metric_payload_matches_imperial_within_rounding(self):
        metrics = resolve_body_metrics({"height_cm": 177.8, "weight_kg": 81.6466})

        assert metrics.bmi == pytest.approx(25.82, abs=0.02)
        assert metrics.height_feet == 5
        assert metrics.height_inches == 10
        assert metrics.weight_lbs == pytest.approx(180.0, abs=0.01)

    def test_partial_payload_completed_from_record(self):
        existing = SimpleNamespace(weight_lbs=180.0, height_feet=None, height_inches=None)

        metrics = resolve_body_metrics({"height_feet": 5, "height_inches": 10}, existing)

        assert metrics.bmi == 25.82

    def test_rounded_inches_roll_over_into_feet(self):
        metrics = resolve_body_metrics({"height_cm": 182.8, "weight_lbs": 180})

        # 182.8 cm = 71.97 in -> 6ft 0in, not 5ft 12in
        assert (metrics.height_feet, metrics.height_inches) == (6, 0)

    def test_nothing_resolvable_yields_nothing(self):
        assert resolve_body_metrics({}) is None
        assert resolve_body_metrics({"height_cm": 0}) is None

    def test_lone_metric_height_kept_without_bmi(self):
        metrics = resolve_body_metrics({"height_cm": 177.8})

        assert metrics.as_updates() == {"height_feet": 5, "height_inches": 10}
        assert metrics.bmi is None

    def test_lone_metric_weight_kept_without_bmi(self):
        metrics = resolve_body_metrics({"weight_kg": 81.6466})

        assert metrics.as_updates() == {"weight_lbs": pytest.approx(180.0, abs=0.01)}

    def test_as_updates_never_contains_foreign_keys(self):
        metrics = resolve_body_metrics({"height_feet": 5, "height_inches": 10, "weight_lbs": 180})

        assert set(metrics.as_updates()) == {"weight_lbs", "height_feet", "height_inches", "bmi"}
