"""Body metric derivation (height, weight, BMI).

BMI is always computed server-side in imperial units:
BMI = 703 * weight_lbs / height_inches^2, rounded to 2 decimals.
Metric inputs are converted to pounds and inches first.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from app.models.submission import CM_PER_INCH, KG_PER_LB

BMI_IMPERIAL_FACTOR = 703


@dataclass(frozen=True)
class BodyMetrics:
    """Normalized metrics ready to be written onto a submission.

    Fields that could not be resolved are None and left out of the updates.
    """
    weight_lbs: Optional[float]
    height_feet: Optional[int]
    height_inches: Optional[int]
    bmi: Optional[float]

    def as_updates(self) -> dict:
        updates = {
            "weight_lbs": self.weight_lbs,
            "height_feet": self.height_feet,
            "height_inches": self.height_inches,
            "bmi": self.bmi,
        }
        return {field: value for field, value in updates.items() if value is not None}


def compute_bmi(weight_lbs: float, height_inches: float) -> float:
    """
    Imperial BMI rounded to 2 decimals.

    Raises:
        ValueError: If height is not positive

    Example:
        >>> compute_bmi(180, 70)
        25.82
    """
    if height_inches <= 0:
        raise ValueError("height must be positive")
    return round(BMI_IMPERIAL_FACTOR * weight_lbs / (height_inches * height_inches), 2)


def _positive(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    number = float(value)
    return number if number > 0 else None


def resolve_weight_lbs(incoming: Mapping[str, Any], existing: Any = None) -> Optional[float]:
    """Weight in pounds from the incoming fields, else from the stored record."""
    lbs = _positive(incoming.get("weight_lbs"))
    if lbs is not None:
        return lbs
    kg = _positive(incoming.get("weight_kg"))
    if kg is not None:
        return kg * KG_PER_LB
    if existing is not None:
        return _positive(getattr(existing, "weight_lbs", None))
    return None


def resolve_height_inches(incoming: Mapping[str, Any], existing: Any = None) -> Optional[float]:
    """Total height in inches from the incoming fields, else from the record.

    Feet/inches win over centimeters when both are supplied.
    """
    feet = incoming.get("height_feet")
    inches = incoming.get("height_inches")
    if feet is not None or inches is not None:
        return float(feet or 0) * 12 + float(inches or 0)

    cm = _positive(incoming.get("height_cm"))
    if cm is not None:
        return cm / CM_PER_INCH

    if existing is not None:
        stored_feet = getattr(existing, "height_feet", None)
        stored_inches = getattr(existing, "height_inches", None)
        if stored_feet is not None or stored_inches is not None:
            return float(stored_feet or 0) * 12 + float(stored_inches or 0)
    return None


def split_height(total_inches: float) -> Tuple[int, int]:
    """Whole feet and rounded inches, carrying 12 inches into the next foot."""
    feet = int(total_inches // 12)
    inches = round(total_inches - feet * 12)
    if inches == 12:
        feet += 1
        inches = 0
    return feet, inches


def resolve_body_metrics(
    incoming: Mapping[str, Any],
    existing: Any = None,
) -> Optional[BodyMetrics]:
    """
    Derive normalized metrics from whatever measurements are resolvable.

    A lone height or weight is still normalized so it is stored; BMI is only
    filled once both are known.

    Args:
        incoming: Snake-case fields from a Step-B submission
            (weight_lbs, weight_kg, height_feet, height_inches, height_cm)
        existing: Stored submission to fall back on for missing values

    Returns:
        BodyMetrics, or None when neither measurement is available
    """
    weight_lbs = resolve_weight_lbs(incoming, existing)
    total_inches = resolve_height_inches(incoming, existing)
    if total_inches is not None and total_inches <= 0:
        total_inches = None
    if weight_lbs is None and total_inches is None:
        return None

    feet = inches = bmi = None
    if total_inches is not None:
        feet, inches = split_height(total_inches)
    if weight_lbs is not None and total_inches is not None:
        bmi = compute_bmi(weight_lbs, total_inches)

    return BodyMetrics(
        weight_lbs=round(weight_lbs, 2) if weight_lbs is not None else None,
        height_feet=feet,
        height_inches=inches,
        bmi=bmi,
    )
