"""Pydantic request models for the form API.

The browser front end posts camelCase JSON; models accept both camelCase and
snake_case. Required-field checks live in the services so that every missing
field is reported with the same error shape, before any mutation.
"""

from datetime import date
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class _FormModel(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


class WebFormSubmission(_FormModel):
    """One-time web form that starts the SMS survey."""
    name: Optional[str] = None
    mobile: Optional[str] = None
    phone: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    country: Optional[str] = None
    postal_address: Optional[str] = None
    consent: Optional[bool] = None


class InitialSubmitRequest(_FormModel):
    """Step A web form that issues the Step-B link."""
    email: Optional[str] = None
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    name: Optional[str] = None
    phone: Optional[str] = None
    mobile: Optional[str] = None
    consent: Optional[bool] = None


class RegisterRequest(_FormModel):
    """Registration with duplicate detection and confirm-update flow.

    Attributes:
        confirm_update: Caller confirmed overwriting an existing record
        restart_survey: Reset the SMS survey as part of the update
        idempotency_key: Replays the first response for retried requests
    """
    name: Optional[str] = None
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    email: Optional[str] = None
    phone: Optional[str] = None
    mobile: Optional[str] = None
    confirm_update: bool = Field(default=False, alias="confirmUpdate")
    restart_survey: bool = Field(default=False, alias="restartSurvey")
    idempotency_key: Optional[str] = Field(default=None, alias="idempotencyKey")


class PresignFile(_FormModel):
    name: Optional[str] = Field(default=None, validation_alias=AliasChoices("name", "filename"))
    content_type: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("contentType", "content_type", "type"),
    )


class PresignRequest(_FormModel):
    token: Optional[str] = None
    files: Optional[List[PresignFile]] = None


class ImageObject(_FormModel):
    """Metadata of an uploaded image; only `key` is required to reconcile."""
    key: Optional[str] = None
    url: Optional[str] = None
    content_type: Optional[str] = Field(default=None, alias="contentType")
    size: Optional[int] = None
    uploaded_at: Optional[str] = Field(default=None, alias="uploadedAt")

    def to_stored(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# Step-B fields copied onto the submission as-is when present.
STEP_B_DIRECT_FIELDS = (
    "first_name",
    "last_name",
    "date_of_birth",
    "street_address",
    "address",
    "postal_address",
    "country",
    "gender",
    "age",
    "interested_procedure",
    "prior_weight_loss_surgery",
    "wheelchair_usage",
    "has_secondary_insurance",
    "insurance_employer_name",
    "height_feet",
    "height_inches",
    "weight_lbs",
)


class StepBSubmission(_FormModel):
    """Final Step-B form submission.

    BMI is deliberately absent: it is always derived server-side.
    """
    token: Optional[str] = None
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    date_of_birth: Optional[date] = Field(default=None, alias="dateOfBirth")
    street_address: Optional[str] = Field(default=None, alias="streetAddress")
    address: Optional[str] = None
    postal_address: Optional[str] = None
    country: Optional[str] = None
    gender: Optional[str] = None
    age: Optional[int] = None
    interested_procedure: Optional[str] = Field(default=None, alias="interestedProcedure")
    prior_weight_loss_surgery: Optional[bool] = Field(default=None, alias="priorWeightLossSurgery")
    wheelchair_usage: Optional[bool] = Field(default=None, alias="wheelchairUsage")
    has_secondary_insurance: Optional[bool] = Field(default=None, alias="hasSecondaryInsurance")
    insurance_employer_name: Optional[str] = Field(default=None, alias="insuranceEmployerName")

    height_feet: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("heightFeet", "height_feet")
    )
    height_inches: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("heightInches", "height_inches")
    )
    height_cm: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("heightCm", "height_cm")
    )
    weight_lbs: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("weightLbs", "weight_lbs")
    )
    weight_kg: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("weightKg", "weight_kg")
    )

    image_objects: List[ImageObject] = Field(
        default_factory=list,
        validation_alias=AliasChoices("imageObjects", "image_objects"),
    )

    def metric_inputs(self) -> dict:
        """Raw measurements for BMI resolution."""
        return {
            "height_feet": self.height_feet,
            "height_inches": self.height_inches,
            "height_cm": self.height_cm,
            "weight_lbs": self.weight_lbs,
            "weight_kg": self.weight_kg,
        }

    def field_updates(self) -> dict[str, Any]:
        """Fields explicitly sent by the client, keyed by column name."""
        updates = {}
        for field in STEP_B_DIRECT_FIELDS:
            if field in self.model_fields_set:
                value = getattr(self, field)
                if value is None:
                    continue
                if field in ("height_feet", "height_inches"):
                    value = int(value)
                updates[field] = value
        return updates


class ResendRequest(_FormModel):
    email: Optional[str] = None


class CorsOriginRequest(_FormModel):
    origin: Optional[str] = None
