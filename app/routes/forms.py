"""Web form endpoints: survey start, Step A, registration and Step B.

Handlers only parse input and delegate; services raise IntakeError
subclasses which the application-level handler turns into JSON errors.
"""

from fastapi import APIRouter, Depends, Request

from app.dependencies import (
    extract_step_b_token,
    get_registration_service,
    get_step_b_service,
)
from app.schemas.forms import (
    InitialSubmitRequest,
    PresignRequest,
    RegisterRequest,
    ResendRequest,
    StepBSubmission,
    WebFormSubmission,
)
from app.services.registration import RegistrationService
from app.services.step_b import StepBService

router = APIRouter()


@router.post("/api/submit-form")
def submit_form(
    payload: WebFormSubmission,
    service: RegistrationService = Depends(get_registration_service),
) -> dict:
    """Start (or restart) the SMS survey for a mobile number."""
    return service.submit_web_form(payload)


@router.post("/api/form/initial-submit")
def initial_submit(
    payload: InitialSubmitRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> dict:
    """Step A: capture contact details and text the Step-B link."""
    return service.initial_submit(payload)


@router.post("/api/form/register")
def register(
    payload: RegisterRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> dict:
    """Register with duplicate detection.

    Example response (existing participant, not yet confirmed):
        {
            "status": "exists",
            "existingUserId": 12,
            "phoneLast4": "4567",
            "promptRestartSurvey": true,
            ...
        }
    """
    return service.register(payload)


@router.post("/api/form/presign")
def presign(
    payload: PresignRequest,
    request: Request,
    service: StepBService = Depends(get_step_b_service),
) -> dict:
    return service.presign(extract_step_b_token(request, payload.token), payload)


@router.post("/api/form/submit")
def submit_step_b(
    payload: StepBSubmission,
    request: Request,
    service: StepBService = Depends(get_step_b_service),
) -> dict:
    """Final Step-B submission; BMI is derived server-side."""
    return service.submit(extract_step_b_token(request, payload.token), payload)


@router.post("/api/form/resend-stepb")
def resend_step_b(
    payload: ResendRequest,
    service: StepBService = Depends(get_step_b_service),
) -> dict:
    return service.resend(payload.email)


@router.get("/api/form/status")
def step_b_status(
    request: Request,
    service: StepBService = Depends(get_step_b_service),
) -> dict:
    return service.status(extract_step_b_token(request))
