"""Pydantic schemas for data validation.

This package contains the question set definition, inbound webhook payloads
and the form API request models.
"""

from app.schemas.questions import (
    QuestionSetMetadata,
    MessageTemplates,
    QuestionSet,
)
from app.schemas.twilio import TwilioWebhookRequest
from app.schemas.forms import (
    WebFormSubmission,
    InitialSubmitRequest,
    RegisterRequest,
    PresignFile,
    PresignRequest,
    StepBSubmission,
    ResendRequest,
    CorsOriginRequest,
)

__all__ = [
    "QuestionSetMetadata",
    "MessageTemplates",
    "QuestionSet",
    "TwilioWebhookRequest",
    "WebFormSubmission",
    "InitialSubmitRequest",
    "RegisterRequest",
    "PresignFile",
    "PresignRequest",
    "StepBSubmission",
    "ResendRequest",
    "CorsOriginRequest",
]
