"""FastAPI dependency providers for request-scoped services.

Each service is built per request around the request's database session.
Tests swap the leaf providers (get_db, get_sms_sender, get_object_store,
get_question_set, get_token_service) through app.dependency_overrides.
"""

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.database import get_db
from app.schemas.questions import QuestionSet
from app.services.messaging import Messenger
from app.services.object_store import ObjectStore, get_object_store
from app.services.question_loader import get_question_set
from app.services.registration import RegistrationService
from app.services.step_b import StepBService
from app.services.step_b_tokens import StepBTokenService, get_token_service
from app.services.survey_engine import SurveyEngine
from app.services.twilio_client import SmsSender, get_sms_sender


def get_messenger(
    sender: SmsSender = Depends(get_sms_sender),
    question_set: QuestionSet = Depends(get_question_set),
) -> Messenger:
    return Messenger(sender, question_set, settings=get_settings())


def get_registration_service(
    db: Session = Depends(get_db),
    messenger: Messenger = Depends(get_messenger),
    tokens: StepBTokenService = Depends(get_token_service),
) -> RegistrationService:
    return RegistrationService(db, messenger, tokens, settings=get_settings())


def get_step_b_service(
    db: Session = Depends(get_db),
    messenger: Messenger = Depends(get_messenger),
    tokens: StepBTokenService = Depends(get_token_service),
    store: ObjectStore = Depends(get_object_store),
) -> StepBService:
    return StepBService(db, tokens, store, messenger, settings=get_settings())


def get_survey_engine(
    db: Session = Depends(get_db),
    question_set: QuestionSet = Depends(get_question_set),
    messenger: Messenger = Depends(get_messenger),
) -> SurveyEngine:
    return SurveyEngine(db, question_set, messenger)


def extract_step_b_token(request: Request, body_token: Optional[str] = None) -> Optional[str]:
    """
    Step-B token from the first place it is found.

    Order: JSON body `token`, `token` query parameter, X-StepB-Token header,
    then `Authorization: Bearer <token>`.
    """
    if body_token:
        return body_token
    query_token = request.query_params.get("token")
    if query_token:
        return query_token
    header_token = request.headers.get("X-StepB-Token")
    if header_token:
        return header_token.strip()
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None
