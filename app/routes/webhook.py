"""Twilio webhook endpoint for incoming SMS answers.

Inbound messages are matched to a participant with an active SMS survey and
fed to the survey engine. Replies go out through the REST API, so the webhook
always answers with an empty TwiML document, including when the sender is
unknown, the payload is malformed, or processing fails. A non-2xx answer
would only make Twilio retry the same message.
"""

from fastapi import APIRouter, Depends, Request, Response
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from app.dependencies import get_survey_engine
from app.exceptions import IntakeError
from app.middleware.twilio_auth import verify_twilio_signature
from app.schemas.twilio import TwilioWebhookRequest
from app.services.contact import ContactNormalizer
from app.services.survey_engine import SurveyEngine
from app.services.twilio_client import create_empty_response
from app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


def twiml_ack() -> Response:
    return Response(content=create_empty_response(), media_type="application/xml")


@router.post("/api/sms-webhook", dependencies=[Depends(verify_twilio_signature)])
@router.post("/sms", dependencies=[Depends(verify_twilio_signature)])
async def sms_webhook(
    request: Request,
    engine: SurveyEngine = Depends(get_survey_engine),
) -> Response:
    """Process an incoming SMS from Twilio.

    Flow:
    1. Parse and validate the form payload
    2. Find the sender's STARTED submission (row locked)
    3. Record the answer and commit
    4. Send the next question or the completion message

    Returns:
        Response: Empty TwiML for every outcome
    """
    form = await request.form()
    try:
        webhook_request = TwilioWebhookRequest(**{key: str(value) for key, value in form.items()})
    except PydanticValidationError as e:
        logger.warning(f"Malformed Twilio webhook payload: {e.error_count()} error(s)")
        return twiml_ack()

    masked = ContactNormalizer.mask_for_logging(webhook_request.sender)
    logger.info(
        f"Received SMS from {masked}: MessageSid={webhook_request.MessageSid}, "
        f"{len(webhook_request.Body)} chars"
    )

    try:
        # Database work and the outbound REST call both block.
        outcome = await run_in_threadpool(
            engine.process_answer, webhook_request.From, webhook_request.Body
        )
    except IntakeError as e:
        logger.error(f"Could not record SMS answer from {masked}: {e.message}")
        return twiml_ack()
    except Exception as e:
        logger.error(f"Unexpected error processing webhook from {masked}: {e}", exc_info=True)
        return twiml_ack()

    if outcome is None:
        logger.info(f"No active survey for {masked}, ignoring message")
    return twiml_ack()
