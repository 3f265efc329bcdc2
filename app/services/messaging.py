"""Outbound participant messages.

Renders a named template from the question set and hands it to the SMS
transport. Callers invoke this only after their transaction has committed;
a failed send is logged and reported, never raised, so it cannot undo state
that is already durable.
"""

from typing import Optional

from app.config import Settings, get_settings
from app.schemas.questions import QuestionSet
from app.services.template_renderer import (
    TemplateRenderError,
    TemplateRenderer,
    get_template_renderer,
)
from app.services.twilio_client import SendResult, SmsSender
from app.logging_config import get_logger

logger = get_logger(__name__)


class Messenger:
    """Template-aware wrapper around SmsSender."""

    def __init__(
        self,
        sender: SmsSender,
        question_set: QuestionSet,
        settings: Optional[Settings] = None,
        renderer: Optional[TemplateRenderer] = None,
    ):
        self.sender = sender
        self.question_set = question_set
        self.settings = settings or get_settings()
        self.renderer = renderer or get_template_renderer()

    def render(self, template_name: str, **context) -> str:
        """Render one of the question set's message templates.

        Raises:
            TemplateRenderError: If the template references a missing variable
        """
        template = getattr(self.question_set.messages, template_name)
        context.setdefault("calendly_url", self.settings.calendly_url)
        return self.renderer.render(template, context)

    def send(self, to: Optional[str], template_name: str, **context) -> SendResult:
        """Render and send; never raises."""
        try:
            body = self.render(template_name, **context)
        except TemplateRenderError as e:
            logger.error(f"Could not render '{template_name}' message: {e}")
            return SendResult(success=False, error="template_error")
        return self.sender.send(to, body)
