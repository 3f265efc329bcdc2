"""Jinja2 rendering for outbound SMS templates.

Message templates live in the question set file and are edited by staff, so
they are checked when the file is loaded: every template must parse and may
only reference variables its send site provides. Rendering uses
StrictUndefined, which makes a missing variable fail instead of texting a
participant a blank.
"""

from typing import Dict, FrozenSet, Mapping, Optional

from jinja2 import Environment, StrictUndefined, Template, TemplateError, meta

from app.logging_config import get_logger

logger = get_logger(__name__)

# Context each message is rendered with, by template name.
TEMPLATE_VARIABLES: Dict[str, FrozenSet[str]] = {
    "greeting": frozenset({"name", "question"}),
    "completion": frozenset(),
    "survey_reminder": frozenset({"question"}),
    "step_b_invite": frozenset({"name", "link"}),
    "step_b_registered": frozenset({"link"}),
    "step_b_updated": frozenset({"link"}),
    "step_b_resend": frozenset({"link"}),
    "step_b_reminder": frozenset({"link"}),
    "step_b_thanks": frozenset(),
}

# Filled in by Messenger for every message.
COMMON_VARIABLES = frozenset({"calendly_url"})


class TemplateRenderError(Exception):
    """Raised when a message template cannot be parsed or rendered."""
    pass


class TemplateRenderer:
    """Compiles and renders SMS templates.

    Compiled templates are cached by their source text; the question set is
    loaded once, so the cache holds one entry per message.
    """

    def __init__(self):
        # SMS bodies are plain text; links must keep a raw '&'.
        self.env = Environment(autoescape=False, undefined=StrictUndefined)
        self._compiled: Dict[str, Template] = {}

    def _compile(self, template_text: str) -> Template:
        template = self._compiled.get(template_text)
        if template is None:
            try:
                template = self.env.from_string(template_text)
            except TemplateError as e:
                raise TemplateRenderError(f"Invalid template: {e}")
            self._compiled[template_text] = template
        return template

    def render(self, template_text: str, context: Mapping[str, object]) -> str:
        """Render template text with context variables.

        Raises:
            TemplateRenderError: If the template is invalid or a variable is missing

        Example:
            >>> renderer = TemplateRenderer()
            >>> renderer.render("Reminder: {{ question }}", {"question": "Age?"})
            'Reminder: Age?'
        """
        template = self._compile(template_text)
        try:
            return template.render(context)
        except TemplateError as e:
            logger.error(f"Template rendering error: {e}")
            raise TemplateRenderError(f"Failed to render template: {e}")

    def variables_of(self, template_text: str) -> FrozenSet[str]:
        """Names a template reads from its context."""
        try:
            parsed = self.env.parse(template_text)
        except TemplateError as e:
            raise TemplateRenderError(f"Invalid template: {e}")
        return frozenset(meta.find_undeclared_variables(parsed))

    def check_messages(self, messages: Mapping[str, str]) -> None:
        """Verify every message template against the context it is sent with.

        Raises:
            TemplateRenderError: Listing each template that fails to parse or
                references a variable its send site does not provide
        """
        problems = []
        for name, text in messages.items():
            allowed = TEMPLATE_VARIABLES.get(name, frozenset()) | COMMON_VARIABLES
            try:
                unknown = self.variables_of(text) - allowed
            except TemplateRenderError as e:
                problems.append(f"{name}: {e}")
                continue
            if unknown:
                problems.append(f"{name}: unknown variable(s) {', '.join(sorted(unknown))}")

        if problems:
            raise TemplateRenderError("; ".join(problems))


_renderer_instance: Optional[TemplateRenderer] = None


def get_template_renderer() -> TemplateRenderer:
    global _renderer_instance
    if _renderer_instance is None:
        _renderer_instance = TemplateRenderer()
    return _renderer_instance
