"""Pydantic schemas for the SMS question set YAML definition.

The question set holds the ordered SMS questions and every outbound message
template. Templates use Jinja2 syntax and are rendered with the participant
context (name, question, link, calendly_url).
"""

from pydantic import BaseModel, Field, field_validator


class QuestionSetMetadata(BaseModel):
    """Question set identification.

    Attributes:
        id: Unique identifier (matches YAML filename)
        name: Human-readable name
        version: Semantic version, recorded in logs
    """
    id: str = Field(..., min_length=1, description="Question set identifier")
    name: str = Field(..., min_length=1, description="Question set name")
    version: str = Field(..., pattern=r'^\d+\.\d+\.\d+$', description="Semantic version")

    @field_validator('id')
    @classmethod
    def id_alphanumeric(cls, v):
        """Ensure ID is alphanumeric with underscores/hyphens only."""
        if not v.replace('_', '').replace('-', '').isalnum():
            raise ValueError('Question set ID must be alphanumeric with underscores/hyphens')
        return v


class MessageTemplates(BaseModel):
    """Outbound SMS templates.

    Attributes:
        greeting: First message of the SMS survey
        completion: Sent after the last answer
        survey_reminder: Stuck-survey reminder
        step_b_invite: Step-B link after the initial web form
        step_b_registered: Step-B link after registration
        step_b_updated: Step-B link after a contact change
        step_b_resend: Manual resend of the Step-B link
        step_b_reminder: Scheduled Step-B reminder
        step_b_thanks: Sent after the Step-B form is submitted
    """
    greeting: str = Field(default="Hi {{ name }}! {{ question }}")
    completion: str = Field(
        default="Thank you! You have completed the survey.\n\n"
                "Schedule an appointment: {{ calendly_url }}"
    )
    survey_reminder: str = Field(default="Reminder: {{ question }}")
    step_b_invite: str = Field(
        default="Thanks for filling out the initial form, {{ name }}.\n\n"
                "Please upload a photo of the FRONT and BACK of your insurance card "
                "and provide a bit more information at the link below:\n\n"
                "{{ link }}\n\nThanks!"
    )
    step_b_registered: str = Field(
        default="Thanks for registering. Please complete the rest of your form here: {{ link }}"
    )
    step_b_updated: str = Field(
        default="Your details were updated. Complete your form here: {{ link }}"
    )
    step_b_resend: str = Field(default="Reminder: complete your form {{ link }}")
    step_b_reminder: str = Field(
        default="Reminder: please complete your remaining form here: {{ link }}"
    )
    step_b_thanks: str = Field(
        default="Thanks, we received your information. We will contact you with next steps.\n\n"
                "Schedule an appointment: {{ calendly_url }}"
    )


class QuestionSet(BaseModel):
    """Complete question set definition.

    Root schema for question set YAML files.

    Attributes:
        metadata: Identification and version
        messages: Outbound message templates
        questions: Ordered SMS questions; index = current_step
    """
    metadata: QuestionSetMetadata
    messages: MessageTemplates = Field(default_factory=MessageTemplates)
    questions: list[str] = Field(..., min_length=1)

    @field_validator('questions')
    @classmethod
    def questions_not_blank(cls, v):
        """Reject blank questions; an empty SMS cannot be sent."""
        for index, question in enumerate(v):
            if not question or not question.strip():
                raise ValueError(f"Question {index} is blank")
        return [question.strip() for question in v]

    def __len__(self) -> int:
        return len(self.questions)

    def question_at(self, step: int) -> str:
        """Question for a step index.

        Raises:
            IndexError: If step is outside [0, len(questions))
        """
        if step < 0 or step >= len(self.questions):
            raise IndexError(f"No question at step {step}")
        return self.questions[step]
