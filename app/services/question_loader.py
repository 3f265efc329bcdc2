"""Question set loader with caching and validation.

This module loads the SMS question set from a YAML file, validates it against
the Pydantic schema, and caches the result. The cached set is shared by the
survey state machine, the registration flows and the reminder scheduler so a
participant's `current_step` always indexes the same list.
"""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from app.config import get_settings
from app.schemas.questions import QuestionSet
from app.services.template_renderer import TemplateRenderError, get_template_renderer
from app.logging_config import get_logger

logger = get_logger(__name__)


class QuestionSetNotFoundError(Exception):
    """Raised when the question set file is missing."""
    pass


class QuestionSetValidationError(Exception):
    """Raised when the question set fails validation."""
    pass


class QuestionLoader:
    """Service for loading and caching the question set."""

    def __init__(self, path: Optional[str] = None):
        """Initialize loader.

        Args:
            path: Path to the question set YAML (defaults to settings.questions_file)
        """
        if path is None:
            path = get_settings().questions_file
        self.path = Path(path)
        self._cached: Optional[QuestionSet] = None

        if not self.path.exists():
            logger.warning(f"Question set file not found: {self.path}")

    def load(self) -> QuestionSet:
        """Load and validate the question set, caching the result.

        Returns:
            Validated QuestionSet

        Raises:
            QuestionSetNotFoundError: If the file doesn't exist
            QuestionSetValidationError: If the file fails validation or a message
                template references a variable it is not sent with
        """
        if self._cached is not None:
            return self._cached

        if not self.path.exists():
            raise QuestionSetNotFoundError(f"Question set not found at {self.path}")

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error in {self.path}: {e}")
            raise QuestionSetValidationError(f"Invalid YAML in {self.path}: {e}")

        if not isinstance(raw_data, dict):
            raise QuestionSetValidationError(f"{self.path} must contain a mapping")

        try:
            question_set = QuestionSet(**raw_data)
        except ValidationError as e:
            logger.error(f"Validation error for question set {self.path}: {e}")
            raise QuestionSetValidationError(f"Validation failed for {self.path}: {e}")

        try:
            get_template_renderer().check_messages(question_set.messages.model_dump())
        except TemplateRenderError as e:
            logger.error(f"Message templates in {self.path} are invalid: {e}")
            raise QuestionSetValidationError(f"Invalid message templates in {self.path}: {e}")

        logger.info(
            f"Loaded question set {question_set.metadata.id} "
            f"(version {question_set.metadata.version}, {len(question_set)} questions)"
        )
        self._cached = question_set
        return question_set

    def clear_cache(self) -> None:
        """Drop the cached question set so the next load re-reads the file."""
        self._cached = None
        logger.info("Question set cache cleared")


# Global singleton instance
_loader_instance: Optional[QuestionLoader] = None


def get_question_loader() -> QuestionLoader:
    """Get global QuestionLoader instance."""
    global _loader_instance
    if _loader_instance is None:
        _loader_instance = QuestionLoader()
    return _loader_instance


def get_question_set() -> QuestionSet:
    """Shortcut used as a FastAPI dependency."""
    return get_question_loader().load()
