"""Identity resolution for participants entering through different channels.

A participant may arrive through the SMS web form, the Step A form and the
registration endpoint, each time with a phone number and/or email. The
resolver decides whether an incoming contact is new, belongs to exactly one
existing submission, or is ambiguous. Ambiguity is never guessed away: it is
reported as a ConflictError listing the submissions involved so staff can
merge them by hand.
"""

from typing import Iterable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.exceptions import ConflictError
from app.models.submission import Submission
from app.services.contact import ContactNormalizer
from app.logging_config import get_logger

logger = get_logger(__name__)

# Identity fields a confirmed update may overwrite.
IDENTITY_FIELDS = ("name", "first_name", "last_name", "email", "mobile", "phone")


class IdentityResolver:
    """Matches normalized contacts against stored submissions.

    Lookups lock the matched rows (SELECT ... FOR UPDATE where the database
    supports it) so the check-then-write that follows happens against rows no
    concurrent request can change underneath it.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_by_phone(self, phone: Optional[str]) -> List[Submission]:
        """Submissions whose mobile or phone equals the normalized number."""
        if not phone:
            return []
        return list(
            self.db.execute(
                select(Submission)
                .where(or_(Submission.mobile == phone, Submission.phone == phone))
                .order_by(Submission.id)
                .with_for_update()
            ).scalars()
        )

    def find_by_email(self, email: Optional[str]) -> List[Submission]:
        if not email:
            return []
        return list(
            self.db.execute(
                select(Submission)
                .where(Submission.email == email)
                .order_by(Submission.id)
                .with_for_update()
            ).scalars()
        )

    def resolve(self, email: Optional[str], phone: Optional[str]) -> Optional[Submission]:
        """
        Find the single submission an incoming contact belongs to.

        Phone matches take priority over email matches.

        Args:
            email: Normalized email (or None)
            phone: Normalized phone (or None)

        Returns:
            The matching submission, or None when the contact is new

        Raises:
            ConflictError: More than one submission matches the phone, more
                than one matches the email, or the phone and the email match
                two different submissions
        """
        phone_matches = self.find_by_phone(phone)
        if len(phone_matches) > 1:
            ids = _ids(phone_matches)
            logger.warning(
                f"Identity conflict: {len(ids)} records for phone "
                f"{ContactNormalizer.mask_for_logging(phone)}: {ids}"
            )
            raise ConflictError("multiple records found for phone", matches=ids)

        email_matches = self.find_by_email(email)
        if len(email_matches) > 1:
            ids = _ids(email_matches)
            logger.warning(f"Identity conflict: {len(ids)} records for email: {ids}")
            raise ConflictError("multiple records found for email", matches=ids)

        by_phone = phone_matches[0] if phone_matches else None
        by_email = email_matches[0] if email_matches else None

        if by_phone is not None and by_email is not None and by_phone.id != by_email.id:
            ids = [by_phone.id, by_email.id]
            logger.warning(f"Identity conflict: phone and email match different records: {ids}")
            raise ConflictError(
                "phone and email belong to different records",
                matches=ids,
            )

        return by_phone or by_email


def compute_changes(existing: Submission, incoming: dict) -> dict:
    """
    Field-level diff between a stored submission and incoming identity values.

    Empty or missing incoming values never overwrite stored ones; values are
    compared as strings so "5" and 5 are not a change.

    Example:
        >>> compute_changes(sub, {"email": "new@example.com", "phone": None})
        {'email': 'new@example.com'}
    """
    changes = {}
    for field in IDENTITY_FIELDS:
        if field not in incoming:
            continue
        value = incoming[field]
        if value is None or value == "":
            continue
        current = getattr(existing, field)
        if current is None or str(value) != str(current):
            changes[field] = value
    return changes


def exists_note(existing: Submission, email: Optional[str], phone: Optional[str]) -> str:
    """User-facing hint explaining which contact detail is already on file."""
    if existing.mobile and existing.mobile != phone:
        return f"This email is registered with {ContactNormalizer.masked_hint(existing.mobile)}"
    if existing.email and existing.email != email:
        return f"This phone is registered to {existing.email}"
    return "User already exists"


def _ids(submissions: Iterable[Submission]) -> List[int]:
    return [s.id for s in submissions]
