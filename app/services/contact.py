"""Contact normalization for identity matching.

Every phone number and email address is normalized at the boundary, before
it is stored or compared, so that the same participant always produces the
same lookup key regardless of how they typed it.
"""

import re
from typing import Optional

_NON_DIGITS = re.compile(r"\D+")


class ContactNormalizer:
    """
    Normalization helpers for phone numbers and emails.

    Phone numbers are reduced to their digits and prefixed with a single
    "+", which makes normalization idempotent:
    normalize_phone(normalize_phone(p)) == normalize_phone(p).

    Usage example:
        from app.services.contact import ContactNormalizer

        phone = ContactNormalizer.normalize_phone("(555) 123-4567")
        logger.info(f"Lookup for {ContactNormalizer.mask_for_logging(phone)}")
    """

    @staticmethod
    def normalize_phone(phone: Optional[str]) -> Optional[str]:
        """
        Strip every non-digit and prefix a single "+".

        Args:
            phone: Raw phone number as entered or as sent by Twilio

        Returns:
            "+" followed by the digits, or None when there are no digits

        Example:
            >>> ContactNormalizer.normalize_phone("+1 (555) 123-4567")
            '+15551234567'
            >>> ContactNormalizer.normalize_phone("n/a") is None
            True
        """
        if phone is None:
            return None
        digits = _NON_DIGITS.sub("", str(phone))
        if not digits:
            return None
        return f"+{digits}"

    @staticmethod
    def normalize_email(email: Optional[str]) -> Optional[str]:
        """
        Trim and lowercase an email address.

        Example:
            >>> ContactNormalizer.normalize_email("  Ada@Example.COM ")
            'ada@example.com'
        """
        if email is None:
            return None
        normalized = str(email).strip().lower()
        return normalized or None

    @staticmethod
    def last4(phone: Optional[str]) -> Optional[str]:
        """Last four digits of a phone number, or None without digits."""
        if not phone:
            return None
        digits = _NON_DIGITS.sub("", str(phone))
        if not digits:
            return None
        return digits[-4:]

    @staticmethod
    def masked_hint(phone: Optional[str]) -> str:
        """
        Last four digits padded with "*" for user-facing notes.

        Example:
            >>> ContactNormalizer.masked_hint("+15551234567")
            '4567'
            >>> ContactNormalizer.masked_hint("+12")
            '**12'
        """
        return (ContactNormalizer.last4(phone) or "").rjust(4, "*")

    @staticmethod
    def mask_for_logging(phone: Optional[str]) -> str:
        """Never log a full number; keep enough to correlate events."""
        last4 = ContactNormalizer.last4(phone)
        return f"***{last4}" if last4 else "[none]"
