"""
Minimum acceptance checks for a mapped lead.

All rules are evaluated independently so the webhook sender gets every
problem in one response.
"""

import re

from app.models.lead import LeadValidation, ResolvedContact

ERROR_CONTACT_REQUIRED = "Either email or phone is required"
ERROR_INVALID_EMAIL = "Invalid email format"
ERROR_INVALID_PHONE = "Invalid phone format"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# Spaces, hyphens, parentheses and plus signs are formatting, not digits.
_PHONE_FORMATTING_RE = re.compile(r"[\s\-()+]")
_PHONE_DIGITS_RE = re.compile(r"^\d{10,15}$", re.ASCII)


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.fullmatch(str(email)))


def is_valid_phone(phone: str) -> bool:
    """
    10-15 digits once formatting is removed.

    "+1 (555) 123-4567" -> "15551234567" -> valid
    "123"               -> invalid
    """
    cleaned = _PHONE_FORMATTING_RE.sub("", str(phone))
    return bool(_PHONE_DIGITS_RE.fullmatch(cleaned))


def validate(contact: ResolvedContact) -> LeadValidation:
    """Check that a resolved contact can be stored as a lead."""
    errors: list[str] = []

    if not contact.email and not contact.phone:
        errors.append(ERROR_CONTACT_REQUIRED)

    if contact.email and not is_valid_email(contact.email):
        errors.append(ERROR_INVALID_EMAIL)

    if contact.phone and not is_valid_phone(contact.phone):
        errors.append(ERROR_INVALID_PHONE)

    return LeadValidation(valid=not errors, errors=errors)
