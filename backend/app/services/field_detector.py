"""
Heuristic contact-field detection for inbound webhook payloads.

Scans the top level of a payload for well-known key names (camelCase,
snake_case, Title Case and common synonyms) and builds a ResolvedContact.
This is the cheap, deterministic first pass of the mapping pipeline: most
form builders, e-commerce platforms and automation tools send flat payloads
with recognizable keys.

Public API:
  detect(payload) -> ResolvedContact
"""

import logging
import re
from types import MappingProxyType
from typing import Optional

from app.models.lead import JSONValue, ResolvedContact, as_contact_value

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Candidate keys: order determines priority.
# More common / standard names come first; the first truthy match wins.
# ---------------------------------------------------------------------------

EMAIL_KEYS = (
    "email", "Email", "e-mail", "E-mail", "emailAddress", "email_address",
    "customer_email", "customerEmail", "user_email", "userEmail", "mail",
)

PHONE_KEYS = (
    "phone", "Phone", "phoneNumber", "phone_number", "Phone Number",
    "telephone", "Telephone", "mobile", "Mobile", "cell", "Cell",
    "contact_number", "contactNumber",
)

FIRST_NAME_KEYS = (
    "firstName", "first_name", "First Name", "fname", "Fname",
    "given_name", "givenName", "forename", "Forename",
)

LAST_NAME_KEYS = (
    "lastName", "last_name", "Last Name", "lname", "Lname",
    "surname", "Surname", "family_name", "familyName",
)

# Only consulted when neither first nor last name was found directly.
FULL_NAME_KEYS = ("name", "Name", "fullName", "full_name", "Full Name")

COMPANY_KEYS = (
    "company", "Company", "companyName", "company_name", "Company Name",
    "organization", "Organization", "org", "Org", "business", "Business",
)

CANDIDATE_KEYS = MappingProxyType({
    "email": EMAIL_KEYS,
    "phone": PHONE_KEYS,
    "first_name": FIRST_NAME_KEYS,
    "last_name": LAST_NAME_KEYS,
    "company": COMPANY_KEYS,
})

_WHITESPACE_RE = re.compile(r"\s+")


def _first_match(payload: dict, keys: tuple) -> Optional[str]:
    """Return the value of the first key in ``keys`` holding a usable contact value."""
    for key in keys:
        value = as_contact_value(payload.get(key))
        if value:
            return value
    return None


def split_full_name(full_name: str) -> tuple[Optional[str], Optional[str]]:
    """
    Split a full name on whitespace runs.

    "Jane Smith"         -> ("Jane", "Smith")
    "Mary Ann  van Dyke" -> ("Mary", "Ann van Dyke")
    "Cher"               -> ("Cher", None)
    "   "                -> (None, None)
    """
    parts = _WHITESPACE_RE.split(full_name.strip())
    if not parts or not parts[0]:
        return None, None
    first = parts[0]
    last = " ".join(parts[1:]) if len(parts) > 1 else None
    return first, last


def detect(payload: JSONValue) -> ResolvedContact:
    """
    Detect canonical contact fields from the top-level keys of ``payload``.

    Never raises. A payload that is not a JSON object yields an empty contact.
    Nested objects are not searched; deep extraction is done through a manual
    field mapping (see path_resolver).
    """
    if not isinstance(payload, dict):
        return ResolvedContact()

    found = {
        field_name: _first_match(payload, keys)
        for field_name, keys in CANDIDATE_KEYS.items()
    }
    contact = ResolvedContact(**found)

    if not contact.first_name and not contact.last_name:
        full_name = _first_match(payload, FULL_NAME_KEYS)
        if full_name:
            contact.first_name, contact.last_name = split_full_name(full_name)

    logger.debug("Heuristic detection found fields: %s", sorted(contact.to_dict()))
    return contact
