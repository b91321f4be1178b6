"""
AI-assisted field mapping for inbound lead webhooks.

Used when heuristic detection cannot find an email or phone number in a
payload (deeply nested or unusually named fields). Claude is asked to pull
the five canonical contact fields out of the raw payload and to report how
confident it is.

Both public calls are best-effort: they never raise. Callers must never
depend on them succeeding.

Public API:
  map_via_model(payload, timeout)  -> MappingResult
  generate_field_mapping(sample)   -> dict[str, str]
  extract_json_object(text)        -> dict | None
  payload_fingerprint(payload)     -> str
"""

import hashlib
import json
import logging
import os
from typing import Any, Optional

import anthropic

from app.models.lead import JSONValue, MappingResult, as_contact_value

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_MODEL = "claude-haiku-4-5"

# Low temperature keeps the mapping close to deterministic.
AI_MAPPING_TEMPERATURE = 0.1
AI_MAPPING_MAX_TOKENS = 500
AI_SUGGEST_MAX_TOKENS = 300

# Timeout in seconds for a single mapping call.
AI_MAPPING_TIMEOUT = 5

# Substituted when the model reports a confidence outside 0-100 or not a number.
DEFAULT_CONFIDENCE = 50

# Model output keys (camelCase, as in the stored field_mapping) -> ResolvedContact attributes
_MODEL_FIELDS = {
    "email": "email",
    "phone": "phone",
    "firstName": "first_name",
    "lastName": "last_name",
    "company": "company",
}

MAPPING_PROMPT = """\
You are an expert at mapping webhook/API data fields to a standardized lead format.

Given this webhook data:
{payload}

Extract and map the following fields if they exist:
- email (email address)
- phone (phone number)
- firstName (first name)
- lastName (last name)
- company (company/organization name)

IMPORTANT:
1. Look for field names that match these concepts (case-insensitive)
2. Handle nested objects (e.g., contact.email, user.profile.name)
3. If you find a full name field, split it into firstName and lastName
4. Return ONLY the extracted values, not the field paths

Return a JSON object with this EXACT structure:
{{
  "email": "value or null",
  "phone": "value or null",
  "firstName": "value or null",
  "lastName": "value or null",
  "company": "value or null",
  "confidence": 0-100,
  "reasoning": "brief explanation"
}}

Example input:
{{
  "customer": {{
    "contact_email": "john@example.com",
    "full_name": "John Doe"
  }},
  "org": "Acme Corp"
}}

Example output:
{{
  "email": "john@example.com",
  "phone": null,
  "firstName": "John",
  "lastName": "Doe",
  "company": "Acme Corp",
  "confidence": 95,
  "reasoning": "Found email in customer.contact_email, split full_name into firstName/lastName, found company in org field"
}}
"""

SUGGEST_PROMPT = """\
You are an expert at analyzing webhook/API data structures and creating field mappings.

Given this sample webhook data:
{payload}

Generate a field mapping configuration that maps webhook fields to lead fields.
Use dot notation for nested fields (e.g., "customer.email" or "user.profile.phone").

Return ONLY a JSON object with this structure:
{{
  "email": "path.to.email.field",
  "phone": "path.to.phone.field",
  "firstName": "path.to.firstName.field",
  "lastName": "path.to.lastName.field",
  "company": "path.to.company.field"
}}

Only include fields that exist in the sample data. If a field doesn't exist, omit it.

Example input:
{{
  "customer": {{
    "contact_email": "john@example.com",
    "details": {{
      "phone": "+1234567890"
    }}
  }},
  "business_name": "Acme Corp"
}}

Example output:
{{
  "email": "customer.contact_email",
  "phone": "customer.details.phone",
  "company": "business_name"
}}
"""


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def _balanced_end(text: str, start: int) -> Optional[int]:
    """
    Return the index just past the '}' that closes the '{' at ``start``.

    Braces inside JSON strings are ignored. Returns None if the object is
    never closed.
    """
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def extract_json_object(text: str) -> Optional[dict]:
    """
    Find the first well-formed JSON object embedded in ``text``.

    Claude sometimes wraps its JSON in prose or markdown code fences, so the
    whole response cannot be parsed directly. Each '{' is tried in turn as
    the start of a balanced span; the first span that parses as an object is
    returned.
    """
    if not isinstance(text, str):
        return None

    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start)
        if end is not None:
            try:
                parsed = json.loads(text[start:end])
            except ValueError:
                parsed = None
            if isinstance(parsed, dict):
                return parsed
        start = text.find("{", start + 1)
    return None


def _coerce_confidence(value: Any) -> int:
    """Keep a 0-100 numeric confidence; anything else becomes DEFAULT_CONFIDENCE."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    if value != value or value < 0 or value > 100:  # NaN or out of range
        return DEFAULT_CONFIDENCE
    return int(value)


def _to_mapping_result(parsed: dict) -> MappingResult:
    contact = {
        attr: as_contact_value(parsed.get(key))
        for key, attr in _MODEL_FIELDS.items()
    }
    reasoning = parsed.get("reasoning")
    return MappingResult(
        **contact,
        confidence=_coerce_confidence(parsed.get("confidence")),
        reasoning=reasoning if isinstance(reasoning, str) else "",
    )


# ---------------------------------------------------------------------------
# Claude calls
# ---------------------------------------------------------------------------

def _model_name() -> str:
    return os.getenv("AI_MAPPING_MODEL") or DEFAULT_MODEL


def _ask_claude(prompt: str, max_tokens: int, timeout: float) -> str:
    """
    Send a single user message and return the text of the reply.

    Raises on API errors or an empty reply; callers catch everything.
    No retries: each webhook delivery gets at most one model call.
    """
    client = anthropic.Anthropic(
        api_key=os.getenv("ANTHROPIC_API_KEY"),
        max_retries=0,
    )
    response = client.messages.create(
        model=_model_name(),
        max_tokens=max_tokens,
        temperature=AI_MAPPING_TEMPERATURE,
        timeout=timeout,
        messages=[{"role": "user", "content": prompt}],
    )
    if not response.content:
        raise ValueError("Empty response from Claude")

    raw_text = response.content[0].text
    if not raw_text:
        raise ValueError("Empty response from Claude")
    return raw_text


def _serialize(payload: JSONValue) -> str:
    return json.dumps(payload, indent=2, default=str)


def map_via_model(payload: JSONValue, timeout: float = AI_MAPPING_TIMEOUT) -> MappingResult:
    """
    Ask Claude to extract the canonical contact fields from ``payload``.

    Returns a MappingResult with the extracted values, a 0-100 confidence
    and Claude's reasoning. Any failure (missing API key, network error,
    timeout, reply without a JSON object) returns MappingResult.failed().
    """
    try:
        prompt = MAPPING_PROMPT.format(payload=_serialize(payload))
        raw_text = _ask_claude(prompt, AI_MAPPING_MAX_TOKENS, timeout)

        parsed = extract_json_object(raw_text)
        if parsed is None:
            raise ValueError("Could not parse JSON from Claude response")

        return _to_mapping_result(parsed)

    except Exception as exc:
        logger.warning("AI field mapping failed: %s", exc)
        logger.debug("map_via_model: falling back to empty result", exc_info=True)
        return MappingResult.failed()


def generate_field_mapping(sample: JSONValue, timeout: float = AI_MAPPING_TIMEOUT) -> dict[str, str]:
    """
    Ask Claude for a reusable field-mapping config for payloads shaped like ``sample``.

    Returns a dict in the stored field_mapping format, e.g.
      {"email": "customer.contact_email", "firstName": "customer.first"}
    Keys other than the five canonical camelCase names, and non-string or
    empty paths, are discarded. Returns {} on any failure.
    """
    try:
        prompt = SUGGEST_PROMPT.format(payload=_serialize(sample))
        raw_text = _ask_claude(prompt, AI_SUGGEST_MAX_TOKENS, timeout)

        parsed = extract_json_object(raw_text)
        if parsed is None:
            raise ValueError("Could not parse JSON from Claude response")

        return {
            key: path.strip()
            for key, path in parsed.items()
            if key in _MODEL_FIELDS and isinstance(path, str) and path.strip()
        }

    except Exception:
        logger.debug("generate_field_mapping: silent fallback", exc_info=True)
        return {}


def payload_fingerprint(payload: JSONValue) -> str:
    """
    Short identifier for the top-level key structure of a payload.

    Two payloads with the same top-level keys (in any order) share a
    fingerprint. Non-object payloads fingerprint by their JSON type name.
    """
    if isinstance(payload, dict):
        structure = json.dumps(sorted(str(k) for k in payload))
    else:
        structure = json.dumps(type(payload).__name__)
    return hashlib.sha256(structure.encode()).hexdigest()[:16]
