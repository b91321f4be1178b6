"""
Models for inbound lead webhooks and field mapping.

Models:
  FieldMappingConfig   — per-source mapping config (lead_sources.field_mapping)
  ResolvedContact      — canonical contact extracted from a webhook payload
  MappingResult        — remote-model mapping attempt (contact + confidence)
  LeadValidation       — validator outcome
  MappingSampleRequest — request body for the lead-source mapping endpoints
  SuggestMappingResponse / PreviewMappingResponse / WebhookLeadResponse
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator

# Any value a JSON document can hold.
JSONValue = Union[dict, list, str, int, float, bool, None]

# Canonical contact fields, in the order they appear in API output.
CONTACT_FIELDS = ("email", "phone", "first_name", "last_name", "company")


def as_contact_value(value: Any) -> Optional[str]:
    """
    Convert a raw JSON value into a contact field value.

    Strings are returned verbatim when non-empty. Numbers are stringified so
    that phone numbers posted as integers are kept. Everything else (null,
    booleans, objects, arrays, empty strings) counts as absent.
    """
    if isinstance(value, str):
        return value or None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value) if value else None
    return None


# ---------------------------------------------------------------------------
# Field mapping config
# ---------------------------------------------------------------------------

class FieldMappingConfig(BaseModel):
    """
    Manual field-mapping configuration stored on a lead source.

    Keys are stored camelCase in the JSONB column, e.g.
      {"autoDetect": false, "email": "customer.contact_email", "firstName": "name.first"}

    Each field value is a dot-separated path into the webhook payload.
    When auto_detect is true the paths are ignored entirely.
    """
    model_config = {"extra": "ignore", "populate_by_name": True}

    auto_detect: bool = Field(default=False, alias="autoDetect")
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    company: Optional[str] = None

    @field_validator("email", "phone", "first_name", "last_name", "company", mode="before")
    @classmethod
    def _ignore_non_string_paths(cls, value: Any) -> Optional[str]:
        # A malformed path resolves to nothing rather than failing the request.
        if isinstance(value, str) and value.strip():
            return value
        return None

    @field_validator("auto_detect", mode="before")
    @classmethod
    def _coerce_auto_detect(cls, value: Any) -> bool:
        return bool(value)

    @classmethod
    def from_stored(cls, value: Any) -> Optional["FieldMappingConfig"]:
        """Parse the raw field_mapping column. Returns None when nothing usable is stored."""
        if not isinstance(value, dict):
            return None
        return cls.model_validate(value)

    def paths(self) -> dict[str, str]:
        """Configured paths keyed by canonical field name."""
        return {
            name: getattr(self, name)
            for name in CONTACT_FIELDS
            if getattr(self, name)
        }


# ---------------------------------------------------------------------------
# Pipeline values
# ---------------------------------------------------------------------------

@dataclass
class ResolvedContact:
    """Canonical contact record produced by the mapping pipeline."""
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None

    def has_identifier(self) -> bool:
        """True when the contact can be reached (email or phone present)."""
        return bool(self.email or self.phone)

    def to_dict(self) -> dict[str, str]:
        """Present fields only."""
        return {
            name: getattr(self, name)
            for name in CONTACT_FIELDS
            if getattr(self, name)
        }

    def contact(self) -> "ResolvedContact":
        """Plain ResolvedContact copy (drops any subclass extras)."""
        return ResolvedContact(**{name: getattr(self, name) for name in CONTACT_FIELDS})


@dataclass
class MappingResult(ResolvedContact):
    """Result of one remote-model mapping attempt."""
    confidence: int = 0
    reasoning: str = ""

    @classmethod
    def failed(cls) -> "MappingResult":
        return cls(confidence=0, reasoning="mapping failed")


@dataclass
class LeadValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# API bodies
# ---------------------------------------------------------------------------

class MappingSampleRequest(BaseModel):
    """Request body carrying a sample webhook payload."""
    sample: Any


class SuggestMappingResponse(BaseModel):
    """
    Response for POST /api/lead-sources/{source_id}/suggest-mapping.

    field_mapping is in the stored (camelCase) format so the frontend can save
    it as-is; resolved previews what that mapping extracts from the sample.
    """
    field_mapping: dict[str, str]
    resolved: dict[str, str]


class PreviewMappingResponse(BaseModel):
    """Response for POST /api/lead-sources/{source_id}/preview-mapping."""
    contact: dict[str, str]
    mapping_source: str
    valid: bool
    errors: list[str] = []


class WebhookLeadResponse(BaseModel):
    """201 body returned to the webhook sender when a lead is stored."""
    success: bool = True
    lead_id: str
    mapping_source: str
    message: str = "Lead received successfully"
