"""
Field-mapping resolution for inbound lead webhooks.

Turns an arbitrary webhook payload into a ResolvedContact by trying mapping
strategies in a fixed order and stopping at the first accepted result:

  1. manual     — the lead source has a field_mapping config (autoDetect off).
                  Every configured path is resolved and the result is returned
                  as-is, even if empty: the operator declared the shape.
  2. heuristic  — top-level key detection. Accepted when it finds an email
                  or phone.
  3. ai         — Claude fallback, only when an Anthropic key is configured.
                  Accepted when confidence >= AI_CONFIDENCE_THRESHOLD and it
                  found an email or phone.

If nothing is accepted the heuristic result is returned (possibly empty) and
the lead validator decides whether the delivery is rejected.

Public API:
  resolve_mapping(payload, config, remote_enabled, return_source) -> ResolvedContact
      (or (ResolvedContact, source) when return_source=True)
"""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional, Union

from app.models.lead import (
    FieldMappingConfig,
    JSONValue,
    MappingResult,
    ResolvedContact,
    as_contact_value,
)
from app.services import ai_mapper
from app.services.field_detector import detect
from app.services.path_resolver import resolve

logger = logging.getLogger(__name__)

# Minimum self-reported confidence for an AI mapping to be trusted.
# Tuned empirically; raise it if AI-mapped leads pollute the lead list.
AI_CONFIDENCE_THRESHOLD = 70

SOURCE_MANUAL = "manual"
SOURCE_HEURISTIC = "heuristic"
SOURCE_AI = "ai"
SOURCE_HEURISTIC_FALLBACK = "heuristic_fallback"


def remote_mapping_configured() -> bool:
    """True when an Anthropic API key is available for the AI layer."""
    return bool(os.getenv("ANTHROPIC_API_KEY"))


# ---------------------------------------------------------------------------
# Strategy chain
# ---------------------------------------------------------------------------

@dataclass
class _MappingRun:
    """Inputs and intermediate results for one resolve_mapping() call."""
    payload: JSONValue
    config: Optional[FieldMappingConfig]
    remote_enabled: bool
    timeout: float
    heuristic: Optional[ResolvedContact] = None


@dataclass(frozen=True)
class MappingStrategy:
    name: str
    applies: Callable[[_MappingRun], bool]
    run: Callable[[_MappingRun], ResolvedContact]
    accept: Callable[[ResolvedContact], bool]


def map_manual(payload: JSONValue, config: FieldMappingConfig) -> ResolvedContact:
    """Resolve every configured path against the payload."""
    contact = ResolvedContact()
    for field_name, path in config.paths().items():
        setattr(contact, field_name, as_contact_value(resolve(payload, path)))
    return contact


def _run_manual(run: _MappingRun) -> ResolvedContact:
    return map_manual(run.payload, run.config)


def _run_heuristic(run: _MappingRun) -> ResolvedContact:
    run.heuristic = detect(run.payload)
    return run.heuristic


def _run_ai(run: _MappingRun) -> ResolvedContact:
    logger.info("Heuristic detection found no email or phone, trying AI mapping")
    result = ai_mapper.map_via_model(run.payload, timeout=run.timeout)
    logger.info(
        "AI mapping returned confidence=%s fingerprint=%s reasoning=%r",
        result.confidence,
        ai_mapper.payload_fingerprint(run.payload),
        result.reasoning,
    )
    return result


def _accept_ai(result: ResolvedContact) -> bool:
    confidence = getattr(result, "confidence", 0)
    return confidence >= AI_CONFIDENCE_THRESHOLD and result.has_identifier()


STRATEGIES: tuple[MappingStrategy, ...] = (
    MappingStrategy(
        name=SOURCE_MANUAL,
        applies=lambda run: run.config is not None and not run.config.auto_detect,
        run=_run_manual,
        accept=lambda contact: True,
    ),
    MappingStrategy(
        name=SOURCE_HEURISTIC,
        applies=lambda run: True,
        run=_run_heuristic,
        accept=ResolvedContact.has_identifier,
    ),
    MappingStrategy(
        name=SOURCE_AI,
        applies=lambda run: run.remote_enabled,
        run=_run_ai,
        accept=_accept_ai,
    ),
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def resolve_mapping(
    payload: JSONValue,
    config: Optional[FieldMappingConfig] = None,
    remote_enabled: Optional[bool] = None,
    return_source: bool = False,
    timeout: float = ai_mapper.AI_MAPPING_TIMEOUT,
) -> Union[ResolvedContact, tuple[ResolvedContact, str]]:
    """
    Resolve a webhook payload to a canonical contact.

    Args:
        payload: Raw webhook JSON (any shape).
        config: The lead source's FieldMappingConfig, or None.
        remote_enabled: Whether the AI layer may run. None means "if
                        ANTHROPIC_API_KEY is set".
        return_source: When True, return (contact, source) where source is
                       one of "manual", "heuristic", "ai",
                       "heuristic_fallback".
        timeout: Seconds allowed for the AI call.

    Returns:
        ResolvedContact, or (ResolvedContact, source) when return_source=True.
    """
    if remote_enabled is None:
        remote_enabled = remote_mapping_configured()

    run = _MappingRun(
        payload=payload,
        config=config,
        remote_enabled=remote_enabled,
        timeout=timeout,
    )

    contact: Optional[ResolvedContact] = None
    source = SOURCE_HEURISTIC_FALLBACK
    for strategy in STRATEGIES:
        if not strategy.applies(run):
            continue
        result = strategy.run(run)
        if strategy.accept(result):
            contact = result.contact()
            source = strategy.name
            break
        logger.info("Mapping strategy '%s' did not produce a usable contact", strategy.name)

    if contact is None:
        contact = run.heuristic or ResolvedContact()

    logger.info("Resolved webhook payload via %s: fields=%s", source, sorted(contact.to_dict()))

    if return_source:
        return contact, source
    return contact
