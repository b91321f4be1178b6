"""
Lead source mapping tools.

Helps users set up a lead source's field_mapping from a sample payload
(e.g. one copied from Zapier's test step or a form builder's webhook log).

Endpoints:
  POST /{source_id}/suggest-mapping  — ask Claude for a field_mapping config
  POST /{source_id}/preview-mapping  — dry-run the webhook pipeline on a sample
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool

from app.auth import get_current_user, verify_lead_source_ownership
from app.models.lead import (
    FieldMappingConfig,
    MappingSampleRequest,
    PreviewMappingResponse,
    SuggestMappingResponse,
)
from app.services.ai_mapper import generate_field_mapping
from app.services.lead_validator import validate
from app.services.mapping_engine import map_manual, remote_mapping_configured, resolve_mapping

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{source_id}/suggest-mapping", response_model=SuggestMappingResponse)
async def suggest_mapping(
    source_id: str,
    body: MappingSampleRequest,
    user_id: str = Depends(get_current_user),
) -> SuggestMappingResponse:
    """
    Suggest a field_mapping for a lead source from a sample payload.

    The suggestion is not saved; the frontend shows it for review and saves
    it through the regular lead-source update. ``resolved`` shows what the
    suggested paths extract from the sample so the user can check them.

    Returns 503 when no Anthropic API key is configured.
    """
    await verify_lead_source_ownership(source_id, user_id)

    if not remote_mapping_configured():
        raise HTTPException(
            status_code=503,
            detail="AI mapping unavailable: ANTHROPIC_API_KEY is not configured",
        )

    field_mapping = await run_in_threadpool(generate_field_mapping, body.sample)
    if not field_mapping:
        logger.info(f"No field mapping suggested for lead source {source_id}")

    config = FieldMappingConfig.model_validate(field_mapping)
    resolved = map_manual(body.sample, config)

    return SuggestMappingResponse(
        field_mapping=field_mapping,
        resolved=resolved.to_dict(),
    )


@router.post("/{source_id}/preview-mapping", response_model=PreviewMappingResponse)
async def preview_mapping(
    source_id: str,
    body: MappingSampleRequest,
    user_id: str = Depends(get_current_user),
) -> PreviewMappingResponse:
    """
    Run the webhook mapping pipeline on a sample payload without storing a lead.

    Uses the source's saved field_mapping, exactly as a real delivery would.
    """
    source = await verify_lead_source_ownership(source_id, user_id)
    config = FieldMappingConfig.from_stored(source.get("field_mapping"))

    contact, mapping_source = await run_in_threadpool(
        resolve_mapping, body.sample, config, return_source=True
    )
    validation = validate(contact)

    return PreviewMappingResponse(
        contact=contact.to_dict(),
        mapping_source=mapping_source,
        valid=validation.valid,
        errors=validation.errors,
    )
