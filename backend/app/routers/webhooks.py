"""
Lead webhook router.

Receives leads from external sources (WordPress, WooCommerce, Shopify,
Zapier, custom forms, ...). Each lead source has a unique webhook token in
its URL; the token is the only credential.

Payload shapes are not known in advance. The mapping engine turns whatever
arrives into a canonical contact:
  1. manual field_mapping on the source (when autoDetect is off)
  2. heuristic key detection
  3. Claude fallback (when ANTHROPIC_API_KEY is set)

Endpoints:
  POST /leads/{token}   — receive a lead
  GET  /leads/{token}   — verify a webhook URL is configured
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool

from app.db import supabase_admin
from app.models.lead import FieldMappingConfig, ResolvedContact, WebhookLeadResponse
from app.services.lead_validator import validate
from app.services.mapping_engine import resolve_mapping

logger = logging.getLogger(__name__)

router = APIRouter()

# Columns exposed by the GET test endpoint
_PUBLIC_SOURCE_COLUMNS = "id, name, type, is_active, total_leads_received, last_lead_received_at"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _get_source_by_token(token: str, columns: str = "*") -> Optional[dict]:
    """Return the lead_sources row for a webhook token, or None."""
    result = (
        supabase_admin.table("lead_sources")
        .select(columns)
        .eq("webhook_token", token)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


def _build_lead_row(
    source: dict,
    contact: ResolvedContact,
    payload,
    mapping_source: str,
) -> dict:
    """Lead insert payload. The original webhook body is kept in raw_data for audit."""
    return {
        "organization_id": source["organization_id"],
        "source_id": source["id"],
        "source_type": source.get("type"),
        "first_name": contact.first_name,
        "last_name": contact.last_name,
        "email": contact.email,
        "phone": contact.phone,
        "company": contact.company,
        "status": "new",
        "lead_score": 0,
        "temperature": "cold",
        "raw_data": payload,
        "custom_fields": {"mapping_source": mapping_source},
        "consent_to_call": False,
        "consent_to_email": False,
        "do_not_contact": False,
    }


def _record_lead_received(source: dict) -> None:
    """Bump the source's lead counter. A failure here does not fail the delivery."""
    now = datetime.now(timezone.utc).isoformat()
    try:
        supabase_admin.table("lead_sources").update({
            "total_leads_received": (source.get("total_leads_received") or 0) + 1,
            "last_lead_received_at": now,
            "updated_at": now,
        }).eq("id", source["id"]).execute()
    except Exception as e:
        logger.warning(f"Failed to update stats for lead source {source['id']}: {e}")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/leads/{token}", status_code=201, response_model=WebhookLeadResponse)
async def receive_lead(token: str, request: Request) -> WebhookLeadResponse:
    """
    Receive and store a lead from an external source.

    Returns:
        201 with the new lead id.

    Raises:
        401 unknown token, 403 disabled source, 400 unparseable JSON or a
        lead without a valid email/phone, 500 on database errors.
    """
    if supabase_admin is None:
        raise HTTPException(
            status_code=503,
            detail="Database client unavailable: SUPABASE_SERVICE_KEY is not configured",
        )

    try:
        source = _get_source_by_token(token)
    except Exception as e:
        logger.error(f"Lead source lookup failed: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    if source is None:
        raise HTTPException(status_code=401, detail="Invalid webhook token")

    if not source.get("is_active"):
        raise HTTPException(status_code=403, detail="Lead source is disabled")

    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    config = FieldMappingConfig.from_stored(source.get("field_mapping"))

    # The AI layer makes a blocking HTTP call; keep it off the event loop.
    contact, mapping_source = await run_in_threadpool(
        resolve_mapping, payload, config, return_source=True
    )

    validation = validate(contact)
    if not validation.valid:
        logger.info(
            f"Rejected lead for source {source['id']} ({mapping_source}): {validation.errors}"
        )
        raise HTTPException(
            status_code=400,
            detail={"message": "Invalid lead data", "errors": validation.errors},
        )

    try:
        result = (
            supabase_admin.table("leads")
            .insert(_build_lead_row(source, contact, payload, mapping_source))
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to insert lead for source {source['id']}: {e}")
        raise HTTPException(status_code=500, detail="Failed to store lead")

    if not result.data:
        raise HTTPException(status_code=500, detail="Failed to store lead")

    lead_id = result.data[0]["id"]
    _record_lead_received(source)

    logger.info(f"Stored lead {lead_id} for source {source['id']} via {mapping_source}")

    return WebhookLeadResponse(lead_id=lead_id, mapping_source=mapping_source)


@router.get("/leads/{token}")
async def check_webhook(token: str) -> dict:
    """Verify that a webhook URL points at a configured lead source."""
    if supabase_admin is None:
        raise HTTPException(
            status_code=503,
            detail="Database client unavailable: SUPABASE_SERVICE_KEY is not configured",
        )

    try:
        source = _get_source_by_token(token, columns=_PUBLIC_SOURCE_COLUMNS)
    except Exception as e:
        logger.error(f"Lead source lookup failed: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    if source is None:
        raise HTTPException(status_code=401, detail="Invalid webhook token")

    return {
        "success": True,
        "message": "Webhook is configured correctly",
        "source": source,
    }
