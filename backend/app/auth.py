"""
Authentication helpers for Supabase JWT verification.
Resolves the caller's organization and checks lead-source access.

Notes:
- get_current_user verifies JWTs locally with python-jose when SUPABASE_JWT_SECRET
  is set, avoiding a network round-trip to the Supabase Auth API.
- verify_lead_source_ownership returns the full lead_sources row so callers
  can reuse it (e.g. its field_mapping) without a second SELECT.
"""

import logging
import os
from typing import Optional

from fastapi import HTTPException, Header

from app.db import supabase, supabase_admin

logger = logging.getLogger(__name__)

# Loaded once at startup (Project Settings > API > JWT Secret).
# When not set, tokens are verified through the Supabase Auth API instead.
SUPABASE_JWT_SECRET: Optional[str] = os.environ.get("SUPABASE_JWT_SECRET") or None


async def get_current_user(authorization: Optional[str] = Header(None)) -> str:
    """
    Extract and verify the JWT from the Authorization header.

    Args:
        authorization: Authorization header with format "Bearer <token>"

    Returns:
        user_id: Authenticated user's ID (the JWT ``sub`` claim)

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Not authenticated")

    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    token = parts[1]

    if SUPABASE_JWT_SECRET:
        return _verify_jwt_locally(token)

    return await _verify_jwt_remotely(token)


def _verify_jwt_locally(token: str) -> str:
    """
    Verify a Supabase HS256 JWT with the project secret and return the user ID.

    Raises:
        HTTPException 401 on any verification failure.
    """
    from jose import jwt, JWTError, ExpiredSignatureError

    try:
        payload = jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_aud": False},  # Supabase uses the 'authenticated' audience
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id: Optional[str] = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    return user_id


async def _verify_jwt_remotely(token: str) -> str:
    """
    Verify a JWT via the Supabase Auth API (used when no JWT secret is set).

    Raises:
        HTTPException 401 on any verification failure.
    """
    try:
        response = supabase.auth.get_user(token)

        if not response.user:
            raise HTTPException(status_code=401, detail="Invalid token")

        return response.user.id

    except HTTPException:
        raise
    except Exception as e:
        if "expired" in str(e).lower():
            raise HTTPException(status_code=401, detail="Token expired")
        raise HTTPException(status_code=401, detail="Invalid token")


def get_user_organization_id(user_id: str) -> str:
    """
    Look up the organization the user belongs to.

    Raises:
        HTTPException: 403 if the user has no organization, 500 on database error
    """
    try:
        result = (
            supabase_admin.table("users")
            .select("organization_id")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to look up organization for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to verify organization")

    organization_id = result.data[0].get("organization_id") if result.data else None
    if not organization_id:
        raise HTTPException(status_code=403, detail="User does not belong to an organization")

    return organization_id


async def verify_lead_source_ownership(source_id: str, user_id: str) -> dict:
    """
    Verify that the lead source belongs to the user's organization and return it.

    Args:
        source_id: ID of the lead source
        user_id: ID of the authenticated user

    Returns:
        The lead_sources row dict (all columns).

    Raises:
        HTTPException: 404 if not found, 403 if owned by another organization,
                       500 on database error
    """
    organization_id = get_user_organization_id(user_id)

    try:
        result = supabase_admin.table("lead_sources").select("*").eq("id", source_id).execute()
    except Exception as e:
        logger.error(f"Failed to fetch lead source {source_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to verify ownership")

    if not result.data:
        raise HTTPException(status_code=404, detail="Lead source not found")

    source = result.data[0]
    if source.get("organization_id") != organization_id:
        raise HTTPException(
            status_code=403,
            detail="You are not authorized to access this lead source",
        )

    return source
