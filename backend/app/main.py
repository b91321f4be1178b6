"""
IQLead Backend API
FastAPI application for inbound lead webhooks and field mapping.
"""

import logging
import os
from typing import List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from app.routers import lead_sources, webhooks
from app.db import supabase_admin

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="IQLead API",
    description="Lead ingestion webhooks with automatic field mapping",
    version="0.1.0",
)


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    Always includes http://localhost:3000 (Next.js dev server). Additional
    origins are read from the CORS_ORIGINS environment variable as a
    comma-separated list, e.g.:
        CORS_ORIGINS=https://app.iqlead.io,https://preview.iqlead.io

    Duplicates are removed while preserving order.
    """
    origins: List[str] = ["http://localhost:3000"]

    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    for origin in cors_env.split(","):
        origin = origin.strip()
        if origin and origin not in origins:
            origins.append(origin)

    return origins


# Webhook senders are server-to-server; CORS only matters for the dashboard.
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhooks.router, prefix="/api/webhooks", tags=["webhooks"])
app.include_router(lead_sources.router, prefix="/api/lead-sources", tags=["lead-sources"])


@app.get("/")
async def root():
    return {"message": "IQLead API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/db")
async def health_db():
    """
    Test the Supabase database connection.

    Selects one row from lead_sources through the admin client.
    Returns 503 on failure.
    """
    if supabase_admin is None:
        raise HTTPException(
            status_code=503,
            detail="Database client unavailable: SUPABASE_SERVICE_KEY is not configured",
        )

    try:
        supabase_admin.table("lead_sources").select("id").limit(1).execute()
        return {"status": "ok", "database": "reachable"}
    except Exception as exc:
        logger.error(f"Database health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(exc)}",
        )
