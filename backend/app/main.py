"""
T776 Rental Analysis Backend API
FastAPI application for rental tax document analysis and audit packaging.
"""

import logging
import os
from typing import List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from app import config
from app.db import get_supabase_admin
from app.routers import analysis
from app.services.llm_client import AnalysisClient

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="T776 Rental Analysis API",
    description="AI-assisted rental property tax document analysis and audit packaging",
    version="0.1.0",
)


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    Always includes the local Next.js dev server. Additional origins are read
    from the CORS_ORIGINS environment variable as a comma-separated list.
    Duplicates are removed while preserving order.
    """
    always_included = ["http://localhost:3000"]

    extra_origins: List[str] = []
    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    if cors_env:
        extra_origins = [o.strip() for o in cors_env.split(",") if o.strip()]

    seen: set = set()
    origins: List[str] = []
    for origin in always_included + extra_origins:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)

    return origins


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analysis.router, prefix="/api/analysis", tags=["analysis"])


@app.on_event("startup")
async def create_analysis_client() -> None:
    """Create the single model client shared by all requests."""
    if not config.ANTHROPIC_API_KEY:
        logger.warning("ANTHROPIC_API_KEY is not set; /api/analysis/analyze will return 503")
        return
    app.state.analysis_client = AnalysisClient.from_env()
    logger.info("Analysis client ready (model: %s)", config.ANALYSIS_MODEL)


@app.get("/")
async def root():
    return {"message": "T776 Rental Analysis API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/storage")
async def health_storage():
    """
    Test Supabase Storage access.

    Lists storage buckets and verifies the staging bucket exists.
    Returns 503 if storage is unreachable or the bucket is missing.
    """
    client = get_supabase_admin()
    if client is None:
        raise HTTPException(
            status_code=503,
            detail="Storage client unavailable: SUPABASE_URL / SUPABASE_SERVICE_KEY not configured",
        )

    try:
        buckets = client.storage.list_buckets()
        bucket_names = [b.name for b in buckets]

        if config.STAGING_BUCKET not in bucket_names:
            raise HTTPException(
                status_code=503,
                detail=f"Storage bucket '{config.STAGING_BUCKET}' not found",
            )

        return {"status": "ok", "storage": "reachable", "bucket": config.STAGING_BUCKET}
    except HTTPException:
        raise
    except Exception as exc:
        logger.error(f"Storage health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Storage check failed: {str(exc)}",
        )
