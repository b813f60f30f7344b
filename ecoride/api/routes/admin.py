"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health  -- simple health check
POST /api/v1/admin/sweep   -- run one stale-search sweep now
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ecoride.api.dependencies import get_db
from ecoride.api.middleware import limiter
from ecoride.api.schemas import HealthResponse, SweepResponse
from ecoride.config import settings
from ecoride.infrastructure.repositories import RideRepository
from ecoride.workers.ride_sweeper import sweep_stale_searches

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/sweep",
    response_model=SweepResponse,
    summary="Fail rides that have waited too long for a driver",
)
@limiter.limit("10/minute")
async def sweep(request: Request, db: AsyncSession = Depends(get_db)):
    failed = await sweep_stale_searches(
        RideRepository(db), settings.search_timeout_seconds
    )
    return SweepResponse(failed=failed)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
