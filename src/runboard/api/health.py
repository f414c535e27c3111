# src/runboard/api/health.py

"""Health endpoint reporting store connectivity and pool occupancy."""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from runboard.db.monitor import PoolMonitor
from runboard.db.session import get_engine, get_pool_monitor
from runboard.services import health_service

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(
    engine: AsyncEngine = Depends(get_engine),
    monitor: PoolMonitor = Depends(get_pool_monitor),
) -> JSONResponse:
    """Probe the store once; 200 when reachable, 500 otherwise."""
    report = await health_service.check_store(engine, monitor)
    return JSONResponse(
        status_code=status.HTTP_200_OK
        if report.healthy
        else status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=report.model_dump(mode="json", by_alias=True, exclude_none=True),
    )
