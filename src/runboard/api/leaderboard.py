# src/runboard/api/leaderboard.py

"""API endpoints for saving runs and reading the leaderboard."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from runboard.config import settings
from runboard.db.session import get_db
from runboard.schemas.leaderboard import SaveRunResponse, TopRunsResponse
from runboard.schemas.run import RunRead, RunSave
from runboard.services import run_service

# Creates an APIRouter instance
# - prefix="/api/leaderboard": All routes defined here will be prefixed
# - tags=["Leaderboard"]: Groups these endpoints in the API docs
router = APIRouter(prefix="/api/leaderboard", tags=["Leaderboard"])


@router.post("/save", response_model=SaveRunResponse)
async def save_run(
    run_in: RunSave,
    db: AsyncSession = Depends(get_db),
) -> SaveRunResponse:
    """
    Save a run, merging it into any stored run with the same run_id.

    - **user_id**, **run_id**: Required, non-empty.
    - **heat**, **power**, **money**, **time**: Kept at their best value.
    - **layout**: Replaced only when power improves.

    Raises:
        400 Bad Request: If user_id or run_id is missing.
        500 Internal Server Error: If the store fails.
    """
    run = await run_service.save_run(db, run_in)
    return SaveRunResponse(data=RunRead.model_validate(run))


@router.get("/top", response_model=TopRunsResponse)
async def get_top_runs(
    sort_by: str | None = Query(
        None, alias="sortBy", description="heat, power, money or timestamp"
    ),
    limit: int | None = Query(None, ge=1, description="Max records to return"),
    db: AsyncSession = Depends(get_db),
) -> TopRunsResponse:
    """
    Retrieve the best runs, highest first.

    - **sortBy**: Field to rank by; anything unrecognised ranks by power
    - **limit**: Number of runs (default 10, capped at MAX_TOP_LIMIT)
    """
    runs = await run_service.get_top_runs(
        db,
        sort_by=sort_by,
        limit=run_service.resolve_limit(limit, settings.max_top_limit),
    )
    return TopRunsResponse(data=[RunRead.model_validate(run) for run in runs])
