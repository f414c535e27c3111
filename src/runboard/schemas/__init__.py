# src/runboard/schemas/__init__.py

"""Pydantic schemas for API validation and serialization."""

from .health import HealthReport, PoolStatsRead
from .leaderboard import RunSortField, SaveRunResponse, SuccessResponse, TopRunsResponse
from .run import RunRead, RunSave

__all__ = [
    # Run
    "RunSave",
    "RunRead",
    # Leaderboard
    "RunSortField",
    "SuccessResponse",
    "SaveRunResponse",
    "TopRunsResponse",
    # Health
    "HealthReport",
    "PoolStatsRead",
]
