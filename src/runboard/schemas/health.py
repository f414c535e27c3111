# src/runboard/schemas/health.py

"""Schemas for the health probe."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class PoolStatsRead(BaseModel):
    """Connection pool occupancy at probe time."""

    total: int
    idle: int
    waiting: int


class HealthReport(BaseModel):
    """Result of a single store round-trip.

    Attributes:
        status: "ok" when the probe query succeeded, otherwise "error"
        database: "connected" or "disconnected"
        response_time: Probe latency, e.g. "12ms"
        pool_stats: Pool occupancy sampled after the probe
        db_time: The store's clock, only on success
        error: Failure message, only on error
    """

    status: Literal["ok", "error"]
    database: Literal["connected", "disconnected"]
    response_time: str = Field(..., serialization_alias="responseTime")
    pool_stats: PoolStatsRead = Field(..., serialization_alias="poolStats")
    db_time: datetime | str | None = Field(None, serialization_alias="dbTime")
    error: str | None = None

    @property
    def healthy(self) -> bool:
        return self.status == "ok"
