# src/runboard/schemas/run.py

"""Pydantic schemas for the Run resource."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ===============================================
# Save Schema: Payload sent by the game client
# ===============================================
class RunSave(BaseModel):
    """Properties to receive via API on save.

    user_id and run_id are optional here so a missing value reaches the
    service and is reported as a 400 rather than a schema error.
    """

    user_id: str | None = None
    run_id: str | None = None
    heat: float | None = None
    power: float | None = None
    money: float | None = None
    time: int | None = Field(None, description="Time played, stored as time_played")
    layout: str | None = None


# ===============================================
# Read Schema: Defines attributes for returning data
# ===============================================
class RunRead(BaseModel):
    """Properties to return to the client."""

    id: int
    user_id: str
    run_id: str
    timestamp: int
    heat: float
    power: float
    money: float
    time_played: int
    layout: str | None = None
    created_at: datetime

    # Enable ORM mode for this schema
    model_config = ConfigDict(from_attributes=True)
