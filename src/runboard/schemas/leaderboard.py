# src/runboard/schemas/leaderboard.py

"""Leaderboard schemas: sort fields and response envelopes."""

from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel

from .run import RunRead

T = TypeVar("T")


class RunSortField(str, Enum):
    """Sortable leaderboard columns, always ordered descending."""

    HEAT = "heat"
    POWER = "power"
    MONEY = "money"
    TIMESTAMP = "timestamp"

    @classmethod
    def resolve(cls, value: str | None) -> "RunSortField":
        """Map a raw query value to a field, falling back to power."""
        try:
            return cls(value)
        except ValueError:
            return cls.POWER


class SuccessResponse(BaseModel, Generic[T]):
    """Standard success wrapper.

    Attributes:
        success: Always true for this envelope
        data: The payload
    """

    success: bool = True
    data: T


class SaveRunResponse(SuccessResponse[RunRead]):
    pass


class TopRunsResponse(SuccessResponse[list[RunRead]]):
    pass
