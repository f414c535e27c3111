# src/runboard/db/models.py

"""Database models for the Runboard application."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import BigInteger, DateTime, Float, Index, String, Text
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

Base = declarative_base()


# ===============================================
# Leaderboard Table
# ===============================================


class Run(Base):
    """One row per distinct player run, merged across repeated saves.

    Attributes:
        run_id: Unique key for the run; a save for a known run_id merges
        timestamp: Epoch millis of the latest save, always overwritten
        heat, power, money, time_played: Best values seen so far
        layout: Snapshot submitted alongside the best power value
    """

    __tablename__ = "runs"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    run_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Monotonic: the merge keeps the greater of stored and incoming
    heat: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    power: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    money: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    time_played: Mapped[int] = mapped_column(default=0, nullable=False)

    # Opaque client payload, only replaced when power improves
    layout: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __init__(self, **kw: Any):
        super().__init__(**kw)


# Descending indexes backing each sortable leaderboard column
Index("idx_runs_power", Run.__table__.c.power.desc())
Index("idx_runs_heat", Run.__table__.c.heat.desc())
Index("idx_runs_money", Run.__table__.c.money.desc())
Index("idx_runs_timestamp", Run.__table__.c.timestamp.desc())
