# src/runboard/services/health_service.py

"""Point-in-time store probe for the health endpoint."""

import logging
import time

from sqlalchemy import func, literal, select
from sqlalchemy.ext.asyncio import AsyncEngine

from runboard.db.monitor import PoolMonitor
from runboard.schemas.health import HealthReport, PoolStatsRead

logger = logging.getLogger(__name__)

PROBE_QUERY = select(
    literal(1).label("health"),
    func.current_timestamp().label("db_time"),
)


async def check_store(engine: AsyncEngine, monitor: PoolMonitor) -> HealthReport:
    """
    Run one round-trip query against the store and report the outcome.

    Never raises and never retries: any failure is folded into an
    ``error`` report so the endpoint can be polled from outside.
    """
    start_time = time.perf_counter()
    try:
        with monitor.waiting_for_connection():
            conn = await engine.connect()
        try:
            row = (await conn.execute(PROBE_QUERY)).one()
        finally:
            await conn.close()
    except Exception as e:
        duration_ms = round((time.perf_counter() - start_time) * 1000)
        logger.error(
            "Database unhealthy (%dms): %s",
            duration_ms,
            e,
            extra={"duration_ms": duration_ms, "error_type": type(e).__name__},
        )
        return HealthReport(
            status="error",
            database="disconnected",
            error=str(e),
            response_time=f"{duration_ms}ms",
            pool_stats=PoolStatsRead(**monitor.snapshot()),
        )

    duration_ms = round((time.perf_counter() - start_time) * 1000)
    logger.info("Database healthy (%dms)", duration_ms, extra={"duration_ms": duration_ms})
    return HealthReport(
        status="ok",
        database="connected",
        response_time=f"{duration_ms}ms",
        pool_stats=PoolStatsRead(**monitor.snapshot()),
        db_time=row.db_time,
    )
