# src/runboard/services/run_service.py

"""Business logic for saving and ranking runs."""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import and_, case, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    NoResultFound,
    OperationalError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from runboard.db import models
from runboard.db.session import pool_monitor
from runboard.exceptions import (
    MissingRunFieldsError,
    StoreIntegrityError,
    StoreUnavailableError,
)
from runboard.schemas.leaderboard import RunSortField
from runboard.schemas.run import RunSave

logger = logging.getLogger(__name__)

DEFAULT_TOP_LIMIT = 10

# Dialects whose INSERT supports ON CONFLICT ... DO UPDATE ... RETURNING
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def now_millis() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


def _validate(run_in: RunSave) -> tuple[str, str]:
    missing = [
        name for name in ("user_id", "run_id") if not getattr(run_in, name)
    ]
    if missing:
        raise MissingRunFieldsError(missing)
    return run_in.user_id, run_in.run_id  # type: ignore[return-value]


@asynccontextmanager
async def _store_errors(
    db: AsyncSession, action: str, **context: object
) -> AsyncIterator[None]:
    """Translate SQLAlchemy failures into the store error taxonomy.

    Rolls the session back before raising so the connection is returned
    clean.
    """
    try:
        yield
    except (OperationalError, InterfaceError, PoolTimeoutError, OSError) as e:
        await db.rollback()
        logger.error("Store unavailable while trying to %s: %s", action, e, extra=context)
        raise StoreUnavailableError(action, str(e), details=context) from e
    except (IntegrityError, NoResultFound) as e:
        await db.rollback()
        logger.error(
            "Store integrity error while trying to %s: %s",
            action,
            e,
            extra=context,
            exc_info=True,
        )
        raise StoreIntegrityError(action, str(e), details=context) from e
    except DBAPIError as e:
        await db.rollback()
        if e.connection_invalidated:
            logger.error("Store connection lost while trying to %s: %s", action, e, extra=context)
            raise StoreUnavailableError(action, str(e), details=context) from e
        logger.error(
            "Store error while trying to %s: %s", action, e, extra=context, exc_info=True
        )
        raise StoreIntegrityError(action, str(e), details=context) from e


async def _acquire(db: AsyncSession) -> str:
    """Check a connection out for the session and return its dialect name.

    Time spent queued on a saturated pool is reported by the pool monitor.
    """
    with pool_monitor.waiting_for_connection():
        connection = await db.connection()
    return connection.dialect.name


def build_upsert(dialect_name: str, values: dict):
    """Build the merge-upsert statement for ``values``.

    On conflict with an existing run_id the row is merged in place:
    timestamp is overwritten, heat/power/money/time_played keep the
    greater value, and layout is replaced only when a layout is supplied
    and the incoming power beats the stored power. Every SET expression
    reads the row as it was before the update.
    """
    try:
        insert = _UPSERT_INSERTS[dialect_name]
    except KeyError:
        raise StoreIntegrityError(
            "save run", f"dialect {dialect_name!r} does not support upserts"
        ) from None

    runs = models.Run.__table__
    stmt = insert(models.Run).values(**values)
    incoming = stmt.excluded

    def keep_max(column: str):
        return case(
            (incoming[column] > runs.c[column], incoming[column]),
            else_=runs.c[column],
        )

    return stmt.on_conflict_do_update(
        index_elements=[runs.c.run_id],
        set_={
            "timestamp": incoming.timestamp,
            "heat": keep_max("heat"),
            "power": keep_max("power"),
            "money": keep_max("money"),
            "time_played": keep_max("time_played"),
            "layout": case(
                (
                    and_(incoming.layout.is_not(None), incoming.power > runs.c.power),
                    incoming.layout,
                ),
                else_=runs.c.layout,
            ),
        },
    ).returning(models.Run)


async def save_run(db: AsyncSession, run_in: RunSave) -> models.Run:
    """
    Insert a run, or merge it into the stored row with the same run_id.

    The whole merge is one INSERT ... ON CONFLICT DO UPDATE statement, so
    concurrent saves of the same run are resolved by the database against
    the committed row rather than by a read-modify-write here.

    Raises:
        MissingRunFieldsError: user_id or run_id is missing or empty.
        StoreUnavailableError: The store could not be reached in time.
        StoreIntegrityError: The statement failed for any other reason.
    """
    user_id, run_id = _validate(run_in)
    values = {
        "user_id": user_id,
        "run_id": run_id,
        "timestamp": now_millis(),
        "heat": run_in.heat or 0.0,
        "power": run_in.power or 0.0,
        "money": run_in.money or 0.0,
        "time_played": run_in.time or 0,
        "layout": run_in.layout or None,
    }

    context = {"user_id": user_id, "run_id": run_id}
    async with _store_errors(db, "save run", **context):
        dialect_name = await _acquire(db)
        stmt = build_upsert(dialect_name, values)
        # populate_existing refreshes a Run already loaded in this session
        result = await db.execute(stmt, execution_options={"populate_existing": True})
        run = result.scalars().one()
        await db.commit()

    logger.info(
        "Saved run %s for user %s",
        run_id,
        user_id,
        extra={**context, "power": run.power},
    )
    return run


def resolve_limit(limit: int | None, ceiling: int) -> int:
    """Apply the default and the ceiling to a requested top-N size."""
    if limit is None:
        return DEFAULT_TOP_LIMIT
    return min(limit, ceiling)


async def get_top_runs(
    db: AsyncSession,
    sort_by: RunSortField | str | None = None,
    limit: int = DEFAULT_TOP_LIMIT,
) -> list[models.Run]:
    """
    Return up to ``limit`` runs ordered by ``sort_by`` descending.

    Unknown or missing sort fields fall back to power. Rows tied on the
    sort field come back in no particular order.

    Raises:
        StoreUnavailableError: The store could not be reached in time.
    """
    sort_field = RunSortField.resolve(
        sort_by.value if isinstance(sort_by, RunSortField) else sort_by
    )
    sort_column = getattr(models.Run, sort_field.value)

    query = select(models.Run).order_by(sort_column.desc()).limit(limit)
    async with _store_errors(db, "get top runs", sort_by=sort_field.value, limit=limit):
        await _acquire(db)
        result = await db.execute(query)
        runs = list(result.scalars().all())

    logger.debug(
        "Fetched %d top runs by %s",
        len(runs),
        sort_field.value,
        extra={"sort_by": sort_field.value, "limit": limit},
    )
    return runs
