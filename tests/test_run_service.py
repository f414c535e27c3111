# tests/test_run_service.py

"""Unit tests for the run service layer."""

from itertools import permutations
from unittest.mock import patch

import pytest
from runboard.db.models import Run
from runboard.exceptions import (
    MissingRunFieldsError,
    StoreIntegrityError,
    StoreUnavailableError,
)
from runboard.schemas.leaderboard import RunSortField
from runboard.schemas.run import RunSave
from runboard.services import run_service
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

# =============================================================================
# Helper Functions
# =============================================================================


def make_run(run_id: str, user_id: str = "user-1", **fields) -> RunSave:
    """Helper to build a save payload."""
    return RunSave(user_id=user_id, run_id=run_id, **fields)


async def count_rows(db: AsyncSession, run_id: str) -> int:
    """Count stored rows for a run_id."""
    result = await db.execute(
        select(func.count()).select_from(Run).where(Run.run_id == run_id)
    )
    return int(result.scalar_one())


# =============================================================================
# Save: insert path
# =============================================================================


@pytest.mark.asyncio
async def test_save_new_run_inserts_row(db_session: AsyncSession):
    """A first save stores every supplied value."""
    run = await run_service.save_run(
        db_session,
        make_run("insert-1", heat=3.5, power=12.0, money=40.0, time=90, layout="L1"),
    )

    assert run.id is not None
    assert run.user_id == "user-1"
    assert run.run_id == "insert-1"
    assert run.heat == 3.5
    assert run.power == 12.0
    assert run.money == 40.0
    assert run.time_played == 90
    assert run.layout == "L1"
    assert run.created_at is not None
    assert await count_rows(db_session, "insert-1") == 1


@pytest.mark.asyncio
async def test_save_defaults_missing_numbers_to_zero(db_session: AsyncSession):
    """Absent numeric fields are stored as zero and layout as null."""
    run = await run_service.save_run(db_session, make_run("defaults-1"))

    assert run.heat == 0
    assert run.power == 0
    assert run.money == 0
    assert run.time_played == 0
    assert run.layout is None


@pytest.mark.asyncio
async def test_save_sets_timestamp_from_server_clock(db_session: AsyncSession):
    """The timestamp comes from the server, in epoch millis."""
    with patch.object(run_service, "now_millis", return_value=1_700_000_000_000):
        run = await run_service.save_run(db_session, make_run("clock-1"))

    assert run.timestamp == 1_700_000_000_000


# =============================================================================
# Save: merge path
# =============================================================================


@pytest.mark.asyncio
async def test_merge_keeps_maximum_of_each_numeric_field(db_session: AsyncSession):
    """Each numeric field independently keeps its best value."""
    await run_service.save_run(
        db_session, make_run("merge-1", heat=10, power=1, money=100, time=5)
    )
    run = await run_service.save_run(
        db_session, make_run("merge-1", heat=2, power=50, money=20, time=500)
    )

    assert run.heat == 10
    assert run.power == 50
    assert run.money == 100
    assert run.time_played == 500
    assert await count_rows(db_session, "merge-1") == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "order", list(permutations([(5, 1, 9, 3), (8, 7, 2, 1), (1, 4, 6, 11)]))
)
async def test_merge_is_order_independent(db_session: AsyncSession, order):
    """After any submission order the row holds the element-wise maximum."""
    run_id = "order-" + "-".join(str(save[0]) for save in order)
    run = None
    for heat, power, money, time_played in order:
        run = await run_service.save_run(
            db_session,
            make_run(run_id, heat=heat, power=power, money=money, time=time_played),
        )

    assert run is not None
    assert (run.heat, run.power, run.money, run.time_played) == (8, 7, 9, 11)


@pytest.mark.asyncio
async def test_merge_always_overwrites_timestamp(db_session: AsyncSession):
    """The timestamp is not monotonic; the latest save wins."""
    with patch.object(run_service, "now_millis", return_value=2_000):
        await run_service.save_run(db_session, make_run("ts-1", power=5))
    with patch.object(run_service, "now_millis", return_value=1_000):
        run = await run_service.save_run(db_session, make_run("ts-1", power=1))

    assert run.timestamp == 1_000


@pytest.mark.asyncio
async def test_merge_keeps_original_user_and_created_at(db_session: AsyncSession):
    """A merge never rewrites user_id or created_at."""
    first = await run_service.save_run(db_session, make_run("owner-1", user_id="alice"))
    created_at = first.created_at

    run = await run_service.save_run(
        db_session, make_run("owner-1", user_id="mallory", power=99)
    )

    assert run.user_id == "alice"
    assert run.created_at == created_at


@pytest.mark.asyncio
async def test_layout_follows_best_power(db_session: AsyncSession):
    """Layout is replaced only when power strictly improves."""
    run = await run_service.save_run(
        db_session, make_run("layout-1", power=10, layout="A")
    )
    assert run.layout == "A"

    run = await run_service.save_run(
        db_session, make_run("layout-1", power=5, layout="B")
    )
    assert run.layout == "A"

    run = await run_service.save_run(
        db_session, make_run("layout-1", power=20, layout="C")
    )
    assert run.layout == "C"


@pytest.mark.asyncio
async def test_layout_ignores_improvements_in_other_fields(db_session: AsyncSession):
    """Better heat or money with equal power does not touch the layout."""
    await run_service.save_run(
        db_session, make_run("layout-2", power=10, heat=1, layout="A")
    )
    run = await run_service.save_run(
        db_session, make_run("layout-2", power=10, heat=500, money=500, layout="B")
    )

    assert run.heat == 500
    assert run.layout == "A"


@pytest.mark.asyncio
async def test_layout_kept_when_better_power_has_no_layout(db_session: AsyncSession):
    """A power improvement without a layout keeps the stored snapshot."""
    await run_service.save_run(db_session, make_run("layout-3", power=1, layout="A"))
    run = await run_service.save_run(db_session, make_run("layout-3", power=2))

    assert run.power == 2
    assert run.layout == "A"


# =============================================================================
# Save: validation
# =============================================================================


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, missing",
    [
        (RunSave(run_id="r"), ["user_id"]),
        (RunSave(user_id="u"), ["run_id"]),
        (RunSave(user_id="", run_id=""), ["user_id", "run_id"]),
    ],
)
async def test_save_requires_user_and_run_id(
    db_session: AsyncSession, payload: RunSave, missing: list[str]
):
    """Missing identifiers are rejected before touching the store."""
    with patch.object(db_session, "execute") as execute:
        with pytest.raises(MissingRunFieldsError) as exc_info:
            await run_service.save_run(db_session, payload)

    execute.assert_not_called()
    assert exc_info.value.details["missing_fields"] == missing


# =============================================================================
# Save: store failures
# =============================================================================


@pytest.mark.asyncio
async def test_save_maps_operational_error_to_unavailable(db_session: AsyncSession):
    """Connectivity failures surface as StoreUnavailableError."""
    error = OperationalError("INSERT", {}, Exception("connection refused"))
    with patch.object(db_session, "execute", side_effect=error):
        with pytest.raises(StoreUnavailableError) as exc_info:
            await run_service.save_run(db_session, make_run("down-1"))

    assert exc_info.value.message == "Failed to save run"
    assert "connection refused" in exc_info.value.reason
    assert exc_info.value.details["run_id"] == "down-1"


@pytest.mark.asyncio
async def test_save_maps_integrity_error(db_session: AsyncSession):
    """Constraint violations surface as StoreIntegrityError."""
    error = IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed"))
    with patch.object(db_session, "execute", side_effect=error):
        with pytest.raises(StoreIntegrityError):
            await run_service.save_run(db_session, make_run("bad-1"))


def test_build_upsert_rejects_unsupported_dialect():
    """Only dialects with ON CONFLICT upserts are accepted."""
    with pytest.raises(StoreIntegrityError):
        run_service.build_upsert("mysql", {"run_id": "x"})


def test_build_upsert_compiles_single_statement():
    """The merge is one INSERT ... ON CONFLICT ... RETURNING statement."""
    from sqlalchemy.dialects import postgresql

    stmt = run_service.build_upsert(
        "postgresql",
        {
            "user_id": "u",
            "run_id": "r",
            "timestamp": 1,
            "heat": 0,
            "power": 0,
            "money": 0,
            "time_played": 0,
            "layout": None,
        },
    )
    sql = str(stmt.compile(dialect=postgresql.dialect()))

    assert sql.startswith("INSERT INTO runs")
    assert "ON CONFLICT (run_id) DO UPDATE" in sql
    assert "CASE WHEN" in sql
    assert "RETURNING" in sql


# =============================================================================
# Top runs
# =============================================================================


@pytest.fixture
async def seeded_runs(db_session: AsyncSession) -> None:
    """Four runs with distinct values on every sortable field."""
    rows = [
        ("top-a", 1.0, 40.0, 300.0, 4_000),
        ("top-b", 2.0, 10.0, 100.0, 1_000),
        ("top-c", 3.0, 30.0, 400.0, 2_000),
        ("top-d", 4.0, 20.0, 200.0, 3_000),
    ]
    for run_id, heat, power, money, timestamp in rows:
        with patch.object(run_service, "now_millis", return_value=timestamp):
            await run_service.save_run(
                db_session, make_run(run_id, heat=heat, power=power, money=money)
            )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "sort_by, expected",
    [
        ("power", ["top-a", "top-c", "top-d", "top-b"]),
        ("heat", ["top-d", "top-c", "top-b", "top-a"]),
        ("money", ["top-c", "top-a", "top-d", "top-b"]),
        ("timestamp", ["top-a", "top-d", "top-c", "top-b"]),
        (RunSortField.HEAT, ["top-d", "top-c", "top-b", "top-a"]),
    ],
)
async def test_top_runs_orders_descending(
    db_session: AsyncSession, seeded_runs: None, sort_by, expected: list[str]
):
    """Runs come back highest first by the requested field."""
    runs = await run_service.get_top_runs(db_session, sort_by=sort_by, limit=10)

    assert [run.run_id for run in runs] == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("sort_by", [None, "bogus", "id", "power; DROP TABLE runs"])
async def test_top_runs_falls_back_to_power(
    db_session: AsyncSession, seeded_runs: None, sort_by
):
    """Unknown sort fields rank by power."""
    runs = await run_service.get_top_runs(db_session, sort_by=sort_by, limit=10)

    assert [run.run_id for run in runs] == ["top-a", "top-c", "top-d", "top-b"]


@pytest.mark.asyncio
async def test_top_runs_respects_limit(db_session: AsyncSession, seeded_runs: None):
    """Only the first ``limit`` runs are returned."""
    runs = await run_service.get_top_runs(db_session, sort_by="money", limit=3)

    assert [run.run_id for run in runs] == ["top-c", "top-a", "top-d"]


@pytest.mark.asyncio
async def test_top_runs_maps_store_failure(db_session: AsyncSession):
    """Read failures surface as StoreUnavailableError."""
    error = OperationalError("SELECT", {}, Exception("server closed the connection"))
    with patch.object(db_session, "execute", side_effect=error):
        with pytest.raises(StoreUnavailableError) as exc_info:
            await run_service.get_top_runs(db_session)

    assert exc_info.value.message == "Failed to get top runs"


@pytest.mark.parametrize(
    "requested, ceiling, expected",
    [(None, 100, 10), (3, 100, 3), (100, 100, 100), (5000, 100, 100)],
)
def test_resolve_limit(requested, ceiling, expected):
    """The default applies when absent and the ceiling clamps large values."""
    assert run_service.resolve_limit(requested, ceiling) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("heat", RunSortField.HEAT),
        ("timestamp", RunSortField.TIMESTAMP),
        ("POWER", RunSortField.POWER),
        ("", RunSortField.POWER),
        (None, RunSortField.POWER),
    ],
)
def test_sort_field_resolution(raw, expected):
    """Only exact field names are honoured."""
    assert RunSortField.resolve(raw) is expected
