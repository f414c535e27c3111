# src/runboard/db/monitor.py

"""Connection pool observation for the store.

Logs pool lifecycle events, reports pool occupancy for the health probe,
and escalates faults on idle connections to a process shutdown.
"""

import logging
import os
import signal
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypedDict

from sqlalchemy import event
from sqlalchemy.exc import DisconnectionError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.pool import Pool

logger = logging.getLogger(__name__)


class PoolStats(TypedDict):
    """Point-in-time pool occupancy.

    Keys:
        total: Connections currently open
        idle: Open connections not handed out to a caller
        waiting: Callers blocked waiting for a connection
    """

    total: int
    idle: int
    waiting: int


def terminate_process(exc: BaseException | None) -> None:
    """Ask the running server to shut down."""
    logger.critical("Terminating process after fatal pool error: %s", exc)
    os.kill(os.getpid(), signal.SIGTERM)


class PoolMonitor:
    """Observes one engine's connection pool through SQLAlchemy pool events."""

    def __init__(
        self,
        engine: AsyncEngine,
        on_fatal: Callable[[BaseException | None], None] = terminate_process,
    ) -> None:
        self._pool: Pool = engine.sync_engine.pool
        self._on_fatal = on_fatal
        self._opened = 0
        self._checked_out: set[int] = set()
        self._waiting = 0

        event.listen(self._pool, "connect", self._on_connect)
        event.listen(self._pool, "checkout", self._on_checkout)
        event.listen(self._pool, "checkin", self._on_checkin)
        event.listen(self._pool, "close", self._on_close)
        event.listen(self._pool, "invalidate", self._on_invalidate)

    # -------------------------------------------------------------------------
    # Occupancy
    # -------------------------------------------------------------------------

    def snapshot(self) -> PoolStats:
        """Return current total/idle/waiting counts."""
        checkedin = getattr(self._pool, "checkedin", None)
        checkedout = getattr(self._pool, "checkedout", None)
        if callable(checkedin) and callable(checkedout):
            idle = checkedin()
            total = idle + checkedout()
        else:
            # Pools without a queue (e.g. StaticPool) only expose events
            total = max(self._opened, 0)
            idle = max(total - len(self._checked_out), 0)
        return PoolStats(total=total, idle=idle, waiting=self._waiting)

    def format_stats(self) -> str:
        stats = self.snapshot()
        return "Total: %d, Idle: %d, Waiting: %d" % (
            stats["total"],
            stats["idle"],
            stats["waiting"],
        )

    @contextmanager
    def waiting_for_connection(self) -> Iterator[None]:
        """Count the enclosed block as a caller queued on the pool."""
        self._waiting += 1
        try:
            yield
        finally:
            self._waiting -= 1

    # -------------------------------------------------------------------------
    # Pool event listeners
    # -------------------------------------------------------------------------

    def _on_connect(self, dbapi_connection: Any, connection_record: Any) -> None:
        self._opened += 1
        logger.info("Database client connected (%s)", self.format_stats())

    def _on_checkout(
        self, dbapi_connection: Any, connection_record: Any, connection_proxy: Any
    ) -> None:
        self._checked_out.add(id(connection_record))
        logger.debug("Database client acquired from pool (%s)", self.format_stats())

    def _on_checkin(self, dbapi_connection: Any, connection_record: Any) -> None:
        self._checked_out.discard(id(connection_record))
        logger.debug("Database client released to pool (%s)", self.format_stats())

    def _on_close(self, dbapi_connection: Any, connection_record: Any) -> None:
        self._opened -= 1
        self._checked_out.discard(id(connection_record))
        logger.info("Database client removed from pool (%s)", self.format_stats())

    def _on_invalidate(
        self,
        dbapi_connection: Any,
        connection_record: Any,
        exception: BaseException | None,
    ) -> None:
        # Invalidation without an error is a deliberate recycle
        if exception is None:
            return
        if isinstance(exception, DisconnectionError):
            # Stale connection caught by pre-ping; the pool reconnects
            logger.warning("Stale database client replaced on checkout: %r", exception)
            return
        if id(connection_record) in self._checked_out:
            # The request holding it gets the error and fails on its own
            logger.warning("Database client invalidated in use: %s", exception)
            return
        logger.critical(
            "Unexpected error on idle client: %s",
            exception,
            extra={"error_type": type(exception).__name__},
            exc_info=exception,
        )
        self._on_fatal(exception)
