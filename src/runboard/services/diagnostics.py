# src/runboard/services/diagnostics.py

"""Startup diagnostics: environment banner, DNS report and schema setup."""

from __future__ import annotations

import asyncio
import logging
import os
import platform
import socket
import sys
import time

from sqlalchemy.ext.asyncio import AsyncEngine

from runboard.config import Settings
from runboard.db.models import Base
from runboard.db.monitor import PoolMonitor

logger = logging.getLogger(__name__)

BANNER = "=" * 40
RULE = "-" * 40


def log_startup_banner(config: Settings) -> None:
    """Log the runtime and store configuration the process starts with."""
    url = config.store_url
    logger.info(BANNER)
    logger.info("Starting server initialization...")
    logger.info("Python version: %s", platform.python_version())
    logger.info("Platform: %s", sys.platform)
    logger.info("Architecture: %s", platform.machine())
    logger.info("Port: %d", config.port)
    logger.info("Working directory: %s", os.getcwd())
    logger.info("Process ID: %d", os.getpid())
    logger.info(BANNER)
    logger.info("Database backend: %s", url.get_backend_name())
    if not config.is_sqlite:
        logger.info("Database host: %s:%s", url.host, url.port)
        logger.info("Database name: %s", url.database)
        logger.info("Database user: %s", url.username)
        logger.info("DB_PASS environment variable: %s", "SET" if url.password else "NOT SET")
        logger.info("Connection timeout: %ss", config.connect_timeout)
        logger.info("Pool acquisition timeout: %ss", config.pool_timeout)
        logger.info("Pool recycle: %ss", config.pool_recycle)
        logger.info("Max pool connections: %d", config.pool_size)
        logger.info("SSL mode: %s", config.db_ssl)
    else:
        logger.info("Database file: %s", url.database)


async def _resolve(
    loop: asyncio.AbstractEventLoop, hostname: str, family: socket.AddressFamily
) -> list[str]:
    infos = await loop.getaddrinfo(hostname, None, family=family, type=socket.SOCK_STREAM)
    return sorted({info[4][0] for info in infos})


async def log_dns_resolution(hostname: str) -> dict[str, list[str]]:
    """Log the IPv4/IPv6 addresses ``hostname`` resolves to.

    Resolution failures are logged, never raised. Returns the addresses
    found per family.
    """
    loop = asyncio.get_running_loop()
    found: dict[str, list[str]] = {"ipv4": [], "ipv6": []}
    logger.info("Resolving DNS for %s...", hostname)

    for label, family in (("ipv4", socket.AF_INET), ("ipv6", socket.AF_INET6)):
        try:
            found[label] = await _resolve(loop, hostname, family)
        except OSError as e:
            logger.info("No %s addresses found: %s", label.upper(), e)
            continue
        logger.info("%s addresses found: %s", label.upper(), ", ".join(found[label]))

    if found["ipv6"] and not found["ipv4"]:
        logger.warning(
            "Only IPv6 addresses available. If connection fails, this "
            "environment may not support IPv6; consider an IPv4 connection pooler."
        )
    elif found["ipv4"] and found["ipv6"]:
        logger.info("Both IPv4 and IPv6 addresses available")
    elif not found["ipv4"]:
        logger.error("DNS resolution returned no addresses for %s", hostname)
    return found


def _diagnose(error: BaseException, config: Settings) -> None:
    """Log likely causes for a failed store connection."""
    root = error.__cause__ or error.__context__ or error
    errno_name = ""
    if isinstance(root, OSError) and root.errno is not None:
        errno_name = os.strerror(root.errno)
    text = f"{error} {root} {errno_name}".lower()

    if "unreachable" in text:
        logger.error(RULE)
        logger.error("Network unreachable - possible causes:")
        logger.error("  - IPv6-only address in an environment without IPv6")
        logger.error("  - Firewall blocking the connection")
        logger.error("  - Network routing issue")
        logger.error(RULE)
    elif "timed out" in text or "timeout" in text or "refused" in text:
        logger.error(RULE)
        logger.error("Connection timeout/refused - possible causes:")
        logger.error("  - Database server not accepting connections")
        logger.error("  - Firewall blocking port %s", config.store_url.port)
        logger.error("  - Connection timeout too short (current: %ss)", config.connect_timeout)
        logger.error(RULE)


async def init_database(engine: AsyncEngine, monitor: PoolMonitor, config: Settings) -> None:
    """Probe the store, then create the runs table and its indexes.

    Raises whatever the store raised after logging a diagnosis, so the
    caller can abort startup.
    """
    start_time = time.perf_counter()
    logger.info("Starting database initialization (pool: %s)", monitor.format_stats())

    try:
        async with engine.begin() as conn:
            connect_ms = (time.perf_counter() - start_time) * 1000
            version = conn.dialect.server_version_info
            logger.info("Database connection successful (%.0fms)", connect_ms)
            logger.info(
                "Server: %s %s",
                conn.dialect.name,
                ".".join(str(part) for part in version) if version else "unknown",
            )

            table_start = time.perf_counter()
            await conn.run_sync(Base.metadata.create_all)
            logger.info(
                "Runs table and indexes ready (%.0fms)",
                (time.perf_counter() - table_start) * 1000,
            )
    except Exception as e:
        logger.error(BANNER)
        logger.error(
            "Database initialization failed (after %.0fms): %s",
            (time.perf_counter() - start_time) * 1000,
            e,
        )
        _diagnose(e, config)
        logger.error("Pool stats - %s", monitor.format_stats())
        logger.error(BANNER)
        raise

    logger.info(
        "Database initialization completed (total: %.0fms, pool: %s)",
        (time.perf_counter() - start_time) * 1000,
        monitor.format_stats(),
    )
