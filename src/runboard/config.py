# src/runboard/config.py

"""Environment-driven settings for Runboard."""

import logging
import os
from dataclasses import dataclass, field

from sqlalchemy.engine import URL, make_url

from runboard.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Local file used when no store settings are configured at all
SQLITE_FALLBACK_URL = "sqlite+aiosqlite:///./runboard.db"

# Variables that point at a real store and so require DB_PASS
STORE_LOCATION_ENV = ("DB_HOST", "DB_PORT", "DB_NAME", "DB_USER")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one process.

    Attributes:
        db_host, db_port, db_name, db_user: Store location and login
        db_password: Store password; has no default
        database_url: Explicit SQLAlchemy URL, overrides the db_* fields
        pool_size: Maximum number of concurrent store connections
        pool_timeout: Seconds a caller waits for a pooled connection
        connect_timeout: Seconds allowed to open a new connection
        pool_recycle: Seconds after which a pooled connection is replaced
        max_top_limit: Ceiling applied to the top-runs ``limit``
    """

    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "postgres"
    db_user: str = "postgres"
    db_password: str | None = None
    db_ssl: str = "require"
    database_url: str | None = None
    pool_size: int = 10
    pool_timeout: float = 10.0
    connect_timeout: float = 10.0
    pool_recycle: int = 30
    db_echo: bool = False
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    max_top_limit: int = 100
    log_level: str = "INFO"

    @property
    def store_url(self) -> URL:
        """The SQLAlchemy URL the engine should connect to."""
        if self.database_url:
            return make_url(self.database_url)
        if self.db_password is None:
            return make_url(SQLITE_FALLBACK_URL)
        return URL.create(
            "postgresql+asyncpg",
            username=self.db_user,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
        )

    @property
    def is_sqlite(self) -> bool:
        return self.store_url.get_backend_name() == "sqlite"


def load_settings() -> Settings:
    """Build settings from the process environment.

    Raises:
        ConfigurationError: A store location is configured without DB_PASS.
    """
    settings = Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_name=os.getenv("DB_NAME", "postgres"),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASS"),
        db_ssl=os.getenv("DB_SSL", "require"),
        database_url=os.getenv("DATABASE_URL") or None,
        pool_size=int(os.getenv("DB_POOL_SIZE", "10")),
        pool_timeout=float(os.getenv("DB_POOL_TIMEOUT", "10")),
        connect_timeout=float(os.getenv("DB_CONNECT_TIMEOUT", "10")),
        pool_recycle=int(os.getenv("DB_POOL_RECYCLE", "30")),
        db_echo=_env_bool("DB_ECHO"),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
        cors_origins=_env_list("CORS_ORIGINS", "*"),
        max_top_limit=int(os.getenv("MAX_TOP_LIMIT", "100")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )

    if settings.database_url is None and settings.db_password is None:
        configured = [name for name in STORE_LOCATION_ENV if os.getenv(name)]
        if configured:
            raise ConfigurationError(
                "DB_PASS must be set when the store is configured",
                details={"configured": configured},
            )
        logger.warning(
            "DB_PASS is not set; falling back to local SQLite store at %s",
            SQLITE_FALLBACK_URL,
        )

    return settings


settings = load_settings()
