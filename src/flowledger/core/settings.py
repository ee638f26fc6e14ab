"""Database settings for the flowledger persistence core.

The core does not own its configuration: an external loader (environment,
``.env`` file, or a caller constructing the model directly) supplies the
backend URL, pool bounds and timeouts.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    Pool bounds and timeouts are checked at startup so a bad value fails
    fast instead of surfacing as a hung ``acquire()``.

Features:
    - **DatabaseSettings:** URL or discrete host/port/name/user/password
    - **env_prefix:** ``FLOWLEDGER_DB_`` environment variables
    - **.env file support:** Automatic loading via pydantic-settings
    - **masked_url():** Safe-to-log URL with the password hidden

Examples:
    >>> settings = DatabaseSettings(url="sqlite:///./flowledger.db")
    >>> settings.backend
    'sqlite'

    Environment driven::

        FLOWLEDGER_DB_HOST=db FLOWLEDGER_DB_NAME=fastgraph FLOWLEDGER_DB_POOL_MAX_SIZE=20
"""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL, make_url


class DatabaseSettings(BaseSettings):
    """Connection, pool and timeout settings.

    Fields
    ──────
    url                          : Full SQLAlchemy URL; built from the discrete
                                   fields when omitted
    host/port/name/user/password : PostgreSQL connection parts
    pool_min_size                : Connections kept idle in the pool
    pool_max_size                : Hard cap on open connections
    acquire_timeout              : Seconds ``acquire()`` waits before PoolExhausted
    idle_timeout                 : Seconds before an idle connection is recycled
    statement_timeout            : Default per-statement limit in seconds (0 = none)
    connect_timeout              : Seconds to wait when opening a connection
    allow_transitions_on_deleted : Whether soft-deleted rows accept updates
    """

    model_config = SettingsConfigDict(
        env_prefix="FLOWLEDGER_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Backend ──────────────────────────────────────────────────
    url: str | None = None
    host: str = "localhost"
    port: int = 5432
    name: str = "fastgraph"
    user: str = "postgres"
    password: str | None = None

    # ── Pool ─────────────────────────────────────────────────────
    pool_min_size: int = Field(default=5, ge=1)
    pool_max_size: int = Field(default=20, ge=1)
    acquire_timeout: float = Field(default=60.0, gt=0)
    idle_timeout: float = Field(default=30.0, gt=0)

    # ── Statements ───────────────────────────────────────────────
    statement_timeout: float = Field(default=0.0, ge=0)
    connect_timeout: float = Field(default=10.0, gt=0)
    echo: bool = False

    # ── Policy ───────────────────────────────────────────────────
    allow_transitions_on_deleted: bool = False

    # ── Observability ────────────────────────────────────────────
    debug: bool = False
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> DatabaseSettings:
        if self.pool_min_size > self.pool_max_size:
            raise ValueError(
                f"pool_min_size ({self.pool_min_size}) must not exceed "
                f"pool_max_size ({self.pool_max_size})"
            )
        return self

    def resolved_url(self) -> URL:
        """The SQLAlchemy URL for the backend, built from parts if needed."""
        if self.url:
            return make_url(self.url)
        return URL.create(
            "postgresql+psycopg2",
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.name,
        )

    @property
    def backend(self) -> str:
        """Backend name: ``"sqlite"`` or ``"postgresql"``."""
        return self.resolved_url().get_backend_name()

    def masked_url(self) -> str:
        """URL with the password replaced by ``***``, safe for logs."""
        return self.resolved_url().render_as_string(hide_password=True)


__all__ = ["DatabaseSettings"]
