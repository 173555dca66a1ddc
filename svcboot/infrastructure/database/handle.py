import time
from collections.abc import Mapping
from typing import Any

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ...config import EnvFile, load_database_settings
from ...constants import DEFAULT_DATABASE_ENV_VAR, DEFAULT_ENV_FILE
from ...domain.exceptions import ConfigurationError, DatabaseNotConfiguredError
from ...logging_config import get_logger
from ...metrics import record_db_query

# libpq options asyncpg does not understand as query parameters
_LIBPQ_ONLY_OPTIONS = ("sslmode", "channel_binding")


def _async_engine_args(url: str) -> tuple[URL, dict[str, Any]]:
    """Resolve the async driver URL and connect args for a connection string."""
    try:
        parsed = make_url(url)
    except ArgumentError as e:
        raise ConfigurationError("Database URL could not be parsed") from e

    connect_args: dict[str, Any] = {}
    drivername = parsed.drivername

    if drivername in ("postgres", "postgresql"):
        # For PostgreSQL, use asyncpg
        sslmode = parsed.query.get("sslmode")
        if sslmode:
            connect_args["ssl"] = sslmode if isinstance(sslmode, str) else sslmode[0]
        parsed = parsed.difference_update_query(_LIBPQ_ONLY_OPTIONS)
        parsed = parsed.set(drivername="postgresql+asyncpg")
    elif drivername == "sqlite":
        # For SQLite, use aiosqlite
        parsed = parsed.set(drivername="sqlite+aiosqlite")
    elif "+" not in drivername:
        raise ConfigurationError(f"Unsupported database URL scheme: {drivername}")

    return parsed, connect_args


class DatabaseHandle:
    """Shared SQL client bound to a single connection string.

    The engine is created on first use and connects lazily, so building a
    handle never touches the network. One handle serves every request in the
    process; queries are independent and share no mutable state.
    """

    def __init__(self, url: str, *, echo: bool = False):
        self._url = url
        self._echo = echo
        # Resolve eagerly so an unsupported URL fails at startup
        self._driver_url, self._connect_args = _async_engine_args(url)
        self._engine: AsyncEngine | None = None

    @property
    def url(self) -> str:
        """The connection string exactly as configured."""
        return self._url

    @property
    def redacted_url(self) -> str:
        return make_url(self._url).render_as_string(hide_password=True)

    @property
    def driver_url(self) -> URL:
        return self._driver_url

    @property
    def connect_args(self) -> dict[str, Any]:
        return dict(self._connect_args)

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            engine_kwargs: dict[str, Any] = {"echo": self._echo}
            if self._driver_url.get_backend_name() == "postgresql":
                engine_kwargs["pool_pre_ping"] = True
            self._engine = create_async_engine(
                self._driver_url, connect_args=self._connect_args, **engine_kwargs
            )
        return self._engine

    async def query(
        self, statement: str, params: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Run a SQL statement with bound parameters and return its rows."""
        start_time = time.perf_counter()
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text(statement), dict(params or {}))
                return [dict(row) for row in result.mappings()]
        finally:
            record_db_query("query", time.perf_counter() - start_time)

    async def execute(
        self, statement: str, params: Mapping[str, Any] | None = None
    ) -> int:
        """Run a SQL statement in its own transaction; returns affected rows."""
        start_time = time.perf_counter()
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(text(statement), dict(params or {}))
                rowcount: int = result.rowcount
        finally:
            record_db_query("execute", time.perf_counter() - start_time)
        return rowcount

    async def dispose(self) -> None:
        """Close pooled connections; the handle reconnects on next use."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    def __repr__(self) -> str:
        return f"DatabaseHandle({self.redacted_url!r})"


class DatabaseHandleProvider:
    """Builds the database handle for one environment variable, once.

    Each variable name is its own provider; ``DB_URL`` and ``NEON_DB_URL``
    handles never share state.
    """

    def __init__(
        self,
        env_var: str = DEFAULT_DATABASE_ENV_VAR,
        env_file: EnvFile = DEFAULT_ENV_FILE,
        *,
        echo: bool = False,
    ):
        self.env_var = env_var
        self.env_file = env_file
        self.echo = echo
        self._handle: DatabaseHandle | None = None

    def get(self) -> DatabaseHandle:
        """Return the shared handle, reading configuration on first access.

        Raises:
            ConfigurationError: If the variable is unset or not a database URL
        """
        if self._handle is None:
            settings = load_database_settings(self.env_var, self.env_file)
            self._handle = DatabaseHandle(settings.url, echo=self.echo)
            get_logger(__name__).info(
                "Database handle created",
                env_var=self.env_var,
                url=self._handle.redacted_url,
            )
        return self._handle

    async def close(self) -> None:
        if self._handle is not None:
            await self._handle.dispose()
            self._handle = None


def get_database(request: Request) -> DatabaseHandle:
    """FastAPI dependency returning the handle the app was built with."""
    database: DatabaseHandle | None = getattr(request.app.state, "database", None)
    if database is None:
        raise DatabaseNotConfiguredError(
            f"Service '{request.app.state.service.name}' has no database configured"
        )
    return database
