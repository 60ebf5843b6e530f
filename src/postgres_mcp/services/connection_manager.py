"""Connection manager for postgres-mcp.

Owns the bounded SQLAlchemy connection pool and is the only path through which
the rest of the server talks to the database. Provides query execution and
catalog introspection on top of leased connections, applies TLS and session
settings when physical connections are established, and maps driver failures
to `DatabaseError`.

Lifecycle: INITIALIZING -> READY -> DRAINING -> CLOSED. Work is refused
outside READY with a `DatabaseError` instead of blocking.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
import logging
import math
import threading
import time
from typing import Any, ClassVar, Final

from fastmcp.utilities.logging import get_logger
import sqlalchemy as sa
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import URL, Connection, CursorResult, Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.pool import PoolResetState, QueuePool

from postgres_mcp.errors import (
    CONNECTION_FAILED,
    DATABASE_ERROR,
    POOL_CLOSED,
    POOL_NOT_READY,
    POOL_TIMEOUT,
    TABLE_NOT_FOUND,
    DatabaseError,
)
from postgres_mcp.models import ColumnInfo, QueryRow, TableDetail, TableIdentity, TableSchema
from postgres_mcp.services.config_service import ServerConfig
from postgres_mcp.services.state import POOL_UNAVAILABLE_PHASES, PoolPhase, PoolState
from postgres_mcp.sql_safety import bind_positional

# Driver error classes after which a connection is in an unknown state.
_FATAL_DBAPI_ERRORS: Final[tuple[type[DBAPIError], ...]] = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.InternalError,
)

# Restores a PostgreSQL session to the settings it was opened with.
_SESSION_RESET_SQL: Final[tuple[str, ...]] = ("SET SESSION AUTHORIZATION DEFAULT", "RESET ALL")

EngineFactory = Callable[[ServerConfig], Engine]


# ---- engine construction ----------------------------------------------------
def normalize_url(database_url: str) -> URL:
    """Parse the configured URL, selecting the psycopg driver for PostgreSQL."""
    url = sa.engine.make_url(database_url)
    if url.drivername in {"postgres", "postgresql"}:
        url = url.set(drivername="postgresql+psycopg")
    return url


def build_ssl_args(config: ServerConfig) -> dict[str, str]:
    """Translate TLS options into libpq ``sslmode`` / ``sslrootcert`` arguments.

    - No TLS requirement and no root certificate: leave libpq's default (or the
      URL's own ``sslmode``) alone.
    - ``ssl_reject_unauthorized=False``: encrypt without validating the server
      certificate (``require``), or ``prefer`` when TLS is optional.
    - Otherwise validate the certificate chain and host name (``verify-full``)
      against the configured root certificate, or the system store.
    """
    if not config.require_ssl and not config.ssl_root_cert_path:
        return {}
    if not config.ssl_reject_unauthorized:
        return {"sslmode": "require" if config.require_ssl else "prefer"}
    return {"sslmode": "verify-full", "sslrootcert": config.ssl_root_cert_path or "system"}


def build_connect_args(config: ServerConfig, url: URL) -> dict[str, Any]:
    """Driver arguments applied once to every new physical connection."""
    backend = url.get_backend_name()
    if backend == "sqlite":
        # Pooled connections move between worker threads.
        return {"check_same_thread": False}
    if backend != "postgresql":
        return {}

    # libpq takes whole seconds.
    args: dict[str, Any] = {"connect_timeout": max(1, math.ceil(config.connection_timeout))}
    if config.statement_timeout > 0:
        args["options"] = f"-c statement_timeout={config.statement_timeout}"
    if not config.prepare_statements and url.get_driver_name() == "psycopg":
        args["prepare_threshold"] = None
    args.update(build_ssl_args(config))
    return args


def create_pool_engine(config: ServerConfig) -> Engine:
    """Create the bounded, non-overflowing engine used by `ConnectionManager`."""
    url = normalize_url(config.database_url)
    create_kwargs: dict[str, Any] = {
        "poolclass": QueuePool,
        "pool_size": config.max_connections,
        "max_overflow": 0,
        "pool_timeout": config.connection_timeout,
        "connect_args": build_connect_args(config, url),
    }
    if url.get_backend_name() == "postgresql":
        # hstore OID lookup runs on every new connection when enabled.
        create_kwargs["use_native_hstore"] = config.fetch_types
    engine = sa.create_engine(url, **create_kwargs)
    if url.get_backend_name() == "postgresql":
        sa.event.listen(engine.pool, "reset", reset_session_state)
    return engine


def reset_session_state(
    dbapi_connection: Any, connection_record: Any, reset_state: PoolResetState
) -> None:
    """Pool ``reset`` hook: undo session-level settings before a connection is reused.

    A statement such as ``SELECT set_config('search_path', 'x', false)`` changes
    the session for whoever leases the connection next. The open transaction is
    rolled back first so it cannot undo the reset, and the reset is committed so
    the connection returns to the pool idle.
    """
    if reset_state.terminate_only:
        return
    dbapi_connection.rollback()
    cursor = dbapi_connection.cursor()
    try:
        for statement in _SESSION_RESET_SQL:
            cursor.execute(statement)
    finally:
        cursor.close()
    dbapi_connection.commit()


def default_excluded_schemas(dialect_name: str) -> list[str]:
    """Get system schemas to hide from table listings for a dialect."""
    dialect_lower = dialect_name.lower()
    if "postgres" in dialect_lower:
        return ["information_schema", "pg_catalog", "pg_toast"]
    if "mysql" in dialect_lower or "mariadb" in dialect_lower:
        return ["information_schema", "mysql", "performance_schema", "sys"]
    if "sqlite" in dialect_lower:
        return ["temp"]
    return ["information_schema", "pg_catalog", "sys"]


def to_database_error(exc: SQLAlchemyError, default_code: str = DATABASE_ERROR) -> DatabaseError:
    """Convert a SQLAlchemy exception into a `DatabaseError`.

    The code is the driver's SQLSTATE when present (psycopg ``sqlstate``,
    psycopg2 ``pgcode``, sqlite3 ``sqlite_errorname``).
    """
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        orig = exc.orig
        code = (
            getattr(orig, "sqlstate", None)
            or getattr(orig, "pgcode", None)
            or getattr(orig, "sqlite_errorname", None)
            or default_code
        )
        diag = getattr(orig, "diag", None)
        detail = getattr(diag, "message_detail", None) if diag is not None else None
        message = str(orig).strip() or str(exc)
        return DatabaseError(message, code=code, detail=detail)
    return DatabaseError(str(exc), code=default_code)


def _fetch_rows(result: CursorResult[Any]) -> list[QueryRow]:
    if not result.returns_rows:
        return []
    return [dict(row) for row in result.mappings()]


class ConnectionManager:
    """Thread-safe owner of the database connection pool.

    Each leased connection belongs to exactly one caller until it is returned.
    The pool is the only shared state; callers need no external locking.
    """

    SAMPLE_ROW_LIMIT: ClassVar[int] = 5

    def __init__(
        self,
        config: ServerConfig,
        *,
        engine_factory: EngineFactory | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self._engine_factory = engine_factory or create_pool_engine
        self._engine: Engine | None = None
        self._logger = logger or get_logger(__name__)
        self._cond = threading.Condition()
        self._active_leases = 0
        self._state = PoolState(phase=PoolPhase.INITIALIZING)

    # ---- lifecycle ------------------------------------------------------------
    def start(self) -> None:
        """Create the pool and verify connectivity; idempotent once READY.

        Raises:
            DatabaseError: If the database is unreachable (the pool is then
                CLOSED) or the manager was already closed
        """
        with self._cond:
            if self._state.phase is PoolPhase.READY:
                return
            if self._state.phase in {PoolPhase.DRAINING, PoolPhase.CLOSED}:
                msg = "Connection pool has been closed"
                raise DatabaseError(msg, code=POOL_CLOSED)
            self._state = replace(self._state, started_at=time.time())

        self._logger.info(
            "Initializing connection pool (max_connections=%d, connection_timeout=%.1fs, "
            "statement_timeout=%dms, write_ops=%s)",
            self.config.max_connections,
            self.config.connection_timeout,
            self.config.statement_timeout,
            self.config.allow_write_ops,
        )
        start = time.perf_counter()
        engine: Engine | None = None
        try:
            engine = self._engine_factory(self.config)
            with engine.connect() as conn:
                conn.execute(sa.text("SELECT 1"))
        except SQLAlchemyError as exc:
            if engine is not None:
                engine.dispose()
            err = to_database_error(exc, default_code=CONNECTION_FAILED)
            with self._cond:
                self._state = replace(
                    self._state,
                    phase=PoolPhase.CLOSED,
                    closed_at=time.time(),
                    error_message=str(err),
                )
            self._logger.error("Connection pool initialization failed: %s", err)
            raise err from exc

        with self._cond:
            self._engine = engine
            self._state = replace(self._state, phase=PoolPhase.READY, ready_at=time.time())
        self._logger.info(
            "Connection pool ready (dialect=%s, elapsed_ms=%.1f)",
            engine.dialect.name,
            (time.perf_counter() - start) * 1000.0,
        )

    def close(self, drain_timeout: float | None = None) -> None:
        """Stop accepting work, wait for outstanding leases, dispose the pool.

        Args:
            drain_timeout: Seconds to wait for leased connections to come back;
                defaults to the configured connection timeout
        """
        with self._cond:
            if self._state.phase is PoolPhase.CLOSED:
                return
            self._state = replace(self._state, phase=PoolPhase.DRAINING)
            timeout = self.config.connection_timeout if drain_timeout is None else drain_timeout
            self._logger.info("Draining connection pool (%d leased)", self._active_leases)
            drained = self._cond.wait_for(lambda: self._active_leases == 0, timeout=timeout)
            if not drained:
                self._logger.warning(
                    "Closing pool with %d connection(s) still leased", self._active_leases
                )
            engine = self._engine
            self._engine = None
            self._state = replace(self._state, phase=PoolPhase.CLOSED, closed_at=time.time())

        if engine is not None:
            engine.dispose()
        self._logger.info("Connection pool closed")

    def state(self) -> PoolState:
        """Return a snapshot of the pool state."""
        with self._cond:
            return replace(self._state, active_leases=self._active_leases)

    @property
    def phase(self) -> PoolPhase:
        return self._state.phase

    @property
    def dialect_name(self) -> str | None:
        """SQLAlchemy dialect name of the active engine, None before READY."""
        engine = self._engine
        return engine.dialect.name if engine is not None else None

    # ---- leasing --------------------------------------------------------------
    @contextmanager
    def lease(self) -> Iterator[Connection]:
        """Lease one connection for the duration of the ``with`` block.

        Raises:
            DatabaseError: If the pool is not READY (``POOL_NOT_READY`` /
                ``POOL_CLOSED``), no connection frees up within the connection
                timeout (``POOL_TIMEOUT``), or a new connection cannot be opened
        """
        engine = self._acquire_slot()
        try:
            try:
                conn = engine.connect()
            except sa_exc.TimeoutError as exc:
                msg = (
                    f"No database connection available within "
                    f"{self.config.connection_timeout:g}s "
                    f"(max_connections={self.config.max_connections})"
                )
                self._logger.warning(msg)
                raise DatabaseError(msg, code=POOL_TIMEOUT, detail=str(exc)) from exc
            except SQLAlchemyError as exc:
                err = to_database_error(exc, default_code=CONNECTION_FAILED)
                self._logger.error("Could not open database connection: %s", err)
                raise err from exc

            try:
                yield conn
            except DBAPIError as exc:
                if not conn.invalidated and (
                    exc.connection_invalidated or isinstance(exc, _FATAL_DBAPI_ERRORS)
                ):
                    self._logger.warning("Discarding connection after driver error: %s", exc.orig)
                    conn.invalidate(exc)
                raise
            finally:
                conn.close()
        finally:
            self._release_slot()

    def _acquire_slot(self) -> Engine:
        with self._cond:
            phase = self._state.phase
            if phase is PoolPhase.INITIALIZING:
                msg = "Connection pool is not ready"
                raise DatabaseError(msg, code=POOL_NOT_READY)
            if phase in POOL_UNAVAILABLE_PHASES or self._engine is None:
                msg = "Connection pool is closed"
                raise DatabaseError(msg, code=POOL_CLOSED)
            self._active_leases += 1
            return self._engine

    def _release_slot(self) -> None:
        with self._cond:
            self._active_leases -= 1
            self._cond.notify_all()

    @contextmanager
    def _database_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            err = to_database_error(exc)
            self._logger.warning("%s failed [%s]: %s", action, err.code, err)
            raise err from exc

    # ---- queries --------------------------------------------------------------
    def execute_query(self, sql: str) -> list[QueryRow]:
        """Run one SQL statement as-is and return its rows.

        The text is sent without parameter processing, so ``%`` and ``:name``
        sequences reach the server untouched.
        """
        start = time.perf_counter()
        with self._database_errors("Query"), self.lease() as conn:
            if not self.config.allow_write_ops and conn.dialect.name == "postgresql":
                conn.execution_options(postgresql_readonly=True)
            result = conn.exec_driver_sql(sql, execution_options={"no_parameters": True})
            rows = _fetch_rows(result)
            conn.commit()
        self._logger.debug(
            "Query finished (rows=%d, elapsed_ms=%.1f)",
            len(rows),
            (time.perf_counter() - start) * 1000.0,
        )
        return rows

    def execute_parameterized_query(self, sql: str, parameters: Sequence[Any]) -> list[QueryRow]:
        """Run a trusted ``$n`` template with values bound out-of-band.

        Raises:
            QueryValidationError: If placeholders and parameters do not line up
            DatabaseError: On any database failure
        """
        clause, binds = bind_positional(sql, parameters)
        with self._database_errors("Parameterized query"), self.lease() as conn:
            result = conn.execute(clause, binds)
            rows = _fetch_rows(result)
            conn.commit()
        self._logger.debug("Parameterized query finished (rows=%d)", len(rows))
        return rows

    # ---- introspection --------------------------------------------------------
    def list_tables(self) -> list[TableIdentity]:
        """List user tables, excluding system schemas, ordered by schema then name."""
        identities: list[TableIdentity] = []
        with self._database_errors("Table listing"), self.lease() as conn:
            inspector = sa.inspect(conn)
            excluded = {s.lower() for s in default_excluded_schemas(conn.dialect.name)}
            for schema in inspector.get_schema_names():
                lowered = schema.lower()
                if lowered in excluded or lowered.startswith(("pg_temp", "pg_toast")):
                    continue
                identities.extend(
                    TableIdentity(table_schema=schema, table_name=table)
                    for table in inspector.get_table_names(schema=schema)
                )
        identities.sort(key=lambda t: (t.table_schema, t.table_name))
        return identities

    def get_table_detail(self, schema: str, table: str) -> TableDetail:
        """Return current column metadata and a few sample rows for a table.

        ``schema`` and ``table`` only reach SQL through the catalog API's bound
        parameters and the dialect's identifier quoting.

        Raises:
            DatabaseError: ``TABLE_NOT_FOUND`` when the table does not exist
        """
        with self._database_errors("Table detail"), self.lease() as conn:
            inspector = sa.inspect(conn)
            if not inspector.has_table(table, schema=schema):
                msg = f"Table {schema}.{table} not found"
                raise DatabaseError(msg, code=TABLE_NOT_FOUND)

            columns = [
                ColumnInfo(
                    column_name=col["name"],
                    data_type=str(col["type"]),
                    is_nullable=bool(col.get("nullable", True)),
                    column_default=None if col.get("default") is None else str(col.get("default")),
                )
                for col in inspector.get_columns(table, schema=schema)
            ]

            sample_query = (
                sa.select(sa.text("*"))
                .select_from(sa.table(table, schema=schema))
                .limit(self.SAMPLE_ROW_LIMIT)
            )
            sample_rows = _fetch_rows(conn.execute(sample_query))
            conn.commit()

        return TableDetail(
            table=TableSchema(table_schema=schema, table_name=table, columns=columns),
            sample_rows=sample_rows,
        )
