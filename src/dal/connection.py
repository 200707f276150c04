"""asyncpg pool construction and role-aware connection checkout."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional, TypeVar

import asyncpg

from common.config.env import get_env_choice, get_env_int, get_env_str
from dal.role_scope import ExecutionContext, Operation, RoleScopedExecutor

logger = logging.getLogger(__name__)

T = TypeVar("T")

SSL_MODES = ("disable", "allow", "prefer", "require", "verify-ca", "verify-full")


@dataclass(frozen=True)
class PostgresCredentials:
    """Connection settings supplied by the host's credential store."""

    host: str = "localhost"
    port: int = 5432
    database: str = "postgres"
    user: str = "postgres"
    password: str = field(default="", repr=False)
    ssl: str = "disable"
    rls_role: Optional[str] = None

    @classmethod
    def from_env(cls) -> "PostgresCredentials":
        """Build credentials from ``PGVECTOR_*`` environment variables."""
        return cls(
            host=get_env_str("PGVECTOR_HOST", "localhost") or "localhost",
            port=get_env_int("PGVECTOR_PORT", 5432) or 5432,
            database=get_env_str("PGVECTOR_DATABASE", "postgres") or "postgres",
            user=get_env_str("PGVECTOR_USER", "postgres") or "postgres",
            password=get_env_str("PGVECTOR_PASSWORD", "") or "",
            ssl=get_env_choice("PGVECTOR_SSL", SSL_MODES, "disable") or "disable",
            rls_role=(get_env_str("PGVECTOR_RLS_ROLE", "") or "").strip() or None,
        )

    def to_connect_kwargs(self) -> dict[str, Any]:
        """Return keyword arguments accepted by ``asyncpg.connect``/``create_pool``."""
        ssl_mode = (self.ssl or "disable").strip().lower()
        if ssl_mode not in SSL_MODES:
            raise ValueError(f"Unsupported SSL mode '{self.ssl}'; expected one of {SSL_MODES}.")
        return {
            "host": self.host,
            "port": int(self.port),
            "database": self.database,
            "user": self.user,
            "password": self.password,
            "ssl": False if ssl_mode == "disable" else ssl_mode,
        }


async def create_pool(
    credentials: PostgresCredentials,
    *,
    min_size: int = 1,
    max_size: int = 10,
    command_timeout: Optional[float] = 60,
    application_name: str = "pgvector_rls_tool",
) -> asyncpg.Pool:
    """Create an asyncpg pool; statement timeouts come from ``command_timeout``."""
    try:
        pool = await asyncpg.create_pool(
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
            server_settings={"application_name": application_name},
            **credentials.to_connect_kwargs(),
        )
    except Exception as exc:
        raise ConnectionError(f"Failed to initialize database pool: {exc}") from exc

    logger.info(
        "Database connection pool established",
        extra={
            "event": "pool_created",
            "db_host": credentials.host,
            "db_name": credentials.database,
            "db_user": credentials.user,
        },
    )
    return pool


def discard_connection(conn: Any, *, reason: str) -> None:
    """Terminate a connection so the pool replaces it instead of reusing it."""
    terminate = getattr(conn, "terminate", None)
    if callable(terminate):
        terminate()
    logger.warning(
        "Discarded pooled connection with untrusted session state",
        extra={"event": "connection_discarded", "reason": reason},
    )


@asynccontextmanager
async def acquire_connection(
    pool: Any, *, timeout: Optional[float] = None
) -> AsyncIterator[Any]:
    """Check out one connection for the duration of an invocation."""
    async with pool.acquire(timeout=timeout) as conn:
        yield conn


async def run_on_pool(
    pool: Any,
    role: Optional[str],
    operation: Operation[T],
    *,
    logger: Optional[logging.Logger | logging.LoggerAdapter] = None,
    metadata_sink: Optional[dict[str, Any]] = None,
    timeout: Optional[float] = None,
) -> T:
    """Check out a connection, run ``operation`` role-scoped, and release or discard it.

    The same checkout is used for the whole transaction. A connection whose
    rollback or commit failed is terminated rather than returned to the pool.
    """
    async with acquire_connection(pool, timeout=timeout) as conn:
        executor = RoleScopedExecutor(logger=logger, metadata_sink=metadata_sink)
        try:
            return await executor.run(ExecutionContext(connection=conn, role=role), operation)
        finally:
            if not executor.result.connection_trusted:
                discard_connection(conn, reason=executor.result.failure_reason)
