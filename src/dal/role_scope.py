"""Role-scoped transaction execution for asyncpg-like connections.

When a role is requested the operation runs inside an explicit transaction
that starts with ``SET LOCAL ROLE``; the role therefore ends with the
transaction and cannot leak to later work on the same (pooled) connection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from opentelemetry import trace

from dal.identifiers import set_local_role_statement, validate_role

T = TypeVar("T")

Operation = Callable[[Any], Awaitable[T]]

ROLE_SCOPE_FAILURE_NONE = "NONE"
ROLE_SCOPE_FAILURE_QUERY_ERROR = "QUERY_ERROR"
ROLE_SCOPE_FAILURE_TIMEOUT = "TIMEOUT"
ROLE_SCOPE_FAILURE_CANCELLED = "CANCELLED"
ROLE_SCOPE_FAILURE_ROLE_SWITCH_FAILURE = "ROLE_SWITCH_FAILURE"
ROLE_SCOPE_FAILURE_COMMIT_FAILURE = "COMMIT_FAILURE"


@dataclass(frozen=True)
class ExecutionContext:
    """A connection acquired for one invocation and the optional role to apply."""

    connection: Any
    role: Optional[str] = None

    @property
    def requested_role(self) -> Optional[str]:
        """Return the stripped role, or None when no role was requested."""
        if self.role is None:
            return None
        stripped = self.role.strip()
        return stripped or None


@dataclass(frozen=True)
class RoleScopeResult:
    """Outcome of one role-scoped execution."""

    role_applied: bool = False
    committed: bool = False
    rolled_back: bool = False
    rollback_failed: bool = False
    failure_reason: str = ROLE_SCOPE_FAILURE_NONE

    def as_metadata(self) -> dict[str, Any]:
        """Return bounded metadata shared by spans, logs, and exceptions."""
        return {
            "role_scope_applied": self.role_applied,
            "role_scope_committed": self.committed,
            "role_scope_rolled_back": self.rolled_back,
            "role_scope_rollback_failed": self.rollback_failed,
            "role_scope_failure_reason": self.failure_reason,
            "role_scope_connection_trusted": self.connection_trusted,
        }

    @property
    def connection_trusted(self) -> bool:
        """Return False when the session state can no longer be relied on."""
        return not self.rollback_failed and self.failure_reason != ROLE_SCOPE_FAILURE_COMMIT_FAILURE


def _failure_reason(exc: BaseException, *, role_switched: bool) -> str:
    if not role_switched:
        return ROLE_SCOPE_FAILURE_ROLE_SWITCH_FAILURE
    if isinstance(exc, TimeoutError):
        return ROLE_SCOPE_FAILURE_TIMEOUT
    if exc.__class__.__name__ == "CancelledError":
        return ROLE_SCOPE_FAILURE_CANCELLED
    return ROLE_SCOPE_FAILURE_QUERY_ERROR


def _attach_metadata_to_exception(exc: BaseException, metadata: dict[str, Any]) -> None:
    try:
        setattr(exc, "role_scope_metadata", dict(metadata))
        setattr(exc, "rollback_failed", bool(metadata.get("role_scope_rollback_failed")))
    except AttributeError:
        return


class RoleScopedExecutor:
    """Run an operation on a connection, optionally narrowed to a database role.

    Without a role the operation is invoked directly. With a role the executor
    issues ``BEGIN`` (via the connection's transaction object), ``SET LOCAL
    ROLE``, the operation, and then exactly one of commit or rollback. A failed
    rollback never replaces the original error.
    """

    def __init__(
        self,
        *,
        logger: Optional[logging.Logger | logging.LoggerAdapter] = None,
        metadata_sink: Optional[dict[str, Any]] = None,
    ) -> None:
        """Initialize with an optional logger and a dict that receives result metadata."""
        self._logger = logger or logging.getLogger(__name__)
        self._metadata_sink = metadata_sink
        self.result = RoleScopeResult()

    def _finish(self, result: RoleScopeResult) -> None:
        self.result = result
        metadata = result.as_metadata()
        if self._metadata_sink is not None:
            self._metadata_sink.clear()
            self._metadata_sink.update(metadata)

        span = trace.get_current_span()
        if span is not None and span.is_recording():
            for key, value in metadata.items():
                span.set_attribute(f"db.{key}", value)

    async def run(self, ctx: ExecutionContext, operation: Operation[T]) -> T:
        """Execute ``operation(ctx.connection)`` under ``ctx.role`` when one is given."""
        role = ctx.requested_role
        if role is None:
            result = await operation(ctx.connection)
            self._finish(RoleScopeResult())
            return result

        role_statement = set_local_role_statement(validate_role(role))
        conn = ctx.connection
        transaction = conn.transaction()
        await transaction.start()

        role_switched = False
        try:
            await conn.execute(role_statement)
            role_switched = True
            self._logger.debug(
                "Role applied for transaction",
                extra={"event": "role_scope_applied", "role": role},
            )
            result = await operation(conn)
        except BaseException as exc:
            await self._rollback(transaction, exc, role=role, role_switched=role_switched)
            raise

        try:
            await transaction.commit()
        except BaseException as exc:
            result_state = RoleScopeResult(
                role_applied=True, failure_reason=ROLE_SCOPE_FAILURE_COMMIT_FAILURE
            )
            self._finish(result_state)
            _attach_metadata_to_exception(exc, result_state.as_metadata())
            raise

        self._finish(RoleScopeResult(role_applied=True, committed=True))
        return result

    async def _rollback(
        self,
        transaction: Any,
        exc: BaseException,
        *,
        role: str,
        role_switched: bool,
    ) -> None:
        # Cancellation during rollback still leaves the session untrusted and
        # must not replace the original error.
        rollback_failed = False
        try:
            await transaction.rollback()
        except BaseException as rollback_exc:
            rollback_failed = True
            self._logger.error(
                "Rollback failed after role-scoped execution error",
                extra={
                    "event": "role_scope_rollback_failed",
                    "role": role,
                    "error_type": exc.__class__.__name__,
                    "rollback_error_type": rollback_exc.__class__.__name__,
                },
            )
        finally:
            result = RoleScopeResult(
                role_applied=role_switched,
                committed=False,
                rolled_back=not rollback_failed,
                rollback_failed=rollback_failed,
                failure_reason=_failure_reason(exc, role_switched=role_switched),
            )
            self._finish(result)
            _attach_metadata_to_exception(exc, result.as_metadata())


async def execute_role_scoped(
    connection: Any,
    role: Optional[str],
    operation: Operation[T],
    *,
    logger: Optional[logging.Logger | logging.LoggerAdapter] = None,
    metadata_sink: Optional[dict[str, Any]] = None,
) -> T:
    """Run ``operation`` on ``connection`` under ``role`` (if any) and return its result."""
    executor = RoleScopedExecutor(logger=logger, metadata_sink=metadata_sink)
    return await executor.run(ExecutionContext(connection=connection, role=role), operation)

