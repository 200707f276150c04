"""Vector store query service: builds, executes, and records tool queries."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Optional

from common.errors import QueryExecutionFailure, QueryInputError
from common.observability.metrics import query_metrics
from dal.connection import PostgresCredentials, run_on_pool
from dal.custom_query import prepare_custom_query
from dal.error_classification import emit_classified_error, wrap_execution_error
from dal.execution import fetch_rows
from dal.query_spec import QuerySpec, coerce_embedding
from dal.retrieval_query import build_retrieval_query
from vector_tool.config import ToolMode, VectorToolSettings
from vector_tool.recorder import (
    InvocationRecorder,
    NullInvocationRecorder,
    record_invocation,
)
from vector_tool.tool_logging import ToolLogger


def _decode_metadata(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def _json_safe_id(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float)):
        return value
    return str(value)


def shape_retrieval_row(row: dict[str, Any], include_metadata: bool) -> dict[str, Any]:
    """Shape one retrieval row as ``{id, content, metadata?, distance}``.

    Metadata is kept only when requested and not null; jsonb text is decoded.
    """
    shaped: dict[str, Any] = {
        "id": _json_safe_id(row.get("id")),
        "content": row.get("content"),
    }
    if include_metadata and row.get("metadata") is not None:
        shaped["metadata"] = _decode_metadata(row["metadata"])
    if "distance" in row:
        distance = row["distance"]
        shaped["distance"] = float(distance) if distance is not None else None
    return shaped


class VectorStoreQueryService:
    """Runs the configured query mode for an embedding against a connection pool."""

    def __init__(
        self,
        pool: Any,
        settings: VectorToolSettings,
        *,
        credentials: Optional[PostgresCredentials] = None,
        recorder: Optional[InvocationRecorder] = None,
        logger: Optional[logging.Logger | logging.LoggerAdapter] = None,
        acquire_timeout: Optional[float] = None,
    ) -> None:
        """Initialize the service.

        Args:
            pool: asyncpg pool (or anything exposing ``acquire(timeout=...)``).
            settings: Tool settings; validated on construction.
            credentials: Connection credentials, consulted for the default role.
            recorder: Invocation recorder; defaults to a no-op recorder.
            logger: Logger for debug output; defaults to a ``ToolLogger`` honoring
                ``settings.debug``.
            acquire_timeout: Seconds to wait for a pooled connection.
        """
        self.pool = pool
        self.settings = settings.validate()
        self.credentials = credentials
        self.recorder = recorder or NullInvocationRecorder()
        self.logger = logger or ToolLogger(debug_mode=settings.debug)
        self.acquire_timeout = acquire_timeout

    @property
    def role(self) -> Optional[str]:
        """Return the role each query runs under, if any."""
        return self.settings.effective_role(self.credentials)

    async def retrieve(self, embedding: Any) -> list[dict[str, Any]]:
        """Run the similarity search and return shaped rows."""
        spec = build_retrieval_query(
            self.settings.table_name,
            self.settings.columns,
            self.settings.include_metadata,
            self.settings.top_k,
            coerce_embedding(embedding),
            distance=self.settings.distance,
            max_limit=self.settings.max_limit,
        )
        rows = await self._run(spec, operation="retrieve")
        return [shape_retrieval_row(row, self.settings.include_metadata) for row in rows]

    async def run_custom_query(self, embedding: Any = None) -> list[dict[str, Any]]:
        """Run the caller-supplied SQL and return its rows unchanged."""
        spec = prepare_custom_query(
            self.settings.sql_query, self.settings.placeholder_token, embedding
        )
        return await self._run(spec, operation="custom_query")

    async def execute(self, embedding: Any = None) -> list[dict[str, Any]]:
        """Dispatch to the configured mode without recording."""
        if self.settings.mode == ToolMode.CUSTOM_QUERY:
            return await self.run_custom_query(embedding)
        return await self.retrieve(embedding)

    async def search(
        self, embedding: Any = None, *, tool_input: Optional[dict[str, Any]] = None
    ) -> list[dict[str, Any]]:
        """Run the configured mode and record the invocation's input and output."""
        payload = dict(tool_input or {})
        payload.setdefault("mode", self.settings.mode.value)
        async with record_invocation(self.recorder, self.settings.tool_name, payload) as scope:
            rows = await self.execute(embedding)
            scope.set_output(rows)
        return rows

    async def _run(self, spec: QuerySpec, *, operation: str) -> list[dict[str, Any]]:
        role = self.role
        metadata: dict[str, Any] = {}
        self.logger.debug(
            "Executing vector store query",
            extra={
                "event": "vector_query_started",
                "operation": operation,
                "parameter_count": spec.placeholder_count,
                "role": role,
            },
        )

        async def _fetch(conn: Any) -> list[dict[str, Any]]:
            return await fetch_rows(conn, spec, span_name=f"vector_tool.{operation}")

        started = time.monotonic()
        outcome = "error"
        try:
            rows = await run_on_pool(
                self.pool,
                role,
                _fetch,
                logger=self.logger,
                metadata_sink=metadata,
                timeout=self.acquire_timeout,
            )
            outcome = "ok"
        except (QueryInputError, QueryExecutionFailure):
            raise
        except Exception as exc:
            emit_classified_error(operation, exc)
            failure = wrap_execution_error(
                exc, rollback_failed=bool(getattr(exc, "rollback_failed", False))
            )
            raise failure from exc
        finally:
            query_metrics.record_query(
                operation,
                (time.monotonic() - started) * 1000.0,
                outcome=outcome,
                role_scoped=role is not None,
            )

        self.logger.debug(
            "Vector store query completed",
            extra={
                "event": "vector_query_completed",
                "operation": operation,
                "result_count": len(rows),
                "role_scope_applied": metadata.get("role_scope_applied", False),
            },
        )
        return rows
