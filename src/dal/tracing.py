"""OTEL spans around individual query executions."""

import hashlib
from typing import Awaitable, Optional, TypeVar

from opentelemetry import trace

from common.observability.metrics import is_metrics_enabled

T = TypeVar("T")


def trace_enabled() -> bool:
    """Return True when query tracing is enabled or OTEL exporter defaults apply."""
    return is_metrics_enabled("VECTOR_TOOL_TRACE_QUERIES")


def hash_sql(sql: str) -> str:
    """Return a stable digest of the statement so SQL text never lands in spans."""
    return hashlib.sha256(sql.encode("utf-8")).hexdigest()


async def trace_query_operation(
    name: str,
    sql: Optional[str],
    operation: Awaitable[T],
    *,
    parameter_count: int = 0,
) -> T:
    """Trace one query with OTEL when enabled."""
    if not trace_enabled():
        return await operation

    tracer = trace.get_tracer("vector_tool.dal")
    with tracer.start_as_current_span(name) as span:
        span.set_attribute("db.system", "postgresql")
        span.set_attribute("db.parameter_count", parameter_count)
        if sql:
            span.set_attribute("db.statement_hash", hash_sql(sql))
        try:
            result = await operation
            span.set_attribute("db.status", "ok")
            return result
        except Exception:
            span.set_attribute("db.status", "error")
            raise
