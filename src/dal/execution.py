"""Run a ``QuerySpec`` on a connection and return plain row mappings."""

from __future__ import annotations

from typing import Any, Optional

from dal.query_spec import QuerySpec
from dal.tracing import trace_query_operation


async def fetch_rows(
    conn: Any,
    spec: QuerySpec,
    *,
    vector_format: Optional[str] = "text",
    span_name: str = "dal.fetch_rows",
) -> list[dict[str, Any]]:
    """Execute ``spec`` with its positional parameters and return rows as dicts."""
    params = spec.bind_parameters(vector_format)
    rows = await trace_query_operation(
        span_name,
        spec.sql,
        conn.fetch(spec.sql, *params),
        parameter_count=len(params),
    )
    return [dict(row) for row in rows]
