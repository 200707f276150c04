"""Unit tests for row fetching and query tracing."""

from unittest.mock import MagicMock, patch

import pytest

from dal.execution import fetch_rows
from dal.query_spec import QuerySpec
from dal.tracing import hash_sql


class _FakeConn:
    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.calls = []

    async def fetch(self, sql, *args):
        self.calls.append((sql, args))
        if self.error is not None:
            raise self.error
        return self.rows


@pytest.mark.asyncio
async def test_fetch_rows_binds_vector_literal_and_returns_dicts():
    """Vectors go over the wire as pgvector text and rows come back as dicts."""
    conn = _FakeConn(rows=[{"id": 1, "content": "a"}])
    spec = QuerySpec(sql="SELECT * FROM docs ORDER BY e <=> $1 LIMIT $2", parameters=([0.5], 3))

    rows = await fetch_rows(conn, spec)

    assert rows == [{"id": 1, "content": "a"}]
    assert conn.calls == [(spec.sql, ("[0.5]", 3))]


@pytest.mark.asyncio
async def test_fetch_rows_traces_when_enabled(monkeypatch):
    """With tracing on, a span records the statement hash and status."""
    monkeypatch.setenv("VECTOR_TOOL_TRACE_QUERIES", "true")
    conn = _FakeConn(rows=[])
    spec = QuerySpec(sql="SELECT 1")
    span = MagicMock()
    tracer = MagicMock()
    tracer.start_as_current_span.return_value.__enter__.return_value = span

    with patch("dal.tracing.trace.get_tracer", return_value=tracer):
        await fetch_rows(conn, spec, span_name="vector_tool.retrieve")

    tracer.start_as_current_span.assert_called_once_with("vector_tool.retrieve")
    span.set_attribute.assert_any_call("db.statement_hash", hash_sql("SELECT 1"))
    span.set_attribute.assert_any_call("db.status", "ok")


@pytest.mark.asyncio
async def test_fetch_rows_marks_span_error(monkeypatch):
    """Driver failures mark the span and propagate."""
    monkeypatch.setenv("VECTOR_TOOL_TRACE_QUERIES", "true")
    conn = _FakeConn(error=RuntimeError("boom"))
    span = MagicMock()
    tracer = MagicMock()
    tracer.start_as_current_span.return_value.__enter__.return_value = span

    with patch("dal.tracing.trace.get_tracer", return_value=tracer):
        with pytest.raises(RuntimeError, match="boom"):
            await fetch_rows(conn, QuerySpec(sql="SELECT 1"))

    span.set_attribute.assert_any_call("db.status", "error")
