"""Unit tests for the vector store query service."""

import pytest

from common.errors import InvalidEmbedding, InvalidIdentifier, InvalidRole, QueryExecutionFailure
from common.models.error_metadata import ErrorCategory, ErrorSeverity
from dal.connection import PostgresCredentials
from dal.retrieval_query import ColumnMapping
from vector_tool.config import ToolMode, VectorToolSettings
from vector_tool.recorder import InMemoryInvocationRecorder, InvocationStatus
from vector_tool.service import VectorStoreQueryService, shape_retrieval_row


class _FakeTransaction:
    def __init__(self, conn):
        self.conn = conn

    async def start(self):
        self.conn.statements.append(("BEGIN", ()))

    async def commit(self):
        self.conn.statements.append(("COMMIT", ()))

    async def rollback(self):
        self.conn.statements.append(("ROLLBACK", ()))


class _FakeConn:
    def __init__(self, rows=None, fetch_error=None):
        self.rows = rows or []
        self.fetch_error = fetch_error
        self.statements = []
        self.terminated = False

    def transaction(self):
        return _FakeTransaction(self)

    async def execute(self, sql, *args):
        self.statements.append((sql, args))

    async def fetch(self, sql, *args):
        self.statements.append((sql, args))
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.rows

    def terminate(self):
        self.terminated = True


class _Acquire:
    def __init__(self, pool):
        self.pool = pool

    async def __aenter__(self):
        self.pool.acquired += 1
        return self.pool.conn

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _FakePool:
    def __init__(self, conn):
        self.conn = conn
        self.acquired = 0

    def acquire(self, timeout=None):
        return _Acquire(self)


def _service(conn, **settings_kwargs):
    credentials = settings_kwargs.pop("credentials", None)
    recorder = settings_kwargs.pop("recorder", None)
    return VectorStoreQueryService(
        _FakePool(conn),
        VectorToolSettings(**settings_kwargs),
        credentials=credentials,
        recorder=recorder,
    )


def test_shape_retrieval_row():
    """Rows are shaped with decoded metadata and float distance."""
    row = {"id": 7, "content": "doc", "metadata": '{"lang": "en"}', "distance": "0.25"}
    assert shape_retrieval_row(row, True) == {
        "id": 7,
        "content": "doc",
        "metadata": {"lang": "en"},
        "distance": 0.25,
    }
    assert shape_retrieval_row(row, False) == {"id": 7, "content": "doc", "distance": 0.25}
    assert "metadata" not in shape_retrieval_row({"id": 1, "content": "x", "metadata": None}, True)


@pytest.mark.asyncio
async def test_retrieve_without_role_runs_plain_query():
    """No role means no transaction statements around the SELECT."""
    conn = _FakeConn(rows=[{"id": 1, "content": "a", "metadata": {"k": 1}, "distance": 0.1}])
    service = _service(conn, table_name="docs", top_k=2)

    rows = await service.retrieve([0.1, 0.2])

    assert rows == [{"id": 1, "content": "a", "metadata": {"k": 1}, "distance": 0.1}]
    assert len(conn.statements) == 1
    sql, args = conn.statements[0]
    assert sql.startswith('SELECT "id" AS id, "text" AS content, "metadata" AS metadata')
    assert args == ("[0.1,0.2]", 2)


@pytest.mark.asyncio
async def test_retrieve_with_credential_role_is_role_scoped():
    """The credential role wraps the query in a role-scoped transaction."""
    conn = _FakeConn(rows=[])
    service = _service(conn, credentials=PostgresCredentials(rls_role="tenant_a"))

    await service.retrieve([1.0])

    statements = [s for s, _ in conn.statements]
    assert statements[0] == "BEGIN"
    assert statements[1] == 'SET LOCAL ROLE "tenant_a"'
    assert statements[2].startswith("SELECT")
    assert statements[3] == "COMMIT"


@pytest.mark.asyncio
async def test_role_override_wins_over_credentials():
    """A tool-level role override replaces the credential role."""
    conn = _FakeConn(rows=[])
    service = _service(
        conn,
        role_override="tool_role",
        credentials=PostgresCredentials(rls_role="tenant_a"),
    )

    await service.retrieve([1.0])

    assert conn.statements[1][0] == 'SET LOCAL ROLE "tool_role"'


@pytest.mark.asyncio
async def test_invalid_inputs_never_reach_the_pool():
    """Validation errors propagate before a connection is acquired."""
    conn = _FakeConn()
    service = _service(conn, columns=ColumnMapping(id_column="id; DROP"))

    with pytest.raises(InvalidIdentifier):
        await service.retrieve([1.0])
    with pytest.raises(InvalidEmbedding):
        await _service(conn).retrieve([])

    assert service.pool.acquired == 0


@pytest.mark.asyncio
async def test_invalid_role_propagates_unwrapped():
    """A bad role is an input error, not an execution failure."""
    conn = _FakeConn()
    service = _service(conn, role_override="bad role")

    with pytest.raises(InvalidRole):
        await service.retrieve([1.0])

    assert conn.statements == []


@pytest.mark.asyncio
async def test_custom_query_expands_placeholders():
    """Custom SQL is renumbered and bound once per placeholder."""
    conn = _FakeConn(rows=[{"n": 1}])
    service = _service(
        conn,
        mode=ToolMode.CUSTOM_QUERY,
        sql_query="SELECT :v <-> e AS d, :v <#> e AS ip FROM t",
        placeholder_token=":v",
    )

    rows = await service.execute([1, 2, 3])

    assert rows == [{"n": 1}]
    sql, args = conn.statements[0]
    assert sql == "SELECT $1 <-> e AS d, $2 <#> e AS ip FROM t"
    assert args == ("[1.0,2.0,3.0]", "[1.0,2.0,3.0]")


@pytest.mark.asyncio
async def test_custom_query_without_placeholder_needs_no_embedding():
    """Plain SQL runs without an embedding."""
    conn = _FakeConn(rows=[{"count": 3}])
    service = _service(conn, mode=ToolMode.CUSTOM_QUERY, sql_query="SELECT count(*) FROM t")

    assert await service.run_custom_query() == [{"count": 3}]
    assert conn.statements == [("SELECT count(*) FROM t", ())]


@pytest.mark.asyncio
async def test_driver_errors_are_wrapped_and_classified():
    """Critical driver errors become critical QueryExecutionFailure with the cause chained."""
    driver_error = Exception('relation "n8n_vectors" does not exist')
    conn = _FakeConn(fetch_error=driver_error)
    service = _service(conn, credentials=PostgresCredentials(rls_role="tenant_a"))

    with pytest.raises(QueryExecutionFailure) as exc_info:
        await service.retrieve([1.0])

    failure = exc_info.value
    assert failure.is_critical
    assert failure.category == ErrorCategory.SCHEMA
    assert failure.__cause__ is driver_error
    assert str(failure) == 'Vector search failed: relation "n8n_vectors" does not exist'
    assert conn.statements[-1] == ("ROLLBACK", ())


@pytest.mark.asyncio
async def test_ordinary_driver_errors_are_not_critical():
    """Recoverable driver errors are wrapped as ordinary failures."""
    conn = _FakeConn(fetch_error=Exception("canceling statement due to statement timeout"))
    service = _service(conn)

    with pytest.raises(QueryExecutionFailure) as exc_info:
        await service.retrieve([1.0])

    assert exc_info.value.severity == ErrorSeverity.ORDINARY


@pytest.mark.asyncio
async def test_search_records_success_and_failure():
    """The row-returning path records one terminal event per call."""
    recorder = InMemoryInvocationRecorder()
    conn = _FakeConn(rows=[{"id": 1, "content": "a", "distance": 0.5}])
    service = _service(conn, recorder=recorder, include_metadata=False)

    rows = await service.search([1.0], tool_input={"query": "cats"})
    with pytest.raises(InvalidEmbedding):
        await service.search([], tool_input={"query": "dogs"})

    assert rows == [{"id": 1, "content": "a", "distance": 0.5}]
    assert [r.status for r in recorder.records] == [
        InvocationStatus.COMPLETED,
        InvocationStatus.FAILED,
    ]
    assert recorder.records[0].input == {"query": "cats", "mode": "retrieve"}
    assert recorder.records[0].output == rows
    assert recorder.records[1].error.code == "INVALID_EMBEDDING"
