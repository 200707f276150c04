"""Unit tests for tool settings and role resolution."""

import pytest

from common.errors import InvalidToolSettings
from dal.connection import PostgresCredentials
from dal.retrieval_query import ColumnMapping, DistanceMetric
from vector_tool.config import (
    DEFAULT_CUSTOM_SQL,
    DEFAULT_TOOL_NAME,
    ToolMode,
    VectorToolSettings,
    resolve_role,
)


@pytest.mark.parametrize(
    "override,credentials_role,expected",
    [
        ("node_role", "cred_role", "node_role"),
        ("  node_role  ", None, "node_role"),
        ("", "cred_role", "cred_role"),
        ("   ", " cred_role ", "cred_role"),
        (None, None, None),
        (None, "  ", None),
    ],
)
def test_resolve_role(override, credentials_role, expected):
    """A non-blank override wins; both values are trimmed."""
    assert resolve_role(override, credentials_role) == expected


def test_settings_defaults():
    """Defaults match the stock vector table layout."""
    settings = VectorToolSettings.from_env()

    assert settings.mode == ToolMode.RETRIEVE
    assert settings.table_name == "n8n_vectors"
    assert settings.columns == ColumnMapping()
    assert settings.top_k == 4
    assert settings.include_metadata is True
    assert settings.distance == DistanceMetric.COSINE
    assert settings.sql_query == DEFAULT_CUSTOM_SQL
    assert settings.tool_name == DEFAULT_TOOL_NAME
    assert settings.debug is False


def test_settings_from_env(monkeypatch):
    """Environment variables override each setting."""
    monkeypatch.setenv("VECTOR_TOOL_MODE", "custom_query")
    monkeypatch.setenv("VECTOR_TOOL_TABLE", "kb.chunks")
    monkeypatch.setenv("VECTOR_TOOL_CONTENT_COLUMN", "body")
    monkeypatch.setenv("VECTOR_TOOL_TOP_K", "12")
    monkeypatch.setenv("VECTOR_TOOL_INCLUDE_METADATA", "false")
    monkeypatch.setenv("VECTOR_TOOL_DISTANCE", "euclidean")
    monkeypatch.setenv("VECTOR_TOOL_SQL", "SELECT * FROM kb ORDER BY e <-> :v")
    monkeypatch.setenv("VECTOR_TOOL_PLACEHOLDER", ":v")
    monkeypatch.setenv("VECTOR_TOOL_RLS_ROLE", "tenant_a")
    monkeypatch.setenv("VECTOR_TOOL_DEBUG", "1")

    settings = VectorToolSettings.from_env()

    assert settings.mode == ToolMode.CUSTOM_QUERY
    assert settings.table_name == "kb.chunks"
    assert settings.columns.content_column == "body"
    assert settings.columns.id_column == "id"
    assert settings.top_k == 12
    assert settings.include_metadata is False
    assert settings.distance == DistanceMetric.EUCLIDEAN
    assert settings.placeholder_token == ":v"
    assert settings.role_override == "tenant_a"
    assert settings.debug is True


def test_settings_reject_unknown_mode(monkeypatch):
    """Modes form a closed set."""
    monkeypatch.setenv("VECTOR_TOOL_MODE", "graph")
    with pytest.raises(ValueError, match="must be one of"):
        VectorToolSettings.from_env()


@pytest.mark.parametrize(
    "settings",
    [
        VectorToolSettings(mode=ToolMode.CUSTOM_QUERY, sql_query="  "),
        VectorToolSettings(table_name=""),
        VectorToolSettings(max_limit=0),
        VectorToolSettings(tool_name=" "),
    ],
)
def test_validate_rejects_unusable_settings(settings):
    """Incomplete settings fail closed."""
    with pytest.raises(InvalidToolSettings):
        settings.validate()


def test_effective_role_prefers_override():
    """The tool-level override wins over the credential role."""
    creds = PostgresCredentials(rls_role="cred_role")
    assert VectorToolSettings().effective_role(creds) == "cred_role"
    assert VectorToolSettings(role_override="tool_role").effective_role(creds) == "tool_role"
    assert VectorToolSettings().effective_role(None) is None
