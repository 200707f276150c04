"""Typed settings for the vector store tool."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from common.config.env import get_env_bool, get_env_choice, get_env_int, get_env_str
from common.errors import InvalidToolSettings
from dal.connection import PostgresCredentials
from dal.custom_query import DEFAULT_PLACEHOLDER_TOKEN
from dal.retrieval_query import MAX_RETRIEVAL_LIMIT, ColumnMapping, DistanceMetric

DEFAULT_TOOL_NAME = "postgres_vector_search"
DEFAULT_TOOL_DESCRIPTION = "Search for similar documents in the vector database"
DEFAULT_CUSTOM_SQL = "SELECT * FROM n8n_vectors ORDER BY embedding <=> $1 LIMIT 10"


class ToolMode(str, Enum):
    """How the tool turns an embedding into rows."""

    RETRIEVE = "retrieve"
    CUSTOM_QUERY = "custom_query"


def resolve_role(
    override: Optional[str], credentials_role: Optional[str] = None
) -> Optional[str]:
    """Return the effective role: a non-blank override wins over the credential role."""
    for candidate in (override, credentials_role):
        if candidate is not None and candidate.strip():
            return candidate.strip()
    return None


@dataclass(frozen=True)
class VectorToolSettings:
    """Per-invocation configuration already validated by the host's parameter system."""

    mode: ToolMode = ToolMode.RETRIEVE
    table_name: str = "n8n_vectors"
    columns: ColumnMapping = field(default_factory=ColumnMapping)
    top_k: int = 4
    include_metadata: bool = True
    distance: DistanceMetric = DistanceMetric.COSINE
    sql_query: str = DEFAULT_CUSTOM_SQL
    placeholder_token: str = DEFAULT_PLACEHOLDER_TOKEN
    role_override: Optional[str] = None
    max_limit: int = MAX_RETRIEVAL_LIMIT
    debug: bool = False
    tool_name: str = DEFAULT_TOOL_NAME
    description: str = DEFAULT_TOOL_DESCRIPTION

    @classmethod
    def from_env(cls) -> "VectorToolSettings":
        """Build settings from ``VECTOR_TOOL_*`` environment variables."""
        mode = get_env_choice(
            "VECTOR_TOOL_MODE", [m.value for m in ToolMode], ToolMode.RETRIEVE.value
        )
        return cls(
            mode=ToolMode(mode),
            table_name=get_env_str("VECTOR_TOOL_TABLE", "n8n_vectors") or "n8n_vectors",
            columns=ColumnMapping.with_defaults(
                id_column=get_env_str("VECTOR_TOOL_ID_COLUMN"),
                vector_column=get_env_str("VECTOR_TOOL_VECTOR_COLUMN"),
                content_column=get_env_str("VECTOR_TOOL_CONTENT_COLUMN"),
                metadata_column=get_env_str("VECTOR_TOOL_METADATA_COLUMN"),
            ),
            top_k=get_env_int("VECTOR_TOOL_TOP_K", 4) or 4,
            include_metadata=bool(get_env_bool("VECTOR_TOOL_INCLUDE_METADATA", True)),
            distance=DistanceMetric.from_name(get_env_str("VECTOR_TOOL_DISTANCE")),
            sql_query=get_env_str("VECTOR_TOOL_SQL", DEFAULT_CUSTOM_SQL) or DEFAULT_CUSTOM_SQL,
            placeholder_token=get_env_str("VECTOR_TOOL_PLACEHOLDER", DEFAULT_PLACEHOLDER_TOKEN)
            or DEFAULT_PLACEHOLDER_TOKEN,
            role_override=get_env_str("VECTOR_TOOL_RLS_ROLE"),
            max_limit=get_env_int("VECTOR_TOOL_MAX_LIMIT", MAX_RETRIEVAL_LIMIT)
            or MAX_RETRIEVAL_LIMIT,
            debug=bool(get_env_bool("VECTOR_TOOL_DEBUG", False)),
            tool_name=get_env_str("VECTOR_TOOL_NAME", DEFAULT_TOOL_NAME) or DEFAULT_TOOL_NAME,
            description=get_env_str("VECTOR_TOOL_DESCRIPTION", DEFAULT_TOOL_DESCRIPTION)
            or DEFAULT_TOOL_DESCRIPTION,
        )

    def validate(self) -> "VectorToolSettings":
        """Fail closed on settings that cannot work for the selected mode."""
        if self.max_limit < 1:
            raise InvalidToolSettings("max_limit must be a positive integer.", value=self.max_limit)
        if self.mode == ToolMode.CUSTOM_QUERY:
            if not (self.sql_query or "").strip():
                raise InvalidToolSettings("Custom query mode requires an SQL query.")
        elif not (self.table_name or "").strip():
            raise InvalidToolSettings("Retrieval mode requires a table name.")
        if not (self.tool_name or "").strip():
            raise InvalidToolSettings("Tool name must not be blank.")
        return self

    def effective_role(self, credentials: Optional[PostgresCredentials] = None) -> Optional[str]:
        """Resolve the role for this invocation from the override and credentials."""
        return resolve_role(self.role_override, credentials.rls_role if credentials else None)
