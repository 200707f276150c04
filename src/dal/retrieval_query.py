"""SELECT builder for similarity retrieval mode."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from common.errors import InvalidLimit
from dal.identifiers import quote_identifier
from dal.query_spec import QuerySpec, coerce_embedding

logger = logging.getLogger(__name__)

MAX_RETRIEVAL_LIMIT = 1000

DEFAULT_ID_COLUMN = "id"
DEFAULT_VECTOR_COLUMN = "embedding"
DEFAULT_CONTENT_COLUMN = "text"
DEFAULT_METADATA_COLUMN = "metadata"


class DistanceMetric(str, Enum):
    """pgvector distance operators; the only operators the builder will emit."""

    COSINE = "<=>"
    EUCLIDEAN = "<->"
    INNER_PRODUCT = "<#>"

    @classmethod
    def from_name(cls, name: Optional[str]) -> "DistanceMetric":
        """Resolve a metric by name (``cosine``, ``euclidean``, ``inner_product``)."""
        normalized = (name or "").strip().lower()
        if not normalized:
            return cls.COSINE
        try:
            return cls[normalized.upper()]
        except KeyError:
            raise ValueError(
                f"Unknown distance metric '{name}'; expected one of "
                f"{[m.name.lower() for m in cls]}."
            ) from None


@dataclass(frozen=True)
class ColumnMapping:
    """Column names used by retrieval mode."""

    id_column: str = DEFAULT_ID_COLUMN
    vector_column: str = DEFAULT_VECTOR_COLUMN
    content_column: str = DEFAULT_CONTENT_COLUMN
    metadata_column: str = DEFAULT_METADATA_COLUMN

    @classmethod
    def with_defaults(
        cls,
        id_column: Optional[str] = None,
        vector_column: Optional[str] = None,
        content_column: Optional[str] = None,
        metadata_column: Optional[str] = None,
    ) -> "ColumnMapping":
        """Build a mapping where blank overrides fall back to the defaults."""

        def _pick(value: Optional[str], default: str) -> str:
            if value is None or not value.strip():
                return default
            return value.strip()

        return cls(
            id_column=_pick(id_column, DEFAULT_ID_COLUMN),
            vector_column=_pick(vector_column, DEFAULT_VECTOR_COLUMN),
            content_column=_pick(content_column, DEFAULT_CONTENT_COLUMN),
            metadata_column=_pick(metadata_column, DEFAULT_METADATA_COLUMN),
        )


def validate_limit(limit: Any, *, max_limit: int = MAX_RETRIEVAL_LIMIT) -> int:
    """Return ``limit`` when it is an int within ``1..max_limit``."""
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise InvalidLimit(f"Limit must be an integer, got {limit!r}.", value=limit)
    if limit < 1 or limit > max_limit:
        raise InvalidLimit(
            f"Limit must be between 1 and {max_limit}, got {limit}.", value=limit
        )
    return limit


def build_retrieval_query(
    table: str,
    columns: Optional[ColumnMapping],
    include_metadata: bool,
    limit: int,
    embedding_vector: Any = None,
    *,
    distance: DistanceMetric = DistanceMetric.COSINE,
    include_distance: bool = True,
    max_limit: int = MAX_RETRIEVAL_LIMIT,
) -> QuerySpec:
    """Compose the similarity-search SELECT with ``$1`` = vector and ``$2`` = limit.

    All identifiers and the limit are validated before any SQL is assembled.
    When ``embedding_vector`` is omitted the first parameter is left as ``None``
    so the query can be built ahead of the embedding call.
    """
    columns = columns or ColumnMapping()
    table_identifier = quote_identifier(table)
    id_identifier = quote_identifier(columns.id_column)
    content_identifier = quote_identifier(columns.content_column)
    vector_identifier = quote_identifier(columns.vector_column)
    metadata_identifier = quote_identifier(columns.metadata_column) if include_metadata else None
    bound_limit = validate_limit(limit, max_limit=max_limit)
    operator = DistanceMetric(distance).value

    vector_param = None
    if embedding_vector is not None:
        vector_param = list(coerce_embedding(embedding_vector))

    select_list = [f"{id_identifier} AS id", f"{content_identifier} AS content"]
    if metadata_identifier is not None:
        select_list.append(f"{metadata_identifier} AS metadata")
    if include_distance:
        select_list.append(f"{vector_identifier} {operator} $1 AS distance")

    sql = (
        f"SELECT {', '.join(select_list)} "
        f"FROM {table_identifier} "
        f"ORDER BY {vector_identifier} {operator} $1 "
        f"LIMIT $2"
    )
    logger.debug(
        "Built retrieval query",
        extra={"event": "retrieval_query_built", "table": table, "limit": bound_limit},
    )
    return QuerySpec(sql=sql, parameters=(vector_param, bound_limit))
