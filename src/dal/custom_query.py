"""Placeholder expansion for caller-supplied SQL."""

from __future__ import annotations

import logging
from typing import Any, Optional

from common.errors import EmptyPlaceholder, InvalidEmbedding, InvalidToolSettings
from dal.query_spec import QuerySpec, coerce_embedding

logger = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER_TOKEN = "$1"


def count_placeholders(raw_sql: str, placeholder_token: Optional[str]) -> int:
    """Return how many literal occurrences of the token appear in the SQL."""
    if placeholder_token is None or not placeholder_token.strip():
        raise EmptyPlaceholder("Placeholder token must not be blank.", value=placeholder_token)
    return raw_sql.count(placeholder_token)


def prepare_custom_query(
    raw_sql: str,
    placeholder_token: Optional[str] = DEFAULT_PLACEHOLDER_TOKEN,
    embedding_vector: Any = None,
) -> QuerySpec:
    """Replace each placeholder occurrence with ``$1``, ``$2``, … bound to the vector.

    The SQL text is trusted as given; its reach is bounded by the execution role
    and database grants. Without any placeholder the query runs unparameterized.

    Raises:
        EmptyPlaceholder: If the token is blank.
        InvalidEmbedding: If placeholders are present but the vector is unusable.
    """
    if not isinstance(raw_sql, str) or not raw_sql.strip():
        raise InvalidToolSettings("SQL query must not be empty.", value=raw_sql)

    occurrences = count_placeholders(raw_sql, placeholder_token)
    if occurrences == 0:
        logger.debug(
            "Custom query has no vector placeholder",
            extra={"event": "custom_query_prepared", "placeholders": 0},
        )
        return QuerySpec(sql=raw_sql, parameters=())

    if embedding_vector is None:
        raise InvalidEmbedding(
            f"SQL query references {placeholder_token!r} but no embedding vector was provided."
        )
    vector = list(coerce_embedding(embedding_vector))

    segments = raw_sql.split(placeholder_token)
    pieces = [segments[0]]
    for index, segment in enumerate(segments[1:], start=1):
        pieces.append(f"${index}")
        pieces.append(segment)

    logger.debug(
        "Prepared custom query",
        extra={"event": "custom_query_prepared", "placeholders": occurrences},
    )
    return QuerySpec(sql="".join(pieces), parameters=tuple(list(vector) for _ in segments[1:]))
