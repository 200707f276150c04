"""Data access layer for role-scoped pgvector queries.

Exposes identifier/role validation, query builders, role-scoped execution,
and critical/ordinary error classification.
"""

import logging

from dal.custom_query import DEFAULT_PLACEHOLDER_TOKEN, prepare_custom_query
from dal.error_classification import classify_error, classify_error_info, is_critical_error
from dal.identifiers import quote_identifier, validate_role
from dal.query_spec import QuerySpec, format_vector
from dal.retrieval_query import ColumnMapping, DistanceMetric, build_retrieval_query
from dal.role_scope import ExecutionContext, RoleScopedExecutor, execute_role_scoped

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "DEFAULT_PLACEHOLDER_TOKEN",
    "ColumnMapping",
    "DistanceMetric",
    "ExecutionContext",
    "QuerySpec",
    "RoleScopedExecutor",
    "build_retrieval_query",
    "classify_error",
    "classify_error_info",
    "execute_role_scoped",
    "format_vector",
    "is_critical_error",
    "prepare_custom_query",
    "quote_identifier",
    "validate_role",
]
