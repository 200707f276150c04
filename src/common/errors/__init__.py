"""Common error taxonomy helpers."""

from common.errors.error_codes import (
    ErrorCode,
    category_for_error_code,
    error_code_group,
    parse_error_code,
)
from common.errors.exceptions import (
    EmptyPlaceholder,
    InvalidEmbedding,
    InvalidIdentifier,
    InvalidLimit,
    InvalidRole,
    InvalidToolSettings,
    QueryExecutionFailure,
    QueryInputError,
)

__all__ = [
    "EmptyPlaceholder",
    "ErrorCode",
    "InvalidEmbedding",
    "InvalidIdentifier",
    "InvalidLimit",
    "InvalidRole",
    "InvalidToolSettings",
    "QueryExecutionFailure",
    "QueryInputError",
    "category_for_error_code",
    "error_code_group",
    "parse_error_code",
]
