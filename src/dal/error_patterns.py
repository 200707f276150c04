"""Message patterns for failures that must halt the calling workflow."""

from __future__ import annotations

import re
from dataclasses import dataclass

from common.models.error_metadata import ErrorCategory


@dataclass(frozen=True)
class CriticalErrorPattern:
    """A catalogued unrecoverable condition and its coarse category."""

    name: str
    pattern: re.Pattern[str]
    category: ErrorCategory


def _pattern(name: str, regex: str, category: ErrorCategory) -> CriticalErrorPattern:
    return CriticalErrorPattern(
        name=name,
        pattern=re.compile(regex, re.IGNORECASE),
        category=category,
    )


CRITICAL_ERROR_PATTERNS: tuple[CriticalErrorPattern, ...] = (
    _pattern("missing_relation", r"relation .* does not exist", ErrorCategory.SCHEMA),
    _pattern("missing_table", r"table .* does not exist", ErrorCategory.SCHEMA),
    _pattern("missing_column", r"column .* does not exist", ErrorCategory.SCHEMA),
    _pattern("missing_database", r"database .* does not exist", ErrorCategory.SCHEMA),
    _pattern("permission_denied", r"permission denied", ErrorCategory.AUTH),
    _pattern("authentication_failed", r"authentication failed", ErrorCategory.AUTH),
    _pattern("missing_role", r"role .* does not exist", ErrorCategory.AUTH),
    _pattern(
        "connection_refused", r"connection refused|ECONNREFUSED", ErrorCategory.CONNECTIVITY
    ),
    _pattern(
        "host_unreachable",
        r"ENOTFOUND|name or service not known|nodename nor servname|"
        r"temporary failure in name resolution|no route to host|network is unreachable",
        ErrorCategory.CONNECTIVITY,
    ),
    _pattern(
        "connection_timeout",
        r"ETIMEDOUT|connection timed out|timeout expired",
        ErrorCategory.CONNECTIVITY,
    ),
    _pattern("missing_hba_entry", r"no pg_hba\.conf entry", ErrorCategory.CONFIGURATION),
    _pattern("ssl_required", r"SSL.*required", ErrorCategory.CONFIGURATION),
    _pattern("invalid_identifier", r"Invalid identifier", ErrorCategory.VALIDATION),
)


def match_critical_pattern(message: str) -> CriticalErrorPattern | None:
    """Return the first catalogued pattern found in ``message``."""
    for entry in CRITICAL_ERROR_PATTERNS:
        if entry.pattern.search(message):
            return entry
    return None
