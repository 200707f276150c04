"""Unit test environment helpers."""

import os

import pytest

_PREFIXES = ("VECTOR_TOOL_", "PGVECTOR_")


@pytest.fixture(autouse=True)
def _minimal_env(monkeypatch):
    """Clear tool and connection env so settings fall back to their defaults."""
    for name in list(os.environ):
        if name.startswith(_PREFIXES):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_METRICS_ENDPOINT", raising=False)
    yield
