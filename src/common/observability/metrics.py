"""Optional OTEL metrics for vector store queries."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from opentelemetry import metrics

from common.config.env import get_env_bool

logger = logging.getLogger(__name__)

QUERY_DURATION_METRIC = "vector_tool.query.duration_ms"
QUERY_TOTAL_METRIC = "vector_tool.query.total"
QUERY_ERRORS_METRIC = "vector_tool.query.errors_total"


def is_otel_exporter_configured() -> bool:
    """Return True when an OTLP endpoint is configured and export is not disabled."""
    if get_env_bool("OTEL_DISABLE_EXPORTER", False):
        return False
    if (os.getenv("OTEL_METRICS_EXPORTER") or "").strip().lower() == "none":
        return False
    return any(
        (os.getenv(name) or "").strip()
        for name in ("OTEL_EXPORTER_OTLP_ENDPOINT", "OTEL_EXPORTER_OTLP_METRICS_ENDPOINT")
    )


def is_metrics_enabled(enabled_env_var: str) -> bool:
    """Resolve enablement; an explicit env value wins over exporter detection."""
    raw = os.getenv(enabled_env_var)
    if raw is None:
        return is_otel_exporter_configured()
    try:
        return get_env_bool(enabled_env_var, False) is True
    except ValueError:
        logger.warning("Invalid %s value '%s'; metrics disabled.", enabled_env_var, raw)
        return False


def _attributes(**values: Any) -> dict[str, Any]:
    # OTEL attribute values must be primitives; bools are sent as strings.
    bounded: dict[str, Any] = {}
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, Enum):
            value = value.value
        if isinstance(value, bool):
            bounded[key] = "true" if value else "false"
        elif isinstance(value, (str, int, float)):
            bounded[key] = value
        else:
            bounded[key] = str(value)
    return bounded


@dataclass
class QueryMetrics:
    """Query latency and failure instruments, created lazily and only when enabled."""

    meter_name: str = "pgvector-rls-tool"
    enabled_env_var: str = "VECTOR_TOOL_METRICS_ENABLED"
    _meter: Any = None
    _instruments: dict[str, Any] = field(default_factory=dict)

    @property
    def enabled(self) -> bool:
        """Return True when metric emission is switched on."""
        return is_metrics_enabled(self.enabled_env_var)

    def _instrument(self, kind: str, name: str, description: str, unit: str) -> Any:
        instrument = self._instruments.get(name)
        if instrument is None:
            if self._meter is None:
                self._meter = metrics.get_meter(self.meter_name)
            factory = getattr(self._meter, f"create_{kind}")
            instrument = factory(name=name, description=description, unit=unit)
            self._instruments[name] = instrument
        return instrument

    def record_query(
        self,
        operation: str,
        duration_ms: float,
        *,
        outcome: str,
        role_scoped: bool,
    ) -> None:
        """Record one query's latency and count it by outcome."""
        if not self.enabled:
            return
        attrs = _attributes(operation=operation, outcome=outcome, role_scoped=role_scoped)
        try:
            self._instrument(
                "histogram", QUERY_DURATION_METRIC, "Vector store query latency", "ms"
            ).record(float(duration_ms), attrs)
            self._instrument(
                "counter", QUERY_TOTAL_METRIC, "Vector store queries executed", "1"
            ).add(1, attrs)
        except Exception as exc:
            logger.debug("Query metric emission failed: %s", exc)

    def record_error(
        self, operation: str, *, severity: Any, category: Any, pattern: Optional[str] = None
    ) -> None:
        """Count one classified failure."""
        if not self.enabled:
            return
        try:
            self._instrument(
                "counter", QUERY_ERRORS_METRIC, "Count of classified query failures", "1"
            ).add(
                1,
                _attributes(
                    operation=operation, severity=severity, category=category, pattern=pattern
                ),
            )
        except Exception as exc:
            logger.debug("Error metric emission failed: %s", exc)


query_metrics = QueryMetrics()
