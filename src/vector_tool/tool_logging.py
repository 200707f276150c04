"""Debug-gated logger adapter for tool invocations."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional


def format_log_message(message: str, meta: Any = None) -> str:
    """Append JSON-encoded metadata to a log message."""
    if meta is None:
        return message
    try:
        meta_text = json.dumps(meta, default=str) if isinstance(meta, (dict, list)) else str(meta)
    except (TypeError, ValueError):
        meta_text = "[serialization error]"
    return f"{message} | {meta_text}"


class ToolLogger(logging.LoggerAdapter):
    """Logger adapter whose debug messages surface at INFO only when debug mode is on."""

    def __init__(self, logger: Optional[logging.Logger] = None, debug_mode: bool = False):
        """Wrap ``logger`` (default: the ``vector_tool`` logger) with the debug flag."""
        super().__init__(logger or logging.getLogger("vector_tool"), {})
        self.debug_mode = debug_mode

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        """Keep caller-supplied ``extra`` instead of replacing it with the adapter's."""
        return msg, kwargs

    def debug(self, msg: Any, *args: Any, meta: Any = None, **kwargs: Any) -> None:
        """Log at INFO when debug mode is enabled; drop the message otherwise."""
        if not self.debug_mode:
            return
        self.log(logging.INFO, format_log_message(str(msg), meta), *args, **kwargs)

    def info(self, msg: Any, *args: Any, meta: Any = None, **kwargs: Any) -> None:
        """Log at INFO with optional metadata."""
        self.log(logging.INFO, format_log_message(str(msg), meta), *args, **kwargs)

    def error(self, msg: Any, *args: Any, meta: Any = None, **kwargs: Any) -> None:
        """Log at ERROR with optional metadata."""
        self.log(logging.ERROR, format_log_message(str(msg), meta), *args, **kwargs)
