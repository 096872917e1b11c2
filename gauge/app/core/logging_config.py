"""
Logging setup for the telemetry service.

Production writes one JSON object per line; development writes a coloured
console line. Both carry the request id of the request being served, and
the provider and station a record was logged for when the caller passed
them in ``extra``.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict

from gauge.app.core.config import Settings, settings

_request_context: ContextVar[Dict[str, Any]] = ContextVar(
    "request_context", default={}
)

# Record attributes copied into JSON output when present
_EXTRA_KEYS = (
    "station_id", "provider", "batch", "stations", "identity",
    "duration_ms", "status_code", "endpoint", "cache_key",
)


def bind_request_context(**kwargs: Any) -> Token:
    """Attach request data to every record logged until the token is reset."""
    return _request_context.set(kwargs)


def reset_request_context(token: Token) -> None:
    _request_context.reset(token)


def get_request_context() -> Dict[str, Any]:
    return _request_context.get()


def _source_tag(record: logging.LogRecord) -> str:
    """``provider:station`` for records logged against one upstream fetch."""
    provider = getattr(record, "provider", None)
    station = getattr(record, "station_id", None)
    if provider and station:
        return f"{provider}:{station}"
    return provider or station or ""


# ── JSON (production) ──

class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "line": record.lineno,
        }

        ctx = get_request_context()
        if ctx:
            entry["request"] = ctx

        for key in _EXTRA_KEYS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(entry, default=str)


# ── Console (development) ──

class PrettyFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        ts = self.formatTime(record, "%H:%M:%S")

        request_id = get_request_context().get("request_id")
        prefix = f" [{request_id[:8]}]" if request_id else ""
        tag = _source_tag(record)
        if tag:
            prefix += f" <{tag}>"

        line = (
            f"{color}{ts} {record.levelname:8s}{self.RESET}"
            f"{prefix} {record.name}: {record.getMessage()}"
        )
        if record.exc_info and record.exc_info[1]:
            line += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
        return line


def setup_logging(config: Settings = settings) -> None:
    """Install one stdout handler on the root logger, formatted for the environment."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if config.is_production else PrettyFormatter())
    root.addHandler(handler)

    # per-request upstream calls are logged by the provider clients
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
