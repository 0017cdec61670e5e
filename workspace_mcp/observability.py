"""Observability for tool calls: correlation ids, JSON logs and call metrics.

Every ``tools/call`` gets a short correlation id that is attached to its log
lines (``extra={"correlation_id": ...}``) and to the notification published
for it. Metrics are kept in memory and served on ``/health``.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import logging
from threading import Lock
import time
from typing import Any
import uuid

from workspace_mcp.config import ObservabilityConfig

# LogRecord attribute -> JSON key
LOG_FIELDS = {
    "tool": "tool",
    "latency_ms": "latency_ms",
    "status": "status",
    "error": "error",
    "error_code": "code",
    "phase": "phase",
    "port": "port",
}

OUTCOME_OK = "ok"
OUTCOME_FAILED = "failed"
OUTCOME_REJECTED = "rejected"


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; gateway fields are copied when present."""

    def __init__(self, include_correlation_id: bool = True):
        super().__init__()
        self.include_correlation_id = include_correlation_id

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, timezone.utc)
        entry: dict[str, Any] = {
            "ts": ts.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        cid = getattr(record, "correlation_id", None)
        if self.include_correlation_id and cid is not None:
            entry["cid"] = cid
        for attr, key in LOG_FIELDS.items():
            value = getattr(record, attr, None)
            if value is not None:
                entry[key] = value
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, separators=(",", ":"), default=str)


@dataclass
class ToolCallStats:
    calls: int = 0
    failures: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    codes: Counter = field(default_factory=Counter)
    last_cid: str | None = None
    last_failure_cid: str | None = None

    def add(self, cid: str | None, latency_ms: float, outcome: str, code: str | None) -> None:
        self.calls += 1
        self.last_cid = cid
        self.total_ms += latency_ms
        self.max_ms = max(self.max_ms, latency_ms)
        if outcome != OUTCOME_OK:
            self.failures += 1
            self.codes[code or "UNKNOWN"] += 1
            self.last_failure_cid = cid

    def as_dict(self) -> dict[str, Any]:
        return {
            "calls": self.calls,
            "failures": self.failures,
            "avg_ms": round(self.total_ms / self.calls, 2) if self.calls else 0.0,
            "max_ms": round(self.max_ms, 2),
            "codes": dict(self.codes),
            "last_cid": self.last_cid,
            "last_failure_cid": self.last_failure_cid,
        }


class MetricsCollector:
    """
    Per-tool call counters.

    Outcomes:
        ok:       the tool returned a success result
        failed:   the tool returned an error result (validation, host, console...)
        rejected: the call never reached a tool (unknown name)
    """

    def __init__(self):
        self._lock = Lock()
        self._tools: dict[str, ToolCallStats] = {}
        self._outcomes: Counter = Counter()
        self._started = time.monotonic()

    def record_call(
        self,
        tool: str,
        latency_ms: float,
        outcome: str,
        code: str | None = None,
        correlation_id: str | None = None,
    ) -> None:
        with self._lock:
            self._outcomes[outcome] += 1
            self._tools.setdefault(tool, ToolCallStats()).add(correlation_id, latency_ms, outcome, code)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            calls = sum(self._outcomes.values())
            failures = calls - self._outcomes[OUTCOME_OK]
            return {
                "uptime_s": round(time.monotonic() - self._started, 1),
                "calls": calls,
                "failures": failures,
                "failure_rate": round(failures / calls, 4) if calls else 0.0,
                "outcomes": dict(self._outcomes),
                "tools": {name: stats.as_dict() for name, stats in self._tools.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._tools.clear()
            self._outcomes.clear()
            self._started = time.monotonic()


class ObservabilityContext:
    """Correlation ids plus metrics, switched off by ``observability.enabled``."""

    def __init__(self, config: ObservabilityConfig):
        self.config = config
        self.enabled = config.enabled
        self.metrics = MetricsCollector()

    def correlation_id(self) -> str:
        return generate_correlation_id()

    def record(
        self,
        correlation_id: str,
        tool: str,
        latency_ms: float,
        outcome: str,
        code: str | None = None,
    ) -> None:
        if self.enabled:
            self.metrics.record_call(tool, latency_ms, outcome, code, correlation_id)

    def snapshot(self) -> dict[str, Any]:
        return self.metrics.snapshot()


def setup_logging(config: ObservabilityConfig, logger_name: str = "workspace_mcp") -> logging.Logger:
    """
    Attach a single stderr handler to the package logger.

    Args:
        config: log level and format ("json" or "text")
        logger_name: logger to configure

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    logger.setLevel(level)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    if config.log_format == "json":
        handler.setFormatter(JsonLogFormatter(include_correlation_id=config.include_correlation_id))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
    return logger
