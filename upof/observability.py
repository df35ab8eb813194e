"""
UPoF Observability Framework

Structured logging and audit trail for production monitoring.
Provides correlation IDs, context propagation and a hash-chained audit log
for administrative actions (revocations, allow-list changes, soulbound mode).

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                    Application Code                      │
    │  logger.info("msg", record_id=x)   audit.log(...)       │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                UpofLogger / AuditLogger                  │
    │  Context propagation, correlation IDs, structured data  │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                    Log Handlers                          │
    │        StructuredHandler (json) │ text formatter        │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import functools
import hashlib
import json
import logging
import sys
import threading
import time
import traceback
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, TypeVar

from upof.canonical import to_json_types

# Context variable for request-scoped correlation
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class LogLevel(Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class UpofLayer(Enum):
    """UPoF components for log categorization."""
    VAULT = "vault"
    SIGNATURE = "signature"
    ALLOWLIST = "allowlist"
    UNIQUENESS = "uniqueness"
    CUSTODY = "custody"
    EVENTS = "events"
    CONFIG = "config"
    CLI = "cli"


_RESERVED = ("layer", "operation", "error_code", "duration_ms")


def _record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """The UPoF fields attached to a record by UpofLogger, empty ones dropped."""
    found = {name: getattr(record, name, None) for name in _RESERVED}
    found["context"] = to_json_types(getattr(record, "context", None) or {})
    return {k: v for k, v in found.items() if v not in (None, "", {})}


class StructuredHandler(logging.Handler):
    """Writes one JSON object per record."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self._stream = stream

    @property
    def stream(self) -> Any:
        # Resolved per write so redirected stderr is honored
        return self._stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = {
                "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                "level": record.levelname.lower(),
                "logger": record.name,
                "message": record.getMessage(),
            }
            cid = correlation_id_var.get()
            if cid:
                line["correlation_id"] = cid
            line.update(_record_fields(record))
            if record.exc_info:
                line["exception"] = "".join(traceback.format_exception(*record.exc_info))
            self.stream.write(json.dumps(line, default=str) + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class TextFormatter(logging.Formatter):
    """Single line per record, followed by ``key=value`` context."""

    def format(self, record: logging.LogRecord) -> str:
        extra = _record_fields(record)
        pairs = []
        if "error_code" in extra:
            pairs.append(f"error_code={extra['error_code']}")
        pairs.extend(f"{k}={v}" for k, v in extra.get("context", {}).items())
        return " ".join([super().format(record), *pairs])


class TextHandler(logging.Handler):
    """TextFormatter lines on stderr."""

    def __init__(self):
        super().__init__()
        self.setFormatter(TextFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print(self.format(record), file=sys.stderr, flush=True)
        except Exception:
            self.handleError(record)


class UpofLogger:
    """
    Per-component logger named ``upof.<layer>.<name>``.

    Keyword arguments other than ``operation``, ``error_code`` and
    ``duration_ms`` become the record's context. Level and output format
    default to the observability settings.
    """

    def __init__(
        self,
        name: str,
        layer: UpofLayer,
        level: Optional[LogLevel] = None,
        log_format: Optional[str] = None,
    ):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"upof.{layer.value}.{name}")

        if level is None or log_format is None:
            from upof.config import get_config
            obs = get_config().observability
            level = level or LogLevel(obs.log_level.get())
            log_format = log_format or obs.log_format.get()

        self._logger.setLevel(level.value.upper())
        if not self._logger.handlers:
            self._logger.addHandler(TextHandler() if log_format == "text" else StructuredHandler())

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def log(
        self,
        level: int,
        message: str,
        *,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._logger.log(
            level,
            message,
            exc_info=exc_info,
            extra={
                "layer": self.layer.value,
                "operation": operation,
                "error_code": error_code,
                "duration_ms": duration_ms,
                "context": context,
            },
        )

    def debug(self, message: str, **kwargs: Any) -> None:
        self.log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log(logging.ERROR, message, **kwargs)

    def operation(self, name: str, duration_ms: float, success: bool = True, **context: Any) -> None:
        """Record how long ``name`` took and whether it raised."""
        self.log(
            logging.INFO if success else logging.WARNING,
            f"Operation {name} {'completed' if success else 'failed'}",
            operation=name,
            duration_ms=duration_ms,
            **context,
        )


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation ID for the current context."""
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Get the current correlation ID."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def get_logger(name: str, layer: UpofLayer) -> UpofLogger:
    """Get a logger for a UPoF component."""
    return UpofLogger(name, layer)


T = TypeVar("T")


def timed_operation(
    logger: UpofLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.operation(operation_name, duration_ms, success)
        return wrapper
    return decorator


# Audit logging for administrative actions
@dataclass
class AuditEntry:
    """Audit entry for an administrative action."""
    entry_id: str
    timestamp: str
    actor: str
    action: str
    resource_type: str
    resource_id: str
    outcome: str  # success, denied
    correlation_id: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    previous_hash: str = ""
    entry_hash: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AuditLogger:
    """
    Tamper-evident audit trail for administrative actions.

    Each entry hashes its content together with the previous entry hash.
    """

    GENESIS = "genesis"

    def __init__(self, logger: UpofLogger):
        self._logger = logger
        self._entries: List[AuditEntry] = []
        self._last_hash: str = self.GENESIS
        self._lock = threading.Lock()

    @staticmethod
    def _compute_hash(entry: AuditEntry, previous_hash: str) -> str:
        content = entry.to_dict()
        content.pop("entry_hash", None)
        data = json.dumps(to_json_types(content), sort_keys=True) + previous_hash
        return hashlib.sha256(data.encode()).hexdigest()

    def log(
        self,
        actor: str,
        action: str,
        resource_type: str,
        resource_id: str,
        outcome: str,
        **details: Any,
    ) -> AuditEntry:
        """Append an audit entry."""
        with self._lock:
            entry = AuditEntry(
                entry_id=uuid.uuid4().hex,
                timestamp=datetime.now(timezone.utc).isoformat(),
                actor=actor,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                outcome=outcome,
                correlation_id=get_correlation_id(),
                details=details,
                previous_hash=self._last_hash,
            )
            entry.entry_hash = self._compute_hash(entry, self._last_hash)
            self._last_hash = entry.entry_hash
            self._entries.append(entry)

        self._logger.info(
            f"AUDIT: {action} on {resource_type}/{resource_id}",
            operation="audit",
            actor=actor,
            outcome=outcome,
            entry_hash=entry.entry_hash,
            **details,
        )
        return entry

    def entries(self) -> List[AuditEntry]:
        with self._lock:
            return list(self._entries)

    def verify_chain(self) -> bool:
        """Recompute every entry hash and check the chain links."""
        with self._lock:
            previous = self.GENESIS
            for entry in self._entries:
                if entry.previous_hash != previous:
                    return False
                if self._compute_hash(entry, previous) != entry.entry_hash:
                    return False
                previous = entry.entry_hash
            return True
