"""
Client Observability

Structured logging and lightweight tracing for asset operations.
Every log event carries the correlation id, trace id and span id of the
operation that produced it, plus the layer it came from.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                  Orchestrator / Poller                   │
    │  logger.info("msg", ual=x)     with tracer.span(...)    │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                  KassetLogger / Tracer                   │
    │     correlation id, span stack, per-event context       │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │              StructuredHandler (JSON lines)              │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import threading
import time
import traceback
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)
span_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "span_id", default=""
)
trace_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "trace_id", default=""
)

# Marks handlers installed by configure_logging so reconfiguration replaces them.
_HANDLER_FLAG = "_kasset_handler"


class Layer(Enum):
    """Client layers, used as the second segment of logger names."""
    BIDS = "bids"
    POLLING = "polling"
    ORCHESTRATOR = "orchestrator"


def _utc_iso(ts: Optional[float] = None) -> str:
    when = datetime.now(timezone.utc) if ts is None else datetime.fromtimestamp(ts, tz=timezone.utc)
    return when.isoformat()


@dataclass
class Span:
    """One traced unit of work: an asset operation or a polling loop."""
    trace_id: str
    span_id: str
    parent_span_id: str = ""
    name: str = ""
    layer: str = ""
    start_time: float = field(default_factory=time.monotonic)
    end_time: Optional[float] = None
    status: str = "ok"
    attributes: Dict[str, Any] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def record_event(self, name: str, **attributes: Any) -> None:
        self.events.append({"name": name, "timestamp": _utc_iso(), "attributes": attributes})

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def set_status(self, status: str, message: str = "") -> None:
        self.status = status
        if message:
            self.attributes["status_message"] = message

    @property
    def duration_ms(self) -> float:
        end = self.end_time if self.end_time is not None else time.monotonic()
        return (end - self.start_time) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "parent_span_id": self.parent_span_id,
            "name": self.name,
            "layer": self.layer,
            "duration_ms": round(self.duration_ms, 2),
            "status": self.status,
            "attributes": self.attributes,
            "events": list(self.events),
        }


class Tracer:
    """
    Span bookkeeping for client operations.

    Spans nest through ``span_id_var``: a span opened inside another shares
    its trace id and records it as parent. Finished spans are handed to
    every registered exporter; an exporter that raises is logged and
    skipped.
    """

    def __init__(self) -> None:
        self._open: Dict[str, Span] = {}
        self._lock = threading.RLock()
        self._exporters: List[Callable[[Span], None]] = []

    def add_exporter(self, exporter: Callable[[Span], None]) -> None:
        self._exporters.append(exporter)

    @property
    def active_spans(self) -> int:
        with self._lock:
            return len(self._open)

    @contextmanager
    def span(self, name: str, layer: Layer, **attributes: Any) -> Iterator[Span]:
        trace_id = trace_id_var.get()
        trace_token = None
        if not trace_id:
            trace_id = uuid.uuid4().hex
            trace_token = trace_id_var.set(trace_id)

        current = Span(
            trace_id=trace_id,
            span_id=uuid.uuid4().hex[:16],
            parent_span_id=span_id_var.get(),
            name=name,
            layer=layer.value,
            attributes=dict(attributes),
        )
        with self._lock:
            self._open[current.span_id] = current
        span_token = span_id_var.set(current.span_id)
        try:
            yield current
        except BaseException as e:
            current.set_status("error", str(e))
            current.attributes["exception_type"] = type(e).__name__
            raise
        finally:
            span_id_var.reset(span_token)
            if trace_token is not None:
                trace_id_var.reset(trace_token)
            self._finish(current)

    def _finish(self, span: Span) -> None:
        span.end_time = time.monotonic()
        with self._lock:
            self._open.pop(span.span_id, None)
        for exporter in self._exporters:
            try:
                exporter(span)
            except Exception:
                logging.getLogger(__name__).warning(
                    "span exporter failed for %s", span.name, exc_info=True
                )


class StructuredHandler(logging.Handler):
    """Writes one JSON object per record, skipping empty fields."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def format_event(self, record: logging.LogRecord) -> Dict[str, Any]:
        event: Dict[str, Any] = {
            "timestamp": _utc_iso(record.created),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": correlation_id_var.get(),
            "trace_id": trace_id_var.get(),
            "span_id": span_id_var.get(),
            "layer": getattr(record, "layer", ""),
            "operation": getattr(record, "operation", ""),
            "duration_ms": getattr(record, "duration_ms", None),
            "error_code": getattr(record, "error_code", ""),
            "context": getattr(record, "context", {}),
        }
        if record.exc_info:
            event["exception"] = "".join(traceback.format_exception(*record.exc_info))
        return {k: v for k, v in event.items() if v not in (None, "", {})}

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.stream.write(json.dumps(self.format_event(record), default=str) + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class KassetLogger:
    """
    Component logger named ``kasset.<layer>.<name>``.

    Keyword arguments become the event's ``context``. Output goes through
    whatever ``configure_logging`` attached to the ``kasset`` logger.
    """

    def __init__(self, name: str, layer: Layer):
        self.layer = layer
        self._logger = logging.getLogger(f"kasset.{layer.value}.{name}")

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(self, message: str, error_code: str = "", exc_info: bool = False, **context: Any) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(self, name: str, duration_ms: float, success: bool = True) -> None:
        self._log(
            logging.INFO if success else logging.WARNING,
            f"Operation {name} {'completed' if success else 'failed'}",
            operation=name,
            duration_ms=duration_ms,
        )


def configure_logging(level: str = "info", fmt: str = "json", stream: Any = None) -> logging.Logger:
    """Attach a single handler to the ``kasset`` logger hierarchy."""
    root = logging.getLogger("kasset")
    root.setLevel(getattr(logging, level.upper()))
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_FLAG, False):
            root.removeHandler(handler)

    if fmt == "json":
        handler: logging.Handler = StructuredHandler(stream)
    else:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    setattr(handler, _HANDLER_FLAG, True)
    root.addHandler(handler)
    return root


def configure_from_config(config: Any) -> logging.Logger:
    """Apply the ``observability`` section of a ``KassetConfig``."""
    return configure_logging(
        level=config.observability.log_level.get(),
        fmt=config.observability.log_format.get(),
    )


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Current correlation id; one is generated on first use in a context."""
    cid = correlation_id_var.get()
    if not cid:
        cid = f"corr-{uuid.uuid4().hex[:12]}"
        correlation_id_var.set(cid)
    return cid


_tracer: Optional[Tracer] = None
_tracer_lock = threading.Lock()


def get_tracer() -> Tracer:
    global _tracer
    with _tracer_lock:
        if _tracer is None:
            _tracer = Tracer()
        return _tracer


def get_logger(name: str, layer: Layer) -> KassetLogger:
    return KassetLogger(name, layer)


T = TypeVar("T")


def timed_operation(
    logger: KassetLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Log completion or failure of the wrapped call with its duration."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                logger.operation(operation_name, (time.monotonic() - start) * 1000, success)
        return wrapper
    return decorator
