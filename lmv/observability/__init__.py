"""Observability helpers."""

from lmv.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_discovery,
    record_watch_event,
    record_notification,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_discovery",
    "record_watch_event",
    "record_notification",
]
