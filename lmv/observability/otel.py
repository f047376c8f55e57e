"""OpenTelemetry + Prometheus fallback wiring for lmv."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from lmv import config

logger = logging.getLogger("lmv.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_discovery_counter: Any | None = None
_discovery_latency_hist: Any | None = None
_watch_event_counter: Any | None = None
_notification_counter: Any | None = None

_prom_enabled = False
_prom_discovery_counter: Any | None = None
_prom_discovery_latency_hist: Any | None = None
_prom_watch_event_counter: Any | None = None
_prom_notification_counter: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _discovery_counter, _discovery_latency_hist, _watch_event_counter, _notification_counter
    global _prom_enabled, _prom_discovery_counter, _prom_discovery_latency_hist
    global _prom_watch_event_counter, _prom_notification_counter

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.debug("OpenTelemetry disabled (LMV_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "lmv"

    resource = Resource.create({"service.name": service_name, "service.namespace": "lmv"})

    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=traces_endpoint or None)))
    trace.set_tracer_provider(trace_provider)

    metric_reader = PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=metrics_endpoint or None))
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("lmv")

    _discovery_counter = meter.create_counter(
        "lmv_discovery_passes_total",
        unit="1",
        description="Discovery passes by mode",
    )
    _discovery_latency_hist = meter.create_histogram(
        "lmv_discovery_latency_ms",
        unit="ms",
        description="Latency of discovery passes",
    )
    _watch_event_counter = meter.create_counter(
        "lmv_watch_events_total",
        unit="1",
        description="Filesystem watch events by classification",
    )
    _notification_counter = meter.create_counter(
        "lmv_notifications_total",
        unit="1",
        description="Notifications published to live subscribers",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = trace.get_tracer("lmv")
    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True

    if app:
        _fastapi_instrumentor.instrument_app(app)

    if config.PROM_PORT > 0:
        try:
            from prometheus_client import Counter, Histogram, start_http_server

            start_http_server(config.PROM_PORT)
            _prom_discovery_counter = Counter(
                "lmv_discovery_passes_total",
                "Discovery passes by mode",
                ["mode"],
            )
            _prom_discovery_latency_hist = Histogram(
                "lmv_discovery_latency_ms",
                "Latency of discovery passes",
                ["mode"],
            )
            _prom_watch_event_counter = Counter(
                "lmv_watch_events_total",
                "Filesystem watch events by classification",
                ["kind"],
            )
            _prom_notification_counter = Counter(
                "lmv_notifications_total",
                "Notifications published to live subscribers",
                ["event"],
            )
            _prom_enabled = True
            logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prometheus fallback not started: %s", exc)
            _prom_enabled = False

    logger.info("OpenTelemetry initialized (service=%s endpoint=%s)", service_name, config.OTEL_ENDPOINT)


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized:
        return
    try:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.uninstrument_app(app)
    except Exception as exc:  # noqa: BLE001
        logger.debug("FastAPI uninstrument failed: %s", exc)
    for provider in (_meter_provider, _trace_provider):
        if provider is None:
            continue
        try:
            provider.shutdown()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Telemetry provider shutdown failed: %s", exc)
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_discovery(mode: str, duration_ms: float) -> None:
    labels = {"mode": mode or "unknown"}
    if _enabled and _discovery_counter is not None:
        _discovery_counter.add(1, labels)
    if _enabled and _discovery_latency_hist is not None:
        _discovery_latency_hist.record(max(0.0, float(duration_ms)), labels)
    if _prom_enabled and _prom_discovery_counter is not None:
        _prom_discovery_counter.labels(**labels).inc()
    if _prom_enabled and _prom_discovery_latency_hist is not None:
        _prom_discovery_latency_hist.labels(**labels).observe(max(0.0, float(duration_ms)))


def record_watch_event(kind: str) -> None:
    labels = {"kind": kind or "unknown"}
    if _enabled and _watch_event_counter is not None:
        _watch_event_counter.add(1, labels)
    if _prom_enabled and _prom_watch_event_counter is not None:
        _prom_watch_event_counter.labels(**labels).inc()


def record_notification(event_type: str, subscriber_count: int) -> None:
    if subscriber_count <= 0:
        return
    labels = {"event": event_type or "unknown"}
    if _enabled and _notification_counter is not None:
        _notification_counter.add(subscriber_count, labels)
    if _prom_enabled and _prom_notification_counter is not None:
        _prom_notification_counter.labels(**labels).inc(subscriber_count)
