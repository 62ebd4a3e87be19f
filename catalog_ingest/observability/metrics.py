"""
Prometheus metrics collection for catalog-ingest

This module provides metrics instrumentation for monitoring
ingestion throughput, data quality, broker health and persistence.
"""
import os
from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from typing import Optional


# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# PARSING METRICS
# =======================

# Rows validated counter
rows_validated_total = Counter(
    name="ingest_rows_validated_total",
    documentation="Total number of data rows validated",
    labelnames=["outcome"],  # outcome: valid, invalid
    registry=REGISTRY,
)

# Validation failures counter
validation_failures_total = Counter(
    name="ingest_validation_failures_total",
    documentation="Total number of validation failures",
    labelnames=["rule_type"],  # rule_type: required_field, price, date, encoding, format
    registry=REGISTRY,
)

# Parse timeouts
parse_timeouts_total = Counter(
    name="ingest_parse_timeouts_total",
    documentation="Total number of parse runs aborted by the deadline",
    registry=REGISTRY,
)

# =======================
# ENRICHMENT METRICS
# =======================

exchange_rate_fetches_total = Counter(
    name="ingest_exchange_rate_fetches_total",
    documentation="Exchange-rate snapshot lookups",
    labelnames=["result"],  # result: cache_hit, fetched, error
    registry=REGISTRY,
)

exchange_rate_fetch_duration_seconds = Histogram(
    name="ingest_exchange_rate_fetch_duration_seconds",
    documentation="Time spent calling the rate provider in seconds",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
    registry=REGISTRY,
)

# =======================
# PERSISTENCE METRICS
# =======================

batch_size = Histogram(
    name="ingest_batch_size",
    documentation="Number of records per insert batch",
    buckets=[1, 10, 50, 100, 250, 500, 1000, 2500, 5000],
    registry=REGISTRY,
)

batch_duration_seconds = Histogram(
    name="ingest_batch_duration_seconds",
    documentation="Time spent writing one batch in seconds",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
    registry=REGISTRY,
)

batches_total = Counter(
    name="ingest_batches_total",
    documentation="Total number of insert batches",
    labelnames=["status"],  # status: success, partial, failed
    registry=REGISTRY,
)

records_inserted_total = Counter(
    name="ingest_records_inserted_total",
    documentation="Total number of product rows inserted",
    registry=REGISTRY,
)

# =======================
# QUEUE METRICS
# =======================

queue_events_total = Counter(
    name="ingest_queue_events_total",
    documentation="Broker client events",
    # event: connected, connect_failed, reconnect_scheduled, given_up,
    # published, publish_failed, acked, retried, dead_lettered
    labelnames=["event"],
    registry=REGISTRY,
)

queue_connection_state = Gauge(
    name="ingest_queue_connected",
    documentation="Broker connection established (1) or not (0)",
    registry=REGISTRY,
)

# =======================
# RUN METRICS
# =======================

uploads_total = Counter(
    name="ingest_uploads_total",
    documentation="Total number of uploads accepted",
    labelnames=["mode"],  # mode: direct, queued
    registry=REGISTRY,
)

run_duration_seconds = Histogram(
    name="ingest_run_duration_seconds",
    documentation="Wall-clock duration of a full parse/enrich/persist run",
    labelnames=["mode", "status"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
    registry=REGISTRY,
)

errors_total = Counter(
    name="ingest_errors_total",
    documentation="Total number of fatal run errors",
    labelnames=["kind", "component"],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Content type for the Prometheus exposition format"""
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    # Lazy import: only needed when the endpoint is enabled
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


# =======================
# CONTEXT MANAGERS
# =======================

class track_duration:
    """
    Context manager for tracking operation duration

    Usage:
        with track_duration(exchange_rate_fetch_duration_seconds):
            response = client.get(url)

        with track_duration(run_duration_seconds, mode="direct", status="completed"):
            ...
    """

    def __init__(self, histogram: Histogram, **labels):
        self.histogram = histogram
        self.labels = labels
        self.timer = None

    def __enter__(self):
        metric = self.histogram.labels(**self.labels) if self.labels else self.histogram
        self.timer = metric.time()
        self.timer.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.timer.__exit__(exc_type, exc_val, exc_tb)
        return False


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    if labels:
        counter.labels(**labels).inc(value)
    else:
        counter.inc(value)


def set_gauge(gauge: Gauge, value: float, **labels) -> None:
    """Set a gauge metric value"""
    if labels:
        gauge.labels(**labels).set(value)
    else:
        gauge.set(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    """Record an observation on a histogram"""
    if labels:
        histogram.labels(**labels).observe(value)
    else:
        histogram.observe(value)


# =======================
# DOMAIN SHORTCUTS
# =======================

def record_row(valid: bool) -> None:
    increment_counter(rows_validated_total, outcome="valid" if valid else "invalid")


def record_validation_failure(rule_type: str) -> None:
    increment_counter(validation_failures_total, rule_type=rule_type)


def record_queue_event(event: str) -> None:
    increment_counter(queue_events_total, event=event)


def record_batch(size: int, duration_seconds: float, inserted: int, status: str) -> None:
    """Record the outcome of one insert batch."""
    observe_histogram(batch_size, size)
    observe_histogram(batch_duration_seconds, duration_seconds)
    increment_counter(batches_total, status=status)
    if inserted:
        increment_counter(records_inserted_total, inserted)


def get_sample_value(name: str, labels: Optional[dict] = None) -> float:
    """
    Read the current value of a sample from the registry.

    Returns 0.0 when the sample has not been recorded yet.
    """
    value = REGISTRY.get_sample_value(name, labels or {})
    return value if value is not None else 0.0
