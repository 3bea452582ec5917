"""
Prometheus metrics collection for cadastro-batch

This module provides metrics instrumentation for the chunk loop
(items read and written, chunk outcomes) and for job runs.
"""
from prometheus_client import (
    Counter,
    Histogram,
    CollectorRegistry,
    generate_latest,
)


# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# STEP METRICS
# =======================

items_read_total = Counter(
    name="batch_items_read_total",
    documentation="Total number of records decoded from the source",
    labelnames=["step"],
    registry=REGISTRY,
)

items_written_total = Counter(
    name="batch_items_written_total",
    documentation="Total number of records written in committed chunks",
    labelnames=["step"],
    registry=REGISTRY,
)

chunks_total = Counter(
    name="batch_chunks_total",
    documentation="Total number of chunks processed",
    labelnames=["step", "outcome"],  # outcome: committed, rolled_back
    registry=REGISTRY,
)

chunk_size = Histogram(
    name="batch_chunk_size",
    documentation="Number of records per committed chunk",
    labelnames=["step"],
    buckets=[1, 10, 50, 100, 200, 500, 1000, 5000],
    registry=REGISTRY,
)

step_duration_seconds = Histogram(
    name="batch_step_duration_seconds",
    documentation="Time spent executing a step in seconds",
    labelnames=["step", "status"],
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0],
    registry=REGISTRY,
)

# =======================
# JOB METRICS
# =======================

job_runs_total = Counter(
    name="batch_job_runs_total",
    documentation="Total number of job runs by terminal status",
    labelnames=["job", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    name="batch_errors_total",
    documentation="Total number of errors that failed a step",
    labelnames=["step", "error_type"],
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


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    counter.labels(**labels).inc(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    """
    Observe a value in a histogram metric

    Args:
        histogram: Prometheus Histogram metric
        value: Value to observe
        **labels: Label values for the metric
    """
    histogram.labels(**labels).observe(value)


def get_sample_value(name: str, labels: dict[str, str]) -> float:
    """Current value of a sample in the registry, 0.0 if never recorded."""
    value = REGISTRY.get_sample_value(name, labels)
    return value or 0.0


# =======================
# BATCH-SPECIFIC HELPERS
# =======================

def record_chunk_committed(step: str, item_count: int) -> None:
    """
    Record a committed chunk.

    Args:
        step: Step name
        item_count: Records written in the chunk
    """
    increment_counter(chunks_total, 1, step=step, outcome="committed")
    increment_counter(items_written_total, item_count, step=step)
    observe_histogram(chunk_size, item_count, step=step)


def record_chunk_rolled_back(step: str, error_type: str) -> None:
    """
    Record a chunk that was rolled back or discarded.

    Args:
        step: Step name
        error_type: Exception class name that caused the rollback
    """
    increment_counter(chunks_total, 1, step=step, outcome="rolled_back")
    increment_counter(errors_total, 1, step=step, error_type=error_type)
