"""
Prometheus metrics for monitoring and observability.

Provides counters and histograms for tracking:
- Document builds (preview and export)
- Export runs
- File ingestion
- Relationships discarded during normalization
"""

import time
from typing import Callable
from functools import wraps
from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
)

# Create a global registry
REGISTRY = CollectorRegistry()

# ========== Counters ==========

documents_built_total = Counter(
    "documents_built_total",
    "Total number of joined documents built",
    ["status"],  # success/not_found/failure
    registry=REGISTRY,
)

export_runs_total = Counter(
    "export_runs_total",
    "Total number of bulk export runs",
    ["status"],  # success/failure
    registry=REGISTRY,
)

files_ingested_total = Counter(
    "files_ingested_total",
    "Total number of files parsed into tables",
    ["source_type", "status"],  # csv/tsv/json/..., success/failure
    registry=REGISTRY,
)

relationships_dropped_total = Counter(
    "relationships_dropped_total",
    "Relationships discarded during normalization",
    ["reason"],  # missing_column
    registry=REGISTRY,
)

# ========== Histograms ==========

document_build_duration_seconds = Histogram(
    "document_build_duration_seconds",
    "Time to build one joined document",
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
    registry=REGISTRY,
)

export_duration_seconds = Histogram(
    "export_duration_seconds",
    "Time to export all documents of a run",
    buckets=(0.01, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0),
    registry=REGISTRY,
)


def track_document_build(func: Callable):
    """
    Decorator to track document build duration and outcome.

    Lookup failures (NotFoundError) are counted separately from
    unexpected failures.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        status = "success"
        try:
            return func(*args, **kwargs)
        except LookupError:
            status = "not_found"
            raise
        except Exception:
            status = "failure"
            raise
        finally:
            document_build_duration_seconds.observe(
                time.perf_counter() - start_time)
            documents_built_total.labels(status=status).inc()

    return wrapper


def track_export(func: Callable):
    """Decorator to track export run duration and outcome."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        status = "success"
        try:
            return func(*args, **kwargs)
        except Exception:
            status = "failure"
            raise
        finally:
            export_duration_seconds.observe(time.perf_counter() - start_time)
            export_runs_total.labels(status=status).inc()

    return wrapper


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus format.

    Returns:
        Metrics as bytes
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get content type for metrics response."""
    return CONTENT_TYPE_LATEST
