"""
Prometheus metrics for archive downloads.

Provides instrumentation for:
- Files downloaded and bytes written
- Fetch failures by error kind
- Batches run by the retry controller
- In-flight fetch tasks
"""

from prometheus_client import Counter, Gauge, Histogram

files_downloaded_total = Counter(
    "kline_files_downloaded_total",
    "Total number of archives downloaded completely",
    ["period_kind"],  # period_kind: daily, monthly
)

bytes_written_total = Counter(
    "kline_bytes_written_total",
    "Total bytes of archive data written to disk",
)

fetch_failures_total = Counter(
    "kline_fetch_failures_total",
    "Total number of failed archive fetches by error kind",
    ["error_kind"],
)

batches_total = Counter(
    "kline_batches_total",
    "Total number of download batches submitted",
)

fetches_in_flight = Gauge(
    "kline_fetches_in_flight",
    "Number of fetch tasks currently holding a concurrency slot",
)

batch_duration_seconds = Histogram(
    "kline_batch_duration_seconds",
    "Time spent running one download batch",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)


def record_file_downloaded(period_kind: str) -> None:
    files_downloaded_total.labels(period_kind=period_kind).inc()


def record_bytes_written(byte_count: int) -> None:
    bytes_written_total.inc(byte_count)


def record_fetch_failure(error_kind: str) -> None:
    """
    Record a terminal fetch failure.

    Args:
        error_kind: FetchErrorKind value (e.g. "could_not_find_file_at_host")
    """
    fetch_failures_total.labels(error_kind=error_kind).inc()


def record_batch(duration_seconds: float) -> None:
    batches_total.inc()
    batch_duration_seconds.observe(duration_seconds)


__all__ = [
    "files_downloaded_total",
    "bytes_written_total",
    "fetch_failures_total",
    "batches_total",
    "fetches_in_flight",
    "batch_duration_seconds",
    "record_file_downloaded",
    "record_bytes_written",
    "record_fetch_failure",
    "record_batch",
]
