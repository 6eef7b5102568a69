"""Prometheus metrics registry for hub commands and link-database sync."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Histogram,
    start_http_server,
)

# Command engine
insteon_command_total: Final = Counter(  # type: ignore[assignment]
    "insteon_command_total",
    "Total commands run to completion (all attempts)",
    ["command", "outcome"],
)

insteon_command_attempt_total: Final = Counter(  # type: ignore[assignment]
    "insteon_command_attempt_total",
    "Total command attempts sent to the hub",
    ["command"],
)

insteon_command_retry_total: Final = Counter(  # type: ignore[assignment]
    "insteon_command_retry_total",
    "Total command retries by error kind",
    ["command", "reason"],
)

insteon_command_latency_seconds: Final = Histogram(  # type: ignore[assignment]
    "insteon_command_latency_seconds",
    "Command duration including retries in seconds",
    ["command"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 120.0),
)

insteon_gate_wait_seconds: Final = Histogram(  # type: ignore[assignment]
    "insteon_gate_wait_seconds",
    "Time spent waiting for the execution gate in seconds",
    buckets=(0.001, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0),
)

# Response stream
insteon_buffer_fetch_total: Final = Counter(  # type: ignore[assignment]
    "insteon_buffer_fetch_total",
    "Total response buffer fetches",
    ["outcome"],
)

insteon_buffer_clear_total: Final = Counter(  # type: ignore[assignment]
    "insteon_buffer_clear_total",
    "Total response buffer clears requested by commands",
)

insteon_buffer_resync_total: Final = Counter(  # type: ignore[assignment]
    "insteon_buffer_resync_total",
    "Total buffer wrap resynchronizations",
)

# Link databases
insteon_link_record_read_total: Final = Counter(  # type: ignore[assignment]
    "insteon_link_record_read_total",
    "Total link records read from devices or the hub",
    ["source"],
)

insteon_link_record_write_total: Final = Counter(  # type: ignore[assignment]
    "insteon_link_record_write_total",
    "Total link record writes (edit, add, delete)",
    ["source", "operation", "outcome"],
)

insteon_merge_total: Final = Counter(  # type: ignore[assignment]
    "insteon_merge_total",
    "Total link record merge decisions",
    ["source", "result"],
)

insteon_sync_duration_seconds: Final = Histogram(  # type: ignore[assignment]
    "insteon_sync_duration_seconds",
    "Duration of link database reads, writes and merges in seconds",
    ["operation"],
    buckets=(0.001, 0.01, 0.1, 1.0, 5.0, 15.0, 60.0, 300.0),
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9400) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_command_outcome(command: str, outcome: str) -> None:
    """Record a finished command."""
    insteon_command_total.labels(command=command, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_command_attempt(command: str) -> None:
    """Record one command attempt."""
    insteon_command_attempt_total.labels(command=command).inc()  # type: ignore[no-untyped-call]


def record_command_retry(command: str, reason: str) -> None:
    """Record a retry scheduled after a recoverable failure."""
    insteon_command_retry_total.labels(command=command, reason=reason).inc()  # type: ignore[no-untyped-call]


def record_command_latency(command: str, latency_seconds: float) -> None:
    """Record total command duration."""
    insteon_command_latency_seconds.labels(command=command).observe(latency_seconds)  # type: ignore[no-untyped-call]


def record_gate_wait(wait_seconds: float) -> None:
    """Record time spent waiting for the execution gate."""
    insteon_gate_wait_seconds.observe(wait_seconds)  # type: ignore[no-untyped-call]


def record_buffer_fetch(outcome: str) -> None:
    """Record a response buffer fetch."""
    insteon_buffer_fetch_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_buffer_clear() -> None:
    """Record a response buffer clear."""
    insteon_buffer_clear_total.inc()  # type: ignore[no-untyped-call]


def record_buffer_resync() -> None:
    """Record a skip over a message overwritten by the buffer wrapping around."""
    insteon_buffer_resync_total.inc()  # type: ignore[no-untyped-call]


def record_link_record_read(source: str) -> None:
    """Record a link record read ("device" or "hub")."""
    insteon_link_record_read_total.labels(source=source).inc()  # type: ignore[no-untyped-call]


def record_link_record_write(source: str, operation: str, outcome: str) -> None:
    """Record a link record write."""
    insteon_link_record_write_total.labels(
        source=source, operation=operation, outcome=outcome,
    ).inc()  # type: ignore[no-untyped-call]


def record_merge(source: str, result: str) -> None:
    """Record a merge decision for one record."""
    insteon_merge_total.labels(source=source, result=result).inc()  # type: ignore[no-untyped-call]


def record_sync_duration(operation: str, seconds: float) -> None:
    """Record the duration of a database read, write-back or merge."""
    insteon_sync_duration_seconds.labels(operation=operation).observe(seconds)  # type: ignore[no-untyped-call]
