"""Metrics module."""

from .registry import (
    record_buffer_clear,
    record_buffer_fetch,
    record_buffer_resync,
    record_command_attempt,
    record_command_latency,
    record_command_outcome,
    record_command_retry,
    record_gate_wait,
    record_link_record_read,
    record_link_record_write,
    record_merge,
    record_sync_duration,
    start_metrics_server,
)

__all__ = [
    "record_buffer_clear",
    "record_buffer_fetch",
    "record_buffer_resync",
    "record_command_attempt",
    "record_command_latency",
    "record_command_outcome",
    "record_command_retry",
    "record_gate_wait",
    "record_link_record_read",
    "record_link_record_write",
    "record_merge",
    "record_sync_duration",
    "start_metrics_server",
]
