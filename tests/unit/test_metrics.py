"""Unit tests for the metrics registry."""

from __future__ import annotations

from insteon_hub.metrics import registry


def _has_sample(metric, labels: dict[str, str]) -> bool:
    return any(s.labels == labels for s in metric.collect()[0].samples)


class TestCommandMetrics:
    """Tests for command engine metrics."""

    def test_record_command_outcome(self) -> None:
        """Test record_command_outcome helper."""
        registry.record_command_outcome("PingCommand", "success")
        assert _has_sample(registry.insteon_command_total, {"command": "PingCommand", "outcome": "success"})

    def test_record_command_attempt(self) -> None:
        """Test record_command_attempt helper."""
        registry.record_command_attempt("PingCommand")
        assert _has_sample(registry.insteon_command_attempt_total, {"command": "PingCommand"})

    def test_record_command_retry(self) -> None:
        """Test record_command_retry helper."""
        registry.record_command_retry("PingCommand", "nak")
        assert _has_sample(registry.insteon_command_retry_total, {"command": "PingCommand", "reason": "nak"})

    def test_record_command_latency(self) -> None:
        """Test record_command_latency helper."""
        registry.record_command_latency("PingCommand", 0.2)
        samples = list(registry.insteon_command_latency_seconds.collect()[0].samples)
        count = next(
            s for s in samples if s.name.endswith("_count") and s.labels == {"command": "PingCommand"}
        )
        assert count.value >= 1

    def test_record_gate_wait(self) -> None:
        """Test record_gate_wait helper."""
        registry.record_gate_wait(0.01)
        samples = list(registry.insteon_gate_wait_seconds.collect()[0].samples)
        assert any(s.name.endswith("_count") and s.value >= 1 for s in samples)


class TestBufferMetrics:
    """Tests for response stream metrics."""

    def test_record_buffer_fetch(self) -> None:
        """Test record_buffer_fetch helper."""
        registry.record_buffer_fetch("ok")
        assert _has_sample(registry.insteon_buffer_fetch_total, {"outcome": "ok"})

    def test_record_buffer_resync(self) -> None:
        """Test record_buffer_resync helper."""
        before = registry.insteon_buffer_resync_total._value.get()
        registry.record_buffer_resync()
        assert registry.insteon_buffer_resync_total._value.get() == before + 1


class TestLinkMetrics:
    """Tests for link database metrics."""

    def test_record_link_record_read(self) -> None:
        """Test record_link_record_read helper."""
        registry.record_link_record_read("device")
        assert _has_sample(registry.insteon_link_record_read_total, {"source": "device"})

    def test_record_link_record_write(self) -> None:
        """Test record_link_record_write helper."""
        registry.record_link_record_write("hub", "delete", "success")
        assert _has_sample(
            registry.insteon_link_record_write_total,
            {"source": "hub", "operation": "delete", "outcome": "success"},
        )

    def test_record_merge(self) -> None:
        """Test record_merge helper."""
        registry.record_merge("device", "matched")
        assert _has_sample(registry.insteon_merge_total, {"source": "device", "result": "matched"})

    def test_record_sync_duration(self) -> None:
        """Test record_sync_duration helper."""
        registry.record_sync_duration("read_hub_database", 1.5)
        samples = list(registry.insteon_sync_duration_seconds.collect()[0].samples)
        assert any(
            s.name.endswith("_count") and s.labels == {"operation": "read_hub_database"} and s.value >= 1
            for s in samples
        )
