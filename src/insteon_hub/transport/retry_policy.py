"""Retry policy and timeout configuration for hub commands.

Hub and device flakiness is mostly transient: the hub returns spurious NAKs
under load and battery or distant devices miss the first request. Commands
retry with a linear backoff that grows with each attempt.
"""

from __future__ import annotations

from insteon_hub import const


class TimeoutConfig:
    """Timeouts and pacing intervals for one hub session.

    Defaults come from INSTEON_* environment settings (see const.py).
    """

    def __init__(
        self,
        response_timeout_ms: float = const.INSTEON_RESPONSE_TIMEOUT_MS,
        command_spacing_ms: float = const.INSTEON_COMMAND_SPACING_MS,
        buffer_poll_ms: float = const.INSTEON_BUFFER_POLL_MS,
        http_timeout_seconds: float = const.INSTEON_HTTP_TIMEOUT,
    ):
        """Initialize timeout configuration.

        Args:
            response_timeout_ms: No-progress window before a command times out
            command_spacing_ms: Minimum gap between a completed command and the next request
            buffer_poll_ms: Minimum gap between two response buffer fetches
            http_timeout_seconds: Total timeout of one HTTP round trip
        """
        self.response_timeout_seconds = response_timeout_ms / 1000.0
        self.command_spacing_seconds = command_spacing_ms / 1000.0
        self.buffer_poll_seconds = buffer_poll_ms / 1000.0
        self.http_timeout_seconds = float(http_timeout_seconds)

    def __repr__(self) -> str:
        """String representation showing all intervals."""
        return (
            f"TimeoutConfig(response={self.response_timeout_seconds:.3f}s, "
            f"spacing={self.command_spacing_seconds:.3f}s, "
            f"buffer_poll={self.buffer_poll_seconds:.3f}s, "
            f"http={self.http_timeout_seconds:.1f}s)"
        )


class RetryPolicy:
    """Linear backoff: the wait before attempt n+1 is base_delay * n."""

    def __init__(self, base_delay_seconds: float = const.INSTEON_RETRY_BASE_DELAY_MS / 1000.0):
        """Initialize retry policy.

        Args:
            base_delay_seconds: Wait after the first failed attempt (default: 0.1s)
        """
        self.base_delay_seconds = base_delay_seconds

    def get_delay(self, attempt: int) -> float:
        """Delay to wait after failed attempt `attempt` (1-based).

        Formula: base_delay * attempt
        """
        return self.base_delay_seconds * max(attempt, 0)

    def __repr__(self) -> str:
        """String representation of retry policy."""
        return f"RetryPolicy(base_delay={self.base_delay_seconds}s, linear)"
