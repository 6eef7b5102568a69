"""Hub session: the transport, response stream and execution gate of one hub.

Everything that is shared between commands talking to the same hub lives
here rather than in module globals, so independent sessions (and tests) never
see each other's state.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Self

from insteon_hub.logging_abstraction import get_logger
from insteon_hub.metrics import record_gate_wait
from insteon_hub.protocol.insteon_id import InsteonID
from insteon_hub.transport.hub_transport import HubTransport
from insteon_hub.transport.response_stream import CircularHexStream, HubResponseStream
from insteon_hub.transport.retry_policy import RetryPolicy, TimeoutConfig

if TYPE_CHECKING:
    from insteon_hub.commands.command import Command

logger = get_logger(__name__)

TrafficListener = Callable[[bool], None]


class ExecutionGate:
    """Single-flight lock for hub traffic plus the identity of its holder.

    At most one non-macro command talks to the hub at a time: the response
    buffer is a single shared resource that cannot be demultiplexed.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.holder: Command | None = None

    async def acquire(self, command: Command) -> None:
        start = time.perf_counter()
        await self._lock.acquire()
        self.holder = command
        waited = time.perf_counter() - start
        record_gate_wait(waited)
        if waited > 1.0:
            logger.debug(
                "Waited %.1fs for execution gate",
                waited,
                extra={"command": command.log_name, "wait_seconds": round(waited, 3)},
            )

    def release(self, command: Command) -> None:
        if self.holder is not command:
            logger.warning(
                "Execution gate released by %s while held by %s",
                command.log_name,
                self.holder.log_name if self.holder else None,
            )
        self.holder = None
        self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()


class HubSession:
    """Shared state of one hub: transport, response stream, gate and pacing.

    Args:
        transport: HttpHubTransport, or a simulator implementing HubTransport
        hub_id: INSTEON id of the hub's modem; NULL accepts replies to any id
        stream: Response stream override (defaults to one reading `transport`)
        retry_policy: Backoff between command attempts
        timeout_config: Response timeout and pacing intervals
        device_exists: Tells the device merge whether a link destination is
            still part of the house model (None: every destination exists)
    """

    def __init__(
        self,
        transport: HubTransport,
        hub_id: InsteonID = InsteonID.NULL,
        *,
        stream: CircularHexStream | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout_config: TimeoutConfig | None = None,
        device_exists: Callable[[InsteonID], bool] | None = None,
    ) -> None:
        self.transport = transport
        self.hub_id = hub_id
        self.timeout_config = timeout_config or TimeoutConfig()
        self.retry_policy = retry_policy or RetryPolicy()
        self.stream = stream or HubResponseStream(transport, self.timeout_config.buffer_poll_seconds)
        self.gate = ExecutionGate()
        self.device_exists = device_exists
        self.last_command_complete_time = 0.0
        self._traffic_listeners: list[TrafficListener] = []

    @property
    def running(self) -> Command | None:
        """Command currently holding the execution gate."""
        return self.gate.holder

    def add_traffic_listener(self, listener: TrafficListener) -> None:
        self._traffic_listeners.append(listener)

    def remove_traffic_listener(self, listener: TrafficListener) -> None:
        self._traffic_listeners.remove(listener)

    def notify_traffic(self, active: bool) -> None:
        for listener in list(self._traffic_listeners):
            listener(active)

    async def wait_for_spacing(self) -> None:
        """Sleep until the minimum gap since the last command has elapsed."""
        elapsed = time.monotonic() - self.last_command_complete_time
        remaining = self.timeout_config.command_spacing_seconds - elapsed
        if remaining > 0:
            logger.debug("Waiting %.0fms before sending next command", remaining * 1000)
            await asyncio.sleep(remaining)

    def mark_command_complete(self) -> None:
        self.last_command_complete_time = time.monotonic()

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
