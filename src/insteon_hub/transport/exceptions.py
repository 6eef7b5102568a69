"""Exception types for hub transport errors.

HttpHubTransport raises these; the command engine maps them to ErrorKind
values (see commands.outcome.error_kind_from_exception).
"""

from __future__ import annotations

from insteon_hub.protocol.exceptions import InsteonProtocolError


class HubRequestError(InsteonProtocolError):
    """Hub rejected a request or could not be reached.

    Raised when:
    - HTTP response status is not a success code
    - Connection refused or DNS failure
    - Any other non-transient aiohttp client error

    Attributes:
        reason: Specific failure reason
        status: HTTP status code (0 when no response was received)
    """

    def __init__(self, reason: str, status: int = 0):
        self.reason = reason
        self.status = status
        super().__init__(f"Hub request failed: {reason} (status: {status})")


class HubTransientError(InsteonProtocolError):
    """Hub dropped the connection mid-response ("unexpected end of stream").

    The 2245 hub closes connections abruptly under load; the request is safe
    to retry.

    Attributes:
        reason: Specific failure reason
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Hub response interrupted: {reason}")


class HubTimeoutError(InsteonProtocolError):
    """HTTP round trip exceeded the client timeout.

    Attributes:
        reason: Specific failure reason
        timeout_seconds: Client timeout that elapsed
    """

    def __init__(self, reason: str, timeout_seconds: float = 0.0):
        self.reason = reason
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Hub request timed out: {reason} after {timeout_seconds}s")


class ExecutionGateError(InsteonProtocolError):
    """Sub-command started without its parent holding the execution gate.

    Attributes:
        reason: Specific failure reason
        command: Name of the offending command
    """

    def __init__(self, reason: str, command: str = ""):
        self.reason = reason
        self.command = command
        super().__init__(f"Execution gate error: {reason} (command: {command})")
