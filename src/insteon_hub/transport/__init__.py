"""Hub transport layer: HTTP channel, response stream, retry policy.

Public API:
- HubTransport protocol and HttpHubTransport
- CircularHexStream and HubResponseStream
- RetryPolicy and TimeoutConfig
- Transport exceptions
"""

from insteon_hub.transport.exceptions import (
    ExecutionGateError,
    HubRequestError,
    HubTimeoutError,
    HubTransientError,
)
from insteon_hub.transport.hub_transport import HttpHubTransport, HubTransport
from insteon_hub.transport.response_stream import CircularHexStream, HubResponseStream
from insteon_hub.transport.retry_policy import RetryPolicy, TimeoutConfig

__all__ = [
    "CircularHexStream",
    "ExecutionGateError",
    "HttpHubTransport",
    "HubRequestError",
    "HubResponseStream",
    "HubTimeoutError",
    "HubTransientError",
    "HubTransport",
    "RetryPolicy",
    "TimeoutConfig",
]
