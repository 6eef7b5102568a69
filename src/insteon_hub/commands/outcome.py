"""Command outcomes and the closed error taxonomy.

Exceptions never cross the command boundary: anything raised while talking to
the hub is translated into an ErrorKind here, and callers only ever see a
CommandOutcome.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import aiohttp

from insteon_hub.protocol.exceptions import InvalidLinkRecordError, InvalidMessageError
from insteon_hub.transport.exceptions import HubRequestError, HubTimeoutError, HubTransientError


class ErrorKind(Enum):
    """Why a command did not (or did) complete."""

    NO_ERROR = "No Error"
    CANCELLED = "Cancelled"
    NAK = "NAK"
    TIMEOUT = "Timeout"
    TRANSPORT_FATAL = "Fatal Hub Response Error"
    TRANSPORT_TRANSIENT = "Hub Response Error"
    INVALID_REQUEST = "Invalid Command Type"
    NO_HUB_RESPONSE = "No IM Response"
    NO_DEVICE_RESPONSE = "No device response"
    NO_DEVICE_STANDARD_RESPONSE = "No standard response from the device"
    NO_DEVICE_EXTENDED_RESPONSE = "No extended response from the device"
    NO_RECORD_RESPONSE = "No All-Link record response"
    SUB_COMMAND_FAILED = "Sub-Command Failed"
    UNKNOWN = "Unknown Error"

    @property
    def description(self) -> str:
        return self.value

    @property
    def is_recoverable(self) -> bool:
        """Whether another attempt may succeed.

        NAK is in the set because the hub returns spurious NAKs under load;
        there is no documented root cause for it.
        """
        return self in RECOVERABLE_ERROR_KINDS

    @property
    def is_success(self) -> bool:
        """Cancellation is a terminal success-equivalent, not a fault."""
        return self in (ErrorKind.NO_ERROR, ErrorKind.CANCELLED)


RECOVERABLE_ERROR_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.NO_DEVICE_RESPONSE,
        ErrorKind.NO_DEVICE_STANDARD_RESPONSE,
        ErrorKind.NO_DEVICE_EXTENDED_RESPONSE,
        ErrorKind.NO_HUB_RESPONSE,
        ErrorKind.TIMEOUT,
        ErrorKind.TRANSPORT_TRANSIENT,
        ErrorKind.NAK,
    },
)


@dataclass(frozen=True)
class CommandOutcome:
    """Result of Command.try_run().

    Attributes:
        success: Whether the command completed (cancellation counts as success)
        error_kind: NO_ERROR or CANCELLED on success, the failure reason otherwise
        attempt: Number of attempts made
        correlation_id: Correlation ID of the run, for log lookup
    """

    success: bool
    error_kind: ErrorKind
    attempt: int
    correlation_id: str | None = None

    def __post_init__(self) -> None:
        if self.success != self.error_kind.is_success:
            raise ValueError(f"Inconsistent outcome: success={self.success}, error_kind={self.error_kind.name}")

    @property
    def cancelled(self) -> bool:
        return self.error_kind is ErrorKind.CANCELLED

    def __bool__(self) -> bool:
        return self.success


def error_kind_from_exception(exc: BaseException) -> ErrorKind:
    """Translate an exception raised during a command attempt."""
    message = str(exc)
    if isinstance(exc, HubTransientError) or "unexpected end of stream" in message:
        return ErrorKind.TRANSPORT_TRANSIENT
    if isinstance(exc, HubTimeoutError | TimeoutError) or "HttpClient.Timeout" in message:
        return ErrorKind.TIMEOUT
    if isinstance(exc, HubRequestError | aiohttp.ClientError):
        return ErrorKind.TRANSPORT_FATAL
    if isinstance(exc, InvalidMessageError | InvalidLinkRecordError):
        return ErrorKind.TRANSPORT_FATAL
    return ErrorKind.UNKNOWN
