"""Typed events parsed from the response stream, and command reactions.

The dispatcher turns bytes into one of the events below; the running command
answers with a Reaction saying whether to consume the bytes and whether the
command is now complete. A command that is not ready for a message (for
instance an echo that does not match yet) answers WAIT and the dispatcher
re-reads the same position on its next poll.
"""

from __future__ import annotations

from dataclasses import dataclass

from insteon_hub.commands.outcome import ErrorKind
from insteon_hub.protocol.hex_string import HexString
from insteon_hub.protocol.messages import (
    AllLinkingCompletedMessage,
    ExtendedMessage,
    StandardMessage,
)


@dataclass(frozen=True, slots=True)
class ImEcho:
    """The IM echoed our command and ACKed it; payload excludes header and ACK."""

    payload: HexString


@dataclass(frozen=True, slots=True)
class StandardReceived:
    message: StandardMessage


@dataclass(frozen=True, slots=True)
class ExtendedReceived:
    message: ExtendedMessage


@dataclass(frozen=True, slots=True)
class NoDeviceReceived:
    """0x5C: the IM could not reach the addressed device."""

    message: StandardMessage


@dataclass(frozen=True, slots=True)
class AllLinkingCompleted:
    message: AllLinkingCompletedMessage


@dataclass(frozen=True, slots=True)
class AllLinkRecordReceived:
    """0x57: one record of the IM all-link table (8 bytes)."""

    payload: HexString


@dataclass(frozen=True, slots=True)
class InformationalMessage:
    """X10, button event, user reset and cleanup reports; always consumed."""

    code: int
    payload: HexString


ResponseEvent = (
    ImEcho
    | StandardReceived
    | ExtendedReceived
    | NoDeviceReceived
    | AllLinkingCompleted
    | AllLinkRecordReceived
    | InformationalMessage
)


@dataclass(frozen=True, slots=True)
class Reaction:
    """What the dispatcher does with an event.

    Attributes:
        advance: Consume the event's bytes
        completion: Complete the command with this kind (None keeps it running)
    """

    advance: bool
    completion: ErrorKind | None = None


WAIT = Reaction(advance=False)
CONSUME = Reaction(advance=True)


def done(kind: ErrorKind = ErrorKind.NO_ERROR) -> Reaction:
    """Consume the event and complete the command."""
    return Reaction(advance=True, completion=kind)
