"""INSTEON Modem message codes and fixed-layout message views.

Message Code Overview (0x02 <code> headers in the hub response stream):
- 0x50/0x51: Standard / extended INSTEON message received (9 / 23 bytes)
- 0x52: X10 received (2 bytes)
- 0x53: All-linking completed (8 bytes)
- 0x54/0x55: Button event report / user reset detected (1 byte)
- 0x56: All-link cleanup failure report (4 bytes)
- 0x57: All-link record response (8 bytes)
- 0x58: All-link cleanup status report (1 byte)
- 0x5C: "No device" standard message, sent by the IM for unknown devices (9 bytes)

Commands sent to the IM echo back as 0x02 <code> <params> followed by an ACK
(0x06) or a NAK (0x15).
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import IntEnum

from insteon_hub.protocol.exceptions import InvalidMessageError
from insteon_hub.protocol.hex_string import HexString
from insteon_hub.protocol.insteon_id import InsteonID

MESSAGE_START = 0x02
ACK = 0x06
NAK = 0x15

# Received from the IM
IM_STANDARD_MESSAGE_RECEIVED = 0x50
IM_EXTENDED_MESSAGE_RECEIVED = 0x51
IM_X10_RECEIVED = 0x52
IM_ALL_LINKING_COMPLETED = 0x53
IM_BUTTON_EVENT_REPORT = 0x54
IM_USER_RESET_DETECTED = 0x55
IM_ALL_LINK_CLEANUP_FAILURE = 0x56
IM_ALL_LINK_RECORD_RESPONSE = 0x57
IM_ALL_LINK_CLEANUP_STATUS = 0x58
IM_NO_DEVICE_STANDARD_MESSAGE = 0x5C

# Sent to the IM
IM_GET_INFO = 0x60
IM_SEND_ALL_LINK = 0x61
IM_SEND_INSTEON_MESSAGE = 0x62
IM_START_ALL_LINKING = 0x64
IM_CANCEL_ALL_LINKING = 0x65
IM_RESET = 0x67
IM_GET_FIRST_ALL_LINK_RECORD = 0x69
IM_GET_NEXT_ALL_LINK_RECORD = 0x6A
IM_MANAGE_ALL_LINK_RECORD = 0x6F

# Device command codes (cmd1)
DEVICE_PRODUCT_DATA_REQUEST = 0x03
DEVICE_ENTER_LINKING_MODE = 0x09
DEVICE_ENTER_UNLINKING_MODE = 0x0A
DEVICE_GET_ENGINE_VERSION = 0x0D
DEVICE_PING = 0x0F
DEVICE_LIGHT_ON = 0x11
DEVICE_FAST_ON = 0x12
DEVICE_LIGHT_OFF = 0x13
DEVICE_FAST_OFF = 0x14
DEVICE_BRIGHTER = 0x15
DEVICE_DIMMER = 0x16
DEVICE_LIGHT_STATUS_REQUEST = 0x19
DEVICE_GET_OPERATING_FLAGS = 0x1F
DEVICE_SET_OPERATING_FLAGS = 0x20
DEVICE_READ_WRITE_ALL_LINK_DATABASE = 0x2F
DEVICE_TRIGGER_GROUP = 0x30

# SET button broadcast cmd1 values
SET_BUTTON_PRESSED_RESPONDER = 0x01
SET_BUTTON_PRESSED_CONTROLLER = 0x02

STANDARD_MESSAGE_LENGTH = 9
EXTENDED_MESSAGE_LENGTH = 23
EXTENDED_DATA_LENGTH = 14
ALL_LINKING_COMPLETED_LENGTH = 8
ALL_LINK_RECORD_LENGTH = 8

# Body lengths (after the 0x02 <code> header) of messages the IM sends unprompted
MESSAGE_BODY_LENGTHS: dict[int, int] = {
    IM_STANDARD_MESSAGE_RECEIVED: STANDARD_MESSAGE_LENGTH,
    IM_EXTENDED_MESSAGE_RECEIVED: EXTENDED_MESSAGE_LENGTH,
    IM_X10_RECEIVED: 2,
    IM_ALL_LINKING_COMPLETED: ALL_LINKING_COMPLETED_LENGTH,
    IM_BUTTON_EVENT_REPORT: 1,
    IM_USER_RESET_DETECTED: 1,
    IM_ALL_LINK_CLEANUP_FAILURE: 4,
    IM_ALL_LINK_RECORD_RESPONSE: ALL_LINK_RECORD_LENGTH,
    IM_ALL_LINK_CLEANUP_STATUS: 1,
    IM_NO_DEVICE_STANDARD_MESSAGE: STANDARD_MESSAGE_LENGTH,
}


class MessageType(IntEnum):
    """Top three bits of the message flags byte."""

    DIRECT = 0x00
    DIRECT_ACK = 0x20
    CLEANUP = 0x40
    CLEANUP_ACK = 0x60
    BROADCAST = 0x80
    DIRECT_NAK = 0xA0
    ALL_LINK_BROADCAST = 0xC0
    CLEANUP_NAK = 0xE0


MESSAGE_TYPE_MASK = 0xE0
EXTENDED_FLAG = 0x10
MAX_HOPS = 0x0F


class DirectNakErrorCode(IntEnum):
    """Reason carried in cmd2 of a direct NAK."""

    PRE_NAK = 0xFC
    INCORRECT_CHECKSUM = 0xFD
    NO_LOAD_DETECTED = 0xFE
    NOT_IN_DATABASE = 0xFF


class LinkingAction(IntEnum):
    RESPONDER = 0x00
    CONTROLLER = 0x01
    AUTO = 0x03
    DELETE = 0xFF


def compute_checksum(cmd1: int, cmd2: int, data: Sequence[int]) -> int:
    """Checksum of an extended message, stored in data[14].

    Only the first 13 data bytes take part; a 14-byte block may be passed as is.
    """
    total = cmd1 + cmd2 + sum(data[:13])
    return (0x100 - (total & 0xFF)) & 0xFF


def verify_checksum(cmd1: int, cmd2: int, data: Sequence[int], checksum: int) -> bool:
    return compute_checksum(cmd1, cmd2, data) == checksum


def _message_type(flags: int) -> MessageType:
    return MessageType(flags & MESSAGE_TYPE_MASK)


@dataclass(frozen=True, slots=True)
class StandardMessage:
    """Standard INSTEON message: from(3) to(3) flags cmd1 cmd2."""

    from_id: InsteonID
    to_id: InsteonID
    flags: int
    cmd1: int
    cmd2: int

    @classmethod
    def from_hex(cls, payload: HexString) -> StandardMessage:
        if len(payload) != STANDARD_MESSAGE_LENGTH:
            raise InvalidMessageError("standard_length", STANDARD_MESSAGE_LENGTH, len(payload))
        flags = payload.byte(7)
        if flags & EXTENDED_FLAG:
            raise InvalidMessageError("extended_flag_on_standard_message", STANDARD_MESSAGE_LENGTH, len(payload))
        return cls(
            from_id=InsteonID.from_bytes(payload.byte(1), payload.byte(2), payload.byte(3)),
            to_id=InsteonID.from_bytes(payload.byte(4), payload.byte(5), payload.byte(6)),
            flags=flags,
            cmd1=payload.byte(8),
            cmd2=payload.byte(9),
        )

    @property
    def message_type(self) -> MessageType:
        return _message_type(self.flags)

    @property
    def nak_error_code(self) -> DirectNakErrorCode | None:
        """Error code of a direct NAK, None for other messages or unknown codes."""
        if self.message_type is not MessageType.DIRECT_NAK:
            return None
        try:
            return DirectNakErrorCode(self.cmd2)
        except ValueError:
            return None

    # Fields of a SET button broadcast, carried in the to_id bytes
    @property
    def device_category(self) -> int:
        return self.to_id.high

    @property
    def device_subcategory(self) -> int:
        return self.to_id.middle

    @property
    def device_revision(self) -> int:
        return self.to_id.low

    def to_hex(self) -> HexString:
        return HexString(
            f"{self.from_id.to_command_string()}{self.to_id.to_command_string()}"
            f"{self.flags:02X}{self.cmd1:02X}{self.cmd2:02X}",
        )


@dataclass(frozen=True, slots=True)
class ExtendedMessage:
    """Extended INSTEON message: a standard message followed by 14 data bytes."""

    from_id: InsteonID
    to_id: InsteonID
    flags: int
    cmd1: int
    cmd2: int
    data: tuple[int, ...]

    @classmethod
    def from_hex(cls, payload: HexString) -> ExtendedMessage:
        if len(payload) != EXTENDED_MESSAGE_LENGTH:
            raise InvalidMessageError("extended_length", EXTENDED_MESSAGE_LENGTH, len(payload))
        return cls(
            from_id=InsteonID.from_bytes(payload.byte(1), payload.byte(2), payload.byte(3)),
            to_id=InsteonID.from_bytes(payload.byte(4), payload.byte(5), payload.byte(6)),
            flags=payload.byte(7),
            cmd1=payload.byte(8),
            cmd2=payload.byte(9),
            data=tuple(payload.byte(10 + i) for i in range(EXTENDED_DATA_LENGTH)),
        )

    @property
    def message_type(self) -> MessageType:
        return _message_type(self.flags)

    def data_byte(self, n: int) -> int:
        """1-based data byte, data_byte(14) is the checksum."""
        return self.data[n - 1]

    @property
    def checksum_valid(self) -> bool:
        return verify_checksum(self.cmd1, self.cmd2, self.data, self.data[13])

    def to_hex(self) -> HexString:
        return HexString(
            f"{self.from_id.to_command_string()}{self.to_id.to_command_string()}"
            f"{self.flags:02X}{self.cmd1:02X}{self.cmd2:02X}" + bytes(self.data).hex(),
        )


@dataclass(frozen=True, slots=True)
class AllLinkingCompletedMessage:
    """0x53 body: action group id(3) category subcategory firmware."""

    action: int
    group: int
    device_id: InsteonID
    category: int
    subcategory: int
    firmware: int

    @classmethod
    def from_hex(cls, payload: HexString) -> AllLinkingCompletedMessage:
        if len(payload) != ALL_LINKING_COMPLETED_LENGTH:
            raise InvalidMessageError("all_linking_completed_length", ALL_LINKING_COMPLETED_LENGTH, len(payload))
        return cls(
            action=payload.byte(1),
            group=payload.byte(2),
            device_id=InsteonID.from_bytes(payload.byte(3), payload.byte(4), payload.byte(5)),
            category=payload.byte(6),
            subcategory=payload.byte(7),
            firmware=payload.byte(8),
        )

    def to_hex(self) -> HexString:
        return HexString(
            f"{self.action:02X}{self.group:02X}{self.device_id.to_command_string()}"
            f"{self.category:02X}{self.subcategory:02X}{self.firmware:02X}",
        )
