"""Exception types for INSTEON wire decoding errors.

Parsing helpers raise these; the command engine translates anything that
escapes a command attempt into an ErrorKind, so they never reach callers of
Command.try_run().
"""

from __future__ import annotations


class InsteonProtocolError(Exception):
    """Base exception for all INSTEON protocol errors."""


class HexDecodeError(InsteonProtocolError):
    """Text is not a valid hex byte string.

    Raised when:
    - Text has an odd number of characters
    - Text contains non-hex characters
    - A 1-based byte index falls outside the string

    Attributes:
        reason: Specific failure reason (e.g., "odd_length", "out_of_range")
        text_preview: First 32 characters of the offending text
    """

    def __init__(self, reason: str, text: str = ""):
        self.reason = reason
        self.text_preview = text[:32]
        super().__init__(f"Hex decode failed: {reason}")


class InvalidMessageError(InsteonProtocolError):
    """Binary message has the wrong length for its type.

    Attributes:
        reason: Specific failure reason
        expected_length: Byte length the message type requires
        actual_length: Byte length received
    """

    def __init__(self, reason: str, expected_length: int = 0, actual_length: int = 0):
        self.reason = reason
        self.expected_length = expected_length
        self.actual_length = actual_length
        super().__init__(
            f"Invalid message: {reason} (expected {expected_length} bytes, got {actual_length})",
        )


class InvalidLinkRecordError(InsteonProtocolError):
    """Payload cannot be decoded into an all-link record.

    Raised when:
    - Extended record response has a bad checksum
    - Extended message is not a record response (data2 != 0x01)
    - Record address is not aligned on the 8-byte record size
    - Sequence number is outside the 2KB table

    Attributes:
        reason: Specific failure reason
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid link record: {reason}")
