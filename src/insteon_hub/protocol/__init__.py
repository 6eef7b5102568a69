"""INSTEON wire primitives: hex strings, device ids, modem messages.

Public API:
- HexString, InsteonID
- Message views (StandardMessage, ExtendedMessage, AllLinkingCompletedMessage)
- Checksum helpers (compute_checksum, verify_checksum)
- Protocol exceptions
"""

from insteon_hub.protocol.exceptions import (
    HexDecodeError,
    InsteonProtocolError,
    InvalidLinkRecordError,
    InvalidMessageError,
)
from insteon_hub.protocol.hex_string import HexString
from insteon_hub.protocol.insteon_id import InsteonID
from insteon_hub.protocol.messages import (
    AllLinkingCompletedMessage,
    DirectNakErrorCode,
    ExtendedMessage,
    LinkingAction,
    MessageType,
    StandardMessage,
    compute_checksum,
    verify_checksum,
)

__all__ = [
    "AllLinkingCompletedMessage",
    "DirectNakErrorCode",
    "ExtendedMessage",
    "HexDecodeError",
    "HexString",
    "InsteonID",
    "InsteonProtocolError",
    "InvalidLinkRecordError",
    "InvalidMessageError",
    "LinkingAction",
    "MessageType",
    "StandardMessage",
    "compute_checksum",
    "verify_checksum",
]
