"""All-link records as stored in device and IM link databases.

Record layout (8 bytes, same for the IM table and device memory):
    [flags][group][destination:3][data1][data2][data3]

Device databases grow downward from address 0xFFF: record `seq` lives at
0xFFF - seq * 8. A record with the UsedBefore flag clear is the high-water
mark and terminates the table.
"""

from __future__ import annotations

import dataclasses
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import IntFlag
from typing import cast

from uuid_extensions import uuid7

from insteon_hub.model.sync_status import SyncStatus
from insteon_hub.protocol.exceptions import InvalidLinkRecordError
from insteon_hub.protocol.hex_string import HexString
from insteon_hub.protocol.insteon_id import InsteonID
from insteon_hub.protocol.messages import ALL_LINK_RECORD_LENGTH, ExtendedMessage

__all__ = [
    "DATABASE_START_ADDRESS",
    "DEFAULT_FLAGS",
    "RECORD_BYTE_LENGTH",
    "LinkRecord",
    "RecordFlags",
    "RecordComparer",
    "address_for_seq",
    "same_id_group",
    "same_id_group_type",
    "seq_for_address",
]

RECORD_BYTE_LENGTH = 8
DATABASE_START_ADDRESS = 0xFFF
# Data2 of a device read reply carrying one record
RECORD_RESPONSE_MARKER = 0x01


class RecordFlags(IntFlag):
    USED_BEFORE = 0x02
    BIT5 = 0x20
    CONTROLLER = 0x40
    IN_USE = 0x80


COMPARE_MASK = int(RecordFlags.IN_USE | RecordFlags.CONTROLLER | RecordFlags.USED_BEFORE)
DEFAULT_FLAGS = int(RecordFlags.IN_USE | RecordFlags.BIT5 | RecordFlags.USED_BEFORE)

# Fields whose change makes a different record (new uid)
_IDENTITY_FIELDS = frozenset({"destination", "group", "flags", "data1", "data2", "data3", "scene_id"})


def _new_uid() -> str:
    return cast(uuid.UUID, uuid7()).hex


def address_for_seq(seq: int) -> int:
    return DATABASE_START_ADDRESS - seq * RECORD_BYTE_LENGTH


def seq_for_address(address: int) -> int:
    """Sequence number of a record address, ValueError if misaligned."""
    offset = DATABASE_START_ADDRESS - address
    if offset < 0 or offset % RECORD_BYTE_LENGTH != 0:
        raise ValueError(f"Invalid record address 0x{address:03X}")
    return offset // RECORD_BYTE_LENGTH


@dataclass(frozen=True, eq=False)
class LinkRecord:
    """One all-link record.

    Records are immutable; use replace() to derive a modified copy. The uid
    follows the record through sync status changes and is regenerated when
    an identity field changes, unless the caller passes one explicitly.

    Equality ignores uid, address and sync status: two records are equal when
    they link the same destination and group with the same masked flags and
    data. Scene ids only take part when both are set.
    """

    destination: InsteonID = InsteonID.NULL
    group: int = 0
    flags: int = DEFAULT_FLAGS
    data1: int = 0
    data2: int = 0
    data3: int = 0
    address: int = 0
    sync_status: SyncStatus = SyncStatus.UNKNOWN
    scene_id: int = 0
    uid: str = field(default_factory=_new_uid)

    @classmethod
    def create(
        cls,
        destination: InsteonID,
        group: int,
        *,
        is_controller: bool,
        data: tuple[int, int, int] = (0, 0, 0),
        sync_status: SyncStatus = SyncStatus.CHANGED,
        scene_id: int = 0,
    ) -> LinkRecord:
        """New in-use record."""
        flags = DEFAULT_FLAGS | (RecordFlags.CONTROLLER if is_controller else 0)
        return cls(
            destination=destination,
            group=group,
            flags=int(flags),
            data1=data[0],
            data2=data[1],
            data3=data[2],
            sync_status=sync_status,
            scene_id=scene_id,
        )

    @classmethod
    def high_water_mark(cls, uid: str | None = None, sync_status: SyncStatus = SyncStatus.CHANGED) -> LinkRecord:
        if uid is None:
            return cls(flags=0, sync_status=sync_status)
        return cls(flags=0, sync_status=sync_status, uid=uid)

    @classmethod
    def from_im_payload(cls, payload: HexString) -> LinkRecord:
        """Parse the 8-byte body of an IM 0x57 all-link record response."""
        if len(payload) < ALL_LINK_RECORD_LENGTH:
            raise InvalidLinkRecordError(f"IM record too short ({len(payload)} bytes)")
        return cls(
            flags=payload.byte(1),
            group=payload.byte(2),
            destination=InsteonID.from_bytes(payload.byte(3), payload.byte(4), payload.byte(5)),
            data1=payload.byte(6),
            data2=payload.byte(7),
            data3=payload.byte(8),
        )

    @classmethod
    def from_extended_message(cls, message: ExtendedMessage) -> LinkRecord:
        """Parse a device's reply to a read-database request."""
        if not message.checksum_valid:
            raise InvalidLinkRecordError("extended message checksum invalid")
        if message.data_byte(2) != RECORD_RESPONSE_MARKER:
            raise InvalidLinkRecordError(f"data2 should be 0x01, got 0x{message.data_byte(2):02X}")
        address = (message.data_byte(3) << 8) | message.data_byte(4)
        if (DATABASE_START_ADDRESS - address) % RECORD_BYTE_LENGTH != 0 or address > DATABASE_START_ADDRESS:
            raise InvalidLinkRecordError(f"record address 0x{address:03X} invalid")
        return cls(
            address=address,
            flags=message.data_byte(6),
            group=message.data_byte(7),
            destination=InsteonID.from_bytes(message.data_byte(8), message.data_byte(9), message.data_byte(10)),
            data1=message.data_byte(11),
            data2=message.data_byte(12),
            data3=message.data_byte(13),
        )

    def to_hex(self) -> HexString:
        """Wire layout: flags group destination data1 data2 data3."""
        return HexString(
            f"{self.flags:02X}{self.group:02X}{self.destination.to_command_string()}"
            f"{self.data1:02X}{self.data2:02X}{self.data3:02X}",
        )

    def replace(self, **changes: object) -> LinkRecord:
        if "uid" not in changes and any(
            name in _IDENTITY_FIELDS and getattr(self, name) != value for name, value in changes.items()
        ):
            changes["uid"] = _new_uid()
        return dataclasses.replace(self, **changes)  # type: ignore[arg-type]

    # Flag accessors

    @property
    def is_in_use(self) -> bool:
        return bool(self.flags & RecordFlags.IN_USE)

    @property
    def is_controller(self) -> bool:
        return bool(self.flags & RecordFlags.CONTROLLER)

    @property
    def is_responder(self) -> bool:
        return not self.is_controller

    @property
    def is_high_water_mark(self) -> bool:
        return not self.flags & RecordFlags.USED_BEFORE

    def with_in_use(self, in_use: bool) -> LinkRecord:
        flags = self.flags | RecordFlags.IN_USE if in_use else self.flags & ~int(RecordFlags.IN_USE) & 0xFF
        return self.replace(flags=int(flags))

    # Comparisons

    def matches(self, other: LinkRecord | None, ignore_in_use: bool = False) -> bool:
        if other is None:
            return False
        mask = COMPARE_MASK - RecordFlags.IN_USE if ignore_in_use else COMPARE_MASK
        return (
            self.destination == other.destination
            and self.group == other.group
            and (self.flags & mask) == (other.flags & mask)
            and self.data1 == other.data1
            and self.data2 == other.data2
            and self.data3 == other.data3
            and (self.scene_id == 0 or other.scene_id == 0 or self.scene_id == other.scene_id)
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LinkRecord):
            return NotImplemented
        return self.matches(other)

    def __hash__(self) -> int:
        return self.destination.value

    def is_identical_to(self, other: LinkRecord | None) -> bool:
        """Same uid and equal (sync status may still differ)."""
        return other is not None and self.uid == other.uid and self.matches(other)

    def log_output(self, seq: int = -1, message: str | None = None, show_not_in_use: bool = False) -> str:
        text = f"{message} " if message else ""
        text += "Record "
        if seq != -1:
            text += f"{seq}, "
        if self.address:
            text += f"({self.address:x}), "
        if self.is_in_use or show_not_in_use:
            text += (
                f"ID: {self.destination}, Group: {self.group}, Flags: 0x{self.flags:02X} "
                f"({'Controller' if self.is_controller else 'Responder'}), "
                f"Data1: {self.data1}, Data2: {self.data2}, Data3: {self.data3}"
            )
        else:
            text += "Not in use" + (", last" if self.is_high_water_mark else "")
        return text

    def __str__(self) -> str:
        return self.log_output()


RecordComparer = Callable[[LinkRecord, LinkRecord], bool]


def same_id_group(a: LinkRecord, b: LinkRecord) -> bool:
    return a.destination == b.destination and a.group == b.group and a.is_in_use == b.is_in_use


def same_id_group_type(a: LinkRecord, b: LinkRecord) -> bool:
    return same_id_group(a, b) and a.is_controller == b.is_controller
