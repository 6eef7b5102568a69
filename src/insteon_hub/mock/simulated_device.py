"""Simulated INSTEON device behind a SimulatedHub."""

from __future__ import annotations

import logging

from insteon_hub.model.link_record import (
    DATABASE_START_ADDRESS,
    RECORD_BYTE_LENGTH,
    RECORD_RESPONSE_MARKER,
    LinkRecord,
    seq_for_address,
)
from insteon_hub.protocol.insteon_id import InsteonID
from insteon_hub.protocol.messages import (
    DEVICE_BRIGHTER,
    DEVICE_DIMMER,
    DEVICE_ENTER_LINKING_MODE,
    DEVICE_ENTER_UNLINKING_MODE,
    DEVICE_FAST_OFF,
    DEVICE_FAST_ON,
    DEVICE_GET_ENGINE_VERSION,
    DEVICE_GET_OPERATING_FLAGS,
    DEVICE_LIGHT_OFF,
    DEVICE_LIGHT_ON,
    DEVICE_LIGHT_STATUS_REQUEST,
    DEVICE_PING,
    DEVICE_PRODUCT_DATA_REQUEST,
    DEVICE_READ_WRITE_ALL_LINK_DATABASE,
    DEVICE_SET_OPERATING_FLAGS,
    DEVICE_TRIGGER_GROUP,
    EXTENDED_FLAG,
    IM_EXTENDED_MESSAGE_RECEIVED,
    IM_STANDARD_MESSAGE_RECEIVED,
    MESSAGE_START,
    SET_BUTTON_PRESSED_CONTROLLER,
    MessageType,
    compute_checksum,
)

logger = logging.getLogger(__name__)

# Hops left / max hops as seen on real traffic
REPLY_HOPS = 0x0B
# On-level change of one brighter/dimmer step
LEVEL_STEP = 8


def standard_message(from_id: InsteonID, to_id: InsteonID, flags: int, cmd1: int, cmd2: int) -> bytes:
    """0x50 message as the IM writes it into the response buffer."""
    return bytes(
        [
            MESSAGE_START,
            IM_STANDARD_MESSAGE_RECEIVED,
            from_id.high,
            from_id.middle,
            from_id.low,
            to_id.high,
            to_id.middle,
            to_id.low,
            flags,
            cmd1,
            cmd2,
        ]
    )


def extended_message(from_id: InsteonID, to_id: InsteonID, cmd1: int, cmd2: int, data: list[int]) -> bytes:
    """0x51 message; the checksum (data14) is computed here."""
    body = list(data) + [0] * (14 - len(data))
    body[13] = compute_checksum(cmd1, cmd2, body)
    header = standard_message(from_id, to_id, REPLY_HOPS | EXTENDED_FLAG, cmd1, cmd2)
    return bytes([MESSAGE_START, IM_EXTENDED_MESSAGE_RECEIVED]) + header[2:] + bytes(body)


class SimulatedDevice:
    """Device with a link database, a revision counter and fault switches.

    Attributes:
        records: Link database in sequence order, without the high-water mark
        revision: Database revision, bumped by every record write
        engine_version: 0 (i1), 1 (i2) or 2 (i2cs)
        unresponsive: Never answer (the command times out after the IM echo)
        multi_record_drop: Sequence numbers left out of multi-record replies
        flag_codes: Operating flag codes received, in order
        triggered: (group, level) of every trigger group request, None for the local level
    """

    def __init__(
        self,
        device_id: InsteonID,
        records: list[LinkRecord] | None = None,
        *,
        revision: int = 1,
        on_level: int = 0,
        engine_version: int = 2,
        category: int = 0x01,
        subcategory: int = 0x20,
        firmware: int = 0x45,
        product_key: int = 0x000123,
        operating_flags: int = 0x00,
    ) -> None:
        self.device_id = device_id
        self.records: list[LinkRecord] = list(records) if records else []
        self.revision = revision
        self.on_level = on_level
        self.engine_version = engine_version
        self.category = category
        self.subcategory = subcategory
        self.firmware = firmware
        self.product_key = product_key
        self.operating_flags = operating_flags
        self.flag_codes: list[int] = []
        self.triggered: list[tuple[int, int | None]] = []
        self.unresponsive = False
        self.multi_record_drop: set[int] = set()
        self.in_linking_mode = False
        self.in_unlinking_mode = False
        self.written: list[tuple[int, LinkRecord]] = []

    def record_at(self, seq: int) -> LinkRecord:
        """Record stored at `seq`; past the end of the table memory reads as a high-water mark."""
        if seq < len(self.records):
            return self.records[seq]
        return LinkRecord.high_water_mark()

    def _ack(self, hub_id: InsteonID, cmd1: int, cmd2: int) -> bytes:
        return standard_message(self.device_id, hub_id, MessageType.DIRECT_ACK | REPLY_HOPS, cmd1, cmd2)

    def _record_reply(self, hub_id: InsteonID, seq: int) -> bytes:
        record = self.record_at(seq)
        address = DATABASE_START_ADDRESS - seq * RECORD_BYTE_LENGTH
        destination = record.destination
        data = [
            0,
            RECORD_RESPONSE_MARKER,
            (address >> 8) & 0xFF,
            address & 0xFF,
            0,
            record.flags,
            record.group,
            destination.high,
            destination.middle,
            destination.low,
            record.data1,
            record.data2,
            record.data3,
        ]
        return extended_message(self.device_id, hub_id, DEVICE_READ_WRITE_ALL_LINK_DATABASE, 0, data)

    def _write_record(self, seq: int, data: tuple[int, ...]) -> None:
        record = LinkRecord(
            flags=data[5],
            group=data[6],
            destination=InsteonID.from_bytes(data[7], data[8], data[9]),
            data1=data[10],
            data2=data[11],
            data3=data[12],
        )
        self.written.append((seq, record))
        if record.is_high_water_mark:
            del self.records[seq:]
        else:
            while len(self.records) < seq:
                # Unused slot that was used before
                self.records.append(LinkRecord(flags=0x02))
            if seq < len(self.records):
                self.records[seq] = record
            else:
                self.records.append(record)
        self.revision = (self.revision + 1) & 0xFF
        logger.debug("Device %s: record %d written, revision %d", self.device_id, seq, self.revision)

    def _database_request(self, hub_id: InsteonID, data: tuple[int, ...]) -> list[bytes]:
        replies = [self._ack(hub_id, DEVICE_READ_WRITE_ALL_LINK_DATABASE, 0)]
        operation = data[1]
        address = (data[2] << 8) | data[3]
        seq = seq_for_address(address)
        if operation == 0x02:
            self._write_record(seq, data)
        elif data[4] == 0x01:
            replies.append(self._record_reply(hub_id, seq))
        else:
            for current in range(seq, len(self.records) + 1):
                if current not in self.multi_record_drop:
                    replies.append(self._record_reply(hub_id, current))
        return replies

    def is_responder_of(self, controller: InsteonID, group: int) -> bool:
        return any(
            r.is_in_use and r.is_responder and r.destination == controller and r.group == group for r in self.records
        )

    def handle_group_command(self, cmd1: int, cmd2: int) -> None:
        """Apply an all-link group command to the on-level."""
        self._apply_light_command(cmd1, cmd2)

    def _apply_light_command(self, cmd1: int, cmd2: int) -> None:
        if cmd1 in (DEVICE_LIGHT_ON, DEVICE_FAST_ON):
            self.on_level = cmd2
        elif cmd1 in (DEVICE_LIGHT_OFF, DEVICE_FAST_OFF):
            self.on_level = 0
        elif cmd1 == DEVICE_BRIGHTER:
            self.on_level = min(0xFF, self.on_level + LEVEL_STEP)
        elif cmd1 == DEVICE_DIMMER:
            self.on_level = max(0, self.on_level - LEVEL_STEP)

    def _product_data(self, hub_id: InsteonID) -> list[bytes]:
        key = self.product_key
        data = [0, (key >> 16) & 0xFF, (key >> 8) & 0xFF, key & 0xFF, self.category, self.subcategory, self.firmware]
        return [
            self._ack(hub_id, DEVICE_PRODUCT_DATA_REQUEST, 0),
            extended_message(self.device_id, hub_id, DEVICE_PRODUCT_DATA_REQUEST, 0, data),
        ]

    def _set_operating_flag(self, code: int) -> None:
        self.flag_codes.append(code)
        # Even codes turn a flag on, the following odd code turns it off
        bit = 1 << (code // 2)
        if code % 2 == 0:
            self.operating_flags |= bit
        else:
            self.operating_flags &= ~bit & 0xFF

    def handle(self, hub_id: InsteonID, cmd1: int, cmd2: int, data: tuple[int, ...] | None) -> list[bytes]:
        """Messages the device sends back for one request, in order."""
        if self.unresponsive:
            return []
        if cmd1 == DEVICE_READ_WRITE_ALL_LINK_DATABASE and data is not None:
            return self._database_request(hub_id, data)
        if cmd1 == DEVICE_LIGHT_STATUS_REQUEST:
            return [self._ack(hub_id, self.revision, self.on_level)]
        if cmd1 == DEVICE_GET_ENGINE_VERSION:
            return [self._ack(hub_id, cmd1, self.engine_version)]
        if cmd1 == DEVICE_PING:
            return [self._ack(hub_id, cmd1, cmd2)]
        if DEVICE_LIGHT_ON <= cmd1 <= DEVICE_DIMMER:
            self._apply_light_command(cmd1, cmd2)
            return [self._ack(hub_id, cmd1, self.on_level)]
        if cmd1 == DEVICE_PRODUCT_DATA_REQUEST:
            return self._product_data(hub_id)
        if cmd1 == DEVICE_GET_OPERATING_FLAGS:
            return [self._ack(hub_id, cmd1, self.operating_flags)]
        if cmd1 == DEVICE_SET_OPERATING_FLAGS and data is not None:
            self._set_operating_flag(cmd2)
            return [self._ack(hub_id, cmd1, cmd2)]
        if cmd1 == DEVICE_TRIGGER_GROUP and data is not None:
            group, use_level, level, on_command = data[0], data[1], data[2], data[3]
            self.triggered.append((group, level if use_level else None))
            self._apply_light_command(on_command, level if use_level else 0xFF)
            return [self._ack(hub_id, cmd1, cmd2)]
        if cmd1 == DEVICE_ENTER_LINKING_MODE:
            self.in_linking_mode = True
            return [self._ack(hub_id, cmd1, cmd2), self.set_button_broadcast(cmd2)]
        if cmd1 == DEVICE_ENTER_UNLINKING_MODE:
            self.in_unlinking_mode = True
            return [self._ack(hub_id, cmd1, cmd2)]
        logger.debug("Device %s: no reply to cmd1 0x%02X", self.device_id, cmd1)
        return []

    def set_button_broadcast(self, group: int) -> bytes:
        """Broadcast sent when the SET button is held: category, subcategory and firmware in the to field."""
        device_info = InsteonID.from_bytes(self.category, self.subcategory, self.firmware)
        return standard_message(
            self.device_id,
            device_info,
            MessageType.BROADCAST | REPLY_HOPS,
            SET_BUTTON_PRESSED_CONTROLLER,
            group,
        )
