"""Commands addressed to an INSTEON device through the hub's modem (0x62).

Each command frames a standard or extended message to `to_device`; results
are exposed as attributes that stay None until the device answered.
"""

from __future__ import annotations

from typing import ClassVar

from insteon_hub.commands.command import Command
from insteon_hub.commands.events import CONSUME, WAIT, Reaction, done
from insteon_hub.logging_abstraction import get_logger
from insteon_hub.metrics import record_link_record_read
from insteon_hub.model.link_database import LinkDatabase
from insteon_hub.model.link_record import (
    DATABASE_START_ADDRESS,
    LinkRecord,
    address_for_seq,
    seq_for_address,
)
from insteon_hub.protocol.exceptions import InvalidLinkRecordError
from insteon_hub.protocol.insteon_id import InsteonID
from insteon_hub.protocol.messages import (
    DEVICE_BRIGHTER,
    DEVICE_DIMMER,
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
    ExtendedMessage,
    StandardMessage,
)
from insteon_hub.session import HubSession

logger = get_logger(__name__)

MAX_RECORD_SEQ = 511
# Data1 of a database read/write request
READ_DATABASE = 0x00
WRITE_DATABASE = 0x02
# Bytes written per record
RECORD_WRITE_LENGTH = 0x08
# Invalid record replies tolerated before asking the dispatcher to clear the buffer
MAX_INVALID_RECORD_REPLIES = 3
MULTI_RECORD_RESPONSE_TIMEOUT = 10.0


def _address_bytes(address: int) -> tuple[int, int]:
    return (address >> 8) & 0xFF, address & 0xFF


class PingCommand(Command):
    log_name: ClassVar[str] = "Ping"

    def __init__(self, session: HubSession, device_id: InsteonID, **kwargs) -> None:
        super().__init__(session, to_device=device_id, cmd1=DEVICE_PING, cmd2=0, **kwargs)

    def describe_result(self) -> str | None:
        return f"Device {self.to_device} responded to ping"


class GetEngineVersionCommand(Command):
    log_name: ClassVar[str] = "GetEngineVersion"

    def __init__(self, session: HubSession, device_id: InsteonID, **kwargs) -> None:
        super().__init__(session, to_device=device_id, cmd1=DEVICE_GET_ENGINE_VERSION, cmd2=0, **kwargs)

    @property
    def engine_version(self) -> int | None:
        """INSTEON engine version reported in cmd2 (0: i1, 1: i2, 2: i2cs)."""
        if self.standard_response is None:
            return None
        return self.standard_response.cmd2

    def describe_result(self) -> str | None:
        return f"Device {self.to_device} engine version: {self.engine_version}"


class LightStatusRequestCommand(Command):
    """Light status request (0x19).

    The direct ACK carries the link database revision ("delta") in cmd1 and
    the current on-level in cmd2. Drivers use the revision to skip re-reading
    a database that has not changed.
    """

    log_name: ClassVar[str] = "GetOnLevel"

    def __init__(self, session: HubSession, device_id: InsteonID, **kwargs) -> None:
        super().__init__(session, to_device=device_id, cmd1=DEVICE_LIGHT_STATUS_REQUEST, cmd2=0, **kwargs)

    @property
    def revision(self) -> int | None:
        if self.standard_response is None:
            return None
        return self.standard_response.cmd1

    @property
    def on_level(self) -> int | None:
        if self.standard_response is None:
            return None
        return self.standard_response.cmd2

    def describe_result(self) -> str | None:
        level = self.on_level or 0
        return f"Device {self.to_device}, On-Level: {level / 255:.0%} ({level}), DB Delta: {self.revision}"

class _LightCommand(Command):
    """Standard direct light control; the ACK's cmd2 carries the resulting on-level."""

    def __init__(self, session: HubSession, device_id: InsteonID, cmd1: int, level: int = 0, **kwargs) -> None:
        if not 0 <= level <= 0xFF:
            raise ValueError(f"On-level {level} out of range 0-255")
        super().__init__(session, to_device=device_id, cmd1=cmd1, cmd2=level, **kwargs)

    @property
    def level(self) -> int | None:
        if self.standard_response is None:
            return None
        return self.standard_response.cmd2

    def describe_result(self) -> str | None:
        level = self.level or 0
        return f"Device {self.to_device} Level: {level / 255:.0%} ({level})"


class LightOnCommand(_LightCommand):
    log_name: ClassVar[str] = "LightOn"

    def __init__(self, session: HubSession, device_id: InsteonID, level: int = 0xFF, **kwargs) -> None:
        super().__init__(session, device_id, DEVICE_LIGHT_ON, level, **kwargs)

    def log_params(self) -> str:
        return f"{self.to_device}, Level: {self.cmd2 / 255:.0%} ({self.cmd2})"


class FastOnCommand(LightOnCommand):
    """Light on at the given level, skipping the ramp."""

    log_name: ClassVar[str] = "FastLightOn"

    def __init__(self, session: HubSession, device_id: InsteonID, level: int = 0xFF, **kwargs) -> None:
        super().__init__(session, device_id, level, **kwargs)
        self.cmd1 = DEVICE_FAST_ON


class LightOffCommand(_LightCommand):
    log_name: ClassVar[str] = "LightOff"

    def __init__(self, session: HubSession, device_id: InsteonID, **kwargs) -> None:
        super().__init__(session, device_id, DEVICE_LIGHT_OFF, **kwargs)

    def log_params(self) -> str:
        return str(self.to_device)

    def describe_result(self) -> str | None:
        return f"Device {self.to_device} Off"


class FastOffCommand(LightOffCommand):
    log_name: ClassVar[str] = "FastLightOff"

    def __init__(self, session: HubSession, device_id: InsteonID, **kwargs) -> None:
        super().__init__(session, device_id, **kwargs)
        self.cmd1 = DEVICE_FAST_OFF


class BrighterCommand(_LightCommand):
    """One step brighter (1/32 of the range)."""

    log_name: ClassVar[str] = "Brighter"

    def __init__(self, session: HubSession, device_id: InsteonID, **kwargs) -> None:
        super().__init__(session, device_id, DEVICE_BRIGHTER, **kwargs)

    def log_params(self) -> str:
        return str(self.to_device)

    def describe_result(self) -> str | None:
        return f"Device {self.to_device} is brighter"


class DimmerCommand(_LightCommand):
    """One step dimmer (1/32 of the range)."""

    log_name: ClassVar[str] = "Dimmer"

    def __init__(self, session: HubSession, device_id: InsteonID, **kwargs) -> None:
        super().__init__(session, device_id, DEVICE_DIMMER, **kwargs)

    def log_params(self) -> str:
        return str(self.to_device)

    def describe_result(self) -> str | None:
        return f"Device {self.to_device} is dimmer"


class GetProductDataCommand(Command):
    """Product data request (0x03), answered by an ACK then an extended message.

    Data2-4 of the reply hold the product key, data5-7 category, subcategory
    and firmware revision.
    """

    log_name: ClassVar[str] = "GetProductData"

    def __init__(self, session: HubSession, device_id: InsteonID, **kwargs) -> None:
        super().__init__(session, to_device=device_id, cmd1=DEVICE_PRODUCT_DATA_REQUEST, cmd2=0, **kwargs)
        self.expect_extended_response = True

    def on_extended_response(self, message: ExtendedMessage) -> Reaction:
        if message.cmd1 != DEVICE_PRODUCT_DATA_REQUEST:
            return CONSUME
        if message.data_byte(5) == 0 and message.data_byte(6) == 0:
            # Category and subcategory not written yet
            return WAIT
        self.extended_response = message
        return done()

    @property
    def product_key(self) -> int | None:
        message = self.extended_response
        if message is None:
            return None
        return (message.data_byte(2) << 16) | (message.data_byte(3) << 8) | message.data_byte(4)

    @property
    def category(self) -> int | None:
        return self.extended_response.data_byte(5) if self.extended_response is not None else None

    @property
    def subcategory(self) -> int | None:
        return self.extended_response.data_byte(6) if self.extended_response is not None else None

    @property
    def firmware_revision(self) -> int | None:
        return self.extended_response.data_byte(7) if self.extended_response is not None else None

    def log_params(self) -> str:
        return str(self.to_device)

    def describe_result(self) -> str | None:
        return (
            f"{self.to_device}, Product Key: 0x{self.product_key or 0:06X}, Category: 0x{self.category or 0:02X}, "
            f"Subcategory: 0x{self.subcategory or 0:02X}, Firmware: 0x{self.firmware_revision or 0:02X}"
        )


class GetOperatingFlagsCommand(Command):
    """Read the operating flags byte (0x1F), returned in the ACK's cmd2."""

    log_name: ClassVar[str] = "GetOperatingFlags"

    def __init__(self, session: HubSession, device_id: InsteonID, **kwargs) -> None:
        super().__init__(session, to_device=device_id, cmd1=DEVICE_GET_OPERATING_FLAGS, cmd2=0, **kwargs)

    def on_direct_nak(self, message: StandardMessage) -> Reaction:
        if message.nak_error_code is None:
            # Some devices NAK with the flags in cmd2
            logger.debug("Direct NAK code 0x%02X unknown, NAK considered as ACK", message.cmd2)
            self.standard_response = message
            return done()
        return super().on_direct_nak(message)

    @property
    def operating_flags(self) -> int | None:
        if self.standard_response is None:
            return None
        return self.standard_response.cmd2

    @property
    def program_lock(self) -> bool | None:
        flags = self.operating_flags
        return bool(flags & 0x01) if flags is not None else None

    @property
    def led_on(self) -> bool | None:
        flags = self.operating_flags
        return bool(flags & 0x02) if flags is not None else None

    def log_params(self) -> str:
        return str(self.to_device)

    def describe_result(self) -> str | None:
        return f"{self.to_device}, Operating Flags: 0x{self.operating_flags or 0:02X}"


class SetOperatingFlagCommand(Command):
    """Set one operating flag (0x20, extended); the flag code goes in cmd2.

    Flag codes depend on the device family, e.g. 0x00/0x01 program lock on/off
    on most devices.
    """

    log_name: ClassVar[str] = "SetOperatingFlag"

    def __init__(self, session: HubSession, device_id: InsteonID, flag_code: int, **kwargs) -> None:
        super().__init__(session, to_device=device_id, cmd1=DEVICE_SET_OPERATING_FLAGS, cmd2=flag_code, **kwargs)
        self.clear_data()

    def log_params(self) -> str:
        return f"{self.to_device}, Flag code: 0x{self.cmd2:02X}"

    def describe_result(self) -> str | None:
        return f"Flag code 0x{self.cmd2:02X} set on {self.to_device}"


class TriggerGroupCommand(Command):
    """Make a device act as if one of its buttons was pressed (0x30, extended).

    Data1: group, data2: use the given level (1) or the button's own, data3:
    level, data4: on command, data6: instant ramp.
    """

    log_name: ClassVar[str] = "TriggerGroup"

    def __init__(
        self,
        session: HubSession,
        device_id: InsteonID,
        group: int,
        level: int | None = None,
        instant_ramp: bool = False,
        **kwargs,
    ) -> None:
        self.group = group
        self.level = level
        self.instant_ramp = instant_ramp
        use_level = 0x01 if level is not None else 0x00
        data = [group, use_level, level or 0, DEVICE_LIGHT_ON, 0, 0x01 if instant_ramp else 0x00]
        super().__init__(session, to_device=device_id, cmd1=DEVICE_TRIGGER_GROUP, cmd2=0, data=data, **kwargs)

    def log_params(self) -> str:
        level = str(self.level) if self.level is not None else "local"
        return f"{self.to_device}, Group: {self.group}, Level: {level}{', instant ramp' if self.instant_ramp else ''}"

    def describe_result(self) -> str | None:
        return f"Group {self.group} of {self.to_device} triggered"



class GetDeviceLinkRecordCommand(Command):
    """Read one record of a device link database by sequence number."""

    log_name: ClassVar[str] = "GetLink"

    def __init__(self, session: HubSession, device_id: InsteonID, seq: int, **kwargs) -> None:
        if not 0 <= seq <= MAX_RECORD_SEQ:
            raise ValueError(f"Record seq {seq} out of database bounds")
        self.seq = seq
        self.address = address_for_seq(seq)
        high, low = _address_bytes(self.address)
        # data3-4: record address, data5 = 1: one record
        data = [0, READ_DATABASE, high, low, 0x01]
        super().__init__(session, to_device=device_id, cmd1=DEVICE_READ_WRITE_ALL_LINK_DATABASE, cmd2=0, data=data, **kwargs)
        self.expect_extended_response = True
        self.record: LinkRecord | None = None
        self._invalid_replies = 0

    def prepare_attempt(self) -> None:
        self.record = None
        self._invalid_replies = 0

    def log_params(self) -> str:
        return f"{self.to_device}, Seq: {self.seq}"

    def on_extended_response(self, message: ExtendedMessage) -> Reaction:
        self.extended_response = message
        try:
            record = LinkRecord.from_extended_message(message)
        except InvalidLinkRecordError as e:
            logger.debug("Invalid record reply from %s: %s", message.from_id, e.reason)
            self._invalid_replies += 1
            if self._invalid_replies > MAX_INVALID_RECORD_REPLIES:
                # Desperate attempt to pick up the records that follow
                self.request_clear_buffer = True
                self._invalid_replies = 0
            return WAIT

        if record.address != self.address:
            logger.debug("Ignoring record at 0x%03X, waiting for 0x%03X", record.address, self.address)
            return CONSUME
        self.record = record
        record_link_record_read("device")
        return done()

    def describe_result(self) -> str | None:
        return self.record.log_output(self.seq) if self.record else None


class GetDeviceLinkRecordsCommand(Command):
    """Read the whole device database in one request (multi-record reply).

    The device streams every record from address 0xFFF down to the high-water
    mark. Records lost while the hub buffer wraps are reported as missed and
    left as empty slots for a per-record read to fill in.
    """

    log_name: ClassVar[str] = "GetLinkRecords"

    def __init__(self, session: HubSession, device_id: InsteonID, **kwargs) -> None:
        high, low = _address_bytes(DATABASE_START_ADDRESS)
        # data5 = 0: all records
        data = [0, READ_DATABASE, high, low, 0x00]
        kwargs.setdefault("response_timeout", MULTI_RECORD_RESPONSE_TIMEOUT)
        super().__init__(session, to_device=device_id, cmd1=DEVICE_READ_WRITE_ALL_LINK_DATABASE, cmd2=0, data=data, **kwargs)
        self.expect_extended_response = True
        self.records = LinkDatabase()

    def log_params(self) -> str:
        return str(self.to_device)

    def on_extended_response(self, message: ExtendedMessage) -> Reaction:
        self.extended_response = message
        try:
            record = LinkRecord.from_extended_message(message)
        except InvalidLinkRecordError:
            # Usually the rest of the reply has not reached the buffer yet
            return WAIT

        seq = seq_for_address(record.address)
        if seq >= len(self.records):
            missed = seq - len(self.records)
            if missed == 1:
                logger.info("Record %d missed", seq - 1)
            elif missed > 1:
                logger.info("Records %d-%d missed", seq - missed, seq - 1)
        elif self.records[seq] is not None:
            logger.debug("Record already added (0x%03X)", record.address)
            return CONSUME

        self.records.set_record_at(seq, record)
        record_link_record_read("device")
        if not self.suppress_logging:
            logger.info(record.log_output(seq))
        if record.is_high_water_mark:
            return done()
        return CONSUME


class SetDeviceLinkRecordCommand(Command):
    """Write one record into a device link database."""

    log_name: ClassVar[str] = "SetLink"

    def __init__(self, session: HubSession, device_id: InsteonID, seq: int, record: LinkRecord, **kwargs) -> None:
        if not 0 <= seq <= MAX_RECORD_SEQ:
            raise ValueError(f"Attempting to write link record {seq} out of database bounds")
        self.seq = seq
        self.record = record
        high, low = _address_bytes(address_for_seq(seq))
        destination = record.destination
        data = [
            0,
            WRITE_DATABASE,
            high,
            low,
            RECORD_WRITE_LENGTH,
            record.flags,
            record.group,
            destination.high,
            destination.middle,
            destination.low,
            record.data1,
            record.data2,
            record.data3,
        ]
        super().__init__(session, to_device=device_id, cmd1=DEVICE_READ_WRITE_ALL_LINK_DATABASE, cmd2=0, data=data, **kwargs)

    def log_params(self) -> str:
        return f"{self.to_device}, {self.record.log_output(self.seq, show_not_in_use=True)}"

    def describe_result(self) -> str | None:
        return f"Record {self.seq} written to {self.to_device}"
