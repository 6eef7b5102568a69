"""Macro commands: whole-database reads built from record-level commands."""

from __future__ import annotations

from typing import ClassVar

from insteon_hub import const
from insteon_hub.commands.command import MacroCommand
from insteon_hub.commands.device_commands import GetDeviceLinkRecordCommand, GetDeviceLinkRecordsCommand
from insteon_hub.commands.im_commands import (
    IM_NEXT_RECORD_MAX_ATTEMPTS,
    GetImFirstRecordCommand,
    GetImNextRecordCommand,
)
from insteon_hub.commands.outcome import ErrorKind
from insteon_hub.logging_abstraction import get_logger
from insteon_hub.model.link_database import LinkDatabase
from insteon_hub.model.link_record import LinkRecord, address_for_seq
from insteon_hub.protocol.insteon_id import InsteonID
from insteon_hub.session import HubSession

logger = get_logger(__name__)

IM_FIRST_RECORD_MAX_ATTEMPTS = 3


class GetDeviceDatabaseCommand(MacroCommand):
    """Read a device's link database.

    The multi-record request is fast but drops records when the hub buffer
    wraps, so it is off by default. Whatever it returns is patched up with
    single-record reads: every missing slot is requested in order until the
    high-water mark.
    """

    log_name: ClassVar[str] = "GetDB"

    def __init__(self, session: HubSession, device_id: InsteonID, use_multi_record: bool = False, **kwargs) -> None:
        super().__init__(session, **kwargs)
        self.device_id = device_id
        self.use_multi_record = use_multi_record
        self.records: LinkDatabase | None = None

    def log_params(self) -> str:
        return str(self.device_id)

    async def run(self) -> bool:
        if self.use_multi_record:
            bulk = GetDeviceLinkRecordsCommand(self.session, self.device_id, suppress_logging=self.suppress_logging)
            # Single attempt, outcome ignored: the gaps are filled below
            await self.run_sub_command(bulk, max_attempts=1)
            records = bulk.records
        else:
            records = LinkDatabase()
        self.records = records

        seq = 0
        while not self.is_cancelled:
            existing = records[seq] if seq < len(records) else None
            if existing is not None:
                if existing.is_high_water_mark:
                    break
                seq += 1
                continue

            command = GetDeviceLinkRecordCommand(self.session, self.device_id, seq, suppress_logging=True)
            outcome = await self.run_sub_command(command, max_attempts=const.RECORD_READ_MAX_ATTEMPTS)
            if self.is_cancelled:
                break
            if not outcome.success or command.record is None:
                self.error_kind = outcome.error_kind if not outcome.success else ErrorKind.NO_RECORD_RESPONSE
                logger.warning(
                    "Failed to acquire record %d of %s: %s",
                    seq,
                    self.device_id,
                    self.error_kind.description,
                )
                return False

            record = command.record
            if record.address != address_for_seq(seq):
                self.error_kind = ErrorKind.SUB_COMMAND_FAILED
                logger.warning("Record %d of %s has incorrect address 0x%03X", seq, self.device_id, record.address)
                return False
            records.set_record_at(seq, record)
            if not self.suppress_logging:
                logger.info(record.log_output(seq))
            if record.is_high_water_mark:
                break
            seq += 1
        return True

    def describe_result(self) -> str | None:
        if self.records:
            return f"Device {self.device_id} reported {len(self.records)} records"
        return "No record received"


class GetImDatabaseCommand(MacroCommand):
    """Read the IM link table: get-first, then get-next until the IM NAKs."""

    log_name: ClassVar[str] = "GetIMDB"

    def __init__(self, session: HubSession, **kwargs) -> None:
        super().__init__(session, **kwargs)
        self.records: LinkDatabase | None = None

    async def run(self) -> bool:
        records = LinkDatabase(is_hub=True)
        self.records = records

        first = GetImFirstRecordCommand(self.session, suppress_logging=True)
        outcome = await self.run_sub_command(first, max_attempts=IM_FIRST_RECORD_MAX_ATTEMPTS)
        if outcome.success and first.record is not None:
            self._add(records, first.record)
        elif outcome.error_kind is ErrorKind.NAK:
            # Empty table
            return True
        else:
            self.error_kind = ErrorKind.SUB_COMMAND_FAILED
            return False

        while not self.is_cancelled:
            command = GetImNextRecordCommand(self.session, suppress_logging=True)
            outcome = await self.run_sub_command(command, max_attempts=IM_NEXT_RECORD_MAX_ATTEMPTS)
            if outcome.success and command.record is not None:
                self._add(records, command.record)
            elif outcome.error_kind is ErrorKind.NAK:
                break
            elif outcome.cancelled:
                break
            else:
                self.error_kind = ErrorKind.SUB_COMMAND_FAILED
                return False
        return True

    def _add(self, records: LinkDatabase, record: LinkRecord) -> None:
        records.append(record)
        if not self.suppress_logging:
            logger.info(record.log_output(len(records) - 1))

    def describe_result(self) -> str | None:
        count = len(self.records) if self.records is not None else 0
        return f"IM reported {count} records"
