"""Hub (IM) link table sync.

The IM link table has no addressable slots: it is read whole with
get-first/get-next and written with 0x6F manage-record requests, which find,
edit or delete the first record matching a destination and group. The last
physical table read is cached to decide which requests a write needs.
"""

from __future__ import annotations

from enum import Enum

from insteon_hub.commands.im_commands import (
    IM_NEXT_RECORD_MAX_ATTEMPTS,
    GetImFirstRecordCommand,
    GetImNextRecordCommand,
    ImRecordControl,
    ManageImRecordCommand,
)
from insteon_hub.commands.macros import IM_FIRST_RECORD_MAX_ATTEMPTS, GetImDatabaseCommand
from insteon_hub.commands.outcome import CommandOutcome, ErrorKind
from insteon_hub.instrumentation import timed
from insteon_hub.logging_abstraction import get_logger
from insteon_hub.metrics import record_link_record_write
from insteon_hub.model.link_database import LinkDatabase
from insteon_hub.model.link_record import LinkRecord, same_id_group, same_id_group_type
from insteon_hub.model.sync_status import SyncStatus
from insteon_hub.session import HubSession
from insteon_hub.sync.merge import merge_hub_database

logger = get_logger(__name__)

IM_MANAGE_MAX_ATTEMPTS = 3
# Guards against an IM that keeps answering find-next with the same record
MAX_FIND_RECORDS = 32


class DeleteResult(Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    OTHER = "other"


class HubDriver:
    """Keeps the hub's logical link database in sync with the IM link table."""

    def __init__(self, session: HubSession) -> None:
        self.session = session
        self.physical: list[LinkRecord] = []
        self._step_records: list[LinkRecord] = []

    async def _manage(self, control: ImRecordControl, record: LinkRecord) -> tuple[CommandOutcome, LinkRecord | None]:
        command = ManageImRecordCommand(self.session, control, record, suppress_logging=True)
        outcome = await command.try_run(max_attempts=IM_MANAGE_MAX_ATTEMPTS)
        if control not in (ImRecordControl.FIND_FIRST, ImRecordControl.FIND_NEXT):
            result = "success" if outcome.success else ("not_found" if outcome.error_kind is ErrorKind.NAK else "failure")
            record_link_record_write("hub", control.name.lower(), result)
        return outcome, command.record

    # Read

    @timed("read_hub_database")
    async def read_database(self, database: LinkDatabase, force: bool = False) -> bool:
        """Read the IM link table and merge it into `database`.

        A database already read is left alone unless `force` is set.
        """
        if database.is_read and not force:
            return True
        command = GetImDatabaseCommand(self.session, suppress_logging=True)
        outcome = await command.try_run()
        if not outcome.success or command.records is None:
            logger.warning("✗ Failed to read the IM link table: %s", outcome.error_kind.description)
            return False
        self._apply_read(database, command.records.records())
        return True

    def _apply_read(self, database: LinkDatabase, physical: list[LinkRecord]) -> None:
        self.physical = list(physical)
        merge_hub_database(database, self.physical)
        database.is_read = True
        logger.info("✓ IM link table read: %d records", len(self.physical))

    async def read_database_step(
        self,
        database: LinkDatabase,
        restart: bool,
        force: bool = False,
    ) -> tuple[bool, bool]:
        """Read one IM record; the table is merged once the last one is read.

        Returns:
            (success, done)
        """
        if restart:
            if database.is_read and not force:
                return True, True
            database.is_read = False
            self._step_records = []
            command: GetImFirstRecordCommand | GetImNextRecordCommand = GetImFirstRecordCommand(
                self.session, suppress_logging=True
            )
            max_attempts = IM_FIRST_RECORD_MAX_ATTEMPTS
        else:
            if database.is_read:
                return True, True
            command = GetImNextRecordCommand(self.session, suppress_logging=True)
            max_attempts = IM_NEXT_RECORD_MAX_ATTEMPTS

        outcome = await command.try_run(max_attempts=max_attempts)
        if outcome.success and command.record is not None:
            self._step_records.append(command.record)
            return True, False
        if outcome.error_kind is ErrorKind.NAK:
            # End of table
            self._apply_read(database, self._step_records)
            self._step_records = []
            return True, True
        return False, False

    # Write

    async def _find_matching(self, record: LinkRecord) -> list[LinkRecord] | None:
        """Every IM record with the destination and group of `record`, None on failure."""
        found: list[LinkRecord] = []
        control = ImRecordControl.FIND_FIRST
        while len(found) < MAX_FIND_RECORDS:
            outcome, match = await self._manage(control, record)
            if outcome.error_kind is ErrorKind.NAK:
                break
            if not outcome.success or match is None:
                return None
            found.append(match)
            control = ImRecordControl.FIND_NEXT
        return found

    async def _edit_or_add(self, record: LinkRecord) -> bool:
        control = (
            ImRecordControl.MODIFY_FIRST_CONTROLLER_OR_ADD
            if record.is_controller
            else ImRecordControl.MODIFY_FIRST_RESPONDER_OR_ADD
        )
        outcome, _ = await self._manage(control, record)
        if not outcome.success:
            # Older IM firmware only knows the direction-agnostic form
            outcome, _ = await self._manage(ImRecordControl.MODIFY_FIRST_OR_ADD, record)
        if outcome.success:
            self.physical = [r for r in self.physical if not same_id_group_type(r, record)]
            self.physical.append(record.replace(sync_status=SyncStatus.SYNCED))
        return outcome.success

    async def _delete_matching_records_of_same_dir(self, record: LinkRecord) -> bool:
        """Delete every IM record with the destination, group and direction of `record`.

        Deletes on the IM match destination and group only, so every record
        with that destination and group is deleted and the ones of the other
        direction are added back.
        """
        found = await self._find_matching(record)
        if found is None:
            return False
        for _ in found:
            outcome, _ = await self._manage(ImRecordControl.DELETE_FIRST_FOUND, record.with_in_use(True))
            if outcome.error_kind is ErrorKind.NAK:
                break
            if not outcome.success:
                return False
        self.physical = [r for r in self.physical if not same_id_group(r, record.with_in_use(True))]

        for other in found:
            if other.is_controller == record.is_controller:
                continue
            if not await self._edit_or_add(other):
                return False
        return True

    async def _delete_first_matching(self, record: LinkRecord) -> DeleteResult:
        target = record.with_in_use(True)
        if any(same_id_group(r, target) and r.is_controller != target.is_controller for r in self.physical):
            success = await self._delete_matching_records_of_same_dir(target)
            return DeleteResult.SUCCESS if success else DeleteResult.OTHER

        outcome, _ = await self._manage(ImRecordControl.DELETE_FIRST_FOUND, target)
        if outcome.success:
            self.physical = [r for r in self.physical if not same_id_group_type(r, target)]
            return DeleteResult.SUCCESS
        if outcome.error_kind is ErrorKind.NAK:
            return DeleteResult.NOT_FOUND
        return DeleteResult.OTHER

    async def _write_in_use_record(self, record: LinkRecord) -> bool:
        matches = [r for r in self.physical if same_id_group_type(r, record)]
        if len(matches) == 1 and matches[0].matches(record):
            return True
        if len(matches) > 1 and not await self._delete_matching_records_of_same_dir(record):
            return False
        return await self._edit_or_add(record)

    @timed("write_hub_database")
    async def write_database(self, database: LinkDatabase, force_read: bool = False) -> bool:
        """Bring the IM link table in line with the Changed records of `database`.

        In-use records are edited or added; records not in use are deleted
        from the IM and then dropped from `database`, whether the IM still had
        them or not.
        """
        if not await self.read_database(database, force_read):
            return False
        database.remove_duplicate_records()

        success = True
        deleted: list[str] = []
        for seq, record in enumerate(list(database)):
            if record is None or record.is_high_water_mark or record.sync_status is SyncStatus.SYNCED:
                continue
            if record.is_in_use:
                if not await self._write_in_use_record(record):
                    logger.warning("✗ Failed to write %s to the IM", record.log_output(seq))
                    success = False
                    break
                database.update_record_sync_status(seq, SyncStatus.SYNCED)
            else:
                result = await self._delete_first_matching(record)
                if result is DeleteResult.OTHER:
                    logger.warning("✗ Failed to delete %s from the IM", record.log_output(seq, show_not_in_use=True))
                    success = False
                    break
                if result is DeleteResult.NOT_FOUND:
                    logger.debug("%s was not in the IM", record.log_output(seq, show_not_in_use=True))
                deleted.append(record.uid)

        for uid in deleted:
            database.remove_by_uid(uid)
        database.refresh_last_status()
        if success:
            logger.info("✓ IM link table written")
        return success
