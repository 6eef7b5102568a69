"""Device link database sync: incremental read + merge, and write-back."""

from __future__ import annotations

from insteon_hub import const
from insteon_hub.commands.device_commands import (
    GetDeviceLinkRecordCommand,
    LightStatusRequestCommand,
    SetDeviceLinkRecordCommand,
)
from insteon_hub.instrumentation import timed
from insteon_hub.logging_abstraction import get_logger
from insteon_hub.metrics import record_link_record_write
from insteon_hub.model.link_database import LinkDatabase
from insteon_hub.model.sync_status import SyncStatus
from insteon_hub.protocol.insteon_id import InsteonID
from insteon_hub.session import HubSession
from insteon_hub.sync.merge import merge_device_record

logger = get_logger(__name__)

UNKNOWN_REVISION = -1


class DeviceDriver:
    """Keeps the cached link database of one device in sync with the device.

    Reads go through the device's database revision ("delta"): when the
    revision matches the one the cache was read at, the cache is current and
    the read is skipped. Not every device reports a revision, and some reset
    it on power loss, so any mismatch restarts a full read.
    """

    def __init__(self, session: HubSession, device_id: InsteonID) -> None:
        self.session = session
        self.device_id = device_id

    async def get_database_revision(self) -> int:
        """Database revision reported by the device, -1 when it did not answer."""
        command = LightStatusRequestCommand(self.session, self.device_id, suppress_logging=True)
        outcome = await command.try_run(max_attempts=const.RECORD_READ_MAX_ATTEMPTS)
        if not outcome.success or command.revision is None:
            return UNKNOWN_REVISION
        return command.revision

    async def _check_revision(self, database: LinkDatabase, force: bool) -> None:
        revision = await self.get_database_revision()
        if revision == UNKNOWN_REVISION or database.revision != revision or force:
            database.next_record_to_read = 0
        if revision != UNKNOWN_REVISION:
            database.revision = revision

    async def _read_next_record(self, database: LinkDatabase) -> bool:
        seq = database.next_record_to_read
        command = GetDeviceLinkRecordCommand(self.session, self.device_id, seq, suppress_logging=True)
        outcome = await command.try_run(max_attempts=const.RECORD_READ_MAX_ATTEMPTS)
        if not outcome.success or command.record is None:
            logger.warning(
                "✗ Failed to read record %d of %s: %s",
                seq,
                self.device_id,
                outcome.error_kind.description,
                extra={"device_id": str(self.device_id), "seq": seq},
            )
            return False

        merge_device_record(database, command.record, seq, self.session.device_exists)
        if command.record.is_high_water_mark:
            database.is_read = True
            database.refresh_last_status()
        else:
            database.next_record_to_read = seq + 1
        return True

    @timed("read_device_database")
    async def read_database(self, database: LinkDatabase, force: bool = False) -> bool:
        """Read and merge the device database into `database`.

        Returns:
            True once the whole database has been read
        """
        await self._check_revision(database, force)
        while not database.is_read:
            if not await self._read_next_record(database):
                break
        if database.is_read:
            logger.info(
                "✓ Database of %s read: %d records, revision %d",
                self.device_id,
                len(database),
                database.revision,
                extra={"device_id": str(self.device_id)},
            )
        return database.is_read

    async def read_database_step(
        self,
        database: LinkDatabase,
        restart: bool,
        force: bool = False,
    ) -> tuple[bool, bool]:
        """Read one record, resuming from database.next_record_to_read.

        Returns:
            (success, done): whether the step succeeded, and whether the
            whole database has now been read
        """
        if restart:
            await self._check_revision(database, force)
        success = True
        if not database.is_read:
            success = await self._read_next_record(database)
        return success, database.is_read

    async def _write_record(self, database: LinkDatabase, seq: int) -> bool:
        if not database.is_read:
            raise RuntimeError("Database must be read before it is written")
        if seq < 0 or seq >= len(database):
            raise ValueError(f"Attempting to write link record {seq} beyond end of database")
        record = database[seq]
        if record is None:
            return False
        command = SetDeviceLinkRecordCommand(self.session, self.device_id, seq, record, suppress_logging=True)
        outcome = await command.try_run(max_attempts=const.RECORD_READ_MAX_ATTEMPTS)
        record_link_record_write("device", "write", "success" if outcome.success else "failure")
        if outcome.success:
            database.update_record_sync_status(seq, SyncStatus.SYNCED)
        return outcome.success

    @timed("write_device_database")
    async def write_database(self, database: LinkDatabase, force_read: bool = False) -> bool:
        """Write every record that is not Synced, in order, up to the HWM.

        The database is read (and merged) first, so only the records the
        device does not already hold are written. The revision is refreshed
        afterwards since every write bumps it on the device.
        """
        success = await self.read_database(database, force_read)
        if not success or len(database) == 0:
            return success

        written = 0
        for seq in range(len(database)):
            record = database[seq]
            if record is None or record.sync_status is SyncStatus.SYNCED:
                continue
            success = await self._write_record(database, seq)
            if not success:
                logger.warning("✗ Failed to write record %d to %s", seq, self.device_id)
                break
            written += 1
            if record.is_high_water_mark:
                break

        if success:
            revision = await self.get_database_revision()
            if revision != UNKNOWN_REVISION:
                database.revision = revision
            database.refresh_last_status()
            logger.info(
                "✓ Database of %s written: %d records updated",
                self.device_id,
                written,
                extra={"device_id": str(self.device_id)},
            )
        return success
