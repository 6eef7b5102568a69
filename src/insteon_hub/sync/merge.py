"""Merging physical link records into cached (logical) link databases.

Device databases are merged record by record, by sequence number, as the
records are read. The hub's IM table has no addressable slots, so it is read
whole and merged by content.

Sync status of a logical record after a merge:
- Synced: the physical device holds the same record
- Changed: the logical record must be written to (or, when not in use,
  deleted from) the physical device
Unknown records take part in a merge as Changed ones.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from insteon_hub.instrumentation import timed
from insteon_hub.logging_abstraction import get_logger
from insteon_hub.metrics import record_merge
from insteon_hub.model.link_database import LinkDatabase
from insteon_hub.model.link_record import LinkRecord
from insteon_hub.model.sync_status import SyncStatus
from insteon_hub.protocol.insteon_id import InsteonID

logger = get_logger(__name__)

__all__ = ["DeviceExists", "merge_device_record", "merge_hub_database"]

DeviceExists = Callable[[InsteonID], bool]


def _synced_copy(record: LinkRecord) -> LinkRecord:
    return record.replace(sync_status=SyncStatus.SYNCED)


def merge_device_record(
    database: LinkDatabase,
    physical: LinkRecord,
    seq: int,
    device_exists: DeviceExists | None = None,
) -> None:
    """Merge the physical record read at `seq` into a device's logical database.

    Args:
        database: Logical database, updated in place
        physical: Record read from the device at `seq`
        seq: Sequence number of the record
        device_exists: Whether a destination is still a known device. A Synced
            logical record is only overwritten by a different physical record
            whose destination exists; otherwise it is marked Changed so the
            logical record gets written back. None accepts every destination.
    """
    if physical.is_high_water_mark:
        _merge_high_water_mark(database, seq)
        record_merge("device", "high_water_mark")
        return

    logical = database[seq] if seq < len(database) else None
    if logical is None and seq < len(database) - 1:
        # Gap left by an out-of-order read
        database[seq] = _synced_copy(physical)
        record_merge("device", "filled")
        return
    if logical is None or logical.is_high_water_mark:
        # Past the end of the logical database
        database.set_record_at(seq, _synced_copy(physical))
        database.append(LinkRecord.high_water_mark(sync_status=SyncStatus.SYNCED))
        record_merge("device", "appended")
        return

    if logical.sync_status is not SyncStatus.SYNCED:
        logical = database.update_record_sync_status(seq, SyncStatus.CHANGED)
        if logical.is_in_use:
            # Logical edit wins; it is synced already if the device has it
            if logical.matches(physical):
                database.update_record_sync_status(seq, SyncStatus.SYNCED)
                record_merge("device", "matched")
            else:
                record_merge("device", "kept_changed")
        elif not logical.matches(physical, ignore_in_use=True):
            # Slot deleted logically, but the device holds another record there
            database[seq] = _synced_copy(physical)
            record_merge("device", "replaced")
        elif not physical.is_in_use:
            database.update_record_sync_status(seq, SyncStatus.SYNCED)
            record_merge("device", "matched")
        else:
            record_merge("device", "kept_changed")
        return

    if not logical.matches(physical):
        if device_exists is None or device_exists(physical.destination):
            database[seq] = _synced_copy(physical)
            record_merge("device", "replaced")
        else:
            logger.debug(
                "Record %d links to unknown device %s, keeping logical record",
                seq,
                physical.destination,
            )
            database.update_record_sync_status(seq, SyncStatus.CHANGED)
            record_merge("device", "stale_destination")
    else:
        record_merge("device", "matched")


def _merge_high_water_mark(database: LinkDatabase, seq: int) -> None:
    # Records past the physical HWM: drop what the device no longer has
    # (Synced, not in use, or past the logical HWM) and keep logical additions
    high_water_mark_found = False
    while seq < len(database):
        record = database[seq]
        if record is not None and record.is_high_water_mark:
            high_water_mark_found = True
            seq += 1
            continue
        if record is None or high_water_mark_found or not record.is_in_use or record.sync_status is SyncStatus.SYNCED:
            database.remove_at(seq)
            continue
        if record.sync_status is SyncStatus.UNKNOWN:
            database.update_record_sync_status(seq, SyncStatus.CHANGED)
        seq += 1

    last = database[seq - 1] if seq > 0 else None
    if seq > 0 and (last is None or not last.is_high_water_mark):
        database.append(LinkRecord.high_water_mark(sync_status=SyncStatus.CHANGED))


@timed("merge_hub_database")
def merge_hub_database(database: LinkDatabase, physical_records: Iterable[LinkRecord]) -> None:
    """Merge the IM link table into the hub's logical database.

    Each physical record is matched with at most one logical record: an
    equal one first, else one with the same destination, group and direction.
    Unmatched physical records are appended as Synced; in-use logical records
    left unmatched are marked Changed so they get written back.
    """
    matched: set[str] = set()

    for physical in physical_records:
        if not physical.is_in_use or physical.is_high_water_mark:
            continue

        candidates = [
            r for r in database if r is not None and r.destination == physical.destination and r.uid not in matched
        ]

        exact = next((r for r in candidates if r.matches(physical)), None)
        if exact is not None:
            seq = database.get_seq_by_uid(exact.uid)
            matched.add(database.update_record_sync_status(seq, SyncStatus.SYNCED).uid)
            record_merge("hub", "matched")
            continue

        similar = next(
            (r for r in candidates if r.group == physical.group and r.is_controller == physical.is_controller),
            None,
        )
        if similar is not None:
            seq = database.get_seq_by_uid(similar.uid)
            if similar.is_in_use and similar.sync_status is SyncStatus.SYNCED:
                replacement = physical.replace(sync_status=SyncStatus.SYNCED, uid=similar.uid)
                database[seq] = replacement
                record_merge("hub", "replaced")
            elif similar.sync_status is SyncStatus.UNKNOWN:
                database.update_record_sync_status(seq, SyncStatus.CHANGED)
                record_merge("hub", "kept_changed")
            else:
                record_merge("hub", "kept_changed")
            matched.add(similar.uid)
            continue

        added = _synced_copy(physical)
        database.append(added)
        matched.add(added.uid)
        record_merge("hub", "appended")

    for seq in range(len(database)):
        record = database[seq]
        if record is None or record.uid in matched:
            continue
        if record.is_in_use and not record.is_high_water_mark:
            database.update_record_sync_status(seq, SyncStatus.CHANGED)

    database.refresh_last_status()
