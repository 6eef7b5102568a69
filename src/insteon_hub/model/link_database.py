"""Ordered link database of a device or of the hub's IM.

Slots are addressed by sequence number. A slot may be None while a database
is being read out of order. The high-water mark (HWM) record terminates the
table; add_record() and replace_record() maintain it.
"""

from __future__ import annotations

import datetime
from collections.abc import Iterator

from insteon_hub import const
from insteon_hub.logging_abstraction import get_logger
from insteon_hub.model.link_record import LinkRecord, RecordComparer
from insteon_hub.model.sync_status import SyncStatus
from insteon_hub.protocol.insteon_id import InsteonID

logger = get_logger(__name__)

__all__ = ["LinkDatabase"]


class LinkDatabase:
    """Sequence of link records with sync bookkeeping.

    Attributes:
        revision: Device database revision (delta) the records were read at
        next_record_to_read: Resume point of an incremental read, -1 once fully read
        last_status: Aggregated sync status of the records
        last_update: Local time of the last last_status change
        is_hub: Database of the hub's IM (no duplicate removal, no addresses)
    """

    def __init__(self, records: list[LinkRecord | None] | None = None, *, is_hub: bool = False) -> None:
        self._records: list[LinkRecord | None] = list(records) if records else []
        self.is_hub = is_hub
        self.revision = 0
        self.next_record_to_read = 0
        self._last_status = SyncStatus.UNKNOWN
        self.last_update: datetime.datetime | None = None

    # Sequence protocol

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[LinkRecord | None]:
        return iter(self._records)

    def __getitem__(self, seq: int) -> LinkRecord | None:
        return self._records[seq]

    def __setitem__(self, seq: int, record: LinkRecord | None) -> None:
        self._records[seq] = record

    def append(self, record: LinkRecord | None) -> None:
        self._records.append(record)

    def remove_at(self, seq: int) -> LinkRecord | None:
        return self._records.pop(seq)

    def records(self) -> list[LinkRecord]:
        """Records present, in sequence order."""
        return [r for r in self._records if r is not None]

    # Status

    @property
    def last_status(self) -> SyncStatus:
        return self._last_status

    @last_status.setter
    def last_status(self, status: SyncStatus) -> None:
        if status is not self._last_status:
            self._last_status = status
            self.last_update = datetime.datetime.now(const.LOCAL_TZ)

    @property
    def is_read(self) -> bool:
        return self.next_record_to_read == -1

    @is_read.setter
    def is_read(self, value: bool) -> None:
        self.next_record_to_read = -1 if value else 0

    def computed_status(self) -> SyncStatus:
        """Changed if any record is Changed, else Unknown if any is Unknown, else Synced."""
        statuses = {r.sync_status for r in self._records if r is not None}
        if SyncStatus.CHANGED in statuses:
            return SyncStatus.CHANGED
        if SyncStatus.UNKNOWN in statuses:
            return SyncStatus.UNKNOWN
        return SyncStatus.SYNCED

    def refresh_last_status(self) -> SyncStatus:
        self.last_status = self.computed_status()
        return self.last_status

    def _adjust_last_status(self, status: SyncStatus) -> None:
        if status is SyncStatus.CHANGED:
            self.last_status = SyncStatus.CHANGED
        elif status is SyncStatus.UNKNOWN and self.last_status is SyncStatus.SYNCED:
            self.last_status = SyncStatus.UNKNOWN

    def update_record_sync_status(self, seq: int, status: SyncStatus) -> LinkRecord:
        record = self._records[seq]
        if record is None:
            raise IndexError(f"No record at seq {seq}")
        if record.sync_status is status:
            return record
        self._adjust_last_status(status)
        updated = record.replace(sync_status=status)
        self._records[seq] = updated
        return updated

    def reset_sync_status(self) -> None:
        """Force a re-read: the physical database may have changed."""
        if self.last_status is SyncStatus.SYNCED:
            self.last_status = SyncStatus.UNKNOWN
        self.is_read = False

    def mark_all_records_changed(self) -> None:
        for seq, record in enumerate(self._records):
            if record is not None:
                self.update_record_sync_status(seq, SyncStatus.CHANGED)
        self.last_status = SyncStatus.CHANGED

    # Lookup

    def get_seq_by_uid(self, uid: str) -> int:
        for seq, record in enumerate(self._records):
            if record is not None and record.uid == uid:
                return seq
        return -1

    def get_record_by_uid(self, uid: str) -> LinkRecord | None:
        seq = self.get_seq_by_uid(uid)
        return self._records[seq] if seq != -1 else None

    def index_of(self, record: LinkRecord, comparer: RecordComparer | None = None, reverse: bool = False) -> int:
        """Sequence number of the first (or last) record matching `record`, -1 if none."""
        seqs = range(len(self._records) - 1, -1, -1) if reverse else range(len(self._records))
        for seq in seqs:
            candidate = self._records[seq]
            if candidate is None:
                continue
            if comparer(candidate, record) if comparer else candidate.matches(record):
                return seq
        return -1

    def matching_records(self, record: LinkRecord, comparer: RecordComparer | None = None) -> list[LinkRecord]:
        return [
            r
            for r in self._records
            if r is not None and (comparer(r, record) if comparer else r.matches(record))
        ]

    def remove_matching(self, record: LinkRecord, comparer: RecordComparer | None = None) -> bool:
        """Remove the first matching record from the sequence."""
        seq = self.index_of(record, comparer)
        if seq == -1:
            return False
        del self._records[seq]
        return True

    def replace_by_uid(self, uid: str, record: LinkRecord) -> bool:
        seq = self.get_seq_by_uid(uid)
        if seq == -1:
            return False
        self._records[seq] = record
        return True

    def remove_by_uid(self, uid: str) -> bool:
        seq = self.get_seq_by_uid(uid)
        if seq == -1:
            return False
        del self._records[seq]
        return True

    # Edits

    def add_record(self, record: LinkRecord) -> bool:
        """Add a record in the first free slot, or at the end before a new HWM.

        Attempts to add a HWM are ignored: the HWM is maintained here.
        """
        if record.is_high_water_mark:
            return False

        seq = 0
        while seq < len(self._records):
            slot = self._records[seq]
            if slot is None or not slot.is_in_use:
                break
            seq += 1

        slot = self._records[seq] if seq < len(self._records) else None
        if seq < len(self._records) and (slot is None or not slot.is_high_water_mark):
            self._records[seq] = record
        else:
            # Overwrite the HWM (or append), then put a HWM with the same uid after it
            hwm_uid = None
            if seq < len(self._records):
                hwm_uid = slot.uid if slot is not None else None
                self._records[seq] = record
            else:
                self._records.append(record)
            seq += 1
            hwm = LinkRecord.high_water_mark(uid=hwm_uid, sync_status=record.sync_status)
            if seq < len(self._records):
                self._records[seq] = hwm
            else:
                self._records.append(hwm)

        if record.sync_status is not SyncStatus.SYNCED:
            self.last_status = SyncStatus.CHANGED
        return True

    def set_record_at(self, seq: int, record: LinkRecord) -> None:
        """Put a record at `seq`, padding with empty slots when past the end."""
        if seq < 0 or seq == len(self._records):
            self._records.append(record)
        elif seq < len(self._records):
            self._records[seq] = record
        else:
            self._records.extend([None] * (seq - len(self._records)))
            self._records.append(record)
        if record.sync_status is not SyncStatus.SYNCED:
            self.last_status = SyncStatus.CHANGED

    def replace_record(self, old: LinkRecord, new: LinkRecord) -> bool:
        if new.is_high_water_mark:
            return False
        if old.is_high_water_mark:
            return self.add_record(new)

        # Tombstones are placed from the end to keep unused slots toward the end
        seq = self.index_of(old, reverse=not new.is_in_use)
        if seq != -1:
            self._records[seq] = new
            if new.sync_status is not SyncStatus.SYNCED:
                self.last_status = SyncStatus.CHANGED
            return True

        # The free slot we meant to reuse was taken meanwhile
        if not old.is_in_use:
            return self.add_record(new.replace(sync_status=SyncStatus.CHANGED))
        return False

    def remove_record(self, record: LinkRecord) -> bool:
        """Tombstone a record: replace it by a not-in-use copy."""
        return self.replace_record(record, record.with_in_use(False).replace(sync_status=SyncStatus.CHANGED))

    def swap_records(self, seq1: int, seq2: int) -> bool:
        record1 = self._records[seq1]
        record2 = self._records[seq2]
        if record1 is None or record2 is None:
            return False
        if record1.is_high_water_mark or record2.is_high_water_mark:
            return False
        self._records[seq1] = record2.replace(sync_status=SyncStatus.CHANGED)
        self._records[seq2] = record1.replace(sync_status=SyncStatus.CHANGED)
        self.last_status = SyncStatus.CHANGED
        return True

    def remove_duplicate_records(self) -> None:
        """Tombstone in-use duplicates, keeping the first occurrence.

        The kept record is marked Changed so it is rewritten, and takes the
        duplicate's scene id when it has none. Hub databases are left alone.
        """
        if self.is_hub:
            return
        for seq in range(len(self._records)):
            record = self._records[seq]
            if record is None or not record.is_in_use:
                continue
            first = self.index_of(record)
            if first == -1 or first >= seq:
                continue
            kept = self._records[first]
            if kept is not None and kept.is_in_use:
                changes: dict[str, object] = {"sync_status": SyncStatus.CHANGED}
                if record.scene_id != 0:
                    changes["scene_id"] = record.scene_id
                    changes["uid"] = kept.uid
                self._records[first] = kept.replace(**changes)
            logger.debug("Removing duplicate %s", record.log_output(seq))
            self._records[seq] = record.replace(
                flags=record.flags & 0x7F,
                sync_status=SyncStatus.CHANGED,
                uid=record.uid,
            )
            self.last_status = SyncStatus.CHANGED

    def compress(self) -> None:
        """Drop not-in-use records other than the HWM."""
        self._records = [
            r for r in self._records if r is None or r.is_in_use or r.is_high_water_mark
        ]

    # Copies

    def copy(self, exclude_id: InsteonID | None = None) -> LinkDatabase:
        """Shallow copy (records are immutable), optionally without the records linking to `exclude_id`."""
        records = [r for r in self._records if exclude_id is None or r is None or r.destination != exclude_id]
        duplicate = LinkDatabase(records, is_hub=self.is_hub)
        duplicate.revision = self.revision
        duplicate.next_record_to_read = self.next_record_to_read
        duplicate._last_status = self._last_status
        duplicate.last_update = self.last_update
        return duplicate

    def is_identical_to(self, other: LinkDatabase) -> bool:
        if (
            self.revision != other.revision
            or len(self) != len(other)
            or self.last_status is not other.last_status
        ):
            return False
        for mine, theirs in zip(self._records, other._records, strict=True):
            if mine is None or theirs is None:
                if mine is not theirs:
                    return False
            elif not mine.is_identical_to(theirs):
                return False
        return True

    def log_output(self) -> str:
        return "\n".join(
            r.log_output(seq, show_not_in_use=True) if r is not None else f"Record {seq}, missing"
            for seq, r in enumerate(self._records)
        )

    def __repr__(self) -> str:
        return f"LinkDatabase(records={len(self)}, revision={self.revision}, status={self.last_status.name})"
