"""Unit tests for LinkDatabase."""

from __future__ import annotations

from insteon_hub.model import LinkDatabase, LinkRecord, SyncStatus, same_id_group_type
from tests.helpers.links import DEVICE_ID, HUB_ID, OTHER_ID, controller, responder, synced_hwm


def synced_database(*records: LinkRecord) -> LinkDatabase:
    """Fully read database holding `records` followed by a HWM."""
    database = LinkDatabase([*records, synced_hwm()])
    database.is_read = True
    database.refresh_last_status()
    return database


class TestReadState:
    """Tests for the incremental read cursor."""

    def test_new_database_not_read(self):
        """Test that a new database starts at record 0."""
        database = LinkDatabase()
        assert not database.is_read
        assert database.next_record_to_read == 0

    def test_is_read_sets_cursor(self):
        """Test that a fully read database has no next record."""
        database = LinkDatabase()
        database.is_read = True
        assert database.next_record_to_read == -1
        database.is_read = False
        assert database.next_record_to_read == 0

    def test_reset_sync_status(self):
        """Test that a reset forces a re-read and drops Synced."""
        database = synced_database(controller(HUB_ID))
        assert database.last_status is SyncStatus.SYNCED
        database.reset_sync_status()
        assert not database.is_read
        assert database.last_status is SyncStatus.UNKNOWN


class TestStatus:
    """Tests for the aggregated sync status."""

    def test_changed_wins(self):
        """Test that one Changed record makes the database Changed."""
        database = LinkDatabase([controller(HUB_ID), controller(OTHER_ID, sync_status=SyncStatus.UNKNOWN)])
        assert database.computed_status() is SyncStatus.UNKNOWN
        database.append(responder(HUB_ID, sync_status=SyncStatus.CHANGED))
        assert database.computed_status() is SyncStatus.CHANGED

    def test_last_update_follows_status(self):
        """Test that last_update is stamped on status changes only."""
        database = synced_database(controller(HUB_ID))
        stamp = database.last_update
        assert stamp is not None
        database.refresh_last_status()
        assert database.last_update == stamp

    def test_update_record_sync_status(self):
        """Test per-record status updates keep the uid."""
        database = synced_database(controller(HUB_ID))
        uid = database[0].uid
        updated = database.update_record_sync_status(0, SyncStatus.CHANGED)
        assert updated.uid == uid
        assert database.last_status is SyncStatus.CHANGED

    def test_mark_all_records_changed(self):
        """Test that every record gets rewritten after a mark-all."""
        database = synced_database(controller(HUB_ID), responder(OTHER_ID))
        database.mark_all_records_changed()
        assert all(r.sync_status is SyncStatus.CHANGED for r in database.records())


class TestAddRecord:
    """Tests for add_record and HWM maintenance."""

    def test_add_to_empty(self):
        """Test that the first record is followed by a HWM."""
        database = LinkDatabase()
        assert database.add_record(controller(HUB_ID, sync_status=SyncStatus.CHANGED))
        assert len(database) == 2
        assert database[1].is_high_water_mark
        assert database.last_status is SyncStatus.CHANGED

    def test_add_moves_high_water_mark(self):
        """Test that a record added at the HWM pushes the HWM one slot down."""
        database = synced_database(controller(HUB_ID))
        hwm_uid = database[1].uid
        database.add_record(responder(OTHER_ID, sync_status=SyncStatus.CHANGED))
        assert len(database) == 3
        assert database[1].destination == OTHER_ID
        assert database[2].is_high_water_mark
        assert database[2].uid == hwm_uid

    def test_add_reuses_tombstone(self):
        """Test that a not-in-use slot before the HWM is reused."""
        database = synced_database(controller(HUB_ID).with_in_use(False), responder(HUB_ID))
        database.add_record(controller(OTHER_ID, sync_status=SyncStatus.CHANGED))
        assert len(database) == 3
        assert database[0].destination == OTHER_ID

    def test_high_water_mark_ignored(self):
        """Test that callers cannot add a HWM."""
        database = LinkDatabase()
        assert not database.add_record(LinkRecord.high_water_mark())
        assert len(database) == 0

    def test_set_record_at_pads(self):
        """Test that out-of-order records leave empty slots."""
        database = LinkDatabase()
        database.set_record_at(2, controller(HUB_ID))
        assert len(database) == 3
        assert database[0] is None
        assert database.records() == [controller(HUB_ID)]


class TestRemoveAndReplace:
    """Tests for tombstoning and replacement."""

    def test_remove_tombstones_in_place(self):
        """Test that removing keeps the slot as a Changed not-in-use record."""
        record = controller(HUB_ID)
        database = synced_database(record, responder(OTHER_ID))
        assert database.remove_record(record)
        assert len(database) == 3
        assert not database[0].is_in_use
        assert database[0].sync_status is SyncStatus.CHANGED
        assert database.last_status is SyncStatus.CHANGED

    def test_replace_missing_record(self):
        """Test that replacing an absent in-use record fails."""
        database = synced_database(controller(HUB_ID))
        assert not database.replace_record(controller(OTHER_ID), responder(OTHER_ID))

    def test_replace_taken_free_slot(self):
        """Test that a taken free slot falls back to an add."""
        database = synced_database(controller(HUB_ID))
        free = controller(OTHER_ID).with_in_use(False)
        assert database.replace_record(free, responder(OTHER_ID))
        assert database[1].destination == OTHER_ID
        assert database[1].sync_status is SyncStatus.CHANGED
        assert database[2].is_high_water_mark

    def test_swap_records(self):
        """Test that swapped records are both marked Changed."""
        database = synced_database(controller(HUB_ID), responder(OTHER_ID))
        assert database.swap_records(0, 1)
        assert database[0].destination == OTHER_ID
        assert {database[0].sync_status, database[1].sync_status} == {SyncStatus.CHANGED}

    def test_swap_refuses_high_water_mark(self):
        """Test that the HWM cannot be swapped."""
        database = synced_database(controller(HUB_ID))
        assert not database.swap_records(0, 1)

    def test_compress(self):
        """Test that tombstones are dropped and the HWM kept."""
        database = synced_database(controller(HUB_ID).with_in_use(False), responder(OTHER_ID))
        database.compress()
        assert len(database) == 2
        assert database[0].destination == OTHER_ID
        assert database[1].is_high_water_mark


class TestDuplicates:
    """Tests for remove_duplicate_records."""

    def test_duplicate_tombstoned(self):
        """Test that the later duplicate becomes a Changed tombstone."""
        database = synced_database(controller(HUB_ID), responder(OTHER_ID), controller(HUB_ID))
        database.remove_duplicate_records()
        assert database[0].is_in_use
        assert database[0].sync_status is SyncStatus.CHANGED
        assert not database[2].is_in_use
        assert database[2].sync_status is SyncStatus.CHANGED
        assert database[1].sync_status is SyncStatus.SYNCED

    def test_scene_id_carried_over(self):
        """Test that the kept record picks up the duplicate's scene id."""
        database = synced_database(controller(HUB_ID), controller(HUB_ID, scene_id=7))
        uid = database[0].uid
        database.remove_duplicate_records()
        assert database[0].scene_id == 7
        assert database[0].uid == uid

    def test_hub_database_left_alone(self):
        """Test that hub databases keep their duplicates."""
        database = LinkDatabase([controller(HUB_ID), controller(HUB_ID)], is_hub=True)
        database.remove_duplicate_records()
        assert all(r.is_in_use for r in database.records())


class TestLookup:
    """Tests for uid and content lookups."""

    def test_uid_lookup(self):
        """Test lookups and edits by uid."""
        record = responder(OTHER_ID)
        database = synced_database(controller(HUB_ID), record)
        assert database.get_seq_by_uid(record.uid) == 1
        assert database.get_record_by_uid("missing") is None
        assert database.remove_by_uid(record.uid)
        assert database.get_seq_by_uid(record.uid) == -1

    def test_index_of_with_comparer(self):
        """Test matching on destination, group and direction only."""
        database = synced_database(controller(HUB_ID, data=(1, 2, 3)), controller(HUB_ID, data=(4, 5, 6)))
        wanted = controller(HUB_ID, data=(9, 9, 9))
        assert database.index_of(wanted) == -1
        assert database.index_of(wanted, same_id_group_type) == 0
        assert database.index_of(wanted, same_id_group_type, reverse=True) == 1
        assert len(database.matching_records(wanted, same_id_group_type)) == 2


class TestCopies:
    """Tests for copy and identity checks."""

    def test_copy_is_identical(self):
        """Test that a copy carries records and bookkeeping."""
        database = synced_database(controller(HUB_ID), responder(OTHER_ID))
        database.revision = 4
        duplicate = database.copy()
        assert duplicate.is_identical_to(database)
        assert duplicate.is_read

    def test_copy_excluding_device(self):
        """Test that records linking to an excluded device are left out."""
        database = synced_database(controller(HUB_ID), responder(DEVICE_ID))
        duplicate = database.copy(exclude_id=DEVICE_ID)
        assert len(duplicate) == 2
        assert not duplicate.is_identical_to(database)

    def test_log_output(self):
        """Test that every slot is listed, missing ones included."""
        database = LinkDatabase()
        database.set_record_at(1, controller(HUB_ID))
        lines = database.log_output().splitlines()
        assert lines[0] == "Record 0, missing"
        assert "11.22.33" in lines[1]
