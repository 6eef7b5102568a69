"""Link database model: records, databases and their sync status."""

from insteon_hub.model.link_database import LinkDatabase
from insteon_hub.model.link_record import (
    LinkRecord,
    RecordFlags,
    address_for_seq,
    same_id_group,
    same_id_group_type,
    seq_for_address,
)
from insteon_hub.model.sync_status import SyncStatus

__all__ = [
    "LinkDatabase",
    "LinkRecord",
    "RecordFlags",
    "SyncStatus",
    "address_for_seq",
    "same_id_group",
    "same_id_group_type",
    "seq_for_address",
]
