from enum import Enum


class SyncStatus(Enum):
    """How a logical record (or database) relates to its physical counterpart."""

    UNKNOWN = "unknown"  # never read from the network
    SYNCED = "synced"
    CHANGED = "changed"  # logical value differs, needs a write-back
