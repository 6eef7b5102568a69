"""Ids, timeouts and record factories shared by the unit tests."""

from __future__ import annotations

from insteon_hub.model import LinkRecord, SyncStatus
from insteon_hub.protocol.insteon_id import InsteonID
from insteon_hub.transport import TimeoutConfig

HUB_ID = InsteonID(0x112233)
DEVICE_ID = InsteonID(0x1A2B3C)
OTHER_ID = InsteonID(0x445566)
THIRD_ID = InsteonID(0x778899)

# Long enough for the simulated hub to answer, short enough to keep timeouts cheap
TEST_RESPONSE_TIMEOUT_MS = 200


def fast_timeouts() -> TimeoutConfig:
    return TimeoutConfig(
        response_timeout_ms=TEST_RESPONSE_TIMEOUT_MS,
        command_spacing_ms=0,
        buffer_poll_ms=0,
        http_timeout_seconds=1,
    )


def controller(destination: InsteonID, group: int = 1, **kwargs) -> LinkRecord:
    """In-use controller record, Synced unless told otherwise."""
    kwargs.setdefault("sync_status", SyncStatus.SYNCED)
    return LinkRecord.create(destination, group, is_controller=True, **kwargs)


def responder(destination: InsteonID, group: int = 1, **kwargs) -> LinkRecord:
    """In-use responder record, Synced unless told otherwise."""
    kwargs.setdefault("sync_status", SyncStatus.SYNCED)
    return LinkRecord.create(destination, group, is_controller=False, **kwargs)


def synced_hwm() -> LinkRecord:
    return LinkRecord.high_water_mark(sync_status=SyncStatus.SYNCED)
