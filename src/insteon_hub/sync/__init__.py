"""Link database sync between cached (logical) databases and the physical ones."""

from insteon_hub.sync.device_driver import DeviceDriver
from insteon_hub.sync.hub_driver import DeleteResult, HubDriver
from insteon_hub.sync.merge import merge_device_record, merge_hub_database

__all__ = ["DeleteResult", "DeviceDriver", "HubDriver", "merge_device_record", "merge_hub_database"]
