"""Command engine: state machine, response dispatcher, leaf and macro commands.

Public API:
- Command / MacroCommand and CommandOutcome / ErrorKind
- Device commands (ping, engine version, light control and status, product
  data, operating flags, trigger group, link records)
- IM commands (info, link table, group broadcast, reset)
- Raw hub requests
- Linking commands
- Database macros
"""

from insteon_hub.commands.command import Command, CommandClass, CommandState, MacroCommand
from insteon_hub.commands.custom import CustomHubCommand, command_class_from_token
from insteon_hub.commands.device_commands import (
    BrighterCommand,
    DimmerCommand,
    FastOffCommand,
    FastOnCommand,
    GetDeviceLinkRecordCommand,
    GetDeviceLinkRecordsCommand,
    GetEngineVersionCommand,
    GetOperatingFlagsCommand,
    GetProductDataCommand,
    LightOffCommand,
    LightOnCommand,
    LightStatusRequestCommand,
    PingCommand,
    SetDeviceLinkRecordCommand,
    SetOperatingFlagCommand,
    TriggerGroupCommand,
)
from insteon_hub.commands.im_commands import (
    GetImFirstRecordCommand,
    GetImInfoCommand,
    GetImNextRecordCommand,
    ImRecordControl,
    ManageImRecordCommand,
    ResetImCommand,
    SendAllLinkCommand,
)
from insteon_hub.commands.linking import (
    CancelImLinkingCommand,
    EnterLinkingModeCommand,
    EnterUnlinkingModeCommand,
    StartImLinkingCommand,
    linking_action_from_name,
)
from insteon_hub.commands.macros import GetDeviceDatabaseCommand, GetImDatabaseCommand
from insteon_hub.commands.outcome import CommandOutcome, ErrorKind

__all__ = [
    "BrighterCommand",
    "CancelImLinkingCommand",
    "Command",
    "CommandClass",
    "CommandOutcome",
    "CommandState",
    "CustomHubCommand",
    "DimmerCommand",
    "EnterLinkingModeCommand",
    "EnterUnlinkingModeCommand",
    "ErrorKind",
    "FastOffCommand",
    "FastOnCommand",
    "GetDeviceDatabaseCommand",
    "GetDeviceLinkRecordCommand",
    "GetDeviceLinkRecordsCommand",
    "GetEngineVersionCommand",
    "GetImDatabaseCommand",
    "GetImFirstRecordCommand",
    "GetImInfoCommand",
    "GetImNextRecordCommand",
    "GetOperatingFlagsCommand",
    "GetProductDataCommand",
    "ImRecordControl",
    "LightOffCommand",
    "LightOnCommand",
    "LightStatusRequestCommand",
    "MacroCommand",
    "ManageImRecordCommand",
    "PingCommand",
    "ResetImCommand",
    "SendAllLinkCommand",
    "SetDeviceLinkRecordCommand",
    "SetOperatingFlagCommand",
    "StartImLinkingCommand",
    "TriggerGroupCommand",
    "command_class_from_token",
    "linking_action_from_name",
]
