"""Console entry point: run one hub command and log its result."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import cast

import uvloop
import yaml
from pydantic import ValidationError

from insteon_hub import const
from insteon_hub.commands import (
    BrighterCommand,
    CancelImLinkingCommand,
    Command,
    CustomHubCommand,
    DimmerCommand,
    FastOffCommand,
    FastOnCommand,
    GetDeviceDatabaseCommand,
    GetDeviceLinkRecordCommand,
    GetImDatabaseCommand,
    GetImInfoCommand,
    GetOperatingFlagsCommand,
    GetProductDataCommand,
    ImRecordControl,
    LightOffCommand,
    LightOnCommand,
    ManageImRecordCommand,
    PingCommand,
    ResetImCommand,
    SendAllLinkCommand,
    SetOperatingFlagCommand,
    StartImLinkingCommand,
    TriggerGroupCommand,
    command_class_from_token,
    linking_action_from_name,
)
from insteon_hub.correlation import correlation_context
from insteon_hub.logging_abstraction import get_logger
from insteon_hub.metrics import start_metrics_server
from insteon_hub.mock import SimulatedHub
from insteon_hub.model import LinkDatabase, LinkRecord
from insteon_hub.protocol.exceptions import HexDecodeError
from insteon_hub.protocol.insteon_id import InsteonID
from insteon_hub.protocol.messages import DEVICE_BRIGHTER, DEVICE_DIMMER, DEVICE_LIGHT_OFF, DEVICE_LIGHT_ON
from insteon_hub.session import HubSession
from insteon_hub.settings import HubSettings, load_settings
from insteon_hub.transport import HttpHubTransport, HubTransport

logger = get_logger(__name__)


def _parse_id(text: str) -> InsteonID:
    try:
        return InsteonID.parse(text)
    except (HexDecodeError, ValueError) as e:
        raise argparse.ArgumentTypeError(f"invalid INSTEON id: {text}") from e


def _parse_byte(text: str) -> int:
    value = int(text, 0)
    if not 0 <= value <= 0xFF:
        raise argparse.ArgumentTypeError(f"{text} is not a byte value")
    return value


def _parse_level(text: str) -> int:
    """On-level as 0-255 or as a percentage ("50%")."""
    try:
        if text.endswith("%"):
            percent = float(text[:-1])
            if not 0 <= percent <= 100:
                raise ValueError(text)
            return round(percent * 255 / 100)
        return _parse_byte(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid level: {text}") from e


# Group commands by console name
GROUP_COMMANDS = {
    "on": DEVICE_LIGHT_ON,
    "off": DEVICE_LIGHT_OFF,
    "brighter": DEVICE_BRIGHTER,
    "dimmer": DEVICE_DIMMER,
}


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(prog="insteon-hub", description="INSTEON hub command console")
    _ = parser.add_argument("-c", "--config", type=Path, default=None, help="YAML file with a 'hub:' section")
    _ = parser.add_argument("-D", "--debug", action="store_true", help="Enable debug logging")
    _ = parser.add_argument("--attempts", type=int, default=const.DEFAULT_MAX_ATTEMPTS, help="Attempts per command")
    _ = parser.add_argument("--metrics", action="store_true", help="Serve Prometheus metrics while running")
    _ = parser.add_argument("--simulate", action="store_true", help="Run against an in-process simulated hub")

    sub = parser.add_subparsers(dest="command", required=True)

    getdb = sub.add_parser("getdb", help="Read a device link database")
    _ = getdb.add_argument("device", type=_parse_id)
    _ = getdb.add_argument("--multi", action="store_true", help="Try the multi-record request first")

    sub.add_parser("getimdb", help="Read the IM link table")
    sub.add_parser("iminfo", help="Show IM id, category and firmware")

    getlink = sub.add_parser("getlink", help="Read one device link record")
    _ = getlink.add_argument("device", type=_parse_id)
    _ = getlink.add_argument("seq", type=int)

    ping = sub.add_parser("ping", help="Ping a device")
    _ = ping.add_argument("device", type=_parse_id)

    imrecord = sub.add_parser("imrecord", help="Find, edit or delete an IM link record")
    _ = imrecord.add_argument("action", help="FindFirst, FindNext, ModifyFirstOrAdd, DeleteFirstFound, ...")
    _ = imrecord.add_argument("device", type=_parse_id)
    _ = imrecord.add_argument("group", type=_parse_byte)
    _ = imrecord.add_argument("--controller", action="store_true", help="IM is controller of the link")
    _ = imrecord.add_argument("--data", type=_parse_byte, nargs=3, default=[0, 0, 0], metavar=("D1", "D2", "D3"))

    link = sub.add_parser("link", help="Start IM all-linking and wait for the link")
    _ = link.add_argument("group", type=_parse_byte)
    _ = link.add_argument("action", help="Responder, Controller, Auto or Unlink")
    _ = link.add_argument("device", type=_parse_id, nargs="?", default=None)

    on = sub.add_parser("on", help="Turn a light on")
    _ = on.add_argument("device", type=_parse_id)
    _ = on.add_argument("level", type=_parse_level, nargs="?", default=0xFF, help="0-255 or 0-100%% (default 100%%)")
    _ = on.add_argument("--fast", action="store_true", help="Skip the ramp")

    off = sub.add_parser("off", help="Turn a light off")
    _ = off.add_argument("device", type=_parse_id)
    _ = off.add_argument("--fast", action="store_true", help="Skip the ramp")

    for step in ("brighter", "dimmer"):
        _ = sub.add_parser(step, help=f"One step {step}").add_argument("device", type=_parse_id)

    productdata = sub.add_parser("productdata", help="Show product key, category and firmware of a device")
    _ = productdata.add_argument("device", type=_parse_id)

    getflags = sub.add_parser("getflags", help="Read the operating flags of a device")
    _ = getflags.add_argument("device", type=_parse_id)

    setflag = sub.add_parser("setflag", help="Set one operating flag of a device")
    _ = setflag.add_argument("device", type=_parse_id)
    _ = setflag.add_argument("code", type=_parse_byte, help="Flag code, device specific")

    trigger = sub.add_parser("trigger", help="Trigger a button group of a device")
    _ = trigger.add_argument("device", type=_parse_id)
    _ = trigger.add_argument("group", type=_parse_byte)
    _ = trigger.add_argument("--level", type=_parse_level, default=None, help="Level to use instead of the local one")
    _ = trigger.add_argument("--instant", action="store_true", help="Instant ramp")

    sendalllink = sub.add_parser("sendalllink", help="Send a command to all responders of an IM group")
    _ = sendalllink.add_argument("group", type=_parse_byte)
    _ = sendalllink.add_argument("action", choices=sorted(GROUP_COMMANDS))
    _ = sendalllink.add_argument("level", type=_parse_level, nargs="?", default=0xFF)

    resetim = sub.add_parser("resetim", help="Factory reset the IM, erasing its link table")
    _ = resetim.add_argument("--yes", action="store_true", help="Confirm the reset")

    custom = sub.add_parser("custom", help="Send a raw request to the hub")
    _ = custom.add_argument("type", help="0 (bare), 1 (hub), 2 (hub config) or 3 (IM)")
    _ = custom.add_argument("body", help="Request body, e.g. 0260 for IM info")

    return parser.parse_args(argv)


def build_command(session: HubSession, args: argparse.Namespace) -> Command:
    """Map parsed CLI arguments to the command to run.

    Raises:
        ValueError: unknown action names or out-of-range arguments
    """
    name = cast("str", args.command)
    if name == "getdb":
        return GetDeviceDatabaseCommand(session, args.device, use_multi_record=args.multi)
    if name == "getimdb":
        return GetImDatabaseCommand(session)
    if name == "iminfo":
        return GetImInfoCommand(session)
    if name == "getlink":
        return GetDeviceLinkRecordCommand(session, args.device, args.seq)
    if name == "ping":
        return PingCommand(session, args.device)
    if name == "imrecord":
        control = ImRecordControl.from_name(args.action)
        record = LinkRecord.create(args.device, args.group, is_controller=args.controller, data=tuple(args.data))
        return ManageImRecordCommand(session, control, record)
    if name == "link":
        return StartImLinkingCommand(session, args.group, linking_action_from_name(args.action), args.device)
    if name == "on":
        command_type = FastOnCommand if args.fast else LightOnCommand
        return command_type(session, args.device, args.level)
    if name == "off":
        return FastOffCommand(session, args.device) if args.fast else LightOffCommand(session, args.device)
    if name == "brighter":
        return BrighterCommand(session, args.device)
    if name == "dimmer":
        return DimmerCommand(session, args.device)
    if name == "productdata":
        return GetProductDataCommand(session, args.device)
    if name == "getflags":
        return GetOperatingFlagsCommand(session, args.device)
    if name == "setflag":
        return SetOperatingFlagCommand(session, args.device, args.code)
    if name == "trigger":
        return TriggerGroupCommand(session, args.device, args.group, args.level, args.instant)
    if name == "sendalllink":
        cmd1 = GROUP_COMMANDS[args.action]
        return SendAllLinkCommand(session, args.group, cmd1, args.level if cmd1 == DEVICE_LIGHT_ON else 0)
    if name == "resetim":
        if not args.yes:
            raise ValueError("resetim erases the IM link table, pass --yes to confirm")
        return ResetImCommand(session)
    if name == "custom":
        return CustomHubCommand(session, command_class_from_token(args.type), args.body)
    raise ValueError(f"Unknown command: {name}")


def _make_transport(settings: HubSettings, simulate: bool) -> HubTransport:
    if simulate:
        return SimulatedHub()
    return HttpHubTransport(
        settings.host,
        settings.port,
        settings.username,
        settings.password,
        timeout_seconds=settings.http_timeout_seconds,
    )


async def cancel_linking(session: HubSession) -> None:
    """Take the IM out of all-linking mode."""
    logger.info("Cancelling IM all-linking")
    await CancelImLinkingCommand(session).try_run(max_attempts=1)


async def run(args: argparse.Namespace, settings: HubSettings) -> int:
    """Run the requested command against the hub; returns the process exit code."""
    transport = _make_transport(settings, args.simulate)
    async with HubSession(
        transport,
        settings.insteon_id,
        retry_policy=settings.retry_policy(),
        timeout_config=settings.timeout_config(),
    ) as session:
        command = build_command(session, args)
        try:
            outcome = await command.try_run(max_attempts=args.attempts)
        finally:
            if isinstance(command, StartImLinkingCommand) and not command.is_complete:
                # Interrupted while the IM waits for a SET press
                await cancel_linking(session)

    records = getattr(command, "records", None)
    if outcome.success and isinstance(records, LinkDatabase):
        logger.info("\n%s", records.log_output())
    return 0 if outcome.success else 1


def _enable_debug() -> None:
    for name in list(logging.root.manager.loggerDict):
        if name == "insteon_hub" or name.startswith("insteon_hub."):
            stdlib_logger = logging.getLogger(name)
            stdlib_logger.setLevel(logging.DEBUG)
            for handler in stdlib_logger.handlers:
                handler.setLevel(logging.DEBUG)


def main(argv: list[str] | None = None) -> int:
    """Run the insteon-hub console."""
    with correlation_context():
        args = parse_cli(argv)
        if args.debug or const.INSTEON_DEBUG:
            _enable_debug()
            logger.info("Debug logging enabled")

        try:
            settings = load_settings(args.config)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            logger.error("Invalid configuration: %s", e)
            return 2

        if args.metrics or const.INSTEON_ENABLE_EXPORTER:
            start_metrics_server(settings.metrics_port)

        logger.info("Insteon hub console %s, hub %s:%d", const.INSTEON_VERSION, settings.host, settings.port)
        try:
            return uvloop.run(run(args, settings))
        except ValueError as e:
            logger.error("%s", e)
            return 2
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
            return 130


if __name__ == "__main__":
    sys.exit(main())
