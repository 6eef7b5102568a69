"""Unit tests for the console entry point."""

from __future__ import annotations

import asyncio

import pytest
import yaml

import insteon_hub.main as console
from insteon_hub.commands import (
    BrighterCommand,
    CommandClass,
    CustomHubCommand,
    FastOffCommand,
    FastOnCommand,
    GetDeviceDatabaseCommand,
    GetImDatabaseCommand,
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
)
from insteon_hub.commands import linking
from insteon_hub.main import build_command, main, parse_cli, run
from insteon_hub.mock import SimulatedHub
from insteon_hub.protocol.messages import LinkingAction
from insteon_hub.session import HubSession
from insteon_hub.settings import HubSettings
from tests.helpers.links import DEVICE_ID, HUB_ID
from tests.helpers.streams import wait_for_request


@pytest.fixture
def session():
    """Session that is never entered; commands are only built."""
    return HubSession(SimulatedHub(HUB_ID), HUB_ID)


@pytest.fixture
def fast_config(tmp_path):
    """Config file with short timeouts, for runs against the simulated hub."""
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {"hub": {"response_timeout_ms": 50, "command_spacing_ms": 0, "buffer_poll_ms": 0, "retry_base_delay_ms": 0}}
        )
    )
    return path


class TestParseCli:
    """Tests for argument parsing."""

    def test_getdb(self):
        """Test the device database read."""
        args = parse_cli(["getdb", "1A.2B.3C", "--multi"])
        assert args.command == "getdb"
        assert args.device == DEVICE_ID
        assert args.multi

    def test_imrecord(self):
        """Test the IM record management arguments."""
        args = parse_cli(["imrecord", "FindFirst", "1A2B3C", "0x01", "--controller", "--data", "3", "31", "1"])
        assert args.group == 1
        assert args.controller
        assert args.data == [3, 31, 1]

    def test_invalid_id(self):
        """Test that malformed ids are rejected by the parser."""
        with pytest.raises(SystemExit):
            parse_cli(["ping", "1A2B"])

    def test_byte_range(self):
        """Test that groups must fit in a byte."""
        with pytest.raises(SystemExit):
            parse_cli(["link", "256", "Controller"])

    def test_command_required(self):
        """Test that a command must be given."""
        with pytest.raises(SystemExit):
            parse_cli([])


class TestBuildCommand:
    """Tests for mapping arguments to commands."""

    @pytest.mark.parametrize(
        ("argv", "command_type"),
        [
            (["getdb", "1A.2B.3C"], GetDeviceDatabaseCommand),
            (["getimdb"], GetImDatabaseCommand),
            (["ping", "1A.2B.3C"], PingCommand),
            (["imrecord", "DeleteFirstFound", "1A.2B.3C", "1"], ManageImRecordCommand),
            (["link", "1", "Controller", "1A.2B.3C"], StartImLinkingCommand),
            (["on", "1A.2B.3C"], LightOnCommand),
            (["on", "1A.2B.3C", "--fast"], FastOnCommand),
            (["off", "1A.2B.3C"], LightOffCommand),
            (["off", "1A.2B.3C", "--fast"], FastOffCommand),
            (["brighter", "1A.2B.3C"], BrighterCommand),
            (["productdata", "1A.2B.3C"], GetProductDataCommand),
            (["getflags", "1A.2B.3C"], GetOperatingFlagsCommand),
            (["setflag", "1A.2B.3C", "0x02"], SetOperatingFlagCommand),
            (["trigger", "1A.2B.3C", "1"], TriggerGroupCommand),
            (["sendalllink", "1", "off"], SendAllLinkCommand),
            (["resetim", "--yes"], ResetImCommand),
            (["custom", "1", "XB"], CustomHubCommand),
        ],
    )
    def test_command_types(self, session, argv, command_type):
        """Test the command built for each console command."""
        assert isinstance(build_command(session, parse_cli(argv)), command_type)

    def test_imrecord_fields(self, session):
        """Test the record handed to the manage command."""
        command = build_command(session, parse_cli(["imrecord", "FindFirst", "1A.2B.3C", "2", "--controller"]))
        assert command.control is ImRecordControl.FIND_FIRST
        assert command.input_record.destination == DEVICE_ID
        assert command.input_record.is_controller

    def test_link_action(self, session):
        """Test the linking action parsed by name."""
        command = build_command(session, parse_cli(["link", "1", "unlink"]))
        assert command.action is LinkingAction.DELETE
        assert command.device_id is None

    def test_unknown_action(self, session):
        """Test that unknown control names raise ValueError."""
        with pytest.raises(ValueError):
            build_command(session, parse_cli(["imrecord", "Rename", "1A.2B.3C", "1"]))

    @pytest.mark.parametrize(("level", "expected"), [("128", 128), ("0x40", 0x40), ("50%", 128), ("100%", 255)])
    def test_light_level(self, session, level, expected):
        """Test levels given as bytes or percentages."""
        command = build_command(session, parse_cli(["on", "1A.2B.3C", level]))
        assert command.cmd2 == expected

    def test_sendalllink_level(self, session):
        """Test that the level only travels with the on command."""
        on = build_command(session, parse_cli(["sendalllink", "2", "on", "25%"]))
        assert on.params == "021140"
        dim = build_command(session, parse_cli(["sendalllink", "2", "dimmer", "25%"]))
        assert dim.params == "021600"

    def test_resetim_needs_confirmation(self, session):
        """Test that a reset without --yes is refused."""
        with pytest.raises(ValueError, match="--yes"):
            build_command(session, parse_cli(["resetim"]))

    def test_custom_family(self, session):
        """Test the request family and body of a raw request."""
        command = build_command(session, parse_cli(["custom", "hubconfig", "S215=Hall_Lights=2"]))
        assert command.command_class is CommandClass.HUB_CONFIG
        assert command.build_request() == "2?S215=Hall_Lights=2"


class TestMain:
    """Tests for exit codes of whole runs against the simulated hub."""

    def test_success(self, fast_config):
        """Test a successful command."""
        assert main(["-c", str(fast_config), "--simulate", "iminfo"]) == 0

    def test_empty_im_database(self, fast_config):
        """Test reading the simulated hub's empty IM table."""
        assert main(["-c", str(fast_config), "--simulate", "getimdb"]) == 0

    def test_command_failure(self, fast_config):
        """Test that a failed command exits with 1."""
        assert main(["-c", str(fast_config), "--simulate", "--attempts", "1", "ping", "1A.2B.3C"]) == 1

    def test_invalid_config(self, tmp_path):
        """Test that a bad config exits with 2."""
        assert main(["-c", str(tmp_path / "missing.yaml"), "--simulate", "iminfo"]) == 2

    def test_invalid_action(self, fast_config):
        """Test that a bad action name exits with 2."""
        assert main(["-c", str(fast_config), "--simulate", "imrecord", "Rename", "1A.2B.3C", "1"]) == 2

    def test_unconfirmed_reset(self, fast_config):
        """Test that resetim without --yes exits with 2."""
        assert main(["-c", str(fast_config), "--simulate", "resetim"]) == 2

    def test_runs_on_uvloop(self, fast_config, monkeypatch):
        """Test that the command runs on the uvloop event loop."""
        calls = []

        def fake_run(coro):
            calls.append(coro)
            coro.close()
            return 0

        monkeypatch.setattr(console.uvloop, "run", fake_run)
        assert main(["-c", str(fast_config), "--simulate", "iminfo"]) == 0
        assert len(calls) == 1


class TestInterruptedLinking:
    """Tests for leaving linking mode when the console is interrupted."""

    @pytest.mark.asyncio
    async def test_cancel_request_sent(self, hub, monkeypatch):
        """Test that an interrupted link command takes the IM out of linking mode."""
        monkeypatch.setattr(console, "_make_transport", lambda settings, simulate: hub)
        settings = HubSettings(
            hub_id=str(HUB_ID),
            response_timeout_ms=200,
            command_spacing_ms=0,
            buffer_poll_ms=0,
            retry_base_delay_ms=0,
        )
        task = asyncio.create_task(run(parse_cli(["link", "1", "Auto"]), settings))
        await wait_for_request(hub, "3?0264")
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert hub.requests[-1] == "3?0265=I=3"

    @pytest.mark.asyncio
    async def test_finished_linking_not_cancelled(self, hub, monkeypatch):
        """Test that a link command that timed out sends no cancel request."""
        monkeypatch.setattr(console, "_make_transport", lambda settings, simulate: hub)
        settings = HubSettings(response_timeout_ms=50, command_spacing_ms=0, buffer_poll_ms=0, retry_base_delay_ms=0)
        monkeypatch.setattr(linking, "LINKING_RESPONSE_TIMEOUT", 0.05)
        assert await run(parse_cli(["--attempts", "1", "link", "1", "Auto"]), settings) == 1
        assert not any(request.startswith("3?0265") for request in hub.requests)
