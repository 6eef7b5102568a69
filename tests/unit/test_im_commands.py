"""Unit tests for commands handled by the hub's IM."""

from __future__ import annotations

import pytest

from insteon_hub.commands import (
    ErrorKind,
    GetImFirstRecordCommand,
    GetImInfoCommand,
    GetImNextRecordCommand,
    ImRecordControl,
    ManageImRecordCommand,
    ResetImCommand,
    SendAllLinkCommand,
)
from insteon_hub.mock import SimulatedDevice
from insteon_hub.protocol.messages import DEVICE_DIMMER, DEVICE_LIGHT_OFF, DEVICE_LIGHT_ON
from tests.helpers.links import DEVICE_ID, HUB_ID, OTHER_ID, controller, responder


class TestGetImInfo:
    """Tests for the IM info request."""

    @pytest.mark.asyncio
    async def test_info(self, session, hub):
        """Test id, category, subcategory and firmware of the IM."""
        command = GetImInfoCommand(session)
        assert await command.try_run()
        assert command.im_id == HUB_ID
        assert (command.category, command.subcategory, command.firmware_revision) == (0x03, 0x33, 0xA5)

    def test_unavailable_before_run(self, session):
        """Test that results read as None before a response."""
        command = GetImInfoCommand(session)
        assert command.im_id is None
        assert command.firmware_revision is None


class TestImRecords:
    """Tests for get-first / get-next."""

    @pytest.mark.asyncio
    async def test_first_and_next(self, session, hub):
        """Test walking a two-record table."""
        hub.im_records = [controller(DEVICE_ID), responder(OTHER_ID, 2)]
        first = GetImFirstRecordCommand(session)
        assert await first.try_run()
        assert first.record == controller(DEVICE_ID)

        second = GetImNextRecordCommand(session)
        assert await second.try_run()
        assert second.record == responder(OTHER_ID, 2)

        end = GetImNextRecordCommand(session)
        outcome = await end.try_run(max_attempts=1)
        assert outcome.error_kind is ErrorKind.NAK
        assert end.record is None

    @pytest.mark.asyncio
    async def test_empty_table(self, session):
        """Test that an empty table NAKs the first request."""
        outcome = await GetImFirstRecordCommand(session).try_run(max_attempts=1)
        assert outcome.error_kind is ErrorKind.NAK


class TestManageImRecord:
    """Tests for 0x6F find, edit and delete."""

    @pytest.mark.asyncio
    async def test_find_first(self, session, hub):
        """Test that a find returns the stored record."""
        hub.im_records = [controller(DEVICE_ID, 1, data=(3, 0x1F, 1))]
        command = ManageImRecordCommand(session, ImRecordControl.FIND_FIRST, controller(DEVICE_ID, 1))
        assert await command.try_run()
        assert command.record == controller(DEVICE_ID, 1, data=(3, 0x1F, 1))

    @pytest.mark.asyncio
    async def test_find_next_past_last(self, session, hub):
        """Test that find-next NAKs once the matches are exhausted."""
        hub.im_records = [controller(DEVICE_ID, 1)]
        wanted = controller(DEVICE_ID, 1)
        assert await ManageImRecordCommand(session, ImRecordControl.FIND_FIRST, wanted).try_run()
        outcome = await ManageImRecordCommand(session, ImRecordControl.FIND_NEXT, wanted).try_run(max_attempts=1)
        assert outcome.error_kind is ErrorKind.NAK

    @pytest.mark.asyncio
    async def test_find_missing(self, session):
        """Test that finding an absent record NAKs."""
        command = ManageImRecordCommand(session, ImRecordControl.FIND_FIRST, controller(DEVICE_ID))
        outcome = await command.try_run(max_attempts=1)
        assert outcome.error_kind is ErrorKind.NAK

    @pytest.mark.asyncio
    async def test_modify_or_add(self, session, hub):
        """Test that an absent record is added."""
        record = responder(DEVICE_ID, 4, data=(1, 2, 3))
        command = ManageImRecordCommand(session, ImRecordControl.MODIFY_FIRST_RESPONDER_OR_ADD, record)
        assert await command.try_run()
        assert hub.im_records == [record]
        assert command.record is None

    @pytest.mark.asyncio
    async def test_modify_controller_leaves_responder(self, session, hub):
        """Test that the controller-specific edit skips responder records."""
        hub.im_records = [responder(DEVICE_ID, 1), controller(DEVICE_ID, 1)]
        edited = controller(DEVICE_ID, 1, data=(9, 9, 9))
        command = ManageImRecordCommand(session, ImRecordControl.MODIFY_FIRST_CONTROLLER_OR_ADD, edited)
        assert await command.try_run()
        assert hub.im_records == [responder(DEVICE_ID, 1), edited]

    @pytest.mark.asyncio
    async def test_delete(self, session, hub):
        """Test deleting the first record of a destination and group."""
        hub.im_records = [controller(DEVICE_ID, 1), controller(OTHER_ID, 1)]
        command = ManageImRecordCommand(session, ImRecordControl.DELETE_FIRST_FOUND, controller(DEVICE_ID, 1))
        assert await command.try_run()
        assert hub.im_records == [controller(OTHER_ID, 1)]

    def test_params(self, session):
        """Test the control byte followed by the record layout."""
        command = ManageImRecordCommand(session, ImRecordControl.DELETE_FIRST_FOUND, controller(DEVICE_ID, 1))
        assert command.build_request() == "3?026F80E2011A2B3C000000=I=3"

    @pytest.mark.parametrize(
        ("name", "control"),
        [
            ("FindFirst", ImRecordControl.FIND_FIRST),
            ("find_next", ImRecordControl.FIND_NEXT),
            ("ModifyFirstOrAdd", ImRecordControl.MODIFY_FIRST_OR_ADD),
            ("DeleteFirst", ImRecordControl.DELETE_FIRST_FOUND),
        ],
    )
    def test_control_from_name(self, name, control):
        """Test console names of the control codes."""
        assert ImRecordControl.from_name(name) is control

    def test_unknown_control(self):
        """Test that unknown names are rejected."""
        with pytest.raises(ValueError):
            ImRecordControl.from_name("Rename")


class TestSendAllLink:
    """Tests for group commands broadcast by the IM."""

    @pytest.mark.asyncio
    async def test_group_members_follow(self, session, hub, device):
        """Test that responders of the group act and others do not."""
        other = hub.add_device(SimulatedDevice(OTHER_ID, [responder(HUB_ID, 2)]))
        command = SendAllLinkCommand(session, 0, DEVICE_LIGHT_ON, 0xFF)
        assert await command.try_run()
        assert hub.requests[-1] == "3?02610011FF=I=3"
        assert device.on_level == 0xFF
        assert other.on_level == 0
        assert command.describe_result() == "Command 11 param FF sent to group 0 members"

    @pytest.mark.asyncio
    async def test_off_and_dim(self, session, device):
        """Test off then a dim step on an already-off light."""
        device.on_level = 0x80
        assert await SendAllLinkCommand(session, 0, DEVICE_LIGHT_OFF).try_run()
        assert device.on_level == 0
        assert await SendAllLinkCommand(session, 0, DEVICE_DIMMER).try_run()
        assert device.on_level == 0

    @pytest.mark.asyncio
    async def test_nak(self, session, hub):
        """Test that an IM NAK fails the command once retries run out."""
        hub.nak_count = 10
        outcome = await SendAllLinkCommand(session, 1, DEVICE_LIGHT_ON).try_run(max_attempts=2)
        assert outcome.error_kind is ErrorKind.NAK


class TestResetIm:
    """Tests for the IM factory reset."""

    @pytest.mark.asyncio
    async def test_reset_erases_table(self, session, hub):
        """Test that the link table is empty after a reset."""
        hub.im_records = [controller(DEVICE_ID), responder(OTHER_ID, 2)]
        command = ResetImCommand(session)
        assert await command.try_run()
        assert hub.requests[-1] == "3?0267=I=3"
        assert hub.im_records == []
        assert command.describe_result() == "IM reset"
