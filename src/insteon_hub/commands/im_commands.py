"""Commands handled by the hub's INSTEON modem itself (IM info and link table)."""

from __future__ import annotations

from enum import IntEnum
from typing import ClassVar

from insteon_hub.commands.command import Command
from insteon_hub.commands.events import (
    CONSUME,
    WAIT,
    AllLinkRecordReceived,
    ImEcho,
    Reaction,
    ResponseEvent,
    done,
)
from insteon_hub.logging_abstraction import get_logger
from insteon_hub.metrics import record_link_record_read
from insteon_hub.model.link_record import LinkRecord
from insteon_hub.protocol.exceptions import InvalidLinkRecordError
from insteon_hub.protocol.insteon_id import InsteonID
from insteon_hub.protocol.messages import (
    IM_GET_FIRST_ALL_LINK_RECORD,
    IM_GET_INFO,
    IM_GET_NEXT_ALL_LINK_RECORD,
    IM_MANAGE_ALL_LINK_RECORD,
    IM_RESET,
    IM_SEND_ALL_LINK,
)
from insteon_hub.session import HubSession

logger = get_logger(__name__)

IM_INFO_ECHO_LENGTH = 6
MANAGE_RECORD_ECHO_LENGTH = 9
SEND_ALL_LINK_ECHO_LENGTH = 3
IM_NEXT_RECORD_MAX_ATTEMPTS = 10


class GetImInfoCommand(Command):
    """0x60: id, device category, subcategory and firmware of the modem."""

    log_name: ClassVar[str] = "GetIMInfo"

    def __init__(self, session: HubSession, **kwargs) -> None:
        super().__init__(session, **kwargs)
        self.code = IM_GET_INFO
        self.echo_length = IM_INFO_ECHO_LENGTH

    @property
    def im_id(self) -> InsteonID | None:
        if self.im_response is None:
            return None
        return InsteonID.from_bytes(self.im_response.byte(1), self.im_response.byte(2), self.im_response.byte(3))

    @property
    def category(self) -> int | None:
        return self.im_response.byte(4) if self.im_response is not None else None

    @property
    def subcategory(self) -> int | None:
        return self.im_response.byte(5) if self.im_response is not None else None

    @property
    def firmware_revision(self) -> int | None:
        return self.im_response.byte(6) if self.im_response is not None else None

    def describe_result(self) -> str | None:
        return (
            f"{self.im_id}, Category: {self.category}, Subcategory: {self.subcategory}, "
            f"Revision: {self.firmware_revision}"
        )

class SendAllLinkCommand(Command):
    """0x61: broadcast cmd1/cmd2 to every responder of an IM group.

    The IM echoes group, cmd1 and cmd2; members then get cleanup messages
    the engine treats as informational.
    """

    log_name: ClassVar[str] = "SendAllLink"

    def __init__(self, session: HubSession, group: int, cmd1: int, cmd2: int = 0, **kwargs) -> None:
        super().__init__(session, **kwargs)
        self.code = IM_SEND_ALL_LINK
        self.echo_length = SEND_ALL_LINK_ECHO_LENGTH
        self.group = group
        self.cmd1 = cmd1
        self.cmd2 = cmd2
        self.params = f"{group:02X}{cmd1:02X}{cmd2:02X}"

    def log_params(self) -> str:
        return f"Group: {self.group}, cmd1: {self.cmd1:02X}, cmd2: {self.cmd2:02X}"

    def describe_result(self) -> str | None:
        return f"Command {self.cmd1:02X} param {self.cmd2:02X} sent to group {self.group} members"


class ResetImCommand(Command):
    """0x67: factory reset of the modem, erasing its link table."""

    log_name: ClassVar[str] = "ResetIM"

    def __init__(self, session: HubSession, **kwargs) -> None:
        super().__init__(session, **kwargs)
        self.code = IM_RESET

    def describe_result(self) -> str | None:
        return "IM reset"



class _ImRecordCommand(Command):
    """IM command answered by an ACK echo followed by a 0x57 record."""

    def __init__(self, session: HubSession, **kwargs) -> None:
        super().__init__(session, **kwargs)
        self.record: LinkRecord | None = None

    def prepare_attempt(self) -> None:
        self.record = None

    @property
    def waits_for_record(self) -> bool:
        return True

    def handle(self, event: ResponseEvent) -> Reaction:
        if isinstance(event, ImEcho):
            self.im_response = event.payload
            return CONSUME if self.waits_for_record else done()
        if isinstance(event, AllLinkRecordReceived) and self.waits_for_record:
            try:
                self.record = LinkRecord.from_im_payload(event.payload)
            except InvalidLinkRecordError:
                return WAIT
            record_link_record_read("hub")
            return done()
        return CONSUME


class GetImFirstRecordCommand(_ImRecordCommand):
    """0x69: first record of the IM link table; NAK when the table is empty."""

    log_name: ClassVar[str] = "GetIMFirstAllLinkRecord"

    def __init__(self, session: HubSession, **kwargs) -> None:
        super().__init__(session, **kwargs)
        self.code = IM_GET_FIRST_ALL_LINK_RECORD

    def describe_result(self) -> str | None:
        return self.record.log_output(0) if self.record else None


class GetImNextRecordCommand(_ImRecordCommand):
    """0x6A: next record of the IM link table; NAK past the last record."""

    log_name: ClassVar[str] = "GetIMNextAllLinkRecord"

    def __init__(self, session: HubSession, **kwargs) -> None:
        super().__init__(session, **kwargs)
        self.code = IM_GET_NEXT_ALL_LINK_RECORD

    def describe_result(self) -> str | None:
        return self.record.log_output() if self.record else None


class ImRecordControl(IntEnum):
    FIND_FIRST = 0x00
    FIND_NEXT = 0x01
    MODIFY_FIRST_OR_ADD = 0x20
    MODIFY_FIRST_CONTROLLER_OR_ADD = 0x40
    MODIFY_FIRST_RESPONDER_OR_ADD = 0x41
    DELETE_FIRST_FOUND = 0x80

    @classmethod
    def from_name(cls, name: str) -> ImRecordControl:
        """Parse a console name such as "FindFirst" or "deletefirst"."""
        key = name.replace("_", "").lower()
        for control in cls:
            if control.name.replace("_", "").lower() == key:
                return control
        if key == "deletefirst":
            return cls.DELETE_FIRST_FOUND
        raise ValueError(f"Unknown IM record control code: {name}")


class ManageImRecordCommand(_ImRecordCommand):
    """0x6F: find, edit-or-add or delete a record of the IM link table.

    Finds complete on the 0x57 record that follows the echo; edits and
    deletes complete on the ACK. A NAK means the record was not found.
    """

    log_name: ClassVar[str] = "ManageIMRecord"

    def __init__(self, session: HubSession, control: ImRecordControl, record: LinkRecord, **kwargs) -> None:
        super().__init__(session, **kwargs)
        self.code = IM_MANAGE_ALL_LINK_RECORD
        self.echo_length = MANAGE_RECORD_ECHO_LENGTH
        self.control = control
        self.input_record = record
        self.params = f"{control.value:02X}" + str(record.to_hex())

    @property
    def waits_for_record(self) -> bool:
        return self.control in (ImRecordControl.FIND_FIRST, ImRecordControl.FIND_NEXT)

    def log_params(self) -> str:
        return f"{self.control.name} {self.input_record.log_output(show_not_in_use=True)}"

    def describe_result(self) -> str | None:
        if self.waits_for_record:
            return self.record.log_output(show_not_in_use=True) if self.record else None
        return f"{self.control.name} done"
