"""In-process hub simulator implementing HubTransport.

Models what the engine relies on:
- a 100-byte response ring, cleared by every request
- replies queued per request and written into the ring as the buffer is
  polled, one message every `fetches_per_message` fetches
- the IM link table (get first/next, manage record, reset), IM info,
  all-linking and all-link group commands
- bare, hub and hub config requests, recorded but not answered
- SimulatedDevice instances answering device requests

Fault injection: failing sends, IM NAKs, unresponsive devices, dropped
multi-record replies and raw bytes written straight into the ring.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable

from insteon_hub.mock.simulated_device import SimulatedDevice
from insteon_hub.model.link_record import DEFAULT_FLAGS, LinkRecord, RecordFlags
from insteon_hub.protocol.hex_string import HexString
from insteon_hub.protocol.insteon_id import InsteonID
from insteon_hub.protocol.messages import (
    ACK,
    EXTENDED_FLAG,
    IM_ALL_LINK_CLEANUP_STATUS,
    IM_ALL_LINK_RECORD_RESPONSE,
    IM_ALL_LINKING_COMPLETED,
    IM_CANCEL_ALL_LINKING,
    IM_GET_FIRST_ALL_LINK_RECORD,
    IM_GET_INFO,
    IM_GET_NEXT_ALL_LINK_RECORD,
    IM_MANAGE_ALL_LINK_RECORD,
    IM_RESET,
    IM_SEND_ALL_LINK,
    IM_SEND_INSTEON_MESSAGE,
    IM_START_ALL_LINKING,
    MESSAGE_START,
    NAK,
    LinkingAction,
)
from insteon_hub.transport.exceptions import HubRequestError, HubTransientError

logger = logging.getLogger(__name__)

RING_LENGTH = 100

# 0x6F control codes
FIND_FIRST = 0x00
FIND_NEXT = 0x01
MODIFY_FIRST_OR_ADD = 0x20
MODIFY_FIRST_CONTROLLER_OR_ADD = 0x40
MODIFY_FIRST_RESPONDER_OR_ADD = 0x41
DELETE_FIRST_FOUND = 0x80

SendObserver = Callable[[str], None]


class ResponseRing:
    """The hub's circular response buffer."""

    def __init__(self, length: int = RING_LENGTH) -> None:
        self.length = length
        self._data = bytearray(length)
        self._write_pos = 0

    def reset(self) -> None:
        self._data = bytearray(self.length)
        self._write_pos = 0

    def write(self, message: bytes) -> None:
        for value in message:
            self._data[self._write_pos % self.length] = value
            self._write_pos += 1
        # The hub zeroes what follows the last message
        for offset in range(2):
            self._data[(self._write_pos + offset) % self.length] = 0

    def to_hex(self) -> str:
        return self._data.hex().upper()


class SimulatedHub:
    """HubTransport double with an IM, its link table and a set of devices.

    Attributes:
        requests: Every request line received, in order
        fail_sends: Number of upcoming sends that raise HubTransientError
        nak_count: Number of upcoming IM requests answered with a NAK echo
        send_observers: Called with each request line before it is handled
    """

    def __init__(
        self,
        hub_id: InsteonID = InsteonID(0x112233),
        *,
        im_records: list[LinkRecord] | None = None,
        fetches_per_message: int = 2,
    ) -> None:
        self.hub_id = hub_id
        self.im_records: list[LinkRecord] = list(im_records) if im_records else []
        self.devices: dict[InsteonID, SimulatedDevice] = {}
        self.fetches_per_message = fetches_per_message
        self.ring = ResponseRing()
        self.requests: list[str] = []
        self.send_observers: list[SendObserver] = []
        self.fail_sends = 0
        self.nak_count = 0
        self.category = 0x03
        self.subcategory = 0x33
        self.firmware = 0xA5
        self.buffer_clears = 0
        self.other_requests: list[str] = []
        self.all_link_cleanups = True
        self.closed = False
        self._pending: deque[bytes] = deque()
        self._fetches = 0
        self._im_cursor = 0
        self._find_results: list[LinkRecord] = []
        self._find_cursor = 0
        self._linking: tuple[LinkingAction, int] | None = None

    def add_device(self, device: SimulatedDevice) -> SimulatedDevice:
        self.devices[device.device_id] = device
        return device

    def inject_raw(self, data: bytes) -> None:
        """Write bytes straight into the ring, as if another message had landed there."""
        self.ring.write(data)

    def queue(self, message: bytes) -> None:
        """Queue a message for release on the next buffer polls."""
        self._pending.append(message)

    # HubTransport

    async def send(self, request: str) -> None:
        for observer in self.send_observers:
            observer(request)
        if self.fail_sends > 0:
            self.fail_sends -= 1
            raise HubTransientError("unexpected end of stream")
        self.requests.append(request)

        if "?" not in request:
            raise HubRequestError(f"malformed request {request}", status=400)
        token, rest = request.split("?", 1)
        body = rest.split("=", 1)[0]
        if body == "XB":
            await self.clear_buffer()
            return

        self.ring.reset()
        self._pending.clear()
        self._fetches = 0
        if token != "3":
            # Bare, hub and hub config requests write nothing into the ring
            self.other_requests.append(rest)
            return
        try:
            payload = bytes.fromhex(body)
        except ValueError as e:
            raise HubRequestError(f"malformed request {request}", status=400) from e
        if len(payload) < 2 or payload[0] != MESSAGE_START:
            logger.debug("Simulated hub ignoring request %s", request)
            return
        self._handle_im_request(payload[1], payload[2:])

    async def fetch_buffer(self) -> str:
        if self._pending and self._fetches % self.fetches_per_message == 0:
            self.ring.write(self._pending.popleft())
        self._fetches += 1
        return self.ring.to_hex()

    async def clear_buffer(self) -> None:
        self.buffer_clears += 1
        self.ring.reset()

    async def close(self) -> None:
        self.closed = True

    # IM

    def _echo(self, code: int, params: bytes, status: int = ACK) -> None:
        self.queue(bytes([MESSAGE_START, code]) + params + bytes([status]))

    def _record_message(self, record: LinkRecord) -> bytes:
        return bytes([MESSAGE_START, IM_ALL_LINK_RECORD_RESPONSE]) + record.to_hex().to_bytes()

    def _handle_im_request(self, code: int, params: bytes) -> None:
        if self.nak_count > 0:
            self.nak_count -= 1
            self._echo(code, params, NAK)
            return

        if code == IM_SEND_INSTEON_MESSAGE:
            self._send_to_device(params)
        elif code == IM_GET_INFO:
            hub = self.hub_id
            info = bytes([hub.high, hub.middle, hub.low, self.category, self.subcategory, self.firmware])
            self._echo(code, info)
        elif code == IM_GET_FIRST_ALL_LINK_RECORD:
            self._im_cursor = 0
            self._next_im_record(code)
        elif code == IM_GET_NEXT_ALL_LINK_RECORD:
            self._next_im_record(code)
        elif code == IM_MANAGE_ALL_LINK_RECORD:
            self._manage_record(params)
        elif code == IM_START_ALL_LINKING:
            self._linking = (LinkingAction(params[0]), params[1])
            self._echo(code, params)
        elif code == IM_CANCEL_ALL_LINKING:
            self._linking = None
            self._echo(code, params)
        elif code == IM_SEND_ALL_LINK:
            self._send_all_link(params[0], params[1], params[2])
        elif code == IM_RESET:
            self.im_records = []
            self._linking = None
            self._echo(code, b"")
        else:
            self._echo(code, params, NAK)

    def _next_im_record(self, code: int) -> None:
        if self._im_cursor >= len(self.im_records):
            self._echo(code, b"", NAK)
            return
        self._echo(code, b"")
        self.queue(self._record_message(self.im_records[self._im_cursor]))
        self._im_cursor += 1

    def _manage_record(self, params: bytes) -> None:
        control = params[0]
        record = LinkRecord.from_im_payload(HexString.from_bytes(params[1:9]))
        same = [r for r in self.im_records if r.destination == record.destination and r.group == record.group]

        if control == FIND_FIRST:
            self._find_results = same
            self._find_cursor = 0
            control = FIND_NEXT
        if control == FIND_NEXT:
            if self._find_cursor >= len(self._find_results):
                self._echo(IM_MANAGE_ALL_LINK_RECORD, params, NAK)
                return
            self._echo(IM_MANAGE_ALL_LINK_RECORD, params)
            self.queue(self._record_message(self._find_results[self._find_cursor]))
            self._find_cursor += 1
            return

        if control == DELETE_FIRST_FOUND:
            if not same:
                self._echo(IM_MANAGE_ALL_LINK_RECORD, params, NAK)
                return
            self.im_records = [r for r in self.im_records if r is not same[0]]
        elif control in (MODIFY_FIRST_OR_ADD, MODIFY_FIRST_CONTROLLER_OR_ADD, MODIFY_FIRST_RESPONDER_OR_ADD):
            if control == MODIFY_FIRST_CONTROLLER_OR_ADD:
                same = [r for r in same if r.is_controller]
            elif control == MODIFY_FIRST_RESPONDER_OR_ADD:
                same = [r for r in same if r.is_responder]
            if same:
                self.im_records = [record if r is same[0] else r for r in self.im_records]
            else:
                self.im_records.append(record)
        else:
            self._echo(IM_MANAGE_ALL_LINK_RECORD, params, NAK)
            return
        self._echo(IM_MANAGE_ALL_LINK_RECORD, params)

    def _send_all_link(self, group: int, cmd1: int, cmd2: int) -> None:
        self._echo(IM_SEND_ALL_LINK, bytes([group, cmd1, cmd2]))
        for device in self.devices.values():
            if device.is_responder_of(self.hub_id, group):
                device.handle_group_command(cmd1, cmd2)
        if self.all_link_cleanups:
            self.queue(bytes([MESSAGE_START, IM_ALL_LINK_CLEANUP_STATUS, ACK]))

    def _send_to_device(self, params: bytes) -> None:
        self._echo(IM_SEND_INSTEON_MESSAGE, params)
        device_id = InsteonID.from_bytes(params[0], params[1], params[2])
        flags, cmd1, cmd2 = params[3], params[4], params[5]
        data = tuple(params[6:20]) if flags & EXTENDED_FLAG else None

        device = self.devices.get(device_id)
        if device is None:
            # No reply from the power line
            return
        for message in device.handle(self.hub_id, cmd1, cmd2, data):
            self.queue(message)
        if self._linking is not None and (device.in_linking_mode or device.in_unlinking_mode):
            self._complete_linking(device, self._linking)

    def press_set_button(self, device_id: InsteonID) -> None:
        """Simulate a manual SET button press while the IM is in linking mode."""
        device = self.devices[device_id]
        device.in_linking_mode = True
        if self._linking is not None:
            self.queue(device.set_button_broadcast(self._linking[1]))
            self._complete_linking(device, self._linking)

    def _complete_linking(self, device: SimulatedDevice, linking: tuple[LinkingAction, int]) -> None:
        action, group = linking
        self._linking = None

        if device.in_unlinking_mode or action is LinkingAction.DELETE:
            self.im_records = [
                r for r in self.im_records if not (r.destination == device.device_id and r.group == group)
            ]
            reported = LinkingAction.DELETE
        else:
            im_controller = action is not LinkingAction.RESPONDER
            reported = LinkingAction.CONTROLLER if im_controller else LinkingAction.RESPONDER
            flags = DEFAULT_FLAGS | (RecordFlags.CONTROLLER if im_controller else 0)
            self.im_records.append(LinkRecord(destination=device.device_id, group=group, flags=int(flags)))
        device.in_linking_mode = False
        device.in_unlinking_mode = False

        self.queue(
            bytes(
                [
                    MESSAGE_START,
                    IM_ALL_LINKING_COMPLETED,
                    reported.value & 0xFF,
                    group,
                    device.device_id.high,
                    device.device_id.middle,
                    device.device_id.low,
                    device.category,
                    device.subcategory,
                    device.firmware,
                ]
            )
        )
