"""Unit tests for the aiohttp hub transport, against a local aiohttp server."""

from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from insteon_hub.transport import HttpHubTransport
from insteon_hub.transport.exceptions import HubRequestError, HubTimeoutError
from insteon_hub.transport.hub_transport import extract_buffer

BUFFER = "0260112233033305" + "0" * 184


class FakeHubServer:
    """Records requests and serves a fixed buffer."""

    def __init__(self) -> None:
        self.requests: list[web.Request] = []
        self.status = 200
        self.delay = 0.0
        self.document = f"<response><BS>{BUFFER}</BS></response>"

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if request.path == "/buffstatus.xml":
            return web.Response(text=self.document, status=self.status)
        return web.Response(text="", status=self.status)


@pytest_asyncio.fixture
async def fake_hub():
    fake = FakeHubServer()
    app = web.Application()
    app.router.add_get("/{resource}", fake.handle)
    server = TestServer(app)
    await server.start_server()
    yield fake, server
    await server.close()


def _transport(server: TestServer, **kwargs) -> HttpHubTransport:
    return HttpHubTransport(server.host, server.port, **kwargs)


class TestExtractBuffer:
    """Tests for buffstatus.xml parsing."""

    def test_extract(self):
        """Test that the hex text is taken from the BS element."""
        assert extract_buffer("<response><BS> 0260 </BS></response>") == "0260"

    def test_missing_element(self):
        """Test that documents without a BS element are rejected."""
        with pytest.raises(HubRequestError):
            extract_buffer("<response></response>")


class TestHttpHubTransport:
    """Tests for requests, buffer fetches and error mapping."""

    @pytest.mark.asyncio
    async def test_send(self, fake_hub):
        """Test that a request line becomes a GET on the hub."""
        fake, server = fake_hub
        transport = _transport(server)
        try:
            await transport.send("3?0260=I=3")
        finally:
            await transport.close()
        assert fake.requests[0].path == "/3"
        assert "0260" in fake.requests[0].query_string

    @pytest.mark.asyncio
    async def test_basic_auth(self, fake_hub):
        """Test that credentials are sent with each request."""
        fake, server = fake_hub
        transport = _transport(server, username="admin", password="secret")
        try:
            await transport.send("3?0260=I=3")
        finally:
            await transport.close()
        assert fake.requests[0].headers["Authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_fetch_buffer(self, fake_hub):
        """Test reading the response ring."""
        _, server = fake_hub
        transport = _transport(server)
        try:
            assert await transport.fetch_buffer() == BUFFER
        finally:
            await transport.close()

    @pytest.mark.asyncio
    async def test_clear_buffer(self, fake_hub):
        """Test the hub-class clear request."""
        fake, server = fake_hub
        transport = _transport(server)
        try:
            await transport.clear_buffer()
        finally:
            await transport.close()
        assert fake.requests[0].path == "/1"
        assert "XB" in fake.requests[0].query_string

    @pytest.mark.asyncio
    async def test_http_error(self, fake_hub):
        """Test that error statuses raise HubRequestError with the status."""
        fake, server = fake_hub
        fake.status = 401
        transport = _transport(server)
        try:
            with pytest.raises(HubRequestError) as exc_info:
                await transport.send("3?0260=I=3")
        finally:
            await transport.close()
        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_timeout(self, fake_hub):
        """Test that slow responses raise HubTimeoutError."""
        fake, server = fake_hub
        fake.delay = 0.5
        transport = _transport(server, timeout_seconds=0.05)
        try:
            with pytest.raises(HubTimeoutError):
                await transport.fetch_buffer()
        finally:
            await transport.close()

    @pytest.mark.asyncio
    async def test_connection_refused(self, fake_hub):
        """Test that unreachable hubs raise HubRequestError."""
        _, server = fake_hub
        transport = _transport(server)
        await server.close()
        try:
            with pytest.raises(HubRequestError):
                await transport.send("3?0260=I=3")
        finally:
            await transport.close()

    @pytest.mark.asyncio
    async def test_close_owned_session(self, fake_hub):
        """Test that the session created by the transport is closed."""
        _, server = fake_hub
        transport = _transport(server)
        await transport.send("3?0260=I=3")
        session = transport.http_session
        await transport.close()
        assert session is not None
        assert session.closed
        assert transport.http_session is None
