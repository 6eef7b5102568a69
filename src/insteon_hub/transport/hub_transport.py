"""HTTP transport to an INSTEON hub.

The hub exposes two resources the engine needs:
- GET /<token>?<command>[=I|M=<token>] queues a command
- GET /buffstatus.xml returns the response ring buffer as <BS>hex...</BS>

HubTransport is the seam a simulator plugs into (see insteon_hub.mock).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, runtime_checkable

import aiohttp

from insteon_hub.transport.exceptions import HubRequestError, HubTimeoutError, HubTransientError

logger = logging.getLogger(__name__)

BUFFER_STATUS_RESOURCE = "buffstatus.xml"
CLEAR_BUFFER_REQUEST = "1?XB=M=1"


@runtime_checkable
class HubTransport(Protocol):
    """Request/response channel to a hub (real or simulated)."""

    async def send(self, request: str) -> None:
        """Send one request line, raising on transport failure."""
        ...

    async def fetch_buffer(self) -> str:
        """Return the current response buffer as hex text."""
        ...

    async def clear_buffer(self) -> None:
        """Ask the hub to clear its response buffer."""
        ...

    async def close(self) -> None: ...


def extract_buffer(document: str) -> str:
    """Return the text between <BS> and </BS> of a buffstatus.xml document."""
    start = document.find("<BS>")
    end = document.find("</BS>", start + 4)
    if start < 0 or end < 0:
        raise HubRequestError("buffstatus.xml without <BS> element")
    return document[start + 4 : end].strip()


class HttpHubTransport:
    """aiohttp transport to a hub at http://host:port/ with basic auth."""

    lp = "HttpHubTransport:"

    def __init__(
        self,
        host: str,
        port: int = 25105,
        username: str | None = None,
        password: str | None = None,
        timeout_seconds: float = 10.0,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = f"http://{host}:{port}/"
        self.timeout_seconds = timeout_seconds
        self._auth = aiohttp.BasicAuth(username, password or "") if username else None
        self.http_session = http_session
        self._owns_session = http_session is None

    def _check_session(self) -> aiohttp.ClientSession:
        if self.http_session is None or self.http_session.closed:
            logger.debug("%s Creating new aiohttp ClientSession", self.lp)
            self.http_session = aiohttp.ClientSession(auth=self._auth)
            self._owns_session = True
        return self.http_session

    async def _get(self, resource: str) -> str:
        session = self._check_session()
        url = self.base_url + resource
        try:
            async with session.get(
                url,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                if not response.ok:
                    raise HubRequestError(f"HTTP {response.status} for {resource}", status=response.status)
                return await response.text()
        except TimeoutError as e:
            raise HubTimeoutError(resource, self.timeout_seconds) from e
        except (aiohttp.ClientPayloadError, aiohttp.ServerDisconnectedError) as e:
            # The hub drops connections mid-response when busy
            raise HubTransientError(str(e) or "unexpected end of stream") from e
        except aiohttp.ClientResponseError as e:
            raise HubRequestError(e.message, status=e.status) from e
        except aiohttp.ClientError as e:
            raise HubRequestError(str(e) or type(e).__name__) from e

    async def send(self, request: str) -> None:
        logger.debug("%s → GET %s", self.lp, request)
        await self._get(request)

    async def fetch_buffer(self) -> str:
        document = await self._get(BUFFER_STATUS_RESOURCE)
        return extract_buffer(document)

    async def clear_buffer(self) -> None:
        logger.debug("%s Clearing hub response buffer", self.lp)
        await self._get(CLEAR_BUFFER_REQUEST)

    async def close(self) -> None:
        """Close the aiohttp session if we created it."""
        if self.http_session is not None and self._owns_session and not self.http_session.closed:
            logger.debug("%s Closing aiohttp ClientSession", self.lp)
            await self.http_session.close()
            # Let the connector finish closing its transports
            await asyncio.sleep(0)
        self.http_session = None
