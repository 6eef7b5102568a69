"""Shared fixtures for unit tests.

Sessions run against a SimulatedHub with fast timeouts and no backoff, so
retry and timeout paths finish in milliseconds.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from insteon_hub.mock import SimulatedDevice, SimulatedHub
from insteon_hub.session import HubSession
from insteon_hub.transport import RetryPolicy
from tests.helpers.links import DEVICE_ID, HUB_ID, controller, fast_timeouts, responder


@pytest.fixture
def hub() -> SimulatedHub:
    """Simulated hub with no devices and an empty IM link table."""
    return SimulatedHub(HUB_ID)


@pytest.fixture
def device(hub: SimulatedHub) -> SimulatedDevice:
    """Device with two links to the hub, registered with the simulated hub."""
    return hub.add_device(
        SimulatedDevice(
            DEVICE_ID,
            [responder(HUB_ID, 0), controller(HUB_ID, 1, data=(3, 0x1F, 1))],
            revision=5,
        )
    )


@pytest_asyncio.fixture
async def session(hub: SimulatedHub) -> AsyncIterator[HubSession]:
    """Session over the simulated hub, with fast timeouts and no retry backoff."""
    async with HubSession(
        hub,
        HUB_ID,
        retry_policy=RetryPolicy(base_delay_seconds=0),
        timeout_config=fast_timeouts(),
    ) as hub_session:
        yield hub_session
