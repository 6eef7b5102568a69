"""Simulated hub and devices, injected as the session transport in tests and dry runs."""

from insteon_hub.mock.simulated_device import SimulatedDevice
from insteon_hub.mock.simulated_hub import ResponseRing, SimulatedHub

__all__ = ["ResponseRing", "SimulatedDevice", "SimulatedHub"]
