"""Shared fixtures: captured address spaces and deterministic scan settings."""

import pytest

from helpers import SCAN_TIME, WINDOW_BASE
from struct_fingerprinter.config import ScanSettings
from struct_fingerprinter.core.address_space import StaticAddressSpace
from struct_fingerprinter.core.scan_controller import ScanController


@pytest.fixture
def settings() -> ScanSettings:
    return ScanSettings(scan_time=SCAN_TIME)


@pytest.fixture
def space() -> StaticAddressSpace:
    return StaticAddressSpace()


@pytest.fixture
def controller(space, settings) -> ScanController:
    return ScanController(space, settings)


@pytest.fixture
def scan(space, controller):
    """Place data at WINDOW_BASE, scan it and return the ScanResult."""

    def _scan(data: bytes, **region_kwargs):
        space.add_region(WINDOW_BASE, data, **region_kwargs)
        window = controller.capture(WINDOW_BASE, len(data))
        return controller.scan(window)

    return _scan
