"""
Teensy Loader Test Configuration
================================

Shared fixtures for the loader tests:

- ``hex_record``: builds Intel HEX record lines with correct checksums
- ``fake_transport``: factory for an in-memory UsbTransport that records
  control transfers and can simulate absent devices, late enumeration,
  reboots and stalled transfers
- ``sleeps``: a sleep replacement that records durations instead of
  blocking

No hardware is needed for any test.
"""

from dataclasses import dataclass
from typing import Optional

import pytest

from teensy_loader.errors import TransportError
from teensy_loader.protocol.session import BOOTLOADER_PRODUCT_ID, VENDOR_ID
from teensy_loader.transport import UsbTransport


# ═══════════════════════════════════════════════════════════════════════════════
# INTEL HEX HELPERS
# ═══════════════════════════════════════════════════════════════════════════════


def make_record(record_type: int, address: int, data: bytes = b"") -> str:
    """Build one Intel HEX line with a valid checksum."""
    body = bytes([len(data), (address >> 8) & 0xFF, address & 0xFF, record_type]) + data
    checksum = (-sum(body)) & 0xFF
    return ":" + (body + bytes([checksum])).hex().upper()


@pytest.fixture
def hex_record():
    """Fixture: the make_record() helper."""
    return make_record


# ═══════════════════════════════════════════════════════════════════════════════
# FAKE USB TRANSPORT
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class FakeHandle:
    product_id: int


@dataclass(frozen=True)
class Transfer:
    handle: FakeHandle
    request_type: int
    request: int
    value: int
    index: int
    data: bytes
    timeout_ms: int


class FakeTransport(UsbTransport):
    """
    In-memory USB transport.

    Args:
        present: Product IDs attached at start
        appear_after: The bootloader appears on this search attempt
        fail_transfers: Number of upcoming transfers that fail
        always_fail: Every transfer fails
        reboot_enters_bootloader: A transfer to a non-bootloader device
            makes the bootloader appear
    """

    def __init__(
        self,
        present: tuple = (BOOTLOADER_PRODUCT_ID,),
        appear_after: Optional[int] = None,
        fail_transfers: int = 0,
        always_fail: bool = False,
        reboot_enters_bootloader: bool = True,
    ):
        self.present = set(present)
        self.appear_after = appear_after
        self.fail_transfers = fail_transfers
        self.always_fail = always_fail
        self.reboot_enters_bootloader = reboot_enters_bootloader
        self.bootloader_searches = 0
        self.searches: list[tuple[int, int]] = []
        self.attempts = 0
        self.transfers: list[Transfer] = []
        self.released: list[FakeHandle] = []

    def find(self, vendor_id, product_id):
        self.searches.append((vendor_id, product_id))
        if product_id == BOOTLOADER_PRODUCT_ID:
            self.bootloader_searches += 1
            if self.appear_after is not None and self.bootloader_searches >= self.appear_after:
                self.present.add(BOOTLOADER_PRODUCT_ID)
        if vendor_id == VENDOR_ID and product_id in self.present:
            return FakeHandle(product_id)
        return None

    def control_transfer(self, handle, request_type, request, value, index, data, timeout_ms):
        self.attempts += 1
        if self.always_fail or self.fail_transfers > 0:
            self.fail_transfers = max(0, self.fail_transfers - 1)
            raise TransportError("pipe stalled")
        self.transfers.append(
            Transfer(handle, request_type, request, value, index, bytes(data), timeout_ms)
        )
        if self.reboot_enters_bootloader and handle.product_id != BOOTLOADER_PRODUCT_ID:
            self.present.add(BOOTLOADER_PRODUCT_ID)
        return len(data)

    def release(self, handle):
        self.released.append(handle)

    def bootloader_transfers(self) -> list[Transfer]:
        return [t for t in self.transfers if t.handle.product_id == BOOTLOADER_PRODUCT_ID]


@pytest.fixture
def fake_transport():
    """Fixture: the FakeTransport class, called to build a transport."""
    return FakeTransport


# ═══════════════════════════════════════════════════════════════════════════════
# TIMING
# ═══════════════════════════════════════════════════════════════════════════════


class SleepRecorder:
    """Callable stand-in for time.sleep that records durations."""

    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeps():
    """Fixture: a fresh SleepRecorder."""
    return SleepRecorder()
