"""
Sparse Firmware Image
=====================

A FirmwareImage models the flash contents described by a hex file. Every
address in ``[0, MAX_MEMORY_SIZE)`` has a content byte and a "written"
flag. Addresses the hex file never touched read back as the erased value
0xFF and do not count as data.

Only written addresses are stored, so an image costs memory in
proportion to the firmware, not to the 16 MB address space.

The range queries keep the exact boundary behavior the programmer relies
on for block skipping:

- ``bytes_in_range`` is inclusive of ``end`` and False when either bound
  is out of range.
- ``is_blank`` is vacuously True for an address outside the image.
- ``get_data`` returns an all-0xFF buffer when the span reaches the
  capacity.
"""

import logging
from typing import Final, Optional

logger = logging.getLogger(__name__)


# Maximum flash image size supported (largest board is 16 MB)
MAX_MEMORY_SIZE: Final[int] = 0x1000000

# Value of an erased flash byte
FILL_BYTE: Final[int] = 0xFF


class FirmwareImage:
    """
    Sparse byte store with a presence mask.

    Usage:
        image = FirmwareImage()
        image.write(0x1000, b"\\x12\\x34")
        image.get_data(0x0FFF, 4)       # b"\\xff\\x12\\x34\\xff"
        image.bytes_in_range(0, 0xFFF)  # False
    """

    def __init__(self, capacity: int = MAX_MEMORY_SIZE):
        self.capacity = capacity
        self._data: dict[int, int] = {}

    def reset(self) -> None:
        """Clear every address to unwritten (reads as 0xFF)."""
        self._data.clear()

    def write(self, addr: int, data: bytes) -> None:
        """
        Store bytes at ``addr`` and mark them written.

        Raises:
            ValueError: If the span leaves the image
        """
        if addr < 0 or addr + len(data) > self.capacity:
            raise ValueError(
                f"write of {len(data)} bytes at 0x{addr:X} exceeds image capacity"
            )
        for offset, value in enumerate(data):
            self._data[addr + offset] = value & 0xFF

    def is_written(self, addr: int) -> bool:
        return addr in self._data

    def bytes_in_range(self, begin: int, end: int) -> bool:
        """
        Return True if any address in ``[begin, end]`` holds written data.

        An out-of-bounds range is not an error; it simply holds no data.
        """
        if begin < 0 or begin >= self.capacity or end < 0 or end >= self.capacity:
            return False

        if end - begin + 1 > len(self._data):
            return any(begin <= a <= end for a in self._data)
        return any(a in self._data for a in range(begin, end + 1))

    def is_blank(self, addr: int, length: int) -> bool:
        """
        Return True if every written byte of the span equals 0xFF.

        Unwritten bytes never count against blankness, and scanning stops
        at the image capacity.
        """
        if addr < 0 or addr > self.capacity:
            return True

        stop = min(addr + length, self.capacity)
        for a in range(addr, stop):
            value = self._data.get(a)
            if value is not None and value != FILL_BYTE:
                return False
        return True

    def get_data(self, addr: int, length: int) -> bytes:
        """
        Return ``length`` bytes starting at ``addr``.

        Each byte is the stored value if written, else 0xFF. A span that
        reaches the capacity yields a buffer of 0xFF only.
        """
        if addr < 0 or length < 0 or addr + length >= self.capacity:
            return bytes([FILL_BYTE]) * max(length, 0)

        get = self._data.get
        return bytes(get(a, FILL_BYTE) for a in range(addr, addr + length))

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    @property
    def written_count(self) -> int:
        """Number of distinct addresses holding data."""
        return len(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def address_range(self) -> Optional[tuple[int, int]]:
        """Return (lowest, highest) written address, or None if empty."""
        if not self._data:
            return None
        return min(self._data), max(self._data)

    def __repr__(self) -> str:
        span = self.address_range()
        if span is None:
            return "FirmwareImage(empty)"
        return (
            f"FirmwareImage({self.written_count} bytes, "
            f"0x{span[0]:06X}-0x{span[1]:06X})"
        )
