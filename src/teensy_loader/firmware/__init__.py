"""
Firmware Image Handling
=======================

This package turns Intel HEX files into an in-memory flash image:

- **image**: FirmwareImage, a sparse byte store with a presence mask
- **ihex**: Intel HEX line parser and file reader

Quick Start
-----------
    from teensy_loader.firmware import IntelHexReader
    from teensy_loader.mcus import get_mcu

    reader = IntelHexReader(profile=get_mcu("TEENSY31"))
    count = reader.read("blink.hex")
    print(f"{count} bytes, first block: {reader.image.get_data(0, 16).hex()}")
"""

from teensy_loader.firmware.image import (
    FILL_BYTE,
    MAX_MEMORY_SIZE,
    FirmwareImage,
)
from teensy_loader.firmware.ihex import (
    FLEXSPI_BASE,
    HexRecord,
    IntelHexReader,
    RecordType,
    parse_line,
)

__all__ = [
    "FILL_BYTE",
    "MAX_MEMORY_SIZE",
    "FirmwareImage",
    "FLEXSPI_BASE",
    "HexRecord",
    "IntelHexReader",
    "RecordType",
    "parse_line",
]
