"""
HalfKay Bootloader Protocol
===========================

This package implements the USB side of programming a Teensy:

- **blocks**: wire format of write and boot transfers
- **session**: DeviceSession, the bootloader connection state machine

The protocol layer uses USB control transfers only, through the
UsbTransport interface in ``teensy_loader.transport``.
"""

from teensy_loader.protocol.blocks import (
    BOOT_MARKER,
    BlockFormat,
    WriteBlock,
    encode_block,
    encode_boot_block,
    encode_header,
    select_block_format,
    write_size,
)
from teensy_loader.protocol.session import (
    BOOTLOADER_PRODUCT_ID,
    REBOOTOR_PRODUCT_ID,
    SERIAL_PRODUCT_ID,
    VENDOR_ID,
    DeviceSession,
    SessionState,
)

__all__ = [
    "BOOT_MARKER",
    "BlockFormat",
    "WriteBlock",
    "encode_block",
    "encode_boot_block",
    "encode_header",
    "select_block_format",
    "write_size",
    "BOOTLOADER_PRODUCT_ID",
    "REBOOTOR_PRODUCT_ID",
    "SERIAL_PRODUCT_ID",
    "VENDOR_ID",
    "DeviceSession",
    "SessionState",
]
