"""
HalfKay Block Encoding
======================

The HalfKay bootloader receives flash contents one block at a time. Each
USB transfer carries a small header holding the target address followed
by exactly one block of payload. The header layout depends on the chip:

    Format    Profile                            Header           Size
    SHORT     block <= 256, code < 64 KB         addr lo, hi      2 + block
    PAGED     block == 256, code >= 64 KB        addr >> 8 lo, hi 2 + block
    PADDED    block in (512, 1024)               addr 24-bit LE,  64 + block
                                                 61 zero bytes

The same transfer size is used for the boot command, which tells the
bootloader to leave and start the application: an all-zero buffer whose
first three bytes are 0xFF.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Final

from teensy_loader.errors import UnsupportedBlockConfigurationError
from teensy_loader.firmware.image import FirmwareImage
from teensy_loader.mcus import MCUProfile


# Header length of the PADDED format (3 address bytes + 61 zero bytes)
PADDED_HEADER_SIZE: Final[int] = 64

# Header length of the SHORT and PAGED formats
SHORT_HEADER_SIZE: Final[int] = 2

# Leading bytes of the "exit to application" command
BOOT_MARKER: Final[bytes] = b"\xff\xff\xff"


class BlockFormat(Enum):
    """Block header layouts understood by the bootloader."""
    SHORT = "short"      # 16-bit absolute address
    PAGED = "paged"      # address bits 8-23
    PADDED = "padded"    # 24-bit address + 61 bytes padding

    @property
    def header_size(self) -> int:
        if self is BlockFormat.PADDED:
            return PADDED_HEADER_SIZE
        return SHORT_HEADER_SIZE


@dataclass(frozen=True)
class WriteBlock:
    """
    One bootloader transfer.

    Attributes:
        address: Flash address of the first payload byte
        header: Encoded address header
        payload: ``block_size`` bytes of flash contents
    """
    address: int
    header: bytes
    payload: bytes

    @property
    def size(self) -> int:
        return len(self.header) + len(self.payload)

    def to_bytes(self) -> bytes:
        return self.header + self.payload


def select_block_format(profile: MCUProfile) -> BlockFormat:
    """
    Choose the header layout for a profile.

    Raises:
        UnsupportedBlockConfigurationError: If no layout fits
    """
    if profile.block_size <= 256 and profile.code_size < 0x10000:
        return BlockFormat.SHORT
    if profile.block_size == 256:
        return BlockFormat.PAGED
    if profile.block_size in (512, 1024):
        return BlockFormat.PADDED
    raise UnsupportedBlockConfigurationError(profile.code_size, profile.block_size)


def write_size(profile: MCUProfile) -> int:
    """Size of every transfer for this profile, header included."""
    return select_block_format(profile).header_size + profile.block_size


def encode_header(addr: int, block_format: BlockFormat) -> bytes:
    """Encode the address header for ``addr``."""
    if block_format is BlockFormat.SHORT:
        return bytes([addr & 0xFF, (addr >> 8) & 0xFF])
    if block_format is BlockFormat.PAGED:
        return bytes([(addr >> 8) & 0xFF, (addr >> 16) & 0xFF])
    return (
        bytes([addr & 0xFF, (addr >> 8) & 0xFF, (addr >> 16) & 0xFF])
        + bytes(PADDED_HEADER_SIZE - 3)
    )


def encode_block(image: FirmwareImage, addr: int, profile: MCUProfile) -> WriteBlock:
    """
    Build the transfer that writes the block starting at ``addr``.

    Args:
        image: Firmware contents
        addr: Block-aligned flash address
        profile: Target MCU

    Returns:
        The encoded WriteBlock.

    Raises:
        UnsupportedBlockConfigurationError: If the profile has no layout
    """
    block_format = select_block_format(profile)
    header = encode_header(addr, block_format)
    payload = image.get_data(addr, profile.block_size)
    return WriteBlock(addr, header, payload)


def encode_boot_block(size: int) -> bytes:
    """Return the ``size``-byte command that starts the application."""
    if size < len(BOOT_MARKER):
        raise ValueError(f"boot command needs at least 3 bytes, got {size}")
    return BOOT_MARKER + bytes(size - len(BOOT_MARKER))
