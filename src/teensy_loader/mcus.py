"""
Supported Microcontroller Profiles
==================================

This module holds the table of microcontrollers that run the HalfKay
bootloader. Each profile records the flash size available to the
application (code size) and the size of a single bootloader write
(block size). The two values select the block header format used on the
wire and bound the address iteration during programming.

Boards can be named by their raw chip name or by their board name:

    Chip          Board             Code size   Block
    at90usb162    -                     15872     128
    atmega32u4    TEENSY2               32256     128
    at90usb646    -                     64512     256
    at90usb1286   TEENSY2PP            130048     256
    mkl26z64      TEENSYLC              63488     512
    mk20dx128     TEENSY30             131072    1024
    mk20dx256     TEENSY31/32          262144    1024
    mk64fx512     TEENSY35             524288    1024
    mk66fx1m0     TEENSY36            1048576    1024
    imxrt1062     TEENSY40            2031616    1024
    -             TEENSY41            8126464    1024
    -             TEENSY_MICROMOD    16515072    1024

Lookups are case-insensitive.
"""

from dataclasses import dataclass
from typing import Optional

from teensy_loader.errors import UnknownMCUError


@dataclass(frozen=True)
class MCUProfile:
    """
    Flash geometry of one supported microcontroller.

    Attributes:
        name: Name as listed by ``--list-mcus``
        code_size: Application flash size in bytes
        block_size: Bytes written per bootloader transfer
    """
    name: str
    code_size: int
    block_size: int

    @property
    def block_count(self) -> int:
        """Number of blocks covering the code area."""
        return (self.code_size + self.block_size - 1) // self.block_size

    def __str__(self) -> str:
        return f"{self.name} ({self.code_size} bytes, {self.block_size}-byte blocks)"


# =============================================================================
# Profile Table
# =============================================================================

MCU_PROFILES: tuple[MCUProfile, ...] = (
    # Raw chip names
    MCUProfile("at90usb162", 15872, 128),
    MCUProfile("atmega32u4", 32256, 128),
    MCUProfile("at90usb646", 64512, 256),
    MCUProfile("at90usb1286", 130048, 256),
    MCUProfile("mkl26z64", 63488, 512),
    MCUProfile("mk20dx128", 131072, 1024),
    MCUProfile("mk20dx256", 262144, 1024),
    MCUProfile("mk66fx1m0", 1048576, 1024),
    MCUProfile("mk64fx512", 524288, 1024),
    MCUProfile("imxrt1062", 2031616, 1024),

    # Board names (duplicates of the chips above)
    MCUProfile("TEENSY2", 32256, 128),
    MCUProfile("TEENSY2PP", 130048, 256),
    MCUProfile("TEENSYLC", 63488, 512),
    MCUProfile("TEENSY30", 131072, 1024),
    MCUProfile("TEENSY31", 262144, 1024),
    MCUProfile("TEENSY32", 262144, 1024),
    MCUProfile("TEENSY35", 524288, 1024),
    MCUProfile("TEENSY36", 1048576, 1024),
    MCUProfile("TEENSY40", 2031616, 1024),
    MCUProfile("TEENSY41", 8126464, 1024),
    MCUProfile("TEENSY_MICROMOD", 16515072, 1024),
)


def get_supported_mcus() -> list[str]:
    """Return the names of all supported MCUs in table order."""
    return [profile.name for profile in MCU_PROFILES]


def find_mcu(name: str) -> Optional[MCUProfile]:
    """
    Look up an MCU profile by name.

    Args:
        name: Chip or board name, any case

    Returns:
        The matching MCUProfile, or None if not found

    Example:
        >>> find_mcu("teensy40")
        MCUProfile(name='TEENSY40', code_size=2031616, block_size=1024)
    """
    wanted = name.strip().lower()
    for profile in MCU_PROFILES:
        if profile.name.lower() == wanted:
            return profile
    return None


def get_mcu(name: str) -> MCUProfile:
    """
    Look up an MCU profile by name, raising if it is unknown.

    Raises:
        UnknownMCUError: If no profile has this name
    """
    profile = find_mcu(name)
    if profile is None:
        raise UnknownMCUError(name, known=get_supported_mcus())
    return profile
