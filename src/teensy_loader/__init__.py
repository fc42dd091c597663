"""
Teensy Loader - Firmware Flasher for HalfKay Bootloaders
========================================================

This package flashes Intel HEX firmware onto Teensy and other boards that
run the PJRC HalfKay USB bootloader, then starts the new application.

Main Components
---------------
- **firmware**: Intel HEX parser and sparse firmware image
- **protocol**: bootloader block encoding and device session
- **programmer**: the programming run (discover, write, boot)
- **mcus**: supported microcontroller profiles
- **transport**: USB access through pyusb

Quick Start
-----------
Program a board from Python:
    >>> from teensy_loader import (
    ...     DeviceSession, ProgramOptions, ProgrammingController,
    ...     PyUsbTransport, get_mcu,
    ... )
    >>> controller = ProgrammingController(
    ...     get_mcu("TEENSY40"),
    ...     DeviceSession(PyUsbTransport()),
    ...     ProgramOptions(filename="blink.hex", wait_for_device=True),
    ... )
    >>> result = controller.run()

Or use the command-line tool:
    $ teensy-loader --mcu=TEENSY40 -w -v blink.hex

Version History
---------------
1.0.0 - Initial release
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from teensy_loader.errors import (
    TeensyLoaderError,
    ParseError,
    MalformedRecordError,
    ChecksumMismatchError,
    AddressOverflowError,
    HexFileError,
    ConfigurationError,
    UnknownMCUError,
    UnsupportedBlockConfigurationError,
    DeviceError,
    DeviceNotFoundError,
    WriteFailedError,
    TransportError,
)
from teensy_loader.mcus import (
    MCU_PROFILES,
    MCUProfile,
    find_mcu,
    get_mcu,
    get_supported_mcus,
)
from teensy_loader.firmware import (
    MAX_MEMORY_SIZE,
    FirmwareImage,
    HexRecord,
    IntelHexReader,
    RecordType,
    parse_line,
)
from teensy_loader.protocol import (
    BlockFormat,
    DeviceSession,
    SessionState,
    WriteBlock,
    encode_block,
    encode_boot_block,
    write_size,
)
from teensy_loader.transport import PyUsbTransport, UsbTransport
from teensy_loader.config import LoaderConfig
from teensy_loader.programmer import (
    ProgramOptions,
    ProgramResult,
    ProgrammingController,
)

__all__ = [
    "__version__",
    # Errors
    "TeensyLoaderError",
    "ParseError",
    "MalformedRecordError",
    "ChecksumMismatchError",
    "AddressOverflowError",
    "HexFileError",
    "ConfigurationError",
    "UnknownMCUError",
    "UnsupportedBlockConfigurationError",
    "DeviceError",
    "DeviceNotFoundError",
    "WriteFailedError",
    "TransportError",
    # MCU profiles
    "MCU_PROFILES",
    "MCUProfile",
    "find_mcu",
    "get_mcu",
    "get_supported_mcus",
    # Firmware
    "MAX_MEMORY_SIZE",
    "FirmwareImage",
    "HexRecord",
    "IntelHexReader",
    "RecordType",
    "parse_line",
    # Protocol
    "BlockFormat",
    "DeviceSession",
    "SessionState",
    "WriteBlock",
    "encode_block",
    "encode_boot_block",
    "write_size",
    # Transport
    "PyUsbTransport",
    "UsbTransport",
    # Programming
    "LoaderConfig",
    "ProgramOptions",
    "ProgramResult",
    "ProgrammingController",
]
