"""
Teensy Loader Error Hierarchy
=============================

This module defines the exception hierarchy for the loader. All exceptions
inherit from TeensyLoaderError, allowing callers to catch every loader
failure with a single except clause.

Exception Hierarchy
-------------------
TeensyLoaderError (base)
├── ParseError (Intel HEX records)
│   ├── MalformedRecordError - missing ':', bad hex digit, line too short
│   ├── ChecksumMismatchError - record checksum does not sum to zero
│   └── AddressOverflowError - record lands beyond the image capacity
├── HexFileError - hex file cannot be opened or read
├── ConfigurationError (MCU profile problems)
│   ├── UnknownMCUError - no profile with the requested name
│   └── UnsupportedBlockConfigurationError - no block format for profile
└── DeviceError (USB bootloader communication)
    ├── DeviceNotFoundError - bootloader not present
    ├── WriteFailedError - block write timed out
    └── TransportError - a single USB transfer failed

Every error is fatal for a programming run. The only exception raised and
handled internally is TransportError, which DeviceSession retries until
its timeout budget is spent.

Parse errors carry the file name and line number when they are raised by
the file reader, formatted like a compiler diagnostic:

    blink.hex:12: error: checksum mismatch (sum 0x01)
        :10010000214601360121470136007EFE09D21901FF
"""

from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class TeensyLoaderError(Exception):
    """
    Base exception for all loader errors.

        try:
            programmer.run()
        except TeensyLoaderError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Intel HEX Parse Exceptions
# =============================================================================

class ParseError(TeensyLoaderError):
    """
    Base exception for Intel HEX parse errors.

    A parse error always aborts the run before any device I/O takes place.
    The reader attaches location information with ``with_location()`` so
    the message points at the offending line.

    Attributes:
        message: The error description
        filename: Name of the hex file (optional)
        line_number: 1-indexed line number (optional)
        source_line: The text of the offending record (optional)
    """

    def __init__(
        self,
        message: str,
        filename: Optional[str] = None,
        line_number: Optional[int] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.filename = filename
        self.line_number = line_number
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = []

        if self.filename is not None and self.line_number is not None:
            parts.append(f"{self.filename}:{self.line_number}: error: {self.message}")
        elif self.line_number is not None:
            parts.append(f"line {self.line_number}: error: {self.message}")
        else:
            parts.append(f"error: {self.message}")

        if self.source_line:
            parts.append(f"    {self.source_line}")

        return "\n".join(parts)

    def with_location(
        self,
        filename: Optional[str],
        line_number: int,
        source_line: Optional[str] = None,
    ) -> "ParseError":
        """Return a copy of this error annotated with its position in a file."""
        return type(self)(
            self.message,
            filename=filename,
            line_number=line_number,
            source_line=source_line,
        )


class MalformedRecordError(ParseError):
    """
    Record does not follow the Intel HEX grammar.

    Examples:
        - Line does not start with ':'
        - Non-hex character in a field
        - Line shorter than the declared byte count requires
    """
    pass


class ChecksumMismatchError(ParseError):
    """
    Record checksum is wrong.

    The two's complement checksum must make the sum of every byte of the
    record, including the checksum itself, equal zero modulo 256.
    """
    pass


class AddressOverflowError(ParseError):
    """Record address plus extended base plus length exceeds the image capacity."""
    pass


class HexFileError(TeensyLoaderError):
    """
    Hex file cannot be read.

    Raised when the file does not exist, is not readable, or cannot be
    decoded as text.
    """
    pass


# =============================================================================
# Configuration Exceptions
# =============================================================================

class ConfigurationError(TeensyLoaderError):
    """Base exception for MCU profile and option errors."""
    pass


class UnknownMCUError(ConfigurationError):
    """
    No MCU profile matches the requested name.

    Attributes:
        name: The name that was looked up
        known: Names that are supported (for the hint)
    """

    def __init__(self, name: str, known: Optional[list[str]] = None):
        self.name = name
        self.known = known or []
        super().__init__(f"unknown mcu type \"{name}\"")


class UnsupportedBlockConfigurationError(ConfigurationError):
    """
    The profile's code size and block size select no block header format.

    This never happens for entries of the built-in profile table; it
    indicates a profile/size mismatch in caller supplied data.
    """

    def __init__(self, code_size: int, block_size: int):
        self.code_size = code_size
        self.block_size = block_size
        super().__init__(
            f"unknown code/block size (code_size={code_size}, block_size={block_size})"
        )


# =============================================================================
# Device Communication Exceptions
# =============================================================================

class DeviceError(TeensyLoaderError):
    """Base exception for USB bootloader communication errors."""
    pass


class DeviceNotFoundError(DeviceError):
    """
    The bootloader device could not be opened.

    Raised when:
    - No device with the bootloader identity is attached
    - The device is claimed by another driver
    - Wait mode is off and no reboot path brought the device up
    """
    pass


class WriteFailedError(DeviceError):
    """
    A block write was not accepted before its timeout expired.

    There is no partial-write recovery: the run aborts and the device is
    left in the bootloader.

    Attributes:
        address: Flash address of the block that failed
    """

    def __init__(self, address: int, message: str = ""):
        self.address = address
        if not message:
            message = f"error writing to teensy at address 0x{address:06X}"
        super().__init__(message)


class TransportError(DeviceError):
    """
    A single USB transfer failed.

    Raised by UsbTransport implementations. DeviceSession treats it as a
    retry condition while the write timeout budget lasts.
    """
    pass
