"""
Intel HEX Record Parser
=======================

This module parses Intel HEX files into a FirmwareImage. It is strict
about everything that can put wrong bytes into flash and permissive about
the records that cannot.

Record Format
-------------
Each line is one record:

    :LLAAAATT[DD...]CC

    LL    byte count (number of DD bytes)
    AAAA  16-bit load address (big-endian)
    TT    record type
    DD    data bytes
    CC    checksum: two's complement of the sum of all preceding bytes

Record Types
------------
    00  Data                       bytes loaded at base + AAAA
    01  End Of File                stops reading
    02  Extended Segment Address   base = value << 4
    03  Start Segment Address      ignored
    04  Extended Linear Address    base = value << 16
    05  Start Linear Address       ignored

Permissive Extended Addresses
-----------------------------
A type 02/04 record with a wrong byte count, a non-hex value or a bad
checksum is accepted as a no-op rather than rejected. Some toolchains emit
such records, and rejecting them would refuse firmware that flashes fine.
The base is only changed by a record that validates completely.

FlexSPI Offset
--------------
Teensy 4.x hex files place code at the FlexSPI window 0x60000000. For
profiles with more than 1 MB of flash and 1024-byte blocks, an extended
linear base inside ``[0x60000000, 0x60000000 + code_size)`` is moved down
to zero.
"""

import logging
import re
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Final, Iterable, Optional, Union

from teensy_loader.errors import (
    AddressOverflowError,
    ChecksumMismatchError,
    HexFileError,
    MalformedRecordError,
    ParseError,
)
from teensy_loader.firmware.image import MAX_MEMORY_SIZE, FirmwareImage
from teensy_loader.mcus import MCUProfile

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Shortest possible record: ':' + LL + AAAA + TT + CC
MIN_RECORD_LENGTH: Final[int] = 11

# Offset of the first data byte within the line
DATA_OFFSET: Final[int] = 9

# Memory-mapped flash window used by i.MX RT (Teensy 4.x) hex files
FLEXSPI_BASE: Final[int] = 0x60000000

_HEX_DIGITS = re.compile(r"[0-9A-Fa-f]+")


class RecordType(IntEnum):
    """Intel HEX record types."""
    DATA = 0x00
    END_OF_FILE = 0x01
    EXTENDED_SEGMENT_ADDRESS = 0x02
    START_SEGMENT_ADDRESS = 0x03
    EXTENDED_LINEAR_ADDRESS = 0x04
    START_LINEAR_ADDRESS = 0x05


@dataclass(frozen=True)
class HexRecord:
    """
    One parsed Intel HEX record.

    Attributes:
        record_type: Raw record type byte (see RecordType)
        address: 16-bit load address field
        byte_count: Declared number of data bytes
        data: Data bytes (the 2-byte value for extended address records)
        checksum: Checksum byte, or None if it could not be read
        valid: False for an extended address record that is kept only as
               a no-op (bad length, value or checksum)
    """
    record_type: int
    address: int
    byte_count: int
    data: bytes = b""
    checksum: Optional[int] = None
    valid: bool = True

    @property
    def is_data(self) -> bool:
        return self.record_type == RecordType.DATA

    @property
    def is_end_of_file(self) -> bool:
        return self.record_type == RecordType.END_OF_FILE

    @property
    def is_extended_address(self) -> bool:
        return self.record_type in (
            RecordType.EXTENDED_SEGMENT_ADDRESS,
            RecordType.EXTENDED_LINEAR_ADDRESS,
        )

    @property
    def extended_value(self) -> Optional[int]:
        """
        The 16-bit value of a valid extended address record.

        None for other record types and for no-op extended records.
        """
        if not self.is_extended_address or not self.valid:
            return None
        return int.from_bytes(self.data, "big")

    @property
    def type_name(self) -> str:
        try:
            return RecordType(self.record_type).name
        except ValueError:
            return f"TYPE_{self.record_type:02X}"


# =============================================================================
# Line Parsing
# =============================================================================

def _hex_field(text: str, start: int, width: int) -> Optional[int]:
    """Decode ``width`` hex digits at ``start``, or None if they are not hex."""
    field = text[start:start + width]
    if len(field) != width or not _HEX_DIGITS.fullmatch(field):
        return None
    return int(field, 16)


def _require_field(text: str, start: int, width: int, name: str) -> int:
    value = _hex_field(text, start, width)
    if value is None:
        raise MalformedRecordError(
            f"invalid {name} field {text[start:start + width]!r}"
        )
    return value


def parse_line(
    line: str,
    extended_address: int = 0,
    capacity: int = MAX_MEMORY_SIZE,
) -> HexRecord:
    """
    Parse one Intel HEX line into a HexRecord.

    Every line must be a record, so an empty or whitespace-only line is
    a MalformedRecordError here. IntelHexReader.read_lines() is more
    lenient and skips such lines before they reach this function.

    Args:
        line: The record text; trailing whitespace and line terminators
              are ignored.
        extended_address: Current extended address base, used for the
              range check.
        capacity: Size of the target address space.

    Returns:
        The parsed record.

    Raises:
        MalformedRecordError: Missing ':', non-hex digit, or a line too
            short for its declared byte count.
        ChecksumMismatchError: The record bytes do not sum to zero.
        AddressOverflowError: The record reaches past ``capacity``.

    Example:
        >>> parse_line(":0400100001020304E2").data
        b'\\x01\\x02\\x03\\x04'
    """
    text = line.rstrip()

    if not text.startswith(":"):
        raise MalformedRecordError("record does not start with ':'")
    if len(text) < MIN_RECORD_LENGTH:
        raise MalformedRecordError(f"record too short ({len(text)} characters)")

    byte_count = _require_field(text, 1, 2, "byte count")
    if len(text) < MIN_RECORD_LENGTH + byte_count * 2:
        raise MalformedRecordError(
            f"record too short for byte count {byte_count}"
        )
    address = _require_field(text, 3, 4, "address")
    record_type = _require_field(text, 7, 2, "record type")

    if address + extended_address + byte_count >= capacity:
        raise AddressOverflowError(
            f"address 0x{address + extended_address:X} + {byte_count} bytes "
            f"exceeds image size 0x{capacity:X}"
        )

    total = byte_count + (address >> 8) + (address & 0xFF) + record_type

    if record_type in (
        RecordType.EXTENDED_SEGMENT_ADDRESS,
        RecordType.EXTENDED_LINEAR_ADDRESS,
    ):
        return _parse_extended_address(text, address, byte_count, record_type, total)

    data = bytes(
        _require_field(text, DATA_OFFSET + i * 2, 2, "data")
        for i in range(byte_count)
    )
    checksum = _require_field(text, DATA_OFFSET + byte_count * 2, 2, "checksum")

    total += sum(data) + checksum
    if total & 0xFF:
        raise ChecksumMismatchError(f"checksum mismatch (sum 0x{total & 0xFF:02X})")

    return HexRecord(record_type, address, byte_count, data, checksum)


def _parse_extended_address(
    text: str,
    address: int,
    byte_count: int,
    record_type: int,
    total: int,
) -> HexRecord:
    """Parse a type 02/04 record; problems yield a no-op record, never an error."""
    invalid = HexRecord(record_type, address, byte_count, valid=False)

    if byte_count != 2:
        logger.debug("Ignoring extended address record with byte count %d", byte_count)
        return invalid

    value = _hex_field(text, DATA_OFFSET, 4)
    if value is None:
        return invalid
    checksum = _hex_field(text, DATA_OFFSET + 4, 2)
    if checksum is None:
        return invalid

    total += (value >> 8) + (value & 0xFF) + checksum
    if total & 0xFF:
        logger.debug("Ignoring extended address record with bad checksum")
        return invalid

    return HexRecord(record_type, address, byte_count, value.to_bytes(2, "big"), checksum)


# =============================================================================
# File Reader
# =============================================================================

class IntelHexReader:
    """
    Reads Intel HEX files into a FirmwareImage.

    The reader owns the parse state that lives across lines: the extended
    address base, the running byte count and the end-of-file flag. All of
    it is reset at the start of every read, together with the image, so a
    reader can re-read a file that changed on disk.

    Usage:
        reader = IntelHexReader(profile=get_mcu("TEENSY40"))
        count = reader.read("blink.hex")
        block = reader.image.get_data(0, 1024)
    """

    def __init__(
        self,
        image: Optional[FirmwareImage] = None,
        profile: Optional[MCUProfile] = None,
    ):
        """
        Args:
            image: Image to fill (a new one is created if omitted).
            profile: Target MCU; enables the FlexSPI offset correction.
        """
        self.image = image if image is not None else FirmwareImage()
        self.profile = profile
        self.extended_address = 0
        self.byte_count = 0
        self.end_record_seen = False

    def reset(self) -> None:
        """Clear the image and all cross-line parse state."""
        self.image.reset()
        self.extended_address = 0
        self.byte_count = 0
        self.end_record_seen = False

    def parse_line(self, line: str) -> HexRecord:
        """Parse one line against the current state and apply it to the image."""
        record = parse_line(line, self.extended_address, self.image.capacity)
        self.apply(record)
        return record

    def apply(self, record: HexRecord) -> None:
        """Apply a parsed record's side effects."""
        if record.is_data:
            self.image.write(record.address + self.extended_address, record.data)
            self.byte_count += record.byte_count
        elif record.is_end_of_file:
            self.end_record_seen = True
        elif record.extended_value is not None:
            if record.record_type == RecordType.EXTENDED_SEGMENT_ADDRESS:
                self._set_extended_address(record.extended_value << 4)
            else:
                self._set_extended_address(record.extended_value << 16)

    def _set_extended_address(self, base: int) -> None:
        profile = self.profile
        if (
            profile is not None
            and profile.code_size > 1048576
            and profile.block_size >= 1024
            and FLEXSPI_BASE <= base < FLEXSPI_BASE + profile.code_size
        ):
            base -= FLEXSPI_BASE
        logger.debug("Extended address base now 0x%08X", base)
        self.extended_address = base

    def read_lines(self, lines: Iterable[str], filename: Optional[str] = None) -> int:
        """
        Parse hex records from an iterable of lines.

        Reading stops at the first End Of File record, or when the lines
        run out. Empty and whitespace-only lines are skipped rather than
        rejected; parse_line() itself treats them as malformed.

        Returns:
            Number of data bytes read.

        Raises:
            ParseError: On the first bad record, annotated with its line.
        """
        self.reset()

        for line_number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                self.parse_line(line)
            except ParseError as e:
                raise e.with_location(filename, line_number, line.strip()) from e
            if self.end_record_seen:
                break

        if not self.end_record_seen:
            logger.debug("No End Of File record in %s", filename or "input")

        return self.byte_count

    def read(self, path: Union[str, Path]) -> int:
        """
        Read an Intel HEX file.

        Returns:
            Number of data bytes read.

        Raises:
            HexFileError: If the file cannot be opened or decoded.
            ParseError: On the first bad record.
        """
        path = Path(path)
        try:
            with path.open("r", encoding="ascii") as fp:
                count = self.read_lines(fp, filename=str(path))
        except OSError as e:
            raise HexFileError(f"unable to open file \"{path}\": {e.strerror or e}") from e
        except UnicodeDecodeError as e:
            raise HexFileError(f"\"{path}\" is not an Intel HEX text file") from e

        if self.profile is not None and self.profile.code_size:
            usage = count / self.profile.code_size * 100.0
            logger.info("Read \"%s\": %d bytes, %.1f%% usage", path, count, usage)
        else:
            logger.info("Read \"%s\": %d bytes", path, count)
        return count
