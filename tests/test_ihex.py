"""
Tests for the Intel HEX Parser
==============================

This module tests record parsing and the file reader:

1. Record Tests: grammar, checksums, record types
2. Extended Address Tests: segment/linear bases, permissive records,
   FlexSPI offset correction
3. Reader Tests: byte counting, EOF handling, error locations, files
"""

import pytest

from teensy_loader.errors import (
    AddressOverflowError,
    ChecksumMismatchError,
    HexFileError,
    MalformedRecordError,
    ParseError,
)
from teensy_loader.firmware.image import MAX_MEMORY_SIZE
from teensy_loader.firmware.ihex import (
    FLEXSPI_BASE,
    HexRecord,
    IntelHexReader,
    RecordType,
    parse_line,
)
from teensy_loader.mcus import MCUProfile, get_mcu

# Reference data record (load 16 bytes at 0x0100)
WIKI_RECORD = ":10010000214601360121470136007EFE09D2190140"
WIKI_DATA = bytes.fromhex("214601360121470136007EFE09D21901")
EOF_RECORD = ":00000001FF"


# =============================================================================
# Record Tests
# =============================================================================

class TestParseLine:
    """Tests for parse_line()."""

    def test_data_record(self):
        """A data record yields its address and bytes."""
        record = parse_line(WIKI_RECORD)
        assert record.is_data
        assert record.address == 0x0100
        assert record.byte_count == 16
        assert record.data == WIKI_DATA
        assert record.checksum == 0x40

    def test_end_of_file_record(self):
        record = parse_line(EOF_RECORD)
        assert record.is_end_of_file
        assert record.byte_count == 0
        assert record.data == b""

    def test_lowercase_hex_digits(self):
        """Hex digits are accepted in either case."""
        assert parse_line(WIKI_RECORD.lower()).data == WIKI_DATA

    def test_trailing_line_terminators(self):
        """CR/LF and trailing spaces are ignored."""
        assert parse_line(WIKI_RECORD + "\r\n").data == WIKI_DATA
        assert parse_line(WIKI_RECORD + "  \n").data == WIKI_DATA

    def test_start_linear_address_is_other(self, hex_record):
        """Record types without meaning for flashing are accepted as-is."""
        record = parse_line(hex_record(RecordType.START_LINEAR_ADDRESS, 0, b"\x00\x00\x01\x00"))
        assert not record.is_data
        assert not record.is_end_of_file
        assert record.extended_value is None
        assert record.type_name == "START_LINEAR_ADDRESS"

    def test_unknown_type_name(self, hex_record):
        record = parse_line(hex_record(0x07, 0))
        assert record.type_name == "TYPE_07"

    def test_missing_colon(self):
        with pytest.raises(MalformedRecordError, match="':'"):
            parse_line(WIKI_RECORD[1:])

    def test_too_short(self):
        with pytest.raises(MalformedRecordError, match="too short"):
            parse_line(":000000")

    def test_too_short_for_byte_count(self):
        """The line must hold every byte the count declares."""
        with pytest.raises(MalformedRecordError, match="byte count 16"):
            parse_line(WIKI_RECORD[:-4])

    def test_non_hex_byte_count(self):
        with pytest.raises(MalformedRecordError, match="byte count"):
            parse_line(":G0010000214601360121470136007EFE09D2190140")

    def test_non_hex_data(self):
        with pytest.raises(MalformedRecordError, match="data"):
            parse_line(":10010000214601360121470136007EFE09D219ZZ40")

    def test_sign_is_not_a_hex_digit(self):
        """int(x, 16) would accept '+1'; the parser must not."""
        with pytest.raises(MalformedRecordError):
            parse_line(":10010000+14601360121470136007EFE09D2190140")

    def test_checksum_mismatch(self):
        with pytest.raises(ChecksumMismatchError):
            parse_line(WIKI_RECORD[:-2] + "41")

    def test_eof_checksum_is_checked(self):
        with pytest.raises(ChecksumMismatchError):
            parse_line(":00000001FE")

    def test_every_single_byte_corruption_fails(self):
        """Changing any one byte of a valid data record makes it invalid."""
        raw = bytes.fromhex(WIKI_RECORD[1:])
        for position in range(len(raw)):
            corrupted = bytearray(raw)
            corrupted[position] = (corrupted[position] + 1) & 0xFF
            line = ":" + corrupted.hex().upper()
            with pytest.raises(ParseError):
                parse_line(line)

    def test_address_overflow(self):
        """A record reaching the image capacity is rejected."""
        with pytest.raises(AddressOverflowError):
            parse_line(WIKI_RECORD, extended_address=MAX_MEMORY_SIZE - 0x100)

    def test_address_below_capacity(self):
        record = parse_line(WIKI_RECORD, extended_address=MAX_MEMORY_SIZE - 0x200)
        assert record.is_data

    def test_record_is_immutable(self):
        record = parse_line(WIKI_RECORD)
        with pytest.raises(AttributeError):
            record.address = 0


# =============================================================================
# Extended Address Tests
# =============================================================================

class TestExtendedAddress:
    """Tests for type 02/04 records."""

    def test_extended_linear_value(self):
        record = parse_line(":020000040000FA")
        assert record.is_extended_address
        assert record.valid
        assert record.extended_value == 0

    def test_extended_segment_value(self, hex_record):
        record = parse_line(hex_record(RecordType.EXTENDED_SEGMENT_ADDRESS, 0, b"\x12\x00"))
        assert record.extended_value == 0x1200

    def test_bad_checksum_is_no_op(self):
        """Bad checksums on extended records do not raise."""
        record = parse_line(":020000040000FB")
        assert isinstance(record, HexRecord)
        assert not record.valid
        assert record.extended_value is None

    def test_bad_length_is_no_op(self, hex_record):
        record = parse_line(hex_record(RecordType.EXTENDED_LINEAR_ADDRESS, 0, b"\x00\x01\x02"))
        assert not record.valid

    def test_non_hex_value_is_no_op(self):
        record = parse_line(":0200000400XXFA")
        assert not record.valid

    def test_reader_applies_segment_base(self, hex_record):
        reader = IntelHexReader()
        reader.read_lines([
            hex_record(RecordType.EXTENDED_SEGMENT_ADDRESS, 0, b"\x10\x00"),
            hex_record(RecordType.DATA, 0x0004, b"\xAA\xBB"),
            EOF_RECORD,
        ])
        assert reader.extended_address == 0x10000
        assert reader.image.get_data(0x10004, 2) == b"\xAA\xBB"

    def test_reader_applies_linear_base(self, hex_record):
        reader = IntelHexReader()
        reader.read_lines([
            hex_record(RecordType.EXTENDED_LINEAR_ADDRESS, 0, b"\x00\x02"),
            hex_record(RecordType.DATA, 0x0010, b"\x01"),
            EOF_RECORD,
        ])
        assert reader.image.get_data(0x20010, 1) == b"\x01"

    def test_invalid_record_keeps_base(self, hex_record):
        """A no-op extended record leaves the previous base in place."""
        reader = IntelHexReader()
        reader.read_lines([
            hex_record(RecordType.EXTENDED_LINEAR_ADDRESS, 0, b"\x00\x01"),
            ":020000040002F9",  # checksum should be F8
            hex_record(RecordType.DATA, 0, b"\x55"),
            EOF_RECORD,
        ])
        assert reader.extended_address == 0x10000
        assert reader.image.get_data(0x10000, 1) == b"\x55"

    def test_flexspi_offset_removed_for_large_profiles(self, hex_record):
        """0x6000 << 16 maps to address 0 on a Teensy 4.0."""
        reader = IntelHexReader(profile=get_mcu("TEENSY40"))
        reader.read_lines([
            hex_record(RecordType.EXTENDED_LINEAR_ADDRESS, 0, b"\x60\x00"),
            hex_record(RecordType.DATA, 0, b"\xDE\xAD\xBE\xEF"),
            EOF_RECORD,
        ])
        assert reader.extended_address == 0
        assert reader.image.get_data(0, 4) == b"\xDE\xAD\xBE\xEF"

    def test_flexspi_offset_inside_window(self, hex_record):
        reader = IntelHexReader(profile=get_mcu("TEENSY41"))
        reader.read_lines([hex_record(RecordType.EXTENDED_LINEAR_ADDRESS, 0, b"\x60\x10")])
        assert reader.extended_address == 0x100000

    def test_flexspi_offset_not_applied_outside_window(self, hex_record):
        """Bases beyond code_size past 0x60000000 are left alone."""
        profile = get_mcu("TEENSY40")
        base = FLEXSPI_BASE + profile.code_size + 0x10000
        reader = IntelHexReader(profile=profile)
        reader.read_lines([
            hex_record(RecordType.EXTENDED_LINEAR_ADDRESS, 0, (base >> 16).to_bytes(2, "big")),
        ])
        assert reader.extended_address == base

    def test_flexspi_offset_not_applied_to_small_profiles(self, hex_record):
        """A 1 MB board keeps the raw base, which then overflows the image."""
        reader = IntelHexReader(profile=get_mcu("TEENSY36"))
        with pytest.raises(AddressOverflowError):
            reader.read_lines([
                hex_record(RecordType.EXTENDED_LINEAR_ADDRESS, 0, b"\x60\x00"),
                hex_record(RecordType.DATA, 0, b"\x00"),
            ])

    def test_flexspi_offset_needs_large_blocks(self, hex_record):
        profile = MCUProfile("custom", 2 * 1024 * 1024, 512)
        reader = IntelHexReader(profile=profile)
        reader.read_lines([hex_record(RecordType.EXTENDED_LINEAR_ADDRESS, 0, b"\x60\x00")])
        assert reader.extended_address == FLEXSPI_BASE


# =============================================================================
# Reader Tests
# =============================================================================

class TestIntelHexReader:
    """Tests for IntelHexReader."""

    def test_scenario_sixteen_bytes(self, hex_record):
        """Extended record + one 16-byte record counts 16 bytes."""
        reader = IntelHexReader(profile=MCUProfile("mk20dx128", 131072, 1024))
        data = bytes(range(16))
        count = reader.read_lines([
            ":020000040000FA",
            hex_record(RecordType.DATA, 0, data),
            EOF_RECORD,
        ])
        assert count == 16
        assert reader.image.get_data(0, 16) == data
        assert reader.end_record_seen

    def test_stops_at_end_of_file(self):
        """Lines after the EOF record are never parsed."""
        reader = IntelHexReader()
        count = reader.read_lines([WIKI_RECORD, EOF_RECORD, "garbage"])
        assert count == 16

    def test_missing_end_of_file(self):
        """Without an EOF record, reading stops with the input."""
        reader = IntelHexReader()
        assert reader.read_lines([WIKI_RECORD]) == 16
        assert not reader.end_record_seen

    def test_blank_lines_skipped(self):
        reader = IntelHexReader()
        assert reader.read_lines(["\n", WIKI_RECORD + "\n", "   \n", EOF_RECORD]) == 16

    def test_blank_line_is_malformed_on_its_own(self):
        """Only the reader skips blank lines; a single blank record is rejected."""
        for line in ("", "   \n", "\t"):
            with pytest.raises(MalformedRecordError, match="':'"):
                parse_line(line)

    def test_counts_every_data_byte(self, hex_record):
        """Overlapping records still add to the byte count."""
        reader = IntelHexReader()
        count = reader.read_lines([
            hex_record(RecordType.DATA, 0, b"\x01\x02"),
            hex_record(RecordType.DATA, 0, b"\x03\x04"),
            EOF_RECORD,
        ])
        assert count == 4
        assert reader.image.get_data(0, 2) == b"\x03\x04"

    def test_read_resets_state(self, hex_record):
        """Each read starts from an empty image and zero base."""
        reader = IntelHexReader()
        reader.read_lines([
            hex_record(RecordType.EXTENDED_LINEAR_ADDRESS, 0, b"\x00\x01"),
            hex_record(RecordType.DATA, 0, b"\x11"),
        ])
        reader.read_lines([hex_record(RecordType.DATA, 0, b"\x22"), EOF_RECORD])
        assert reader.byte_count == 1
        assert reader.image.get_data(0x10000, 1) == b"\xFF"
        assert reader.image.get_data(0, 1) == b"\x22"

    def test_checksum_error_leaves_no_data(self):
        """A failed record writes nothing to the image."""
        reader = IntelHexReader()
        with pytest.raises(ChecksumMismatchError):
            reader.read_lines([WIKI_RECORD[:-2] + "00"])
        assert not reader.image.bytes_in_range(0, 0x1FF)

    def test_error_location(self):
        """Errors name the file and 1-based line number."""
        reader = IntelHexReader()
        with pytest.raises(ChecksumMismatchError) as excinfo:
            reader.read_lines([WIKI_RECORD, ":00000001FE", EOF_RECORD], filename="blink.hex")
        error = excinfo.value
        assert error.filename == "blink.hex"
        assert error.line_number == 2
        assert "blink.hex:2: error:" in str(error)
        assert ":00000001FE" in str(error)

    def test_read_file(self, tmp_path, hex_record):
        path = tmp_path / "blink.hex"
        path.write_text(
            "\n".join([hex_record(RecordType.DATA, 0x40, b"\x12\x34\x56"), EOF_RECORD]) + "\n"
        )
        reader = IntelHexReader(profile=get_mcu("TEENSY2"))
        assert reader.read(path) == 3
        assert reader.image.get_data(0x40, 3) == b"\x12\x34\x56"

    def test_read_file_with_crlf(self, tmp_path):
        path = tmp_path / "dos.hex"
        path.write_bytes((WIKI_RECORD + "\r\n" + EOF_RECORD + "\r\n").encode("ascii"))
        assert IntelHexReader().read(str(path)) == 16

    def test_read_missing_file(self, tmp_path):
        with pytest.raises(HexFileError, match="unable to open"):
            IntelHexReader().read(tmp_path / "missing.hex")

    def test_read_binary_file(self, tmp_path):
        path = tmp_path / "firmware.bin"
        path.write_bytes(b"\x80\x81\x82\n")
        with pytest.raises(HexFileError):
            IntelHexReader().read(path)
