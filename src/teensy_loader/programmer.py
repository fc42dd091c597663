"""
Programming Controller
======================

This module runs a complete flashing session:

1. Read the hex file (before touching USB, so file errors surface first)
2. Find the bootloader, rebooting the board into it if requested
3. Re-read the hex file if we had to wait for the device
4. Write every block that holds data (the first block always)
5. Boot the new application
6. Close the device

Block Skipping
--------------
Flash outside the firmware does not need writing: a block is skipped when
the hex file put no bytes in it, or only 0xFF bytes (the erased value).
The first block is never skipped. Writing it makes the bootloader erase
the whole chip, so even an empty image leaves the flash in a known state.

Failure Model
-------------
Every error is fatal and ends the run immediately; there is no partial
success. The device is always closed on the way out. A failed block write
leaves the board in the bootloader, ready for another attempt.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from teensy_loader.config import LoaderConfig
from teensy_loader.errors import ConfigurationError, DeviceNotFoundError, WriteFailedError
from teensy_loader.firmware.image import FirmwareImage
from teensy_loader.firmware.ihex import IntelHexReader
from teensy_loader.mcus import MCUProfile
from teensy_loader.protocol.blocks import encode_block, write_size
from teensy_loader.protocol.session import DeviceSession

logger = logging.getLogger(__name__)

# Type alias for progress callback: (blocks done, total blocks)
ProgressCallback = Callable[[int, int], None]


@dataclass
class ProgramOptions:
    """
    What a run should do.

    Attributes:
        filename: Intel HEX file (not needed with boot_only)
        wait_for_device: Keep polling until the bootloader appears
        hard_reboot: Reboot through a rebootor device if not found
        soft_reboot: Reboot through the board's USB serial if not found
        reboot_after_programming: Start the application when done
        boot_only: Only start the application, do not program
    """
    filename: Optional[Union[str, Path]] = None
    wait_for_device: bool = False
    hard_reboot: bool = False
    soft_reboot: bool = False
    reboot_after_programming: bool = True
    boot_only: bool = False


@dataclass
class ProgramResult:
    """Summary of a completed run."""
    bytes_read: int = 0
    blocks_written: int = 0
    blocks_skipped: int = 0
    waited: bool = False
    booted: bool = False


class ProgrammingController:
    """
    Orchestrates a programming run for one MCU.

    Usage:
        session = DeviceSession(PyUsbTransport())
        controller = ProgrammingController(
            get_mcu("TEENSY40"),
            session,
            ProgramOptions(filename="blink.hex", wait_for_device=True),
        )
        result = controller.run()
    """

    def __init__(
        self,
        profile: MCUProfile,
        session: DeviceSession,
        options: ProgramOptions,
        config: Optional[LoaderConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        progress: Optional[ProgressCallback] = None,
    ):
        self.profile = profile
        self.session = session
        self.options = options
        self.config = config or LoaderConfig()
        self.progress = progress
        self._sleep = sleep
        self.reader = IntelHexReader(profile=profile)

    @property
    def image(self) -> FirmwareImage:
        return self.reader.image

    def run(self) -> ProgramResult:
        """
        Execute the run described by the options.

        Returns:
            ProgramResult summary.

        Raises:
            ConfigurationError: Missing filename, or a profile without a
                block format.
            ParseError, HexFileError: The hex file is unusable.
            DeviceNotFoundError: No bootloader and no wait mode.
            WriteFailedError: A block was not accepted in time.
        """
        options = self.options
        if options.filename is None and not options.boot_only:
            raise ConfigurationError("filename must be specified")

        size = write_size(self.profile)
        result = ProgramResult()

        if not options.boot_only:
            result.bytes_read = self.read_hex()

        try:
            result.waited = self.open_device()

            if options.boot_only:
                result.booted = self.boot(size)
                return result

            if result.waited:
                # The file may have been rebuilt while we waited
                result.bytes_read = self.read_hex()

            self.program(result)

            if options.reboot_after_programming:
                result.booted = self.boot(size)
        finally:
            self.session.close()

        return result

    def read_hex(self) -> int:
        """Read the hex file into the image; returns the data byte count."""
        return self.reader.read(self.options.filename)

    def open_device(self) -> bool:
        """
        Open the bootloader, rebooting into it or waiting as configured.

        Each reboot method is tried at most once, and trying one turns on
        waiting since the bootloader takes a moment to enumerate.

        Returns:
            True if the bootloader did not answer at once and we waited.

        Raises:
            DeviceNotFoundError: If the bootloader is absent and waiting
                is off.
        """
        hard_reboot = self.options.hard_reboot
        soft_reboot = self.options.soft_reboot
        wait = self.options.wait_for_device
        waited = False

        while not self.session.open():
            if hard_reboot:
                if self.session.hard_reboot():
                    logger.info("Hard reboot performed")
                hard_reboot = False
                wait = True

            if soft_reboot:
                if self.session.soft_reboot():
                    logger.info("Soft reboot performed")
                soft_reboot = False
                wait = True

            if not wait:
                raise DeviceNotFoundError("unable to open device (try -w option)")

            if not waited:
                logger.info("Waiting for Teensy device...")
                logger.info("  (try pressing the reset button)")
                waited = True
            self._sleep(self.config.poll_interval)

        logger.info("Found HalfKay bootloader")
        return waited

    def program(self, result: Optional[ProgramResult] = None) -> ProgramResult:
        """
        Write the image to the open bootloader.

        Raises:
            WriteFailedError: If a block write times out.
        """
        result = result if result is not None else ProgramResult()
        profile = self.profile
        image = self.image
        block_size = profile.block_size
        total = profile.block_count
        first_block = True

        logger.info("Programming...")
        for index, addr in enumerate(range(0, profile.code_size, block_size)):
            if not first_block and (
                not image.bytes_in_range(addr, addr + block_size - 1)
                or image.is_blank(addr, block_size)
            ):
                result.blocks_skipped += 1
                self._report(index + 1, total)
                continue

            block = encode_block(image, addr, profile)
            timeout = (
                self.config.first_block_timeout if first_block
                else self.config.block_timeout
            )
            logger.debug("Writing block at 0x%06X (%d bytes)", addr, block.size)
            if not self.session.write(block.to_bytes(), timeout):
                raise WriteFailedError(addr)

            first_block = False
            result.blocks_written += 1
            self._report(index + 1, total)

        logger.info(
            "Wrote %d blocks, skipped %d", result.blocks_written, result.blocks_skipped
        )
        return result

    def boot(self, size: int) -> bool:
        """Start the application; a lost boot command is only a warning."""
        booted = self.session.boot(size, self.config.boot_timeout)
        if not booted:
            logger.warning("Boot command was not acknowledged")
        return booted

    def _report(self, done: int, total: int) -> None:
        if self.progress is not None:
            self.progress(done, total)
