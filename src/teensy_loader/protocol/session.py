"""
HalfKay Device Session
======================

DeviceSession owns the USB handle of the bootloader for one programming
run and implements every exchange the loader has with a Teensy:

- opening the bootloader (``0x16C0:0x0478``)
- writing blocks, with a timeout budget
- rebooting a running board into the bootloader, either through a
  separate "rebootor" device (hard reboot) or through the board's own USB
  serial interface (soft reboot)
- starting the application (boot)

Session States
--------------
    CLOSED -> SEARCHING -> FOUND -> PROGRAMMING -> CLOSED
                                -> BOOTING     -> CLOSED

A failed search returns to CLOSED.

Write Retries
-------------
The bootloader NAKs transfers while it erases or programs flash, so a
write is retried until its timeout budget is used up. Each failed
attempt sleeps 10 ms and takes 10 ms off the budget. The first block of a
run gets a long budget because it triggers the chip erase.

Reboot Commands
---------------
    Hard reboot: "reboot" sent to the rebootor device 0x16C0:0x0477
    Soft reboot: SET_LINE_CODING (request 0x20) of 134 baud, 8 data bits,
                 sent to the board's serial device 0x16C0:0x0483. The
                 Teensy USB stack jumps to the bootloader on this baud rate.
"""

import logging
import time
from enum import Enum
from typing import Any, Callable, Final, Optional

from teensy_loader.errors import TransportError
from teensy_loader.protocol.blocks import encode_boot_block
from teensy_loader.transport import UsbTransport

logger = logging.getLogger(__name__)


# =============================================================================
# Device Identities
# =============================================================================

VENDOR_ID: Final[int] = 0x16C0
BOOTLOADER_PRODUCT_ID: Final[int] = 0x0478
REBOOTOR_PRODUCT_ID: Final[int] = 0x0477
SERIAL_PRODUCT_ID: Final[int] = 0x0483

# =============================================================================
# Control Transfer Parameters
# =============================================================================

# Host-to-device, class request, interface recipient
REQUEST_TYPE_CLASS_INTERFACE_OUT: Final[int] = 0x21

# HID SET_REPORT
REQUEST_SET_REPORT: Final[int] = 0x09

# CDC SET_LINE_CODING
REQUEST_SET_LINE_CODING: Final[int] = 0x20

# Output report, ID 0
REPORT_VALUE: Final[int] = 0x0200

HARD_REBOOT_COMMAND: Final[bytes] = b"reboot"
HARD_REBOOT_TIMEOUT_MS: Final[int] = 100

# 134 baud (0x86), 1 stop bit, no parity, 8 data bits
SOFT_REBOOT_COMMAND: Final[bytes] = bytes([0x86, 0x00, 0x00, 0x00, 0x00, 0x00, 0x08])
SOFT_REBOOT_TIMEOUT_MS: Final[int] = 10000

# Sleep between failed write attempts, also subtracted from the budget
RETRY_TICK: Final[float] = 0.01


class SessionState(Enum):
    """Lifecycle of a DeviceSession."""
    CLOSED = "closed"
    SEARCHING = "searching"
    FOUND = "found"
    PROGRAMMING = "programming"
    BOOTING = "booting"


class DeviceSession:
    """
    Connection to a HalfKay bootloader.

    Usage:
        session = DeviceSession(PyUsbTransport())
        if session.open():
            session.write(block.to_bytes(), timeout=5.0)
            session.boot(len(block.to_bytes()))
            session.close()

    The session is not thread-safe; a run has exactly one owner.
    """

    def __init__(
        self,
        transport: UsbTransport,
        sleep: Callable[[float], None] = time.sleep,
        retry_tick: float = RETRY_TICK,
    ):
        """
        Args:
            transport: USB capability used for every transfer.
            sleep: Sleep function between write retries (injectable for tests).
            retry_tick: Seconds slept and charged per failed write attempt.
        """
        self.transport = transport
        self._sleep = sleep
        self.retry_tick = retry_tick
        self._handle: Optional[Any] = None
        self._state = SessionState.CLOSED

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        """True while a bootloader handle is held."""
        return self._handle is not None

    # -------------------------------------------------------------------------
    # Bootloader Handle
    # -------------------------------------------------------------------------

    def open(self) -> bool:
        """
        Locate and open the bootloader, closing any previous handle first.

        Returns:
            True if the bootloader was found.
        """
        self.close()
        self._state = SessionState.SEARCHING
        self._handle = self.transport.find(VENDOR_ID, BOOTLOADER_PRODUCT_ID)
        if self._handle is None:
            self._state = SessionState.CLOSED
            return False
        self._state = SessionState.FOUND
        return True

    def write(self, payload: bytes, timeout: float) -> bool:
        """
        Send one transfer to the bootloader, retrying within ``timeout``.

        Args:
            payload: Complete transfer (header and block)
            timeout: Budget in seconds for all attempts together

        Returns:
            True once a transfer is accepted, False if the budget runs out
            or no bootloader is open.
        """
        if self._handle is None:
            return False
        if self._state is SessionState.FOUND:
            self._state = SessionState.PROGRAMMING

        # Budget in whole milliseconds; libusb reads a 0 ms timeout as "wait forever"
        remaining_ms = int(round(timeout * 1000.0))
        tick_ms = max(1, int(round(self.retry_tick * 1000.0)))
        attempts = 0
        while remaining_ms > 0:
            attempts += 1
            try:
                self.transport.control_transfer(
                    self._handle,
                    REQUEST_TYPE_CLASS_INTERFACE_OUT,
                    REQUEST_SET_REPORT,
                    REPORT_VALUE,
                    0,
                    payload,
                    remaining_ms,
                )
                return True
            except TransportError as e:
                logger.debug("Write attempt %d failed: %s", attempts, e)
            self._sleep(self.retry_tick)
            remaining_ms -= tick_ms

        logger.debug("Write gave up after %d attempts", attempts)
        return False

    def close(self) -> None:
        """Release the bootloader handle; safe to call when already closed."""
        if self._handle is not None:
            self.transport.release(self._handle)
            self._handle = None
        self._state = SessionState.CLOSED

    def boot(self, write_size: int, timeout: float = 0.5) -> bool:
        """
        Tell the bootloader to start the application.

        Args:
            write_size: Transfer size used for this MCU
            timeout: Write budget in seconds

        Returns:
            True if the command was accepted.
        """
        self._state = SessionState.BOOTING
        logger.info("Booting")
        return self.write(encode_boot_block(write_size), timeout)

    # -------------------------------------------------------------------------
    # Reboot Into Bootloader
    # -------------------------------------------------------------------------

    def hard_reboot(self) -> bool:
        """
        Ask a rebootor device to reset the board into its bootloader.

        Returns:
            True if the rebootor was found and accepted the command.
        """
        return self._send_once(
            REBOOTOR_PRODUCT_ID,
            REQUEST_SET_REPORT,
            REPORT_VALUE,
            HARD_REBOOT_COMMAND,
            HARD_REBOOT_TIMEOUT_MS,
            "rebootor",
        )

    def soft_reboot(self) -> bool:
        """
        Ask a running Teensy application to jump to its bootloader.

        Returns:
            True if the board's serial device was found and accepted the
            command.
        """
        return self._send_once(
            SERIAL_PRODUCT_ID,
            REQUEST_SET_LINE_CODING,
            0,
            SOFT_REBOOT_COMMAND,
            SOFT_REBOOT_TIMEOUT_MS,
            "serial device",
        )

    def _send_once(
        self,
        product_id: int,
        request: int,
        value: int,
        data: bytes,
        timeout_ms: int,
        description: str,
    ) -> bool:
        """Open a separate device, send one transfer, and close it again."""
        handle = self.transport.find(VENDOR_ID, product_id)
        if handle is None:
            logger.warning("Unable to find %s %04X:%04X", description, VENDOR_ID, product_id)
            return False

        try:
            self.transport.control_transfer(
                handle,
                REQUEST_TYPE_CLASS_INTERFACE_OUT,
                request,
                value,
                0,
                data,
                timeout_ms,
            )
        except TransportError as e:
            logger.warning("Unable to reboot through %s: %s", description, e)
            return False
        finally:
            self.transport.release(handle)

        return True
