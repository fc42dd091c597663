"""
USB Transport
=============

The loader talks to the bootloader with USB control transfers only. This
module defines the small capability the protocol layer needs, and a
pyusb implementation of it:

- ``find(vendor_id, product_id)``: open the first matching device
- ``control_transfer(...)``: send one OUT control transfer
- ``release(handle)``: release the interface and close the device

DeviceSession depends only on the UsbTransport interface, so tests (or a
different USB library) can substitute their own implementation.

Platform Notes
--------------
pyusb needs a libusb backend. On Linux, the user needs write access to
the device node; the PJRC udev rules (``49-teensy.rules``) grant it. When
the Teensy's serial or HID interface is bound to a kernel driver, the
driver is detached before use; a device whose driver cannot be detached
is skipped.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import usb.core
import usb.util

from teensy_loader.errors import TransportError

logger = logging.getLogger(__name__)


class UsbTransport(ABC):
    """Capability interface for raw USB access."""

    @abstractmethod
    def find(self, vendor_id: int, product_id: int) -> Optional[Any]:
        """
        Locate and open a device by identity.

        Returns:
            An opaque device handle, or None if no usable device is attached.
        """

    @abstractmethod
    def control_transfer(
        self,
        handle: Any,
        request_type: int,
        request: int,
        value: int,
        index: int,
        data: bytes,
        timeout_ms: int,
    ) -> int:
        """
        Send a host-to-device control transfer.

        Returns:
            Number of bytes transferred.

        Raises:
            TransportError: If the transfer fails or times out.
        """

    @abstractmethod
    def release(self, handle: Any) -> None:
        """Release the interface and close the handle."""


class PyUsbTransport(UsbTransport):
    """
    UsbTransport backed by pyusb.

    Usage:
        transport = PyUsbTransport()
        dev = transport.find(0x16C0, 0x0478)
        if dev is not None:
            transport.control_transfer(dev, 0x21, 9, 0x0200, 0, data, 500)
            transport.release(dev)
    """

    def __init__(self, interface: int = 0):
        self.interface = interface

    def find(self, vendor_id: int, product_id: int) -> Optional[usb.core.Device]:
        try:
            devices = usb.core.find(
                find_all=True, idVendor=vendor_id, idProduct=product_id
            )
            for dev in devices:
                if self._detach_kernel_driver(dev):
                    logger.debug(
                        "Opened USB device %04X:%04X (bus %s, address %s)",
                        vendor_id, product_id, dev.bus, dev.address,
                    )
                    return dev
        except usb.core.NoBackendError as e:
            raise TransportError(
                "No USB backend available. Install libusb for your platform."
            ) from e
        except usb.core.USBError as e:
            logger.debug("USB enumeration of %04X:%04X failed: %s", vendor_id, product_id, e)
        return None

    def _detach_kernel_driver(self, dev: usb.core.Device) -> bool:
        try:
            if dev.is_kernel_driver_active(self.interface):
                dev.detach_kernel_driver(self.interface)
        except NotImplementedError:
            # Windows and macOS backends do not expose kernel drivers
            logger.debug("Kernel driver query not supported by this USB backend")
        except usb.core.USBError as e:
            logger.warning("Found device but it is in use by a kernel driver: %s", e)
            usb.util.dispose_resources(dev)
            return False
        return True

    def control_transfer(
        self,
        handle: usb.core.Device,
        request_type: int,
        request: int,
        value: int,
        index: int,
        data: bytes,
        timeout_ms: int,
    ) -> int:
        try:
            return handle.ctrl_transfer(
                request_type, request, value, index, data, timeout_ms
            )
        except usb.core.USBError as e:
            raise TransportError(f"control transfer failed: {e}") from e

    def release(self, handle: usb.core.Device) -> None:
        # The device may already have left the bus after a boot or reboot
        try:
            usb.util.release_interface(handle, self.interface)
        except usb.core.USBError as e:
            logger.debug("Error releasing interface: %s", e)
        try:
            usb.util.dispose_resources(handle)
        except usb.core.USBError as e:
            logger.debug("Error closing device: %s", e)
