"""
Loader Configuration
====================

Timing settings for a programming run. The defaults match what the
HalfKay bootloader needs; they can be overridden from the environment
for slow USB hubs or virtual machines:

    TEENSY_LOADER_FIRST_BLOCK_TIMEOUT   seconds for the first (erase) block
    TEENSY_LOADER_BLOCK_TIMEOUT         seconds for every later block
    TEENSY_LOADER_POLL_INTERVAL         seconds between device searches

Invalid or non-positive values are ignored.
"""

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class LoaderConfig:
    """
    Timing configuration for a programming run.

    Attributes:
        first_block_timeout: Write budget for the first block; the
            bootloader erases the chip before accepting it (default 5.0 s)
        block_timeout: Write budget for every other block (default 0.5 s)
        boot_timeout: Write budget for the boot command (default 0.5 s)
        poll_interval: Delay between attempts to open the bootloader
            while waiting for it to appear (default 0.25 s)
        retry_tick: Sleep after a failed write attempt, also charged to
            the write budget (default 0.01 s)
    """

    first_block_timeout: float = 5.0
    block_timeout: float = 0.5
    boot_timeout: float = 0.5
    poll_interval: float = 0.25
    retry_tick: float = 0.01

    @classmethod
    def from_env(cls) -> "LoaderConfig":
        """Create a LoaderConfig with overrides from environment variables."""
        config = cls()

        overrides = {
            "TEENSY_LOADER_FIRST_BLOCK_TIMEOUT": "first_block_timeout",
            "TEENSY_LOADER_BLOCK_TIMEOUT": "block_timeout",
            "TEENSY_LOADER_POLL_INTERVAL": "poll_interval",
        }
        for variable, attribute in overrides.items():
            if value := os.environ.get(variable):
                try:
                    seconds = float(value)
                except ValueError:
                    logger.warning("Ignoring %s=%r: not a number", variable, value)
                    continue
                if seconds > 0:
                    setattr(config, attribute, seconds)

        return config
