"""
teensy-loader - Command-Line Interface
======================================

This module implements the command-line interface for flashing Intel HEX
firmware onto boards running the HalfKay bootloader.

Usage Examples
--------------
Program a Teensy 4.0, waiting for the reset button:
    $ teensy-loader --mcu=TEENSY40 -w blink.hex

Reboot a running Teensy 3.2 into the bootloader and program it:
    $ teensy-loader --mcu=TEENSY32 -s -v blink.hex

Start the application already in flash:
    $ teensy-loader --mcu=TEENSY40 -b

List supported boards:
    $ teensy-loader --list-mcus

Flags
-----
    -w  wait for device to appear
    -r  use hard reboot if device not online
    -s  use soft reboot if device not online (Teensy 3.x & 4.x)
    -n  no reboot after programming
    -b  boot only, do not program
    -v  verbose output

Flags can be combined, e.g. ``-wv``.

Exit Codes
----------
0 - Success
1 - Hex file, device or write error
2 - Invalid arguments
3 - Internal error
"""

import logging
from pathlib import Path
from typing import Optional

import click

from teensy_loader import __version__
from teensy_loader.cli.errors import handle_cli_exception
from teensy_loader.config import LoaderConfig
from teensy_loader.mcus import get_mcu, get_supported_mcus
from teensy_loader.programmer import ProgramOptions, ProgrammingController
from teensy_loader.protocol.session import DeviceSession
from teensy_loader.transport import PyUsbTransport

logger = logging.getLogger(__name__)


# =============================================================================
# CLI Utilities
# =============================================================================

def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if verbose else "%(message)s",
    )


def progress_bar(current: int, total: int) -> None:
    """Simple text progress bar for programming."""
    if total == 0:
        return
    percent = current * 100 // total
    filled = percent // 2
    bar = "=" * filled + "-" * (50 - filled)
    click.echo(f"\r[{bar}] {percent:3d}% ({current}/{total} blocks)", nl=False)
    if current >= total:
        click.echo()


def list_mcus(ctx: click.Context, param: click.Parameter, value: bool) -> None:
    """Eager callback for --list-mcus."""
    if not value or ctx.resilient_parsing:
        return
    click.echo("supported mcus are:")
    for name in get_supported_mcus():
        click.echo(f" - {name}")
    ctx.exit()


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "filename",
    required=False,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--mcu",
    required=True,
    type=click.Choice(get_supported_mcus(), case_sensitive=False),
    metavar="<MCU>",
    help="Target microcontroller or board (see --list-mcus)",
)
@click.option(
    "--list-mcus",
    is_flag=True,
    expose_value=False,
    is_eager=True,
    callback=list_mcus,
    help="List supported MCUs and exit",
)
@click.option("-w", "wait", is_flag=True, help="Wait for device to appear")
@click.option("-r", "hard_reboot", is_flag=True, help="Use hard reboot if device not online")
@click.option(
    "-s", "soft_reboot",
    is_flag=True,
    help="Use soft reboot if device not online (Teensy 3.x & 4.x)",
)
@click.option("-n", "no_reboot", is_flag=True, help="No reboot after programming")
@click.option("-b", "boot_only", is_flag=True, help="Boot only, do not program")
@click.option("-v", "verbose", is_flag=True, help="Verbose output")
@click.version_option(version=__version__, prog_name="teensy-loader")
def main(
    filename: Optional[Path],
    mcu: str,
    wait: bool,
    hard_reboot: bool,
    soft_reboot: bool,
    no_reboot: bool,
    boot_only: bool,
    verbose: bool,
) -> None:
    """
    Flash FILENAME (Intel HEX) onto a Teensy running the HalfKay bootloader.

    Press the board's program button, or use -s / -r to reboot a running
    board into the bootloader. Use `teensy-loader --list-mcus` to list
    supported mcus.
    """
    setup_logging(verbose)

    if filename is None and not boot_only:
        raise click.UsageError("filename must be specified")

    try:
        profile = get_mcu(mcu)
        config = LoaderConfig.from_env()
        session = DeviceSession(PyUsbTransport(), retry_tick=config.retry_tick)
        options = ProgramOptions(
            filename=filename,
            wait_for_device=wait,
            hard_reboot=hard_reboot,
            soft_reboot=soft_reboot,
            reboot_after_programming=not no_reboot,
            boot_only=boot_only,
        )
        logger.info("teensy-loader %s, target %s", __version__, profile)

        controller = ProgrammingController(
            profile,
            session,
            options,
            config=config,
            progress=None if verbose or boot_only else progress_bar,
        )
        controller.run()
    except Exception as e:
        handle_cli_exception(e, verbose=verbose)


if __name__ == "__main__":
    main()
