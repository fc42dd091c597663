"""
CLI Error Handling
==================

Maps loader exceptions to diagnostics and exit codes.
"""

import sys
import traceback
from enum import IntEnum
from typing import NoReturn

import click


class ExitCode(IntEnum):
    """Exit codes of the teensy-loader command."""
    SUCCESS = 0
    PROGRAMMING_ERROR = 1  # Hex file, device or write error
    INVALID_ARGS = 2       # Invalid arguments or missing files
    INTERNAL_ERROR = 3     # Unexpected internal error


def handle_cli_exception(error: Exception, verbose: bool = False) -> NoReturn:
    """
    Report an exception and exit with the matching exit code.

    Args:
        error: The exception that was raised
        verbose: If True, print full traceback for internal errors

    Raises:
        SystemExit: Always
    """
    from teensy_loader.errors import ConfigurationError, ParseError, TeensyLoaderError

    if isinstance(error, ParseError):
        # Parse errors already carry "file:line: error:" formatting
        click.echo(str(error), err=True)
        sys.exit(ExitCode.PROGRAMMING_ERROR)

    elif isinstance(error, ConfigurationError):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    elif isinstance(error, TeensyLoaderError):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.PROGRAMMING_ERROR)

    elif isinstance(error, click.BadParameter):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    elif isinstance(error, (FileNotFoundError, PermissionError)):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    else:
        click.echo(f"Internal error: {error}", err=True)
        if verbose:
            traceback.print_exc()
        sys.exit(ExitCode.INTERNAL_ERROR)
