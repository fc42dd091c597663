"""
Teensy Loader Command-Line Interface
====================================

This package provides the ``teensy-loader`` command, a Click-based
front end to ProgrammingController.
"""

__all__ = ["loader"]
