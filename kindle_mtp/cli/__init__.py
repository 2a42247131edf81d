"""
kindle-mtp command-line interface.

This package provides the CLI for browsing and transferring files on
a Kindle from the command line.
"""

from kindle_mtp.cli.main import cli

__all__ = ["cli"]
