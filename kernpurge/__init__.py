"""
kernpurge - Kernel Purge Tool

A command-line utility to find and purge obsolete kernel releases on
Debian-family systems, keeping the booted, held and latest releases.
"""

__version__ = "0.1.0"
__author__ = "kernpurge Contributors"
__license__ = "MIT"

from .cli import main

__all__ = ["main"]
