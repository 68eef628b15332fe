"""
Entry point for running kernpurge as a module.

Usage:
    python -m kernpurge [options]
"""

import sys
from kernpurge.cli import main

if __name__ == "__main__":
    sys.exit(main())
