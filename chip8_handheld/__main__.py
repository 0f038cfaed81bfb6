"""
Main entry point for the chip8_handheld package.

This module allows the package to be run as a module using:
python -m chip8_handheld [args]
"""

import sys

from chip8_handheld.main import main

if __name__ == "__main__":
    sys.exit(main())
