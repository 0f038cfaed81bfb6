"""
CHIP-8 Interpreter for Dual-Plane Handheld Displays

A CHIP-8 / SCHIP interpreter (with a handful of XO-CHIP opcodes) modelled on
grayscale graphing-calculator hardware: a two-plane framebuffer, a ~60 Hz
timer interrupt and an 18-slot keypad vector. ROMs and save-states use a
small versioned, tagged binary format.
"""

__version__ = "1.0.0"
