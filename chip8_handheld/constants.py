"""
Global constants for the CHIP-8 interpreter.
"""

# Interpreter version. The major number guards rom and save compatibility;
# the minor number marks backwards (but not forwards) compatible changes.
MAJOR_VERSION = 1
MINOR_VERSION = 0
PATCH_VERSION = 0
VERSION = (MAJOR_VERSION, MINOR_VERSION, PATCH_VERSION)

# Memory layout
MEMORY_SIZE = 0x1000
PROGRAM_START = 0x200
MAX_PROGRAM_SIZE = MEMORY_SIZE - PROGRAM_START
MAX_FETCH_ADDRESS = 0x0FFE
ADDRESS_MASK = 0x0FFF

NUM_REGISTERS = 16
FLAG_REGISTER = 0xF
STACK_CAPACITY = 16

# Logical canvas
HIRES_WIDTH = 128
HIRES_HEIGHT = 64
WINDOW_ROW_BYTES = HIRES_WIDTH // 8
PLANE_SNAPSHOT_SIZE = WINDOW_ROW_BYTES * HIRES_HEIGHT
DISPLAY_SNAPSHOT_SIZE = PLANE_SNAPSHOT_SIZE * 2

# Drawing planes (bitmask)
PLANE_LIGHT = 0x1
PLANE_DARK = 0x2
PLANE_BOTH = PLANE_LIGHT | PLANE_DARK

# Horizontal scroll distance in screen pixels
SCROLL_STEP = 4

# Host key vector
NUM_KEYS = 16
KEY_EXIT = 16
KEY_SAVE_EXIT = 17
KEY_VECTOR_SIZE = 18

# Timer interrupt rate (Hz)
TIMER_FREQUENCY = 60.0

# Font tables. Low-res digits are 5 bytes each at digit * 5, high-res digits
# are 10 bytes each at HIRES_FONT_OFFSET + digit * 10.
LORES_FONT_OFFSET = 0
HIRES_FONT_OFFSET = 80

FONT_SPRITES = bytes([
    # 4x5 digits 0-F
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
    # 8x10 digits 0-F
    0xFF, 0xFF, 0xC3, 0xC3, 0xC3, 0xC3, 0xC3, 0xC3, 0xFF, 0xFF,  # 0
    0x18, 0x78, 0x78, 0x18, 0x18, 0x18, 0x18, 0x18, 0xFF, 0xFF,  # 1
    0xFF, 0xFF, 0x03, 0x03, 0xFF, 0xFF, 0xC0, 0xC0, 0xFF, 0xFF,  # 2
    0xFF, 0xFF, 0x03, 0x03, 0xFF, 0xFF, 0x03, 0x03, 0xFF, 0xFF,  # 3
    0xC3, 0xC3, 0xC3, 0xC3, 0xFF, 0xFF, 0x03, 0x03, 0x03, 0x03,  # 4
    0xFF, 0xFF, 0xC0, 0xC0, 0xFF, 0xFF, 0x03, 0x03, 0xFF, 0xFF,  # 5
    0xFF, 0xFF, 0xC0, 0xC0, 0xFF, 0xFF, 0xC3, 0xC3, 0xFF, 0xFF,  # 6
    0xFF, 0xFF, 0x03, 0x03, 0x06, 0x0C, 0x18, 0x18, 0x18, 0x18,  # 7
    0xFF, 0xFF, 0xC3, 0xC3, 0xFF, 0xFF, 0xC3, 0xC3, 0xFF, 0xFF,  # 8
    0xFF, 0xFF, 0xC3, 0xC3, 0xFF, 0xFF, 0x03, 0x03, 0xFF, 0xFF,  # 9
    0x7E, 0xFF, 0xC3, 0xC3, 0xC3, 0xFF, 0xFF, 0xC3, 0xC3, 0xC3,  # A
    0xFC, 0xFC, 0xC3, 0xC3, 0xFC, 0xFC, 0xC3, 0xC3, 0xFC, 0xFC,  # B
    0x3C, 0xFF, 0xC3, 0xC0, 0xC0, 0xC0, 0xC0, 0xC3, 0xFF, 0x3C,  # C
    0xFC, 0xFE, 0xC3, 0xC3, 0xC3, 0xC3, 0xC3, 0xC3, 0xFE, 0xFC,  # D
    0xFF, 0xFF, 0xC0, 0xC0, 0xFF, 0xFF, 0xC0, 0xC0, 0xFF, 0xFF,  # E
    0xFF, 0xFF, 0xC0, 0xC0, 0xFF, 0xFF, 0xC0, 0xC0, 0xC0, 0xC0,  # F
])

# Trailing type tags of packaged files ("OTH" variables on the calculator)
OTH_TAG = 0xF8
ROM_TAG = bytes([0x00]) + b"ch8" + bytes([0x00, OTH_TAG])
SAVE_TAG = bytes([0x00]) + b"c8sv" + bytes([0x00, OTH_TAG])
HEADER_SIZE = 3

# LZSS stream parameters
COMPRESS_FLAG = 0xFF
COMPRESS_WINDOW = 1024
COMPRESS_MAX_LENGTH = 63

# Save file extension
SAVE_EXTENSION = '.c8sv'

# Status line text per error code, in ErrorCode order
ERROR_MESSAGES = (
    "Done",
    "Done",
    "",
    "Error: invalid program parameter",
    "Error: failed loading ROM",
    "Error: invalid format",
    "Error: stack overflow",
    "Error: stack underflow",
    "Error: out of memory",
    "Error: invalid instruction",
    "Error: address out of range",
    "Error: unknown error",
)
