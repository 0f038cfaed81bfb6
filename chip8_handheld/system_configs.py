"""
Configuration data for supported host calculator models.

Every model shares the same 240x128 physical grayscale buffer (30 bytes per
row); only the visible LCD area differs. The 128x64 CHIP-8 canvas is centred
in the visible area with its origin rounded down to a 16-pixel boundary.
"""

BUFFER_WIDTH = 240
BUFFER_HEIGHT = 128


def canvas_origin(lcd_width: int, lcd_height: int) -> tuple:
    """Return the (x, y) origin of the CHIP-8 canvas for an LCD size."""
    x_base = (lcd_width // 2 - 128 // 2) & 0xF0
    y_base = (lcd_height // 2 - 64 // 2) & 0xF0
    return x_base, y_base


SYSTEM_CONFIGS = {
    "ti89": {
        "name": "TI-89 / TI-89 Titanium",
        "buffer_width": BUFFER_WIDTH,
        "buffer_height": BUFFER_HEIGHT,
        "canvas_origin": canvas_origin(160, 100),
    },
    "ti92p": {
        "name": "TI-92 Plus",
        "buffer_width": BUFFER_WIDTH,
        "buffer_height": BUFFER_HEIGHT,
        "canvas_origin": canvas_origin(240, 128),
    },
    "v200": {
        "name": "Voyage 200",
        "buffer_width": BUFFER_WIDTH,
        "buffer_height": BUFFER_HEIGHT,
        "canvas_origin": canvas_origin(240, 128),
    },
}
