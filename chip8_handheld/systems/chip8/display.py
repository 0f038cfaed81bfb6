"""
Two-plane grayscale display compositor.

The physical buffer holds a light and a dark plane (one byte per pixel, 0 or
1) of the host LCD memory. The CHIP-8 canvas is a 128x64 window into that
buffer at a model-dependent origin. Low-resolution programs address a 64x32
canvas whose pixels are doubled into the high-resolution window.

Sprites are XORed onto the selected planes. A row crossing the right edge of
the canvas is split: the part that fits is drawn in place and the clipped
remainder is drawn once more starting at x = 0. Rows wrap vertically.
"""

import logging
import threading
from typing import Optional, Sequence, Union

import numpy as np

from ...common.interfaces import VideoProcessor
from ...constants import (HIRES_WIDTH, HIRES_HEIGHT, PLANE_LIGHT, PLANE_DARK,
                          PLANE_SNAPSHOT_SIZE, DISPLAY_SNAPSHOT_SIZE, SCROLL_STEP)
from ...system_configs import BUFFER_WIDTH, BUFFER_HEIGHT

logger = logging.getLogger("Chip8Handheld.Display")

# Plane index in the physical buffer for each mask bit
PLANE_INDEX = ((PLANE_LIGHT, 0), (PLANE_DARK, 1))


def sprite_bits(sprite: Union[bytes, bytearray, Sequence[int]], bytes_per_row: int) -> np.ndarray:
    """
    Expand packed sprite rows into a (rows, 8 * bytes_per_row) bit matrix.

    Args:
        sprite: Sprite bytes, most significant bit leftmost
        bytes_per_row: 1 for 8-pixel rows, 2 for 16-pixel rows

    Returns:
        uint8 array of 0/1 pixels
    """
    data = np.frombuffer(bytes(sprite), dtype=np.uint8)
    return np.unpackbits(data.reshape(-1, bytes_per_row), axis=1)


def double_pixels(bits: np.ndarray) -> np.ndarray:
    """Nearest-neighbour double a bit matrix in both directions."""
    return np.repeat(np.repeat(bits, 2, axis=0), 2, axis=1)


class GrayscaleCompositor(VideoProcessor):
    """
    Framebuffer algebra for the dual-plane display.

    All public operations take the plane mask to act on. The compositor has
    no knowledge of interpreter state. A re-entrant lock serialises the
    interpreter's drawing against the timer interrupt's screen flash.
    """

    def __init__(self, canvas_origin: tuple = (16, 16),
                 buffer_width: int = BUFFER_WIDTH, buffer_height: int = BUFFER_HEIGHT):
        """
        Initialize the compositor.

        Args:
            canvas_origin: (x, y) of the canvas inside the physical buffer
            buffer_width: Physical buffer width in pixels
            buffer_height: Physical buffer height in pixels
        """
        self.x_base, self.y_base = canvas_origin
        self.width = HIRES_WIDTH
        self.height = HIRES_HEIGHT

        if (self.x_base + self.width > buffer_width or
                self.y_base + self.height > buffer_height):
            raise ValueError(f"Canvas at {canvas_origin} does not fit a "
                             f"{buffer_width}x{buffer_height} buffer")

        # planes[0] is the light plane, planes[1] the dark plane
        self.planes = np.zeros((2, buffer_height, buffer_width), dtype=np.uint8)
        self.lock = threading.RLock()

        logger.debug(f"Compositor ready, canvas at ({self.x_base}, {self.y_base}) "
                     f"in {buffer_width}x{buffer_height} buffer")

    def _selected(self, planes: int):
        for bit, index in PLANE_INDEX:
            if planes & bit:
                yield index

    def window(self, index: int) -> np.ndarray:
        """Return a writable view of the 128x64 canvas of one plane."""
        return self.planes[index,
                           self.y_base:self.y_base + self.height,
                           self.x_base:self.x_base + self.width]

    # ------------------------------------------------------------------
    # Sprites
    # ------------------------------------------------------------------

    def draw(self, planes: int, bits: np.ndarray, x: int, y: int) -> bool:
        """
        XOR a bit matrix onto the high-resolution canvas.

        Coordinates are taken modulo the canvas. The columns that fit are
        drawn at x; any remainder past the right edge is drawn at x = 0.

        Args:
            planes: Plane mask
            bits: (height, width) matrix of 0/1 pixels
            x: Left column
            y: Top row

        Returns:
            True if any previously set pixel on a selected plane was cleared
        """
        x %= self.width
        y %= self.height
        width = bits.shape[1]
        fit = min(width, self.width - x)

        collided = False
        with self.lock:
            for index in self._selected(planes):
                window = self.window(index)
                collided |= self._blit(window, bits[:, :fit], x, y)
                if fit < width:
                    collided |= self._blit(window, bits[:, fit:], 0, y)
        return collided

    def _blit(self, window: np.ndarray, bits: np.ndarray, x: int, y: int) -> bool:
        rows = (y + np.arange(bits.shape[0])) % self.height
        cols = slice(x, x + bits.shape[1])
        region = window[rows, cols]
        collided = bool(np.any(region & bits))
        window[rows, cols] = region ^ bits
        return collided

    def draw_sprite_8_hi(self, planes: int, sprite: bytes, x: int, y: int, n: int) -> bool:
        """Draw an 8-pixel wide, n-row sprite on the high-resolution canvas."""
        return self.draw(planes, sprite_bits(sprite[:n], 1), x, y)

    def draw_sprite_16_hi(self, planes: int, sprite: bytes, x: int, y: int, n: int = 16) -> bool:
        """Draw a 16-pixel wide sprite (two bytes per row) in high resolution."""
        return self.draw(planes, sprite_bits(sprite[:2 * n], 2), x, y)

    def draw_sprite_8_lo(self, planes: int, sprite: bytes, x: int, y: int, n: int) -> bool:
        """Draw an 8xn low-resolution sprite, doubled onto the physical canvas."""
        bits = double_pixels(sprite_bits(sprite[:n], 1))
        return self.draw(planes, bits, (x & 0xFF) * 2, (y & 0xFF) * 2)

    def draw_sprite_16_lo(self, planes: int, sprite: bytes, x: int, y: int, n: int = 16) -> bool:
        """
        Draw a 16x16 sprite in low resolution (32x32 screen pixels).

        The left and right byte columns are drawn as two 8-wide sprites and
        their collisions are combined; both halves are always drawn.
        """
        rows = bytes(sprite[:2 * n])
        left = self.draw_sprite_8_lo(planes, rows[0::2], x, y, n)
        right = self.draw_sprite_8_lo(planes, rows[1::2], (x + 8) & 0xFF, y, n)
        return left or right

    # ------------------------------------------------------------------
    # Whole-canvas operations
    # ------------------------------------------------------------------

    def clear(self, planes: int) -> None:
        with self.lock:
            for index in self._selected(planes):
                self.window(index)[:] = 0

    def scroll_down(self, planes: int, n: int) -> None:
        """Scroll the canvas down n screen pixels."""
        n = min(n, self.height)
        if n == 0:
            return
        with self.lock:
            for index in self._selected(planes):
                window = self.window(index)
                window[n:] = window[:self.height - n].copy()
                window[:n] = 0

    def scroll_up(self, planes: int, n: int) -> None:
        """Scroll the canvas up n screen pixels."""
        n = min(n, self.height)
        if n == 0:
            return
        with self.lock:
            for index in self._selected(planes):
                window = self.window(index)
                window[:self.height - n] = window[n:].copy()
                window[self.height - n:] = 0

    def scroll_right(self, planes: int) -> None:
        """Scroll the canvas right by 4 screen pixels."""
        with self.lock:
            for index in self._selected(planes):
                window = self.window(index)
                window[:, SCROLL_STEP:] = window[:, :-SCROLL_STEP].copy()
                window[:, :SCROLL_STEP] = 0

    def scroll_left(self, planes: int) -> None:
        """Scroll the canvas left by 4 screen pixels."""
        with self.lock:
            for index in self._selected(planes):
                window = self.window(index)
                window[:, :-SCROLL_STEP] = window[:, SCROLL_STEP:].copy()
                window[:, -SCROLL_STEP:] = 0

    # ------------------------------------------------------------------
    # Scoped save/restore
    # ------------------------------------------------------------------

    def save_window(self, dest: Optional[bytearray] = None) -> bytearray:
        """
        Pack the canvas of both planes into a 2048-byte buffer.

        The light plane occupies the first 1024 bytes and the dark plane the
        rest, 16 bytes per row, most significant bit leftmost.

        Args:
            dest: Buffer to fill (a new one is created when None)

        Returns:
            The filled buffer
        """
        if dest is None:
            dest = bytearray(DISPLAY_SNAPSHOT_SIZE)
        with self.lock:
            for index in (0, 1):
                packed = np.packbits(self.window(index), axis=1)
                start = index * PLANE_SNAPSHOT_SIZE
                dest[start:start + PLANE_SNAPSHOT_SIZE] = packed.tobytes()
        return dest

    def restore_window(self, src: Union[bytes, bytearray]) -> None:
        """Unpack a buffer produced by save_window onto the canvas."""
        if len(src) < DISPLAY_SNAPSHOT_SIZE:
            raise ValueError(f"Display snapshot must be {DISPLAY_SNAPSHOT_SIZE} bytes, got {len(src)}")
        data = np.frombuffer(bytes(src[:DISPLAY_SNAPSHOT_SIZE]), dtype=np.uint8)
        with self.lock:
            for index in (0, 1):
                plane = data[index * PLANE_SNAPSHOT_SIZE:(index + 1) * PLANE_SNAPSHOT_SIZE]
                self.window(index)[:] = np.unpackbits(plane.reshape(self.height, -1), axis=1)

    # ------------------------------------------------------------------
    # Physical buffer
    # ------------------------------------------------------------------

    def invert_buffer(self) -> None:
        """Invert every pixel of the physical buffer on both planes."""
        with self.lock:
            np.bitwise_xor(self.planes, 1, out=self.planes)

    def clear_buffer(self) -> None:
        """Clear the entire physical buffer on both planes."""
        with self.lock:
            self.planes[:] = 0

    def _fill_background(self, value: int) -> None:
        dark = self.planes[1]
        with self.lock:
            dark[:self.y_base, :] = value
            dark[self.y_base + self.height:, :] = value
            rows = slice(self.y_base, self.y_base + self.height)
            dark[rows, :self.x_base] = value
            dark[rows, self.x_base + self.width:] = value

    def set_background(self) -> None:
        """Fill the dark plane outside the canvas. The canvas is untouched."""
        self._fill_background(1)

    def clear_background(self) -> None:
        """Clear the dark plane outside the canvas."""
        self._fill_background(0)

    def get_frame_buffer(self) -> bytes:
        """Packed physical buffer, light plane followed by dark plane."""
        with self.lock:
            return np.packbits(self.planes, axis=2).tobytes()

    def get_canvas(self) -> np.ndarray:
        """Copy of the (2, 64, 128) canvas of both planes."""
        with self.lock:
            return np.stack([self.window(0), self.window(1)]).copy()

    def get_state(self) -> dict:
        return {
            "canvas_origin": (self.x_base, self.y_base),
            "buffer_size": (self.planes.shape[2], self.planes.shape[1]),
            "lit_pixels": [int(self.window(0).sum()), int(self.window(1).sum())],
        }
