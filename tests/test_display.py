"""
Tests for the GrayscaleCompositor module.
"""
import unittest

import numpy as np

from chip8_handheld.constants import DISPLAY_SNAPSHOT_SIZE, PLANE_LIGHT, PLANE_DARK, PLANE_BOTH
from chip8_handheld.system_configs import SYSTEM_CONFIGS
from chip8_handheld.systems.chip8.display import GrayscaleCompositor, sprite_bits, double_pixels


class TestSpriteHelpers(unittest.TestCase):
    """
    Test cases for sprite bit expansion.
    """

    def test_sprite_bits(self):
        bits = sprite_bits(bytes([0x80, 0x01]), 1)
        self.assertEqual(bits.shape, (2, 8))
        self.assertEqual(list(bits[0]), [1, 0, 0, 0, 0, 0, 0, 0])
        self.assertEqual(list(bits[1]), [0, 0, 0, 0, 0, 0, 0, 1])

    def test_wide_sprite_bits(self):
        bits = sprite_bits(bytes([0x80, 0x01]), 2)
        self.assertEqual(bits.shape, (1, 16))
        self.assertEqual(bits[0, 0], 1)
        self.assertEqual(bits[0, 15], 1)

    def test_double_pixels(self):
        doubled = double_pixels(np.array([[1, 0]], dtype=np.uint8))
        self.assertEqual(doubled.tolist(), [[1, 1, 0, 0], [1, 1, 0, 0]])


class TestGrayscaleCompositor(unittest.TestCase):
    """
    Test cases for the GrayscaleCompositor class.
    """

    def setUp(self):
        """Set up test fixtures."""
        self.compositor = GrayscaleCompositor(canvas_origin=(16, 16))
        self.light = self.compositor.window(0)
        self.dark = self.compositor.window(1)

    def test_window_placement(self):
        self.compositor.draw_sprite_8_hi(PLANE_LIGHT, bytes([0x80]), 0, 0, 1)
        self.assertEqual(self.compositor.planes[0, 16, 16], 1)
        self.assertEqual(self.compositor.planes[0].sum(), 1)

    def test_draw_twice_collides(self):
        """Test XOR drawing reports a collision only when erasing."""
        sprite = bytes([0xF0, 0x90, 0xF0])
        self.assertFalse(self.compositor.draw_sprite_8_hi(PLANE_LIGHT, sprite, 10, 5, 3))
        self.assertEqual(self.light.sum(), 10)
        self.assertTrue(self.compositor.draw_sprite_8_hi(PLANE_LIGHT, sprite, 10, 5, 3))
        self.assertEqual(self.light.sum(), 0)

    def test_horizontal_overflow_redrawn_at_left_edge(self):
        self.compositor.draw_sprite_8_hi(PLANE_LIGHT, bytes([0xFF]), 124, 0, 1)
        self.assertEqual(self.light[0, 124:128].tolist(), [1, 1, 1, 1])
        self.assertEqual(self.light[0, 0:4].tolist(), [1, 1, 1, 1])
        self.assertEqual(self.light.sum(), 8)

    def test_rows_wrap_vertically(self):
        self.compositor.draw_sprite_8_hi(PLANE_LIGHT, bytes([0x80] * 4), 0, 62, 4)
        self.assertEqual(self.light[:, 0].nonzero()[0].tolist(), [0, 1, 62, 63])

    def test_coordinates_taken_modulo_canvas(self):
        self.compositor.draw_sprite_8_hi(PLANE_LIGHT, bytes([0x80]), 130, 66, 1)
        self.assertEqual(self.light[2, 2], 1)

    def test_plane_mask(self):
        self.compositor.draw_sprite_8_hi(PLANE_DARK, bytes([0x80]), 0, 0, 1)
        self.assertEqual(self.light.sum(), 0)
        self.assertEqual(self.dark.sum(), 1)

        self.assertFalse(self.compositor.draw_sprite_8_hi(0, bytes([0x80]), 0, 0, 1))
        self.assertEqual(self.dark.sum(), 1)

    def test_collision_on_either_plane(self):
        self.compositor.draw_sprite_8_hi(PLANE_DARK, bytes([0x80]), 0, 0, 1)
        self.assertTrue(self.compositor.draw_sprite_8_hi(PLANE_BOTH, bytes([0x80]), 0, 0, 1))
        self.assertEqual(self.light[0, 0], 1)
        self.assertEqual(self.dark[0, 0], 0)

    def test_lores_sprite_is_doubled(self):
        self.compositor.draw_sprite_8_lo(PLANE_LIGHT, bytes([0x80]), 1, 1, 1)
        self.assertEqual(self.light[2:4, 2:4].tolist(), [[1, 1], [1, 1]])
        self.assertEqual(self.light.sum(), 4)

    def test_sixteen_pixel_sprites(self):
        """Test 16x16 sprites in both resolutions draw every column."""
        sprite = bytes([0xFF] * 32)
        self.assertFalse(self.compositor.draw_sprite_16_hi(PLANE_LIGHT, sprite, 0, 0))
        self.assertEqual(self.light[0:16, 0:16].sum(), 256)

        self.compositor.clear(PLANE_LIGHT)
        self.assertFalse(self.compositor.draw_sprite_16_lo(PLANE_LIGHT, sprite, 0, 0))
        self.assertEqual(self.light[0:32, 0:32].sum(), 1024)
        self.assertEqual(self.light.sum(), 1024)

    def test_sixteen_pixel_lores_collision_in_right_half(self):
        sprite = bytes([0x00, 0xFF] * 16)
        self.compositor.draw_sprite_16_lo(PLANE_LIGHT, sprite, 0, 0)
        self.assertTrue(self.compositor.draw_sprite_16_lo(PLANE_LIGHT, sprite, 0, 0))

    def test_clear(self):
        self.compositor.draw_sprite_8_hi(PLANE_BOTH, bytes([0xFF]), 0, 0, 1)
        self.compositor.clear(PLANE_LIGHT)
        self.assertEqual(self.light.sum(), 0)
        self.assertEqual(self.dark.sum(), 8)

    def test_scroll_down_and_up(self):
        self.compositor.draw_sprite_8_hi(PLANE_LIGHT, bytes([0xFF]), 0, 0, 1)
        self.compositor.scroll_down(PLANE_LIGHT, 3)
        self.assertEqual(self.light[3].sum(), 8)
        self.assertEqual(self.light[0:3].sum(), 0)

        self.compositor.scroll_up(PLANE_LIGHT, 3)
        self.assertEqual(self.light[0].sum(), 8)
        self.assertEqual(self.light.sum(), 8)

    def test_scroll_down_discards_bottom_rows(self):
        self.compositor.draw_sprite_8_hi(PLANE_LIGHT, bytes([0xFF]), 0, 63, 1)
        self.compositor.scroll_down(PLANE_LIGHT, 1)
        self.assertEqual(self.light.sum(), 0)

    def test_scroll_only_moves_canvas(self):
        self.compositor.planes[0, 0, 0] = 1
        self.compositor.scroll_down(PLANE_LIGHT, 4)
        self.assertEqual(self.compositor.planes[0, 0, 0], 1)

    def test_scroll_left_and_right(self):
        self.compositor.draw_sprite_8_hi(PLANE_LIGHT, bytes([0x80]), 0, 0, 1)
        self.compositor.scroll_right(PLANE_LIGHT)
        self.assertEqual(self.light[0, 4], 1)
        self.assertEqual(self.light.sum(), 1)

        self.compositor.scroll_left(PLANE_LIGHT)
        self.assertEqual(self.light[0, 0], 1)
        self.compositor.scroll_left(PLANE_LIGHT)
        self.assertEqual(self.light.sum(), 0)

    def test_save_and_restore_window(self):
        """Test the 2048-byte snapshot layout and its restore."""
        self.compositor.draw_sprite_8_hi(PLANE_LIGHT, bytes([0x80]), 0, 0, 1)
        self.compositor.draw_sprite_8_hi(PLANE_DARK, bytes([0x01]), 120, 63, 1)
        snapshot = self.compositor.save_window()

        self.assertEqual(len(snapshot), DISPLAY_SNAPSHOT_SIZE)
        self.assertEqual(snapshot[0], 0x80)
        self.assertEqual(snapshot[1024 + 63 * 16 + 15], 0x01)

        other = GrayscaleCompositor(canvas_origin=(48, 32))
        other.restore_window(snapshot)
        self.assertTrue((other.get_canvas() == self.compositor.get_canvas()).all())

    def test_restore_rejects_short_snapshot(self):
        with self.assertRaises(ValueError):
            self.compositor.restore_window(bytes(100))

    def test_invert_and_clear_buffer(self):
        self.compositor.invert_buffer()
        self.assertTrue(self.compositor.planes.all())
        self.compositor.clear_buffer()
        self.assertFalse(self.compositor.planes.any())

    def test_set_and_clear_background(self):
        """Test the border around the canvas is filled on the dark plane only."""
        self.compositor.draw_sprite_8_hi(PLANE_BOTH, bytes([0xF0]), 0, 0, 1)
        canvas = self.compositor.get_canvas()
        dark = self.compositor.planes[1]

        self.compositor.set_background()
        self.assertEqual(int(dark.sum()), 128 * 240 - 64 * 128 + int(canvas[1].sum()))
        self.assertTrue(dark[:16].all())
        self.assertTrue(dark[80:].all())
        self.assertTrue(dark[16:80, :16].all())
        self.assertTrue(dark[16:80, 144:].all())
        self.assertFalse(self.compositor.planes[0, :16].any())
        self.assertTrue((self.compositor.get_canvas() == canvas).all())

        self.compositor.clear_background()
        self.assertEqual(int(dark.sum()), int(canvas[1].sum()))
        self.assertTrue((self.compositor.get_canvas() == canvas).all())

    def test_frame_buffer_size(self):
        self.assertEqual(len(self.compositor.get_frame_buffer()), 2 * 128 * 240 // 8)

    def test_canvas_must_fit_buffer(self):
        with self.assertRaises(ValueError):
            GrayscaleCompositor(canvas_origin=(200, 0))

    def test_model_canvas_origins(self):
        self.assertEqual(SYSTEM_CONFIGS["ti89"]["canvas_origin"], (16, 16))
        self.assertEqual(SYSTEM_CONFIGS["v200"]["canvas_origin"], (48, 32))
        self.assertEqual(SYSTEM_CONFIGS["ti92p"]["canvas_origin"], (48, 32))


if __name__ == '__main__':
    unittest.main()
