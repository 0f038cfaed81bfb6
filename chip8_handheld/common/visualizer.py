"""
Screenshots of the two-plane grayscale display.
"""
import logging
import os
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np

from .interfaces import VideoProcessor

logger = logging.getLogger("Chip8Handheld.Visualizer")

# Shade weight of each plane; both set gives black
PLANE_WEIGHTS = np.array([1, 2], dtype=np.uint8)

REGIONS = ("canvas", "buffer")


class ScreenVisualizer:
    """
    Renders the light and dark planes as a four-shade image.
    """

    def __init__(self, scale: int = 4, cmap: str = 'gray_r'):
        """
        Initialize the screen visualizer.

        Args:
            scale: Integer upscaling factor (nearest neighbour)
            cmap: Matplotlib colormap; shade 0 is blank, 3 is darkest
        """
        if scale < 1:
            raise ValueError(f"Scale must be at least 1, got {scale}")
        self.scale = scale
        self.cmap = cmap

    def compose(self, display: VideoProcessor, region: str = "canvas") -> np.ndarray:
        """
        Combine both planes into one shade image.

        Args:
            display: Compositor to read from
            region: 'canvas' for the 128x64 CHIP-8 canvas, 'buffer' for the
                whole physical buffer

        Returns:
            uint8 array of shades 0-3
        """
        if region == "canvas":
            planes = display.get_canvas()
        elif region == "buffer":
            with display.lock:
                planes = display.planes.copy()
        else:
            raise ValueError(f"Unknown region: {region}. Valid options: {', '.join(REGIONS)}")

        return np.tensordot(PLANE_WEIGHTS, planes, axes=1).astype(np.uint8)

    def save_screenshot(self, path: str, display: VideoProcessor,
                        region: str = "canvas", scale: Optional[int] = None) -> None:
        """
        Write a PNG of the display.

        Args:
            path: Output image path
            display: Compositor to read from
            region: 'canvas' or 'buffer'
            scale: Upscaling factor (the visualizer's default when None)
        """
        scale = scale or self.scale
        image = self.compose(display, region)
        image = np.kron(image, np.ones((scale, scale), dtype=np.uint8))

        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        plt.imsave(path, image, cmap=self.cmap, vmin=0, vmax=3)
        logger.info(f"Saved {region} screenshot ({image.shape[1]}x{image.shape[0]}) to {path}")
