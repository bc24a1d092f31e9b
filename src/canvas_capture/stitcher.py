"""
Pixel buffers and tile stitching.

Buffers are flat, row-major RGBA arrays with rows ordered bottom to top,
the same anchoring the capturable views use for pixel readback.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from canvas_capture.logging import get_logger

logger = get_logger(__name__)

CHANNELS = 4


@dataclass
class PixelBuffer:
    """Flat RGBA pixel array with its declared dimensions."""

    width: int
    height: int
    pixels: np.ndarray  # shape (N, 4), dtype uint8

    def __len__(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @property
    def is_consistent(self) -> bool:
        """True when the sample count matches width * height."""
        return len(self) == self.width * self.height

    @classmethod
    def blank(
        cls,
        width: int,
        height: int,
        background: Tuple[int, int, int, int] = (0, 0, 0, 0),
    ) -> "PixelBuffer":
        """Allocate a buffer filled with ``background``."""
        pixels = np.empty((width * height, CHANNELS), dtype=np.uint8)
        pixels[:] = np.asarray(background, dtype=np.uint8)
        return cls(width=width, height=height, pixels=pixels)

    @classmethod
    def from_image_array(cls, image: np.ndarray) -> "PixelBuffer":
        """
        Build a buffer from a top-down ``(height, width, channels)`` array.

        RGB input gets an opaque alpha channel.
        """
        if image.ndim != 3 or image.shape[2] not in (3, 4):
            raise ValueError(f"Expected (h, w, 3|4) image array, got shape {image.shape}")
        height, width = image.shape[:2]
        if image.shape[2] == 3:
            alpha = np.full((height, width, 1), 255, dtype=np.uint8)
            image = np.concatenate([image.astype(np.uint8), alpha], axis=2)
        bottom_up = np.flipud(image).astype(np.uint8)
        return cls(width=width, height=height, pixels=bottom_up.reshape(-1, CHANNELS).copy())

    def to_image_array(self) -> np.ndarray:
        """Return a top-down ``(height, width, 4)`` copy suitable for encoding."""
        if not self.is_consistent:
            raise ValueError(
                f"Buffer holds {len(self)} pixels, expected {self.width}x{self.height}"
            )
        return np.flipud(self.pixels.reshape(self.height, self.width, CHANNELS)).copy()

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()


def stitch_tile(
    tile: PixelBuffer,
    tile_size: Tuple[int, int],
    dest_offset: Tuple[int, int],
    dest: PixelBuffer,
) -> int:
    """
    Copy a tile into ``dest`` at ``dest_offset``, in place.

    Pixels landing outside the destination are dropped. Length mismatches
    between a buffer and its declared size are logged and the copy is
    limited to indices that exist in both arrays.

    Returns:
        Number of destination pixels written
    """
    tile_w, tile_h = tile_size
    off_x, off_y = dest_offset

    if len(dest) != dest.width * dest.height:
        logger.warning(
            "Destination size mismatch",
            length=len(dest),
            expected=dest.width * dest.height,
        )
    if len(tile) != tile_w * tile_h:
        logger.warning(
            "Tile size mismatch",
            length=len(tile),
            expected=tile_w * tile_h,
            tile_size=tile_size,
            offset=dest_offset,
        )

    if tile_w <= 0 or tile_h <= 0:
        return 0

    ys, xs = np.mgrid[0:tile_h, 0:tile_w]
    dest_x = xs + off_x
    dest_y = ys + off_y

    tile_index = ys * tile_w + xs
    dest_index = dest_y * dest.width + dest_x

    mask = (
        (dest_x >= 0) & (dest_x < dest.width)
        & (dest_y >= 0) & (dest_y < dest.height)
        & (tile_index < len(tile))
        & (dest_index < len(dest))
    )

    dest.pixels[dest_index[mask]] = tile.pixels[tile_index[mask]]
    return int(np.count_nonzero(mask))
