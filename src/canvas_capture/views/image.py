"""
Off-screen capturable view backed by an in-memory image.

The image is the canvas content at 1:1. The view shows it through a
fixed-size viewport using the current pan/zoom, and, like an on-screen
surface, only reflects a new transform after a redraw.
"""

from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np
from PIL import Image

from canvas_capture.geometry import Region, Vec2, ViewTransform
from canvas_capture.logging import get_logger
from canvas_capture.stitcher import CHANNELS, PixelBuffer
from canvas_capture.views.base import CapturableView, ViewUnavailableError

logger = get_logger(__name__)


class ImageCanvasView(CapturableView):
    """
    Renders a content image through a pannable, zoomable viewport.

    Sampling is nearest-neighbour at pixel centres; anything outside the
    content image or the viewport reads as ``background``.
    """

    def __init__(
        self,
        content: np.ndarray,
        viewport: Union[Region, Tuple[int, int]],
        transform: Optional[ViewTransform] = None,
        background: Tuple[int, int, int, int] = (0, 0, 0, 0),
    ):
        """
        Args:
            content: Top-down (height, width, 3|4) uint8 array
            viewport: Screen rect of the view, or a (width, height) at the origin
            transform: Initial pan/zoom (identity if omitted)
            background: RGBA for uncovered pixels
        """
        if content.ndim != 3 or content.shape[2] not in (3, 4):
            raise ValueError(f"Expected (h, w, 3|4) content array, got shape {content.shape}")
        if content.shape[2] == 3:
            alpha = np.full(content.shape[:2] + (1,), 255, dtype=np.uint8)
            content = np.concatenate([content.astype(np.uint8), alpha], axis=2)

        if isinstance(viewport, tuple):
            viewport = Region(0, 0, viewport[0], viewport[1])

        self.content = content.astype(np.uint8)
        self.viewport = viewport
        self.background = np.asarray(background, dtype=np.uint8)
        self._transform = transform or ViewTransform.identity()
        self._displayed = self._transform
        self._available = True

        self.redraw_count = 0
        self.transform_history: List[ViewTransform] = []

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        viewport: Union[Region, Tuple[int, int]],
        transform: Optional[ViewTransform] = None,
    ) -> "ImageCanvasView":
        """Load the content image from disk."""
        with Image.open(path) as img:
            content = np.asarray(img.convert("RGBA"))
        logger.info("Canvas image loaded", path=str(path), size=(content.shape[1], content.shape[0]))
        return cls(content, viewport, transform)

    @property
    def content_size(self) -> Tuple[int, int]:
        return (int(self.content.shape[1]), int(self.content.shape[0]))

    def close(self) -> None:
        """Drop the surface; every further call raises ViewUnavailableError."""
        self._available = False

    def _ensure_available(self) -> None:
        if not self._available:
            raise ViewUnavailableError("Canvas view has been closed")

    def is_available(self) -> bool:
        return self._available

    def get_view_transform(self) -> ViewTransform:
        self._ensure_available()
        return self._transform

    def set_view_transform(self, transform: ViewTransform) -> None:
        self._ensure_available()
        self._transform = transform
        self.transform_history.append(transform)

    def request_redraw(self) -> None:
        self._ensure_available()
        self._displayed = self._transform
        self.redraw_count += 1

    def get_viewport_screen_rect(self) -> Region:
        self._ensure_available()
        return self.viewport

    def read_pixels(self, region: Region) -> PixelBuffer:
        """Sample the last redrawn frame inside ``region`` (screen coordinates)."""
        self._ensure_available()
        frame = self._render(region)
        return PixelBuffer.from_image_array(frame)

    def _render(self, region: Region) -> np.ndarray:
        """Top-down RGBA array of what the screen shows inside ``region``."""
        transform = self._displayed
        out = np.empty((region.height, region.width, CHANNELS), dtype=np.uint8)
        out[:] = self.background
        if region.width <= 0 or region.height <= 0:
            return out

        # Screen pixel centres relative to the viewport origin
        local_x = np.arange(region.width) + (region.x - self.viewport.x) + 0.5
        local_y = np.arange(region.height) + (region.y - self.viewport.y) + 0.5

        content_x = np.floor((local_x - transform.position.x) / transform.scale.x).astype(np.int64)
        content_y = np.floor((local_y - transform.position.y) / transform.scale.y).astype(np.int64)

        content_w, content_h = self.content_size
        valid_x = (
            (content_x >= 0) & (content_x < content_w)
            & (local_x >= 0) & (local_x < self.viewport.width)
        )
        valid_y = (
            (content_y >= 0) & (content_y < content_h)
            & (local_y >= 0) & (local_y < self.viewport.height)
        )

        rows = np.nonzero(valid_y)[0]
        cols = np.nonzero(valid_x)[0]
        if rows.size and cols.size:
            out[np.ix_(rows, cols)] = self.content[np.ix_(content_y[rows], content_x[cols])]
        return out

    def snapshot(self) -> np.ndarray:
        """Top-down RGBA array of the whole viewport as last redrawn."""
        self._ensure_available()
        return self._render(self.viewport)

    def __repr__(self) -> str:
        return (
            f"ImageCanvasView(content={self.content_size}, viewport={self.viewport.size}, "
            f"transform={self._transform})"
        )


def focus_transform(
    content_size: Tuple[int, int],
    viewport_size: Tuple[int, int],
    origin: Vec2 = Vec2(0.0, 0.0),
) -> ViewTransform:
    """
    Uniform zoom that fits ``content_size`` into the viewport, anchored at ``origin``.

    Equivalent of an editor's "frame all" shortcut.
    """
    scale = min(viewport_size[0] / content_size[0], viewport_size[1] / content_size[1])
    return ViewTransform(
        position=Vec2(-origin.x * scale, -origin.y * scale),
        scale=Vec2(scale, scale),
    )
