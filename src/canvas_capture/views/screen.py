"""
Screen readback using mss.

``ScreenCanvasView`` turns a host's pan/zoom and redraw callbacks into a
``CapturableView`` whose pixels come from the real screen.
"""

import time
from typing import Callable, Optional

import mss
import numpy as np

from canvas_capture.geometry import Region, ViewTransform
from canvas_capture.logging import get_logger
from canvas_capture.stitcher import PixelBuffer
from canvas_capture.views.base import CapturableView, ViewUnavailableError

logger = get_logger(__name__)


class ScreenPixelReader:
    """
    Grabs screen regions with mss and returns them as bottom-up RGBA buffers.

    One mss handle is opened lazily and reused across tiles.
    """

    def __init__(self):
        self._sct = None
        self.grab_count = 0

    def _handle(self):
        if self._sct is None:
            self._sct = mss.mss()
        return self._sct

    def read(self, region: Region) -> PixelBuffer:
        """Capture ``region``; mss yields BGRA rows top to bottom."""
        if region.width <= 0 or region.height <= 0:
            raise ValueError(f"Invalid region size: {region.width}x{region.height}")

        start = time.time()
        img = self._handle().grab(region.to_mss_dict())
        bgra = np.asarray(img, dtype=np.uint8).reshape(img.height, img.width, 4)
        rgba = bgra[:, :, [2, 1, 0, 3]]
        rgba[:, :, 3] = 255
        self.grab_count += 1

        logger.debug(
            "Screen region grabbed",
            region=region.to_tuple(),
            duration_ms=int((time.time() - start) * 1000),
        )
        return PixelBuffer.from_image_array(rgba)

    def close(self) -> None:
        if self._sct is not None:
            self._sct.close()
            self._sct = None

    def __enter__(self) -> "ScreenPixelReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class ScreenCanvasView(CapturableView):
    """
    Capturable view for a canvas drawn on screen by a host application.

    The host supplies callbacks for its own view state; the screen is read
    with ``ScreenPixelReader``.
    """

    def __init__(
        self,
        get_transform: Callable[[], ViewTransform],
        set_transform: Callable[[ViewTransform], None],
        redraw: Callable[[], None],
        get_viewport: Callable[[], Region],
        is_alive: Optional[Callable[[], bool]] = None,
        reader: Optional[ScreenPixelReader] = None,
    ):
        self._get_transform = get_transform
        self._set_transform = set_transform
        self._redraw = redraw
        self._get_viewport = get_viewport
        self._is_alive = is_alive or (lambda: True)
        self.reader = reader or ScreenPixelReader()

    def _ensure_available(self) -> None:
        if not self._is_alive():
            raise ViewUnavailableError("Host view is no longer available")

    def is_available(self) -> bool:
        return bool(self._is_alive())

    def get_view_transform(self) -> ViewTransform:
        self._ensure_available()
        return self._get_transform()

    def set_view_transform(self, transform: ViewTransform) -> None:
        self._ensure_available()
        self._set_transform(transform)

    def request_redraw(self) -> None:
        self._ensure_available()
        self._redraw()

    def get_viewport_screen_rect(self) -> Region:
        self._ensure_available()
        return self._get_viewport()

    def read_pixels(self, region: Region) -> PixelBuffer:
        self._ensure_available()
        return self.reader.read(region)
