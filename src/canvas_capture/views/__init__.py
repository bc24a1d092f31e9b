"""
Views module - surfaces the capture scheduler can pan, redraw and read.

Components:
- base: CapturableView and OutputSink interfaces
- image: Off-screen view backed by an in-memory image
- screen: Host-driven view read back from the screen (mss)
"""

from canvas_capture.views.base import (
    CapturableView,
    OutputSink,
    ViewUnavailableError,
)
from canvas_capture.views.image import ImageCanvasView, focus_transform
from canvas_capture.views.screen import ScreenCanvasView, ScreenPixelReader

__all__ = [
    # Interfaces
    "CapturableView",
    "OutputSink",
    "ViewUnavailableError",
    # Image
    "ImageCanvasView",
    "focus_transform",
    # Screen
    "ScreenCanvasView",
    "ScreenPixelReader",
]
