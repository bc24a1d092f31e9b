"""
Collaborator interfaces the capture scheduler drives.

Host integrations subclass ``CapturableView``; anything that can persist
a finished buffer subclasses ``OutputSink``.
"""

from abc import ABC, abstractmethod
from pathlib import Path

from canvas_capture.geometry import CaptureError, Region, ViewTransform
from canvas_capture.stitcher import PixelBuffer


class ViewUnavailableError(CaptureError):
    """Raised by a view whose backing surface no longer exists."""


class CapturableView(ABC):
    """
    A pannable, zoomable surface whose on-screen pixels can be read back.

    ``read_pixels`` returns rows bottom to top. ``request_redraw`` is a hint
    with no completion signal; callers wait a settle delay afterwards.
    """

    def is_available(self) -> bool:
        return True

    @abstractmethod
    def get_view_transform(self) -> ViewTransform:
        """Current pan/zoom."""

    @abstractmethod
    def set_view_transform(self, transform: ViewTransform) -> None:
        """Apply a pan/zoom; visible after the next redraw."""

    @abstractmethod
    def request_redraw(self) -> None:
        """Ask the host to repaint."""

    @abstractmethod
    def read_pixels(self, region: Region) -> PixelBuffer:
        """Read back a screen rectangle, rows bottom to top."""

    @abstractmethod
    def get_viewport_screen_rect(self) -> Region:
        """Screen rectangle of the visible viewport."""


class OutputSink(ABC):
    """Encodes and persists an assembled capture."""

    @abstractmethod
    def save(self, width: int, height: int, pixels: PixelBuffer, name: str) -> Path:
        """Persist ``pixels`` and return where they went."""
