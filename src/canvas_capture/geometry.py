"""
Tile geometry: view transforms, content sizing and tile planning.

Screen point = content point * scale + position. The content size in
pixels is measured at the caller's zoom level, before the scheduler
forces the view to 1:1 for capturing.
"""

import math
import numbers
from dataclasses import dataclass
from typing import Tuple

from canvas_capture.logging import get_logger

logger = get_logger(__name__)


class CaptureError(Exception):
    """Base class for capture failures."""


class PlanningError(CaptureError, ValueError):
    """Raised when sizes or transforms make a capture impossible."""


@dataclass(frozen=True)
class Vec2:
    """2D vector for positions, scales and sizes."""

    x: float
    y: float

    def __iter__(self):
        """Allow tuple unpacking: x, y = vec"""
        return iter((self.x, self.y))

    def __add__(self, other: "Vec2") -> "Vec2":
        return Vec2(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Vec2") -> "Vec2":
        return Vec2(self.x - other.x, self.y - other.y)

    def __neg__(self) -> "Vec2":
        return Vec2(-self.x, -self.y)


@dataclass(frozen=True)
class ViewTransform:
    """Pan/zoom state of a capturable view."""

    position: Vec2
    scale: Vec2 = Vec2(1.0, 1.0)

    @classmethod
    def identity(cls) -> "ViewTransform":
        return cls(position=Vec2(0.0, 0.0), scale=Vec2(1.0, 1.0))

    def with_position(self, position: Vec2) -> "ViewTransform":
        return ViewTransform(position=position, scale=self.scale)

    def with_scale(self, scale: Vec2) -> "ViewTransform":
        return ViewTransform(position=self.position, scale=scale)

    def to_screen(self, point: Vec2) -> Vec2:
        """Map a content-space point to screen space."""
        return Vec2(
            point.x * self.scale.x + self.position.x,
            point.y * self.scale.y + self.position.y,
        )

    def to_content(self, point: Vec2) -> Vec2:
        """Map a screen-space point back to content space (inverse transform)."""
        if self.scale.x == 0 or self.scale.y == 0:
            raise PlanningError(f"View scale is not invertible: ({self.scale.x}, {self.scale.y})")
        return Vec2(
            (point.x - self.position.x) / self.scale.x,
            (point.y - self.position.y) / self.scale.y,
        )


@dataclass(frozen=True)
class Region:
    """Screen rectangle in integer pixels, origin at the top-left."""

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def with_size(self, width: int, height: int) -> "Region":
        """Same origin, different extent."""
        return Region(self.x, self.y, width, height)

    def to_tuple(self) -> Tuple[int, int, int, int]:
        """Return as (x, y, width, height) tuple."""
        return (self.x, self.y, self.width, self.height)

    def to_mss_dict(self) -> dict:
        """Return as mss monitor dict format."""
        return {
            "left": self.x,
            "top": self.y,
            "width": self.width,
            "height": self.height,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Region":
        """Create from dictionary."""
        return cls(
            x=d.get("x", d.get("left", 0)),
            y=d.get("y", d.get("top", 0)),
            width=d["width"],
            height=d["height"],
        )


@dataclass(frozen=True)
class TilePlan:
    """How a content area is cut into capture tiles."""

    tile_count: Tuple[int, int]
    tile_size: Tuple[int, int]
    last_tile_size: Tuple[int, int]
    content_size: Tuple[int, int]

    @property
    def total_tiles(self) -> int:
        return self.tile_count[0] * self.tile_count[1]

    def tile_width(self, ix: int) -> int:
        """Width of the tile in column ``ix``."""
        if ix == self.tile_count[0] - 1:
            return self.last_tile_size[0]
        return self.tile_size[0]

    def tile_height(self, iy: int) -> int:
        """Height of the tile in row ``iy``."""
        if iy == self.tile_count[1] - 1:
            return self.last_tile_size[1]
        return self.tile_size[1]

    def to_dict(self) -> dict:
        return {
            "tile_count": list(self.tile_count),
            "tile_size": list(self.tile_size),
            "last_tile_size": list(self.last_tile_size),
            "content_size": list(self.content_size),
            "total_tiles": self.total_tiles,
        }


def _check_size(label: str, size: Tuple[int, int]) -> None:
    for axis, value in zip("xy", size):
        if isinstance(value, bool) or not isinstance(value, numbers.Integral):
            logger.error("Non-integral size", size_kind=label, axis=axis, value=value)
            raise PlanningError(f"{label} must be integral on axis {axis}, got {value!r}")
        if value <= 0:
            logger.error("Non-positive size", size_kind=label, axis=axis, value=value)
            raise PlanningError(f"{label} must be positive on axis {axis}, got {value}")


def plan_tiles(content_size_px: Tuple[int, int], tile_size_px: Tuple[int, int]) -> TilePlan:
    """
    Compute the tile grid covering ``content_size_px``.

    Each axis gets ``ceil(content / tile)`` tiles; the final tile holds the
    remainder, or a full tile when the content divides evenly.

    Raises:
        PlanningError: If either size is non-positive on any axis
    """
    content_size_px = tuple(content_size_px)
    tile_size_px = tuple(tile_size_px)
    _check_size("content size", content_size_px)
    _check_size("tile size", tile_size_px)

    counts = []
    last = []
    for content, tile in zip(content_size_px, tile_size_px):
        counts.append(-(-content // tile))
        remainder = content % tile
        last.append(remainder if remainder != 0 else tile)

    plan = TilePlan(
        tile_count=(counts[0], counts[1]),
        tile_size=(tile_size_px[0], tile_size_px[1]),
        last_tile_size=(last[0], last[1]),
        content_size=(content_size_px[0], content_size_px[1]),
    )
    logger.debug("Tile plan computed", **plan.to_dict())
    return plan


def content_origin(transform: ViewTransform) -> Vec2:
    """Content-space point displayed at the viewport's top-left corner."""
    return transform.to_content(Vec2(0.0, 0.0))


def content_size_px(transform: ViewTransform, viewport_size: Tuple[float, float]) -> Tuple[int, int]:
    """
    Size in 1:1 pixels of the content visible through the viewport.

    Inverts the view transform at the viewport's top-left and bottom-right
    corners and floors the absolute difference.

    Raises:
        PlanningError: If the scale is zero or the viewport is empty
    """
    width, height = viewport_size
    if width <= 0 or height <= 0:
        raise PlanningError(f"Viewport must be non-empty, got {width}x{height}")

    top_left = transform.to_content(Vec2(0.0, 0.0))
    bottom_right = transform.to_content(Vec2(float(width), float(height)))

    return (
        int(math.floor(abs(bottom_right.x - top_left.x))),
        int(math.floor(abs(bottom_right.y - top_left.y))),
    )
