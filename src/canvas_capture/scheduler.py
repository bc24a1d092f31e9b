"""
Capture scheduler - resumable state machine for tiled canvas capture.

One scheduler owns one capture at a time. A periodic driver calls
``resume(elapsed)``; the scheduler advances at most one step per call and
reports how long to wait before the next one. Collaborator calls are
synchronous, so nothing here blocks or sleeps.

Step flow:
1. PREPARING: force the view to 1:1, redraw, wait for re-layout
2. CAPTURING_TILE: pan the next tile under the capture rect, redraw, wait
3. STITCHING: read the capture rect back and copy it into the destination
4. FINALIZING: hand the destination to the sink, restore the view
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from canvas_capture.config import CaptureConfig
from canvas_capture.geometry import (
    CaptureError,
    PlanningError,
    Region,
    TilePlan,
    Vec2,
    ViewTransform,
    content_origin,
    content_size_px,
    plan_tiles,
)
from canvas_capture.logging import get_logger
from canvas_capture.stitcher import PixelBuffer, stitch_tile
from canvas_capture.views.base import CapturableView, OutputSink, ViewUnavailableError

logger = get_logger(__name__)

NEUTRAL_SCALE = Vec2(1.0, 1.0)


class CapturePhase(str, Enum):
    """Scheduler states."""

    IDLE = "idle"
    PREPARING = "preparing"
    CAPTURING_TILE = "capturing_tile"
    STITCHING = "stitching"
    FINALIZING = "finalizing"


class StatusKind(str, Enum):
    """Outcome of a resume call."""

    CONTINUE = "continue"
    DONE = "done"
    FAILED = "failed"


@dataclass
class CaptureResult:
    """Summary of a finished capture."""

    path: Path
    width: int
    height: int
    tiles: int
    mismatched_tiles: int = 0
    duration_ms: int = 0
    view_restored: bool = True


@dataclass
class ResumeStatus:
    """What the driver should do after a resume call."""

    kind: StatusKind
    wait_seconds: float = 0.0
    advanced: bool = True
    result: Optional[CaptureResult] = None
    error: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.kind != StatusKind.CONTINUE


@dataclass
class CaptureJob:
    """Transient state of the capture in progress."""

    name: str
    plan: TilePlan
    destination: PixelBuffer
    original_transform: ViewTransform
    origin: Vec2
    capture_rect: Region
    tile_offset: Vec2
    tile_index: Tuple[int, int] = (0, 0)
    offset: Tuple[int, int] = (0, 0)
    current_tile_size: Tuple[int, int] = (0, 0)
    completed: bool = False
    tiles_captured: int = 0
    mismatched_tiles: int = 0
    started_at: float = field(default_factory=time.time)


class CaptureScheduler:
    """
    Drives a tiled capture of a ``CapturableView`` into an ``OutputSink``.

    Tiles are visited column by column (x forward); within a column rows
    run from the last one back to the first, because readback rows are
    anchored at the bottom while the destination fills from row 0.
    """

    def __init__(
        self,
        view: Optional[CapturableView],
        sink: OutputSink,
        config: Optional[CaptureConfig] = None,
    ):
        """
        Args:
            view: Surface to capture
            sink: Receives the assembled buffer
            config: Timing and behavior settings (defaults if omitted)
        """
        self.view = view
        self.sink = sink
        self.config = config or CaptureConfig()

        self.phase = CapturePhase.IDLE
        self.job: Optional[CaptureJob] = None
        self._pending_wait = 0.0

    @property
    def is_running(self) -> bool:
        return self.job is not None

    @property
    def pending_wait(self) -> float:
        """Seconds the current step asked to wait before the next one."""
        return self._pending_wait

    @property
    def progress(self) -> Tuple[int, int]:
        """(tiles captured, total tiles) for the running job."""
        if not self.job:
            return (0, 0)
        return (self.job.tiles_captured, self.job.plan.total_tiles)

    def start(self, name: str) -> CaptureJob:
        """
        Validate preconditions and set up a capture.

        The view is only inspected here; nothing is mutated until the first
        resume.

        Raises:
            CaptureError: If a capture is already running or the view is missing
            PlanningError: If the viewport or transform cannot produce a plan
        """
        if self.job is not None:
            raise CaptureError("A capture is already running")
        if self.view is None or not self.view.is_available():
            logger.error("Capture requested without a view", name=name)
            raise CaptureError("No capturable view available")

        viewport = self.view.get_viewport_screen_rect()
        original = self.view.get_view_transform()

        tile_size = (int(viewport.width), int(viewport.height))
        content_size = content_size_px(original, (viewport.width, viewport.height))
        plan = plan_tiles(content_size, tile_size)

        self.job = CaptureJob(
            name=name,
            plan=plan,
            destination=PixelBuffer.blank(
                content_size[0], content_size[1], self.config.behavior.background
            ),
            original_transform=original,
            origin=content_origin(original),
            capture_rect=viewport,
            tile_offset=Vec2(float(viewport.width), float(viewport.height)),
            tile_index=(0, plan.tile_count[1] - 1),
        )
        self.phase = CapturePhase.PREPARING
        self._pending_wait = 0.0

        logger.info(
            "Capture started",
            name=name,
            content_size=content_size,
            tiles=plan.tile_count,
            last_tile_size=plan.last_tile_size,
        )
        return self.job

    def resume(self, elapsed: float) -> ResumeStatus:
        """
        Advance one step if ``elapsed`` covers the pending wait.

        Args:
            elapsed: Seconds since the previous advancing resume

        Returns:
            CONTINUE with the next wait, DONE with the result, or FAILED
        """
        if self.job is None:
            return ResumeStatus(StatusKind.FAILED, advanced=False, error="No capture running")

        if elapsed < self._pending_wait:
            return ResumeStatus(
                StatusKind.CONTINUE,
                wait_seconds=self._pending_wait - elapsed,
                advanced=False,
            )

        phase = self.phase
        tile = self.job.tile_index
        try:
            return self._step()
        except ViewUnavailableError as e:
            logger.error(
                "View lost during capture",
                phase=phase.value,
                tile=tile,
                error=str(e),
            )
            self._abort()
            return ResumeStatus(StatusKind.FAILED, error=f"View unavailable: {e}")
        except Exception as e:
            logger.exception(
                "Capture step failed",
                phase=phase.value,
                tile=tile,
            )
            self._abort()
            return ResumeStatus(StatusKind.FAILED, error=f"Capture step failed: {e}")

    def cancel(self) -> None:
        """Discard the running capture; restore the view if configured."""
        if self.job is None:
            return
        logger.info(
            "Capture cancelled",
            name=self.job.name,
            phase=self.phase.value,
            tiles_captured=self.job.tiles_captured,
        )
        self._abort()

    def _abort(self) -> None:
        job = self.job
        self.job = None
        self.phase = CapturePhase.IDLE
        self._pending_wait = 0.0

        if job is None or not self.config.behavior.restore_on_cancel:
            return
        try:
            self._restore(job)
        except Exception as e:
            logger.warning("Could not restore view after abort", error=str(e))

    def _restore(self, job: CaptureJob) -> None:
        self.view.set_view_transform(job.original_transform)
        self.view.request_redraw()

    def _restore_after_finish(self, job: CaptureJob) -> bool:
        """Restore once the sink has run; a lost view no longer fails the job."""
        try:
            self._restore(job)
        except ViewUnavailableError as e:
            logger.warning("Could not restore view after capture", name=job.name, error=str(e))
            return False
        return True

    def _wait(self, seconds: float) -> ResumeStatus:
        self._pending_wait = max(seconds, self.config.timing.min_tick_interval)
        return ResumeStatus(StatusKind.CONTINUE, wait_seconds=self._pending_wait)

    def _step(self) -> ResumeStatus:
        if self.phase == CapturePhase.PREPARING:
            return self._prepare()
        if self.phase == CapturePhase.CAPTURING_TILE:
            return self._position_tile()
        if self.phase == CapturePhase.STITCHING:
            self._stitch_current()
            if self.job.completed:
                return self._finalize()
            return self._position_tile()
        if self.phase == CapturePhase.FINALIZING:
            return self._finalize()
        raise CaptureError(f"Cannot resume from phase {self.phase.value}")

    def _prepare(self) -> ResumeStatus:
        job = self.job
        # Scale 1 makes one content unit one screen pixel while panning
        self.view.set_view_transform(job.original_transform.with_scale(NEUTRAL_SCALE))
        self.view.request_redraw()
        self.phase = CapturePhase.CAPTURING_TILE
        return self._wait(self.config.timing.scale_settle_delay)

    def _position_tile(self) -> ResumeStatus:
        job = self.job
        ix, iy = job.tile_index

        position = Vec2(
            -job.origin.x - ix * job.tile_offset.x,
            -job.origin.y - iy * job.tile_offset.y,
        )
        self.view.set_view_transform(ViewTransform(position=position, scale=NEUTRAL_SCALE))

        job.current_tile_size = (job.plan.tile_width(ix), job.plan.tile_height(iy))
        job.capture_rect = job.capture_rect.with_size(*job.current_tile_size)

        self.view.request_redraw()
        self.phase = CapturePhase.STITCHING
        logger.debug("Tile positioned", tile=(ix, iy), size=job.current_tile_size)
        return self._wait(self.config.timing.settle_delay)

    def _stitch_current(self) -> None:
        job = self.job
        ix, iy = job.tile_index
        tile_w, tile_h = job.current_tile_size

        tile = self.view.read_pixels(job.capture_rect)
        if len(tile) != tile_w * tile_h:
            job.mismatched_tiles += 1
        stitch_tile(tile, job.current_tile_size, job.offset, job.destination)
        job.tiles_captured += 1

        off_x, off_y = job.offset
        off_y += tile_h

        if iy > 0:
            job.tile_index = (ix, iy - 1)
            job.offset = (off_x, off_y)
        else:
            job.offset = (off_x + tile_w, 0)
            if ix + 1 < job.plan.tile_count[0]:
                job.tile_index = (ix + 1, job.plan.tile_count[1] - 1)
            else:
                job.completed = True

        self.phase = CapturePhase.FINALIZING if job.completed else CapturePhase.CAPTURING_TILE

    def _finalize(self) -> ResumeStatus:
        job = self.job
        self.phase = CapturePhase.FINALIZING
        width, height = job.plan.content_size

        try:
            path = self.sink.save(width, height, job.destination, job.name)
        except (OSError, ValueError) as e:
            logger.error("Saving capture failed", name=job.name, error=str(e))
            self.job = None
            self.phase = CapturePhase.IDLE
            self._pending_wait = 0.0
            self._restore_after_finish(job)
            return ResumeStatus(StatusKind.FAILED, error=f"Save failed: {e}")

        restored = self._restore_after_finish(job)

        result = CaptureResult(
            path=path,
            width=width,
            height=height,
            tiles=job.tiles_captured,
            mismatched_tiles=job.mismatched_tiles,
            duration_ms=int((time.time() - job.started_at) * 1000),
            view_restored=restored,
        )
        self.job = None
        self.phase = CapturePhase.IDLE
        self._pending_wait = 0.0

        logger.info(
            "Capture complete",
            path=str(path),
            size=(width, height),
            tiles=result.tiles,
            mismatched_tiles=result.mismatched_tiles,
            duration_ms=result.duration_ms,
        )
        return ResumeStatus(StatusKind.DONE, result=result)
