"""
Periodic drivers for the capture scheduler.

``CaptureDriver.tick`` is meant to be hooked into a host's update loop.
``run_blocking`` and ``run_async`` own the loop themselves.
"""

import asyncio
import time
from typing import Callable, Optional

from canvas_capture.logging import get_logger
from canvas_capture.scheduler import CaptureScheduler, ResumeStatus, StatusKind

logger = get_logger(__name__)


class CaptureDriver:
    """
    Pumps a scheduler from a periodic callback.

    Each tick measures the time since the last step that actually advanced
    and passes it to ``resume``; the scheduler decides whether that is long
    enough. A tick never sleeps.
    """

    def __init__(
        self,
        scheduler: CaptureScheduler,
        clock: Callable[[], float] = time.monotonic,
        min_interval: Optional[float] = None,
    ):
        self.scheduler = scheduler
        self.clock = clock
        self.min_interval = (
            scheduler.config.timing.min_tick_interval if min_interval is None else min_interval
        )
        self.last_status: Optional[ResumeStatus] = None
        self.tick_count = 0
        self._last_advance = clock()

    @property
    def finished(self) -> bool:
        return self.last_status is not None and self.last_status.finished

    def time_until_next_step(self) -> float:
        """Seconds until a tick could advance the scheduler."""
        wait = max(self.min_interval, self.scheduler.pending_wait)
        return max(0.0, wait - (self.clock() - self._last_advance))

    def tick(self) -> ResumeStatus:
        """Advance the scheduler if its requested wait has elapsed."""
        self.tick_count += 1
        now = self.clock()
        elapsed = now - self._last_advance

        if elapsed < self.min_interval:
            status = ResumeStatus(
                StatusKind.CONTINUE,
                wait_seconds=self.min_interval - elapsed,
                advanced=False,
            )
        else:
            status = self.scheduler.resume(elapsed)
            if status.advanced:
                self._last_advance = now

        self.last_status = status
        return status

    def stop(self) -> None:
        """Detach from the scheduler, cancelling any capture in progress."""
        if self.scheduler.is_running:
            self.scheduler.cancel()


def run_blocking(
    scheduler: CaptureScheduler,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> ResumeStatus:
    """
    Drive a started scheduler to completion on the calling thread.

    Returns:
        The final DONE or FAILED status
    """
    driver = CaptureDriver(scheduler, clock=clock)
    try:
        while True:
            status = driver.tick()
            if status.finished:
                return status
            sleep(driver.time_until_next_step())
    except KeyboardInterrupt:
        logger.info("Capture interrupted by user")
        driver.stop()
        raise


async def run_async(
    scheduler: CaptureScheduler,
    clock: Callable[[], float] = time.monotonic,
) -> ResumeStatus:
    """
    Drive a started scheduler from an asyncio task.

    Cancelling the task cancels the capture.
    """
    driver = CaptureDriver(scheduler, clock=clock)
    try:
        while True:
            status = driver.tick()
            if status.finished:
                return status
            await asyncio.sleep(driver.time_until_next_step())
    except asyncio.CancelledError:
        logger.info("Capture task cancelled")
        driver.stop()
        raise
