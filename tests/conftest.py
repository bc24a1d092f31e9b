"""
Pytest configuration and fixtures.
"""

import pytest
import tempfile
from pathlib import Path

import numpy as np

from canvas_capture.config import CaptureConfig, TimingConfig, OutputConfig


@pytest.fixture
def temp_dir():
    """Temporary directory, removed after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def content_image():
    """Deterministic 480x360 RGBA canvas where every pixel differs from its neighbours."""
    height, width = 360, 480
    ys, xs = np.mgrid[0:height, 0:width]
    image = np.empty((height, width, 4), dtype=np.uint8)
    image[:, :, 0] = xs % 256
    image[:, :, 1] = ys % 256
    image[:, :, 2] = (xs // 256) * 16 + (ys // 256)
    image[:, :, 3] = 255
    return image


@pytest.fixture
def fast_config(temp_dir):
    """Config with no settle delays, writing into the temp dir."""
    return CaptureConfig(
        timing=TimingConfig(settle_delay=0.0, scale_settle_delay=0.0, min_tick_interval=0.0),
        output=OutputConfig(directory=str(temp_dir / "captures")),
    )


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
