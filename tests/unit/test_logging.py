"""
Tests for logging helpers.
"""

import io
import json
import logging

import numpy as np

from canvas_capture.logging import get_logger, setup_logging, summarize_pixel_data
from canvas_capture.stitcher import PixelBuffer


class TestSummarizePixelData:
    """Tests for the pixel summarizing processor."""

    def test_arrays_replaced(self):
        event = {"event": "tile", "frame": np.zeros((4, 5, 4), dtype=np.uint8)}

        result = summarize_pixel_data(None, "info", event)

        assert result["frame"] == "<ndarray shape=(4, 5, 4) dtype=uint8>"
        assert result["event"] == "tile"

    def test_buffers_replaced(self):
        event = {"event": "tile", "tile": PixelBuffer.blank(30, 20)}

        result = summarize_pixel_data(None, "info", event)

        assert result["tile"] == "<PixelBuffer 30x20>"

    def test_plain_values_untouched(self):
        event = {"event": "x", "size": (3, 4), "name": "graph"}
        assert summarize_pixel_data(None, "info", dict(event)) == event


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_log_file_created(self, temp_dir):
        root = logging.getLogger()
        handlers = root.handlers[:]
        try:
            log_file = temp_dir / "logs" / "capture.log"
            setup_logging(level="DEBUG", log_file=log_file)

            assert log_file.parent.is_dir()
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 2
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers = handlers

    def test_events_reach_console_and_json_file(self, temp_dir):
        root = logging.getLogger()
        handlers = root.handlers[:]
        console = io.StringIO()
        try:
            log_file = temp_dir / "capture.log"
            setup_logging(level="INFO", log_file=log_file, stream=console)

            get_logger("canvas_capture.test").info("Tile stitched", tile=np.zeros((2, 3, 4), dtype=np.uint8))
            for handler in root.handlers:
                handler.flush()

            entry = json.loads(log_file.read_text().strip().splitlines()[-1])
            assert entry["event"] == "Tile stitched"
            assert entry["level"] == "info"
            assert entry["tile"] == "<ndarray shape=(2, 3, 4) dtype=uint8>"
            assert "Tile stitched" in console.getvalue()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers = handlers

    def test_pillow_debug_noise_suppressed(self):
        root = logging.getLogger()
        handlers = root.handlers[:]
        try:
            setup_logging(level="DEBUG", stream=io.StringIO())
            assert logging.getLogger("PIL").level == logging.INFO
        finally:
            root.handlers = handlers
