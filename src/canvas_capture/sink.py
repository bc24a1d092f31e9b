"""
PNG output sink.

Writes finished captures under a single output directory, never
overwriting an earlier capture of the same name.
"""

import re
from pathlib import Path
from typing import Union

from filelock import FileLock
from PIL import Image

from canvas_capture.logging import get_logger
from canvas_capture.stitcher import PixelBuffer
from canvas_capture.views.base import OutputSink

logger = get_logger(__name__)

# Hosts mark unsaved documents with "*" in the title
_UNSAFE_NAME_CHARS = re.compile(r"[*/\\:?\"<>|]")


def clean_capture_name(name: str) -> str:
    """Turn a window/document title into a file stem."""
    cleaned = _UNSAFE_NAME_CHARS.sub("", name).strip().strip(".")
    return cleaned or "capture"


def unique_path(directory: Path, name: str, suffix: str = ".png") -> Path:
    """
    First free path for ``name`` in ``directory``.

    ``name.png`` if free, else ``name000.png``, ``name001.png``, ...
    """
    path = directory / f"{name}{suffix}"
    i = 0
    while path.exists():
        path = directory / f"{name}{i:03d}{suffix}"
        i += 1
    return path


class PngSink(OutputSink):
    """Encodes capture buffers as RGBA PNG files with Pillow."""

    LOCK_FILE = ".capture.lock"
    LOCK_TIMEOUT = 10.0  # seconds

    def __init__(self, output_dir: Union[str, Path], compress_level: int = 6):
        self.output_dir = Path(output_dir).expanduser()
        self.compress_level = compress_level

    def save(self, width: int, height: int, pixels: PixelBuffer, name: str) -> Path:
        """
        Encode ``pixels`` and write them to a new file.

        Raises:
            ValueError: If the buffer does not hold width * height pixels
            OSError: If the directory or file cannot be written
        """
        if len(pixels) != width * height:
            raise ValueError(
                f"Cannot encode {len(pixels)} pixels as a {width}x{height} image"
            )

        image = Image.fromarray(
            PixelBuffer(width=width, height=height, pixels=pixels.pixels).to_image_array()
        )

        self.output_dir.mkdir(parents=True, exist_ok=True)
        stem = clean_capture_name(name)

        # Name selection and write happen under one lock so two captures never share a path
        with FileLock(str(self.output_dir / self.LOCK_FILE), timeout=self.LOCK_TIMEOUT):
            path = unique_path(self.output_dir, stem)
            image.save(path, format="PNG", compress_level=self.compress_level)

        logger.info("Saved capture", path=str(path), width=width, height=height)
        return path
