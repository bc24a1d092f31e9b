"""
Canvas Capture - tiled capture and stitching of large zoomable canvases.
"""

__version__ = "0.1.0"
