"""
Unit tests for capturable views.
"""

import numpy as np
import pytest
from unittest.mock import Mock, patch
from PIL import Image

from canvas_capture.geometry import Region, Vec2, ViewTransform
from canvas_capture.views import (
    CapturableView,
    OutputSink,
    ImageCanvasView,
    ScreenCanvasView,
    ScreenPixelReader,
    ViewUnavailableError,
    focus_transform,
)


class FakeScreenShot:
    """Stands in for mss.ScreenShot: BGRA pixels top to bottom."""

    def __init__(self, bgra: np.ndarray):
        self._bgra = bgra
        self.height, self.width = bgra.shape[:2]

    def __array__(self, dtype=None, copy=None):
        return self._bgra if dtype is None else self._bgra.astype(dtype)


class TestImageCanvasView:
    """Tests for ImageCanvasView."""

    def test_identity_read_matches_content(self, content_image):
        view = ImageCanvasView(content_image, Region(50, 30, 300, 240))

        tile = view.read_pixels(Region(50, 30, 20, 10))

        assert tile.size == (20, 10)
        assert np.array_equal(tile.to_image_array(), content_image[0:10, 0:20])

    def test_pixels_are_bottom_up(self, content_image):
        view = ImageCanvasView(content_image, (100, 100))

        tile = view.read_pixels(Region(0, 0, 4, 3))

        # First row of the buffer is the lowest screen row
        assert np.array_equal(tile.pixels[0], content_image[2, 0])

    def test_transform_shows_after_redraw(self, content_image):
        view = ImageCanvasView(content_image, (100, 100))
        view.set_view_transform(ViewTransform(position=Vec2(-10.0, -5.0), scale=Vec2(1.0, 1.0)))

        before = view.read_pixels(Region(0, 0, 8, 8)).to_image_array()
        view.request_redraw()
        after = view.read_pixels(Region(0, 0, 8, 8)).to_image_array()

        assert np.array_equal(before, content_image[0:8, 0:8])
        assert np.array_equal(after, content_image[5:13, 10:18])
        assert view.redraw_count == 1

    def test_zoomed_out_samples_every_other_pixel(self, content_image):
        view = ImageCanvasView(
            content_image, (100, 100), ViewTransform(position=Vec2(0.0, 0.0), scale=Vec2(0.5, 0.5))
        )

        frame = view.read_pixels(Region(0, 0, 4, 4)).to_image_array()

        assert np.array_equal(frame, content_image[1:8:2, 1:8:2])

    def test_outside_content_reads_background(self, content_image):
        view = ImageCanvasView(
            content_image,
            (100, 100),
            ViewTransform(position=Vec2(50.0, 0.0), scale=Vec2(1.0, 1.0)),
            background=(1, 2, 3, 4),
        )

        frame = view.read_pixels(Region(0, 0, 60, 1)).to_image_array()

        assert (frame[0, :50] == [1, 2, 3, 4]).all()
        assert np.array_equal(frame[0, 50:], content_image[0, 0:10])

    def test_outside_viewport_reads_background(self, content_image):
        view = ImageCanvasView(content_image, Region(0, 0, 10, 10))

        frame = view.read_pixels(Region(5, 0, 10, 1)).to_image_array()

        assert np.array_equal(frame[0, :5], content_image[0, 5:10])
        assert not frame[0, 5:].any()

    def test_rgb_content_gets_alpha(self):
        view = ImageCanvasView(np.full((4, 4, 3), 9, dtype=np.uint8), (4, 4))
        tile = view.read_pixels(Region(0, 0, 4, 4))

        assert (tile.pixels[:, 3] == 255).all()

    def test_bad_content_shape_rejected(self):
        with pytest.raises(ValueError):
            ImageCanvasView(np.zeros((4, 4), dtype=np.uint8), (4, 4))

    def test_closed_view_raises(self, content_image):
        view = ImageCanvasView(content_image, (100, 100))
        view.close()

        assert not view.is_available()
        with pytest.raises(ViewUnavailableError):
            view.get_view_transform()
        with pytest.raises(ViewUnavailableError):
            view.read_pixels(Region(0, 0, 1, 1))

    def test_from_file(self, content_image, temp_dir):
        path = temp_dir / "canvas.png"
        Image.fromarray(content_image).save(path)

        view = ImageCanvasView.from_file(path, (64, 48))

        assert view.content_size == (480, 360)
        assert np.array_equal(view.snapshot(), content_image[0:48, 0:64])


class TestFocusTransform:
    """Tests for focus_transform."""

    def test_fits_limiting_axis(self):
        transform = focus_transform((480, 360), (240, 240))
        assert transform.scale == Vec2(0.5, 0.5)
        assert transform.position == Vec2(0.0, 0.0)

    def test_origin_maps_to_viewport_corner(self):
        transform = focus_transform((100, 100), (200, 200), origin=Vec2(10.0, 20.0))
        assert transform.to_screen(Vec2(10.0, 20.0)) == Vec2(0.0, 0.0)


class TestScreenPixelReader:
    """Tests for ScreenPixelReader."""

    def test_read_converts_bgra_to_bottom_up_rgba(self):
        bgra = np.zeros((2, 3, 4), dtype=np.uint8)
        bgra[0, :, 0] = 10  # blue, top row
        bgra[1, :, 2] = 20  # red, bottom row
        sct = Mock()
        sct.grab.return_value = FakeScreenShot(bgra)

        with patch("canvas_capture.views.screen.mss.mss", return_value=sct):
            reader = ScreenPixelReader()
            tile = reader.read(Region(5, 6, 3, 2))

        sct.grab.assert_called_once_with({"left": 5, "top": 6, "width": 3, "height": 2})
        assert tile.size == (3, 2)
        assert list(tile.pixels[0]) == [20, 0, 0, 255]
        assert list(tile.pixels[3]) == [0, 0, 10, 255]
        assert reader.grab_count == 1

    def test_handle_is_reused_and_closed(self):
        sct = Mock()
        sct.grab.return_value = FakeScreenShot(np.zeros((1, 1, 4), dtype=np.uint8))

        with patch("canvas_capture.views.screen.mss.mss", return_value=sct) as factory:
            with ScreenPixelReader() as reader:
                reader.read(Region(0, 0, 1, 1))
                reader.read(Region(0, 0, 1, 1))

        assert factory.call_count == 1
        sct.close.assert_called_once()

    def test_empty_region_rejected(self):
        with pytest.raises(ValueError):
            ScreenPixelReader().read(Region(0, 0, 0, 5))


class TestScreenCanvasView:
    """Tests for ScreenCanvasView."""

    def make_view(self, alive=True):
        state = {"transform": ViewTransform.identity(), "redraws": 0, "alive": alive}

        def set_transform(t):
            state["transform"] = t

        def redraw():
            state["redraws"] += 1

        reader = Mock()
        view = ScreenCanvasView(
            get_transform=lambda: state["transform"],
            set_transform=set_transform,
            redraw=redraw,
            get_viewport=lambda: Region(10, 20, 300, 200),
            is_alive=lambda: state["alive"],
            reader=reader,
        )
        return view, state, reader

    def test_delegates_to_host(self):
        view, state, reader = self.make_view()
        target = ViewTransform(position=Vec2(-5.0, -5.0), scale=Vec2(1.0, 1.0))

        view.set_view_transform(target)
        view.request_redraw()
        view.read_pixels(Region(10, 20, 4, 4))

        assert view.get_view_transform() == target
        assert state["redraws"] == 1
        assert view.get_viewport_screen_rect() == Region(10, 20, 300, 200)
        reader.read.assert_called_once_with(Region(10, 20, 4, 4))

    def test_dead_host_raises(self):
        view, state, reader = self.make_view()
        state["alive"] = False

        assert not view.is_available()
        with pytest.raises(ViewUnavailableError):
            view.request_redraw()
        reader.read.assert_not_called()


class TestInterfaces:
    """Tests for the collaborator base classes."""

    def test_partial_view_rejected_at_construction(self):
        class PanOnlyView(CapturableView):
            def get_view_transform(self):
                return ViewTransform.identity()

            def set_view_transform(self, transform):
                pass

        with pytest.raises(TypeError):
            PanOnlyView()

    def test_sink_without_save_rejected(self):
        class SilentSink(OutputSink):
            pass

        with pytest.raises(TypeError):
            SilentSink()

    def test_available_by_default(self, content_image):
        assert ImageCanvasView(content_image, (10, 10)).is_available()
