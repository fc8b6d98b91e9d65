"""Tests for letterbox geometry and the mask editor viewport math."""

import pytest

from quiz_marker.data_model import BoundingBox
from quiz_marker.geometry import (
    EMPTY_GEOMETRY,
    IDENTITY_TRANSFORM,
    PixelRect,
    RenderedImageGeometry,
    ViewportTransform,
    client_to_canvas,
    compute_contain_geometry,
    displayed_canvas_rect,
    fit_transform,
    normalized_to_container_pixels,
    pan_transform,
    touch_distance,
    zoom_transform,
)


class TestContainGeometry:
    """Test compute_contain_geometry."""

    def test_wide_image_is_letterboxed_vertically(self):
        geo = compute_contain_geometry(1600, 1200, 800, 800)
        assert geo == RenderedImageGeometry(800, 600, 0, 100)

    def test_tall_image_is_pillarboxed(self):
        geo = compute_contain_geometry(600, 1200, 800, 800)
        assert geo.rendered_w == pytest.approx(400)
        assert geo.rendered_h == pytest.approx(800)
        assert geo.offset_x == pytest.approx(200)
        assert geo.offset_y == 0

    @pytest.mark.parametrize("nw,nh,cw,ch", [
        (1600, 1200, 800, 800),
        (640, 480, 1024, 300),
        (300, 900, 500, 500),
        (1, 1, 37, 91),
    ])
    def test_fits_centred_and_keeps_aspect(self, nw, nh, cw, ch):
        geo = compute_contain_geometry(nw, nh, cw, ch)
        assert geo.rendered_w <= cw + 1e-9
        assert geo.rendered_h <= ch + 1e-9
        assert geo.rendered_w / geo.rendered_h == pytest.approx(nw / nh)
        assert 2 * geo.offset_x + geo.rendered_w == pytest.approx(cw)
        assert 2 * geo.offset_y + geo.rendered_h == pytest.approx(ch)
        # one dimension always fills the container
        assert geo.rendered_w == pytest.approx(cw) or geo.rendered_h == pytest.approx(ch)

    @pytest.mark.parametrize("args", [
        (None, None, 800, 800),
        (1600, 1200, 0, 800),
        (1600, 1200, 800, -5),
        (0, 1200, 800, 800),
    ])
    def test_unknown_or_degenerate_sizes_give_empty_geometry(self, args):
        geo = compute_contain_geometry(*args)
        assert geo == EMPTY_GEOMETRY
        assert geo.is_empty


class TestNormalizedToContainer:
    """Test mapping normalized boxes into container pixels."""

    def test_box_maps_through_offset(self):
        geo = compute_contain_geometry(1600, 1200, 800, 800)
        rect = normalized_to_container_pixels(BoundingBox(0.5, 0.5, 0.1, 0.1), geo)
        assert rect.left == pytest.approx(400)
        assert rect.top == pytest.approx(400)
        assert rect.width == pytest.approx(80)
        assert rect.height == pytest.approx(60)
        assert rect.right == pytest.approx(480)
        assert rect.center_y == pytest.approx(430)

    def test_full_box_covers_rendered_area(self):
        geo = compute_contain_geometry(600, 1200, 800, 800)
        rect = normalized_to_container_pixels(BoundingBox(0, 0, 1, 1), geo)
        assert rect.as_tuple() == pytest.approx((geo.offset_x, geo.offset_y, geo.rendered_w, geo.rendered_h))

    def test_empty_geometry_draws_nothing(self):
        assert normalized_to_container_pixels(BoundingBox(0.1, 0.1, 0.1, 0.1), EMPTY_GEOMETRY) is None


class TestViewport:
    """Test fit, zoom, pan and pointer mapping."""

    def test_fit_downscales_large_canvas(self):
        t = fit_transform(1600, 1200, 800, 800)
        assert t.scale == pytest.approx(0.5)
        assert t.translate_x == pytest.approx(0)
        assert t.translate_y == pytest.approx(100)

    def test_fit_never_upscales_by_default(self):
        t = fit_transform(400, 300, 800, 800)
        assert t == ViewportTransform(1.0, 200, 250)

    def test_fit_upscale_when_allowed(self):
        t = fit_transform(400, 300, 800, 800, allow_upscale=True)
        assert t.scale == pytest.approx(2.0)
        assert t.translate_x == pytest.approx(0)
        assert t.translate_y == pytest.approx(100)

    def test_fit_degenerate_container(self):
        assert fit_transform(400, 300, 0, 800) is None

    def test_zoom_keeps_anchor_fixed(self):
        t = ViewportTransform(0.75, 30, -20)
        anchor = (120.0, 90.0)
        before = ((anchor[0] - t.translate_x) / t.scale, (anchor[1] - t.translate_y) / t.scale)
        z = zoom_transform(t, 1.6, *anchor)
        after = ((anchor[0] - z.translate_x) / z.scale, (anchor[1] - z.translate_y) / z.scale)
        assert z.scale == pytest.approx(1.2)
        assert after == pytest.approx(before)

    def test_zoom_about_point(self):
        z = zoom_transform(IDENTITY_TRANSFORM, 2.0, 100, 50)
        assert z == ViewportTransform(2.0, -100.0, -50.0)

    def test_zoom_is_clamped(self):
        assert zoom_transform(IDENTITY_TRANSFORM, 1000, 0, 0).scale == 10.0
        assert zoom_transform(IDENTITY_TRANSFORM, 0.0001, 0, 0).scale == pytest.approx(0.1)
        maxed = ViewportTransform(10.0, 5, 5)
        assert zoom_transform(maxed, 2, 50, 50) == maxed

    def test_zoom_ignores_bad_factor(self):
        assert zoom_transform(IDENTITY_TRANSFORM, 0, 10, 10) == IDENTITY_TRANSFORM
        assert zoom_transform(IDENTITY_TRANSFORM, float("nan"), 10, 10) == IDENTITY_TRANSFORM

    def test_pan_only_moves_translation(self):
        t = pan_transform(ViewportTransform(2.0, 10, 20), 5, -7)
        assert t == ViewportTransform(2.0, 15, 13)

    def test_client_to_canvas_scales_by_displayed_size(self):
        rect = PixelRect(10, 20, 200, 100)
        assert client_to_canvas(110, 70, rect, 400, 200) == pytest.approx((200, 100))

    def test_client_to_canvas_through_transform(self):
        t = ViewportTransform(0.5, 40, 10)
        rect = displayed_canvas_rect(t, 800, 600)
        assert rect.as_tuple() == (40, 10, 400, 300)
        assert client_to_canvas(240, 160, rect, 800, 600) == pytest.approx((400, 300))

    def test_client_to_canvas_zero_rect(self):
        assert client_to_canvas(1, 1, PixelRect(0, 0, 0, 10), 100, 100) is None

    def test_touch_distance(self):
        assert touch_distance((0, 0), (3, 4)) == 5
