from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from .data_model import BoundingBox


@dataclass(frozen=True)
class RenderedImageGeometry:
    """Where a contain-fitted image lands inside its container, in container px."""
    rendered_w: float = 0.0
    rendered_h: float = 0.0
    offset_x: float = 0.0
    offset_y: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.rendered_w <= 0 or self.rendered_h <= 0


EMPTY_GEOMETRY = RenderedImageGeometry()


@dataclass(frozen=True)
class PixelRect:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def center_y(self) -> float:
        return self.top + self.height / 2

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.left, self.top, self.width, self.height)


def _positive(*vals: Optional[float]) -> bool:
    for v in vals:
        if v is None or not math.isfinite(v) or v <= 0:
            return False
    return True


def compute_contain_geometry(
    natural_w: Optional[float],
    natural_h: Optional[float],
    container_w: Optional[float],
    container_h: Optional[float],
) -> RenderedImageGeometry:
    """
    Letterbox a natural-size image into a container (object-fit: contain).

    None for a natural dimension means the image is not loaded yet. Any
    non-positive input gives EMPTY_GEOMETRY; callers draw nothing then.
    """
    if not _positive(natural_w, natural_h, container_w, container_h):
        return EMPTY_GEOMETRY

    natural_aspect = natural_w / natural_h
    container_aspect = container_w / container_h

    if natural_aspect > container_aspect:
        rendered_w = float(container_w)
        rendered_h = container_w * natural_h / natural_w
        return RenderedImageGeometry(rendered_w, rendered_h, 0.0, (container_h - rendered_h) / 2)

    rendered_h = float(container_h)
    rendered_w = container_h * natural_w / natural_h
    return RenderedImageGeometry(rendered_w, rendered_h, (container_w - rendered_w) / 2, 0.0)


def normalized_to_container_pixels(box: BoundingBox, geometry: RenderedImageGeometry) -> Optional[PixelRect]:
    if geometry.is_empty:
        return None
    return PixelRect(
        left=geometry.offset_x + box.x * geometry.rendered_w,
        top=geometry.offset_y + box.y * geometry.rendered_h,
        width=box.width * geometry.rendered_w,
        height=box.height * geometry.rendered_h,
    )


# ---------- viewport (mask editor) ----------

@dataclass(frozen=True)
class ViewportTransform:
    # canvas drawn at (translate_x, translate_y) in the container, scaled about its top-left
    scale: float = 1.0
    translate_x: float = 0.0
    translate_y: float = 0.0


IDENTITY_TRANSFORM = ViewportTransform()


def fit_transform(
    natural_w: float,
    natural_h: float,
    container_w: float,
    container_h: float,
    *,
    allow_upscale: bool = False,
) -> Optional[ViewportTransform]:
    """Initial view: contain-fit the canvas, centred, never upscaled unless asked."""
    if not _positive(natural_w, natural_h, container_w, container_h):
        return None
    geo = compute_contain_geometry(natural_w, natural_h, container_w, container_h)
    scale = geo.rendered_w / natural_w
    if not allow_upscale:
        scale = min(scale, 1.0)
    return ViewportTransform(
        scale=scale,
        translate_x=(container_w - natural_w * scale) / 2,
        translate_y=(container_h - natural_h * scale) / 2,
    )


def zoom_transform(
    t: ViewportTransform,
    factor: float,
    anchor_x: float,
    anchor_y: float,
    *,
    min_zoom: float = 0.1,
    max_zoom: float = 10.0,
) -> ViewportTransform:
    """Zoom about a container point; the canvas pixel under the anchor stays put."""
    if factor <= 0 or not math.isfinite(factor):
        return t
    new_scale = max(min_zoom, min(max_zoom, t.scale * factor))
    if new_scale == t.scale:
        return t
    k = new_scale / t.scale
    return ViewportTransform(
        scale=new_scale,
        translate_x=anchor_x - (anchor_x - t.translate_x) * k,
        translate_y=anchor_y - (anchor_y - t.translate_y) * k,
    )


def pan_transform(t: ViewportTransform, dx: float, dy: float) -> ViewportTransform:
    return replace(t, translate_x=t.translate_x + dx, translate_y=t.translate_y + dy)


def displayed_canvas_rect(t: ViewportTransform, canvas_w: int, canvas_h: int) -> PixelRect:
    return PixelRect(t.translate_x, t.translate_y, canvas_w * t.scale, canvas_h * t.scale)


def client_to_canvas(
    client_x: float,
    client_y: float,
    rect: PixelRect,
    canvas_w: int,
    canvas_h: int,
) -> Optional[Tuple[float, float]]:
    """Pointer position in the container -> canvas pixel coordinates (unclamped)."""
    if rect.width <= 0 or rect.height <= 0:
        return None
    sx = canvas_w / rect.width
    sy = canvas_h / rect.height
    return ((client_x - rect.left) * sx, (client_y - rect.top) * sy)


def touch_distance(p0: Tuple[float, float], p1: Tuple[float, float]) -> float:
    return math.hypot(p0[0] - p1[0], p0[1] - p1[1])
