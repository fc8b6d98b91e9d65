from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, ImageDraw

from .config import MarkerSettings
from .cv_utils import (
    ImageSource,
    encode_image,
    load_image,
    mime_for_image,
    normalize_mime,
    pil_to_rgba_array,
    rgba_array_to_pil,
)
from .errors import ImageLoadError
from .geometry import (
    IDENTITY_TRANSFORM,
    ViewportTransform,
    client_to_canvas,
    displayed_canvas_rect,
    fit_transform,
    pan_transform,
    touch_distance,
    zoom_transform,
)

logger = logging.getLogger(__name__)

MASK_COLOR = (255, 255, 255, 255)
PREVIEW_COLOR = (255, 255, 255, 178)  # 0.7 alpha

Point = Tuple[float, float]


class MaskTool(str, Enum):
    RECTANGLE = "rectangle"
    BRUSH = "brush"


class EditorState(str, Enum):
    IDLE = "idle"
    DRAWING = "drawing"


@dataclass(frozen=True)
class EditedImage:
    data: bytes
    mime: str
    filename: str
    size: Tuple[int, int]


class MaskEditorSession:
    """
    One masking session over a single page image.

    Masks are burned straight into an RGBA pixel buffer; there is no vector
    history. The only undo is the per-rectangle snapshot used for the live
    preview and reset(), which goes back to the original image.

    Pointer coordinates are container (widget) coordinates; they are mapped
    into canvas pixels through the current viewport transform.
    """

    def __init__(
        self,
        source: ImageSource,
        *,
        filename: str = "image.png",
        mime: Optional[str] = None,
        on_save: Optional[Callable[[EditedImage], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
        settings: Optional[MarkerSettings] = None,
    ) -> None:
        self.settings = settings or MarkerSettings()
        self._source = source
        self.filename = filename
        self.mime = mime
        self.on_save = on_save
        self.on_cancel = on_cancel

        self._original: Optional[Image.Image] = None
        self._buffer: Optional[Image.Image] = None

        self.transform: ViewportTransform = IDENTITY_TRANSFORM
        self.initial_transform: ViewportTransform = IDENTITY_TRANSFORM

        self.tool = MaskTool.RECTANGLE
        self._brush_size = self.settings.brush_size
        self.state = EditorState.IDLE
        self.stroke_start: Optional[Point] = None
        self._snapshot: Optional[np.ndarray] = None
        self._brush_last: Optional[Point] = None
        self._last_client: Optional[Point] = None
        self.last_pinch_distance: Optional[float] = None

        # bumped on reset(); views redraw everything when it changes
        self.generation = 0
        self.closed = False

    # ---------- lifecycle ----------

    def load(self) -> bool:
        if self.closed:
            return False
        try:
            img = load_image(self._source)
        except ImageLoadError as e:
            logger.error("Failed to load image for editing: %s", e)
            self._close()
            if self.on_cancel is not None:
                self.on_cancel()
            return False
        self._original = img
        self._buffer = img.convert("RGBA")
        # the label must match the bytes save() writes
        self.mime = normalize_mime(self.mime) if self.mime else mime_for_image(img)
        return True

    @property
    def loaded(self) -> bool:
        return self._buffer is not None

    def _require_buffer(self) -> Image.Image:
        if self.closed:
            raise RuntimeError("editor session is closed")
        if self._buffer is None:
            raise RuntimeError("editor image is not loaded")
        return self._buffer

    def _close(self) -> None:
        self.closed = True
        self.state = EditorState.IDLE
        self.stroke_start = None
        self._snapshot = None
        self._brush_last = None
        self.last_pinch_distance = None
        self._buffer = None
        self._original = None

    def save(self) -> EditedImage:
        buf = self._require_buffer()
        out = buf
        if "A" not in self._original.getbands() and "transparency" not in self._original.info:
            out = buf.convert("RGB")
        artifact = EditedImage(
            data=encode_image(out, self.mime, quality=self.settings.save_quality),
            mime=self.mime,
            filename=self.filename,
            size=buf.size,
        )
        self._close()
        if self.on_save is not None:
            self.on_save(artifact)
        return artifact

    def cancel(self) -> None:
        if self.closed:
            return
        self._close()
        if self.on_cancel is not None:
            self.on_cancel()

    def reset(self) -> None:
        """Drop every mask and redraw the original image."""
        self._require_buffer()
        self._buffer = self._original.convert("RGBA")
        self.state = EditorState.IDLE
        self.stroke_start = None
        self._snapshot = None
        self._brush_last = None
        self.generation += 1

    # ---------- buffer access ----------

    @property
    def image_size(self) -> Tuple[int, int]:
        return self._require_buffer().size

    @property
    def buffer(self) -> Image.Image:
        return self._require_buffer().copy()

    def pixel_at(self, x: int, y: int) -> Tuple[int, int, int, int]:
        return self._require_buffer().getpixel((int(x), int(y)))

    def crop(self, box: Tuple[int, int, int, int]) -> Image.Image:
        return self._require_buffer().crop(box)

    # ---------- tools ----------

    @property
    def brush_size(self) -> int:
        return self._brush_size

    @brush_size.setter
    def brush_size(self, value: int) -> None:
        self._brush_size = max(self.settings.brush_min, min(self.settings.brush_max, int(value)))

    def set_tool(self, tool: MaskTool) -> None:
        if self.state is EditorState.DRAWING:
            self._abort_stroke()
        self.tool = MaskTool(tool)

    # ---------- viewport ----------

    def fit_to_container(self, container_w: float, container_h: float) -> bool:
        iw, ih = self.image_size
        t = fit_transform(iw, ih, container_w, container_h)
        if t is None:
            return False
        self.initial_transform = t
        self.transform = t
        return True

    def reset_view(self) -> None:
        self.transform = self.initial_transform

    def zoom(self, factor: float, anchor_x: float, anchor_y: float) -> None:
        self.transform = zoom_transform(
            self.transform, factor, anchor_x, anchor_y,
            min_zoom=self.settings.min_zoom, max_zoom=self.settings.max_zoom,
        )

    def pan(self, dx: float, dy: float) -> None:
        self.transform = pan_transform(self.transform, dx, dy)

    def to_canvas(self, client_x: float, client_y: float) -> Optional[Point]:
        iw, ih = self.image_size
        rect = displayed_canvas_rect(self.transform, iw, ih)
        return client_to_canvas(client_x, client_y, rect, iw, ih)

    def _on_canvas(self, p: Point) -> bool:
        iw, ih = self._buffer.size
        return 0 <= p[0] < iw and 0 <= p[1] < ih

    # ---------- pointer state machine ----------

    def pointer_down(self, client_x: float, client_y: float) -> None:
        buf = self._require_buffer()
        p = self.to_canvas(client_x, client_y)
        if p is None or not self._on_canvas(p):
            # presses in the letterbox margin never start a stroke
            return
        self._last_client = (client_x, client_y)
        self.state = EditorState.DRAWING
        if self.tool is MaskTool.BRUSH:
            self._brush_last = p
        else:
            self.stroke_start = p
            self._snapshot = pil_to_rgba_array(buf)

    def pointer_move(self, client_x: float, client_y: float) -> None:
        self._require_buffer()
        if self.state is not EditorState.DRAWING:
            return
        p = self.to_canvas(client_x, client_y)
        if p is None:
            return
        self._last_client = (client_x, client_y)
        if self.tool is MaskTool.BRUSH:
            self._paint_segment(self._brush_last or p, p)
            self._brush_last = p
        elif self._snapshot is not None and self.stroke_start is not None:
            self._restore_snapshot()
            self._fill_rect(self.stroke_start, p, PREVIEW_COLOR, blend=True)

    def pointer_up(self, client_x: Optional[float] = None, client_y: Optional[float] = None) -> None:
        self._require_buffer()
        if self.state is EditorState.DRAWING and self.tool is MaskTool.RECTANGLE:
            if client_x is None or client_y is None:
                client_x, client_y = self._last_client or (None, None)
            p = self.to_canvas(client_x, client_y) if client_x is not None else None
            if p is not None and self._snapshot is not None and self.stroke_start is not None:
                self._restore_snapshot()
                self._fill_rect(self.stroke_start, p, MASK_COLOR, blend=False)
        self.state = EditorState.IDLE
        self.stroke_start = None
        self._snapshot = None
        self._brush_last = None

    def pointer_leave(self, client_x: Optional[float] = None, client_y: Optional[float] = None) -> None:
        self.pointer_up(client_x, client_y)

    # ---------- touch ----------

    def touch_start(self, touches: Sequence[Point]) -> None:
        self._require_buffer()
        if len(touches) == 1:
            self.pointer_down(*touches[0])
        elif len(touches) == 2:
            # second finger: pinch, never a stroke
            if self.state is EditorState.DRAWING:
                self._abort_stroke()
            self.last_pinch_distance = touch_distance(touches[0], touches[1])

    def touch_move(self, touches: Sequence[Point]) -> None:
        self._require_buffer()
        if len(touches) == 1:
            self.pointer_move(*touches[0])
        elif len(touches) == 2:
            dist = touch_distance(touches[0], touches[1])
            if self.last_pinch_distance:
                mx = (touches[0][0] + touches[1][0]) / 2
                my = (touches[0][1] + touches[1][1]) / 2
                self.zoom(dist / self.last_pinch_distance, mx, my)
            self.last_pinch_distance = dist

    def touch_end(self, changed: Sequence[Point] = ()) -> None:
        self._require_buffer()
        if self.state is EditorState.DRAWING:
            if changed:
                self.pointer_up(*changed[0])
            else:
                self.pointer_up()
        self.last_pinch_distance = None

    # ---------- painting ----------

    def _abort_stroke(self) -> None:
        if self.tool is MaskTool.RECTANGLE and self._snapshot is not None:
            self._restore_snapshot()
        self.state = EditorState.IDLE
        self.stroke_start = None
        self._snapshot = None
        self._brush_last = None

    def _restore_snapshot(self) -> None:
        self._buffer.paste(rgba_array_to_pil(self._snapshot), (0, 0))

    def _paint_segment(self, p0: Point, p1: Point) -> None:
        draw = ImageDraw.Draw(self._buffer)
        size = self._brush_size
        r = size / 2
        draw.line([p0, p1], fill=MASK_COLOR, width=size, joint="curve")
        # round caps
        for (x, y) in (p0, p1):
            draw.ellipse([x - r, y - r, x + r, y + r], fill=MASK_COLOR)

    def _fill_rect(self, start: Point, end: Point, color: Tuple[int, int, int, int], *, blend: bool) -> None:
        iw, ih = self._buffer.size
        x0 = max(0, min(iw, int(round(min(start[0], end[0])))))
        x1 = max(0, min(iw, int(round(max(start[0], end[0])))))
        y0 = max(0, min(ih, int(round(min(start[1], end[1])))))
        y1 = max(0, min(ih, int(round(max(start[1], end[1])))))
        if x1 <= x0 or y1 <= y0:
            return
        if blend:
            patch = Image.new("RGBA", (x1 - x0, y1 - y0), color)
            self._buffer.alpha_composite(patch, dest=(x0, y0))
        else:
            self._buffer.paste(color, (x0, y0, x1, y1))
