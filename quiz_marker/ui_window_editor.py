from __future__ import annotations

import math
import tkinter as tk
from tkinter import ttk
from typing import Callable, Optional

from PIL import Image, ImageTk

from .config import MarkerSettings
from .cv_utils import ImageSource
from .editor import EditedImage, MaskEditorSession, MaskTool

WHEEL_ZOOM_STEP = 1.1


class MaskEditorWindow(tk.Toplevel):
    """
    Modal mask editor: paint white rectangles or brush strokes over a page
    before it is resubmitted. Left button draws, right button pans, wheel zooms.
    """

    def __init__(
        self,
        parent: tk.Misc,
        *,
        source: ImageSource,
        filename: str,
        on_save: Callable[[EditedImage], None],
        on_cancel: Callable[[], None],
        settings: Optional[MarkerSettings] = None,
    ) -> None:
        super().__init__(parent)
        self.title(f"Mask image - {filename}")
        self.geometry("1100x760")
        self.transient(parent)

        self._on_save = on_save
        self._on_cancel = on_cancel
        self.session = MaskEditorSession(
            source,
            filename=filename,
            on_save=self._handle_save,
            on_cancel=self._handle_cancel,
            settings=settings,
        )

        self.var_tool = tk.StringVar(value=MaskTool.RECTANGLE.value)
        self.var_brush = tk.IntVar(value=self.session.brush_size)
        self._photo: Optional[ImageTk.PhotoImage] = None
        self._fit_after_id = None
        self._pan_last: Optional[tuple] = None
        self._closing = False

        if not self.session.load():
            # load failure already reported through on_cancel
            return

        self._build_ui()
        self.protocol("WM_DELETE_WINDOW", self.cancel)
        self.grab_set()

    # ---------- UI ----------

    def _build_ui(self) -> None:
        root = ttk.Frame(self, padding=8)
        root.pack(fill="both", expand=True)

        ttk.Label(root, text="Cover anything the grader should not see. Masks are painted in white.").pack(side="top", fill="x")

        self.canvas = tk.Canvas(root, background="#1F2937", highlightthickness=1, highlightbackground="#333", cursor="crosshair")
        self.canvas.pack(side="top", fill="both", expand=True, pady=(8, 0))
        self.canvas.bind("<Configure>", self._on_canvas_configure)
        self.canvas.bind("<ButtonPress-1>", self._on_press)
        self.canvas.bind("<B1-Motion>", self._on_drag)
        self.canvas.bind("<ButtonRelease-1>", self._on_release)
        self.canvas.bind("<Leave>", self._on_leave)
        self.canvas.bind("<ButtonPress-3>", self._on_pan_press)
        self.canvas.bind("<B3-Motion>", self._on_pan_drag)
        self.canvas.bind("<ButtonRelease-3>", self._on_pan_release)
        self.canvas.bind("<MouseWheel>", self._on_mouse_wheel)
        self.canvas.bind("<Button-4>", lambda e: self._zoom_at(e, WHEEL_ZOOM_STEP))
        self.canvas.bind("<Button-5>", lambda e: self._zoom_at(e, 1 / WHEEL_ZOOM_STEP))

        bar = ttk.Frame(root)
        bar.pack(side="bottom", fill="x", pady=(8, 0))

        ttk.Label(bar, text="Tool:").pack(side="left")
        for lbl, val in [("Rectangle", MaskTool.RECTANGLE.value), ("Brush", MaskTool.BRUSH.value)]:
            ttk.Radiobutton(bar, text=lbl, value=val, variable=self.var_tool, command=self._on_tool_change).pack(side="left", padx=(8, 0))

        ttk.Label(bar, text="Brush size:").pack(side="left", padx=(16, 0))
        ttk.Scale(
            bar,
            from_=self.session.settings.brush_min,
            to=self.session.settings.brush_max,
            orient="horizontal",
            variable=self.var_brush,
            command=self._on_brush_change,
            length=160,
        ).pack(side="left", padx=(6, 0))

        ttk.Button(bar, text="Save", command=self.save).pack(side="right")
        ttk.Button(bar, text="Cancel", command=self.cancel).pack(side="right", padx=(0, 8))
        ttk.Button(bar, text="Reset", command=self.reset).pack(side="right", padx=(0, 8))
        ttk.Button(bar, text="Reset View", command=self.reset_view).pack(side="right", padx=(0, 8))

    def _on_tool_change(self) -> None:
        self.session.set_tool(MaskTool(self.var_tool.get()))
        self._redraw()

    def _on_brush_change(self, _value=None) -> None:
        self.session.brush_size = int(float(self.var_brush.get()))

    # ---------- viewport ----------

    def _on_canvas_configure(self, _evt=None):
        if self._fit_after_id is not None:
            self.after_cancel(self._fit_after_id)
        self._fit_after_id = self.after(30, self._fit)

    def _fit(self) -> None:
        self._fit_after_id = None
        if self.session.closed:
            return
        if self.session.fit_to_container(self.canvas.winfo_width(), self.canvas.winfo_height()):
            self._redraw()

    def reset_view(self) -> None:
        self.session.reset_view()
        self._redraw()

    def _zoom_at(self, event, factor: float) -> None:
        self.session.zoom(factor, event.x, event.y)
        self._redraw()

    def _on_mouse_wheel(self, event) -> None:
        if event.delta == 0:
            return
        self._zoom_at(event, WHEEL_ZOOM_STEP if event.delta > 0 else 1 / WHEEL_ZOOM_STEP)

    def _on_pan_press(self, event) -> None:
        self._pan_last = (event.x, event.y)

    def _on_pan_drag(self, event) -> None:
        if self._pan_last is None:
            return
        lx, ly = self._pan_last
        self.session.pan(event.x - lx, event.y - ly)
        self._pan_last = (event.x, event.y)
        self._redraw()

    def _on_pan_release(self, _event) -> None:
        self._pan_last = None

    # ---------- drawing ----------

    def _on_press(self, event) -> None:
        self.session.pointer_down(event.x, event.y)

    def _on_drag(self, event) -> None:
        self.session.pointer_move(event.x, event.y)
        self._redraw()

    def _on_release(self, event) -> None:
        self.session.pointer_up(event.x, event.y)
        self._redraw()

    def _on_leave(self, event) -> None:
        if self.session.closed:
            return
        self.session.pointer_leave(event.x, event.y)
        self._redraw()

    def reset(self) -> None:
        self.session.reset()
        self._redraw()

    def _redraw(self) -> None:
        if self.session.closed:
            return
        self.canvas.delete("all")
        self._photo = None

        t = self.session.transform
        iw, ih = self.session.image_size
        cw = self.canvas.winfo_width()
        ch = self.canvas.winfo_height()

        # only resample the part of the canvas that is inside the widget
        x0 = max(0, int(math.floor(-t.translate_x / t.scale)))
        y0 = max(0, int(math.floor(-t.translate_y / t.scale)))
        x1 = min(iw, int(math.ceil((cw - t.translate_x) / t.scale)))
        y1 = min(ih, int(math.ceil((ch - t.translate_y) / t.scale)))
        if x1 <= x0 or y1 <= y0:
            return

        region = self.session.crop((x0, y0, x1, y1))
        disp_w = max(1, int(round((x1 - x0) * t.scale)))
        disp_h = max(1, int(round((y1 - y0) * t.scale)))
        resample = Image.Resampling.NEAREST if t.scale >= 1 else Image.Resampling.BILINEAR
        self._photo = ImageTk.PhotoImage(region.resize((disp_w, disp_h), resample))
        self.canvas.create_image(
            t.translate_x + x0 * t.scale,
            t.translate_y + y0 * t.scale,
            image=self._photo,
            anchor="nw",
        )

    # ---------- save / cancel ----------

    def save(self) -> None:
        self.session.save()

    def cancel(self) -> None:
        if self.session.closed:
            self._close()
            return
        self.session.cancel()

    def _handle_save(self, artifact: EditedImage) -> None:
        self._close()
        self._on_save(artifact)

    def _handle_cancel(self) -> None:
        self._close()
        self._on_cancel()

    def _close(self) -> None:
        if self._closing:
            return
        self._closing = True
        self._photo = None
        if self._fit_after_id is not None:
            self.after_cancel(self._fit_after_id)
            self._fit_after_id = None
        self.destroy()
