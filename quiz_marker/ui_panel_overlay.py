from __future__ import annotations

import logging
import tkinter as tk
from tkinter import ttk
from typing import Optional, Sequence

from PIL import Image, ImageTk

from .cv_utils import ImageSource, load_image
from .data_model import GradedQuestion
from .errors import ImageLoadError
from .overlay import LABEL_MARGIN_PX, OverlayBox, OverlayModel

logger = logging.getLogger(__name__)


class MarkedImagePanel:
    """Tk view of one graded page at a time with answer boxes drawn on top."""

    def __init__(self, parent: tk.Widget, *, images: Sequence[ImageSource], questions: Sequence[GradedQuestion]) -> None:
        self._images = list(images)
        self.model = OverlayModel(len(self._images), questions)

        frame = ttk.Frame(parent)
        self.frame = frame
        frame.pack(side="top", fill="both", expand=True)

        self.canvas = tk.Canvas(frame, background="#111", highlightthickness=1, highlightbackground="#333")
        self.canvas.pack(side="top", fill="both", expand=True)

        nav = ttk.Frame(frame)
        self._nav = nav
        ttk.Button(nav, text="< Prev", command=self.previous).pack(side="left")
        self.page_var = tk.StringVar(value="")
        ttk.Label(nav, textvariable=self.page_var).pack(side="left", expand=True)
        ttk.Button(nav, text="Next >", command=self.next).pack(side="right")
        if self.model.has_navigation:
            nav.pack(side="bottom", fill="x", pady=(8, 0))

        self._page_img: Optional[Image.Image] = None
        self._page_idx: Optional[int] = None
        self._photo: Optional[ImageTk.PhotoImage] = None
        self._render_after_id = None

        self.canvas.bind("<Configure>", self._on_canvas_configure)
        self.canvas.bind("<Destroy>", self._on_destroy, add="+")
        self._show_page()

    # ---------- navigation ----------

    def next(self) -> None:
        self.model.next()
        self._show_page()

    def previous(self) -> None:
        self.model.previous()
        self._show_page()

    def go_to(self, page: int) -> None:
        self.model.go_to(page)
        self._show_page()

    def _show_page(self) -> None:
        self.page_var.set(self.model.page_label() if self.model.page_count else "")
        self._release_page()
        self.canvas.delete("all")
        if not self.model.page_count:
            return
        page = self.model.current_index
        # decode after the current event; a newer page switch makes this a no-op
        self.canvas.after_idle(lambda: self._load_page(page))

    def _load_page(self, page: int) -> None:
        if page != self.model.current_index or not self.canvas.winfo_exists():
            return
        try:
            self._page_img = load_image(self._images[page])
            self._page_idx = page
        except ImageLoadError as e:
            logger.error("Page %d could not be displayed: %s", page + 1, e)
            self._page_img = None
            self._page_idx = None
            return
        self._render_image()

    def _release_page(self) -> None:
        self._page_img = None
        self._page_idx = None
        self._photo = None

    # ---------- rendering ----------

    def _on_canvas_configure(self, _evt=None):
        # coalesce resize bursts into one render
        if self._render_after_id is not None:
            self.canvas.after_cancel(self._render_after_id)
        self._render_after_id = self.canvas.after(30, self._render_image)

    def _render_image(self) -> None:
        self._render_after_id = None
        if self._page_img is None or self._page_idx != self.model.current_index:
            return

        margin = LABEL_MARGIN_PX if self.model.has_labels() else 0
        request = self.model.request_layout(self.canvas.winfo_width(), self.canvas.winfo_height(), label_margin=margin)
        iw, ih = self._page_img.size
        boxes = self.model.apply_layout(request, iw, ih)
        if boxes is None:
            return

        self.canvas.delete("all")
        self._photo = None
        geo = self.model.geometry
        if geo.is_empty:
            return

        disp_w = max(1, int(round(geo.rendered_w)))
        disp_h = max(1, int(round(geo.rendered_h)))
        disp = self._page_img.resize((disp_w, disp_h), Image.Resampling.LANCZOS)
        self._photo = ImageTk.PhotoImage(disp)
        self.canvas.create_image(geo.offset_x, geo.offset_y, image=self._photo, anchor="nw", tags=("img",))

        for box in boxes:
            self._draw_box(box)

    def _draw_box(self, box: OverlayBox) -> None:
        r = box.rect
        self.canvas.create_rectangle(r.left, r.top, r.right, r.bottom, outline=box.color, width=2, tags=("overlay",))
        if box.label is None or box.label_anchor is None:
            return
        lx, ly = box.label_anchor
        text_id = self.canvas.create_text(lx, ly, text=box.label, fill="white", anchor="w", tags=("overlay", "label"))
        bbox = self.canvas.bbox(text_id)
        if bbox is None:
            return
        pad = 3
        x0, y0, x1, y1 = bbox
        rect = self.canvas.create_rectangle(
            x0 - pad, y0 - pad, x1 + pad, y1 + pad,
            fill="#16A34A", outline="", tags=("overlay", "label_bg"),
        )
        self.canvas.tag_raise(text_id, rect)

    def _on_destroy(self, evt=None) -> None:
        if evt is not None and evt.widget is not self.canvas:
            return
        if self._render_after_id is not None:
            self.canvas.after_cancel(self._render_after_id)
            self._render_after_id = None
        self._release_page()
