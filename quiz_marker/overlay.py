from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .data_model import Correctness, GradedQuestion
from .geometry import (
    EMPTY_GEOMETRY,
    PixelRect,
    RenderedImageGeometry,
    compute_contain_geometry,
    normalized_to_container_pixels,
)

logger = logging.getLogger(__name__)

CORRECT_COLOR = "#22C55E"
INCORRECT_COLOR = "#EF4444"

# feedback tags sit just outside the right edge of the rendered page
LABEL_OFFSET_RATIO = 1.02
# container width kept free on the right for those tags
LABEL_MARGIN_PX = 160

_COLORS = {
    Correctness.CORRECT: CORRECT_COLOR,
    Correctness.INCORRECT: INCORRECT_COLOR,
}


@dataclass(frozen=True)
class OverlayBox:
    question: GradedQuestion
    rect: PixelRect
    correctness: Correctness
    color: str
    label: Optional[str] = None
    label_anchor: Optional[Tuple[float, float]] = None  # west-centre point of the tag


@dataclass(frozen=True)
class LayoutRequest:
    page: int
    container_w: float
    container_h: float
    generation: int


class OverlayModel:
    """
    Page-at-a-time view of graded questions over their page images.

    Layout is two-step: request_layout() hands out a ticket for the current
    page and container size, apply_layout() turns it into boxes once the page's
    natural size is known. A ticket issued before a page change or a newer
    resize is stale and is ignored.
    """

    def __init__(self, image_count: int, questions: Sequence[GradedQuestion]) -> None:
        if image_count < 0:
            raise ValueError("image_count must be >= 0")
        self._image_count = int(image_count)
        self._questions: List[GradedQuestion] = list(questions)
        self._current = 0
        self._generation = 0
        self.geometry: RenderedImageGeometry = EMPTY_GEOMETRY
        self.boxes: List[OverlayBox] = []

    # ---------- pagination ----------

    @property
    def page_count(self) -> int:
        return self._image_count

    @property
    def current_index(self) -> int:
        return self._current

    @property
    def has_navigation(self) -> bool:
        return self._image_count > 1

    @property
    def generation(self) -> int:
        return self._generation

    def next(self) -> int:
        if not self.has_navigation:
            return self._current
        self._set_page(0 if self._current == self._image_count - 1 else self._current + 1)
        return self._current

    def previous(self) -> int:
        if not self.has_navigation:
            return self._current
        self._set_page(self._image_count - 1 if self._current == 0 else self._current - 1)
        return self._current

    def go_to(self, index: int) -> int:
        if not (0 <= index < self._image_count):
            raise IndexError(f"page {index} out of range (0..{self._image_count - 1})")
        if index != self._current:
            self._set_page(index)
        return self._current

    def _set_page(self, index: int) -> None:
        self._current = index
        self._generation += 1
        self.geometry = EMPTY_GEOMETRY
        self.boxes = []

    def page_label(self) -> str:
        return f"Page {self._current + 1} of {self._image_count}"

    def questions_for_page(self, index: Optional[int] = None) -> List[GradedQuestion]:
        page = self._current if index is None else index
        return [q for q in self._questions if q.bounding_box is not None and q.bounding_box.image_index == page]

    # ---------- layout ----------

    def has_labels(self, index: Optional[int] = None) -> bool:
        """True when some box on the page will carry a correct-answer tag."""
        return any(not q.is_correct and q.correct_answer for q in self.questions_for_page(index))

    def request_layout(self, container_w: float, container_h: float, *, label_margin: float = 0.0) -> LayoutRequest:
        """
        Ticket for laying out the current page. label_margin is taken off the
        right of the container so tags placed past the page stay visible.
        """
        self._generation += 1
        usable_w = max(0.0, container_w - max(0.0, label_margin))
        return LayoutRequest(self._current, usable_w, container_h, self._generation)

    def is_current(self, request: LayoutRequest) -> bool:
        return request.generation == self._generation and request.page == self._current

    def apply_layout(self, request: LayoutRequest, natural_w: Optional[float], natural_h: Optional[float]) -> Optional[List[OverlayBox]]:
        if not self.is_current(request):
            logger.debug("Ignoring stale overlay layout for page %d (gen %d, now page %d gen %d)",
                         request.page, request.generation, self._current, self._generation)
            return None

        geo = compute_contain_geometry(natural_w, natural_h, request.container_w, request.container_h)
        self.geometry = geo
        if geo.is_empty:
            self.boxes = []
            return self.boxes

        self.boxes = [self._layout_box(q, geo) for q in self.questions_for_page(request.page)]
        return self.boxes

    @staticmethod
    def _layout_box(q: GradedQuestion, geo: RenderedImageGeometry) -> OverlayBox:
        rect = normalized_to_container_pixels(q.bounding_box, geo)
        correctness = q.correctness
        label = None
        anchor = None
        if correctness is Correctness.INCORRECT and q.correct_answer:
            label = q.correct_answer
            anchor = (geo.offset_x + geo.rendered_w * LABEL_OFFSET_RATIO, rect.center_y)
        return OverlayBox(
            question=q,
            rect=rect,
            correctness=correctness,
            color=_COLORS[correctness],
            label=label,
            label_anchor=anchor,
        )
