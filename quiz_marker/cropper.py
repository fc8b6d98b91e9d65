from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from PIL import Image

from .config import MarkerSettings
from .cv_utils import ImageSource, image_to_data_url, load_image
from .data_model import BoundingBox, GradingResult, QuestionWithGraphic
from .errors import ImageLoadError, InvalidCropRegion

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CropPolicy:
    # symmetric padding around the box, as a fraction of the box size
    expansion_factor: float = 0.3
    # floor for zero/negative box sizes coming back from the grading model
    min_box_px: int = 10

    @classmethod
    def from_settings(cls, settings: MarkerSettings) -> "CropPolicy":
        return cls(expansion_factor=settings.expansion_factor, min_box_px=settings.min_box_px)


DEFAULT_POLICY = CropPolicy()


@dataclass(frozen=True)
class CropRect:
    x: float
    y: float
    width: float
    height: float

    def pixel_box(self, iw: int, ih: int) -> tuple[int, int, int, int]:
        """Integer (left, upper, right, lower) for Image.crop, kept inside the image."""
        x0 = max(0, min(iw - 1, int(round(self.x))))
        y0 = max(0, min(ih - 1, int(round(self.y))))
        x1 = max(x0 + 1, min(iw, int(round(self.x + self.width))))
        y1 = max(y0 + 1, min(ih, int(round(self.y + self.height))))
        return x0, y0, x1, y1


def compute_crop_rect(natural_w: int, natural_h: int, box: BoundingBox, policy: CropPolicy = DEFAULT_POLICY) -> CropRect:
    iw, ih = natural_w, natural_h

    box_x = box.x * iw
    box_y = box.y * ih
    box_w = box.width * iw
    box_h = box.height * ih

    if box_w <= 0 or box_h <= 0:
        logger.warning(
            "Malformed bounding box %s (%.1fx%.1f px): applying %dpx minimum",
            box.to_dict(), box_w, box_h, policy.min_box_px,
        )
        if box_w <= 0:
            box_w = float(policy.min_box_px)
        if box_h <= 0:
            box_h = float(policy.min_box_px)

    expansion_w = box_w * policy.expansion_factor
    expansion_h = box_h * policy.expansion_factor

    crop_x = max(0.0, box_x - expansion_w)
    crop_y = max(0.0, box_y - expansion_h)
    crop_w = min(iw - crop_x, box_w + 2 * expansion_w)
    crop_h = min(ih - crop_y, box_h + 2 * expansion_h)

    if crop_w <= 0 or crop_h <= 0:
        raise InvalidCropRegion((crop_x, crop_y, crop_w, crop_h))
    return CropRect(crop_x, crop_y, crop_w, crop_h)


def crop_image(img: Image.Image, box: BoundingBox, policy: CropPolicy = DEFAULT_POLICY) -> Image.Image:
    iw, ih = img.size
    rect = compute_crop_rect(iw, ih, box, policy)
    return img.crop(rect.pixel_box(iw, ih))


async def crop_region(
    source: ImageSource,
    box: BoundingBox,
    expansion_factor: Optional[float] = None,
    policy: Optional[CropPolicy] = None,
) -> str:
    """
    Crop the padded answer region out of a page and return it as a PNG data URL.

    expansion_factor overrides the default padding; pass either it or a full
    policy, not both. Raises ImageLoadError when the page cannot be decoded
    and InvalidCropRegion when nothing is left after clamping.
    """
    if policy is not None and expansion_factor is not None:
        raise ValueError("pass expansion_factor or policy, not both")
    if policy is None:
        policy = DEFAULT_POLICY
        if expansion_factor is not None:
            policy = CropPolicy(expansion_factor=expansion_factor, min_box_px=DEFAULT_POLICY.min_box_px)
    img = await asyncio.to_thread(load_image, source)
    cropped = crop_image(img, box, policy)
    return image_to_data_url(cropped)


async def build_question_bank(
    result: GradingResult,
    image_sources: Sequence[ImageSource],
    policy: Optional[CropPolicy] = None,
) -> List[QuestionWithGraphic]:
    """
    Cut a graphic for every answered question that has a box and a known answer.

    Every question is handled on its own: a missing box, a bad page index, an
    undecodable page or an empty crop skips that question and the rest go on.
    """
    policy = policy or DEFAULT_POLICY
    decoded: Dict[int, Image.Image] = {}
    failed_pages: Dict[int, ImageLoadError] = {}
    bank: List[QuestionWithGraphic] = []

    for q in result.questions:
        box = q.bounding_box
        if box is None or not q.correct_answer:
            continue
        idx = box.image_index
        if idx < 0 or idx >= len(image_sources):
            logger.warning("Question %s: image index %d out of range (%d pages), skipping",
                           q.question_number, idx, len(image_sources))
            continue

        if idx in failed_pages:
            logger.error("Could not generate graphic for question %s: %s", q.question_number, failed_pages[idx])
            continue
        try:
            img = decoded.get(idx)
            if img is None:
                try:
                    img = await asyncio.to_thread(load_image, image_sources[idx])
                except ImageLoadError as e:
                    # decode each page at most once per pass
                    failed_pages[idx] = e
                    raise
                decoded[idx] = img
            graphic = image_to_data_url(crop_image(img, box, policy))
        except (ImageLoadError, InvalidCropRegion) as e:
            logger.error("Could not generate graphic for question %s: %s", q.question_number, e)
            continue

        bank.append(QuestionWithGraphic(
            section=q.section,
            question_number=q.question_number,
            question=q.question,
            correct_answer=q.correct_answer,
            question_graphic=graphic,
            explanation=q.explanation,
        ))

    return bank
