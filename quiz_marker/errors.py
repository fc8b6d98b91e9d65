from __future__ import annotations

from typing import Optional, Tuple


class QuizMarkerError(Exception):
    pass


class ImageLoadError(QuizMarkerError):
    """A source bitmap could not be read or decoded."""

    def __init__(self, source: str, reason: str = "") -> None:
        self.source = source
        self.reason = reason
        msg = f"Failed to load image: {source}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class InvalidCropRegion(QuizMarkerError):
    """Crop rectangle is empty once padded and clamped to the image."""

    def __init__(self, rect: Tuple[float, float, float, float]) -> None:
        self.rect = rect
        x, y, w, h = rect
        super().__init__(f"Calculated crop dimensions are invalid: x={x:.1f} y={y:.1f} w={w:.1f} h={h:.1f}")


class MalformedBoundingBox(QuizMarkerError):
    def __init__(self, reason: str, payload: Optional[object] = None) -> None:
        self.reason = reason
        self.payload = payload
        super().__init__(f"Malformed bounding box: {reason}")


class SessionNotFound(QuizMarkerError):
    pass
