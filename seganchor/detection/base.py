"""Detection data structures."""

from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

CONFIDENCE_WEIGHT = 0.7
COVERAGE_WEIGHT = 0.3


def quality_score(confidence: float, coverage: float) -> float:
    """Weighted detection quality used to gate anchor updates.

    Only comparable between detections of the same class.
    """
    return CONFIDENCE_WEIGHT * confidence + COVERAGE_WEIGHT * coverage


@dataclass
class DetectionCandidate:
    """Decoded anchor slot before NMS.

    Attributes:
        anchor_index: Column of the detection tensor this came from.
        class_id: Arg-max class id.
        confidence: Maximum class score.
        center: Box center (x, y) in model input pixels.
        size: Box size (w, h) in model input pixels.
    """

    anchor_index: int
    class_id: int
    confidence: float
    center: Tuple[float, float]
    size: Tuple[float, float]

    def to_xyxy(self) -> Tuple[float, float, float, float]:
        """Return as (x_min, y_min, x_max, y_max) tuple."""
        cx, cy = self.center
        w, h = self.size
        return (cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2)


@dataclass
class FilteredDetection(DetectionCandidate):
    """Candidate that survived allow-listing, thresholding and NMS."""

    class_name: str = ""
    mask_coefficients: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))


@dataclass
class LiveDetection:
    """Per-cycle detection ready for display or anchoring.

    Attributes:
        detection: The decoded detection.
        world_point: Raycast hit of the box center, None if nothing was hit.
        normalized_size: Box size divided by the input resolution.
        world_size: Estimated real-world width/height in meters (0 if unknown).
        solid_bitmap: Filled RGBA mask, None for a degenerate crop.
        outline_bitmap: Outline-only RGBA mask, None for a degenerate crop.
        color: Overlay color (r, g, b, a) used for both bitmaps.
    """

    detection: FilteredDetection
    world_point: Optional[np.ndarray] = None
    normalized_size: Tuple[float, float] = (0.0, 0.0)
    world_size: Tuple[float, float] = (0.0, 0.0)
    solid_bitmap: Optional[np.ndarray] = None
    outline_bitmap: Optional[np.ndarray] = None
    color: Tuple[float, float, float, float] = (0.0, 0.0, 1.0, 0.7)

    @property
    def class_name(self) -> str:
        return self.detection.class_name

    @property
    def confidence(self) -> float:
        return self.detection.confidence

    @property
    def coverage(self) -> float:
        return self.normalized_size[0] * self.normalized_size[1]

    @property
    def quality_score(self) -> float:
        return quality_score(self.confidence, self.coverage)

    @property
    def has_mask(self) -> bool:
        return self.solid_bitmap is not None

    @property
    def is_anchorable(self) -> bool:
        """True when the detection has both a world point and a mask."""
        return self.world_point is not None and self.has_mask

    @property
    def label(self) -> str:
        return f"Class: {self.class_name} Conf: {self.confidence:.2f}"
