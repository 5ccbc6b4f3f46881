"""Detection decoding, filtering and non-max suppression."""

from .base import DetectionCandidate, FilteredDetection, LiveDetection, quality_score
from .decoder import DetectionDecoder, box_iou, non_max_suppression
from .labels import LabelTable

__all__ = [
    "DetectionCandidate",
    "DetectionDecoder",
    "FilteredDetection",
    "LabelTable",
    "LiveDetection",
    "box_iou",
    "non_max_suppression",
    "quality_score",
]
