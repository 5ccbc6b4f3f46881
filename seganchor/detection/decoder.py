"""Decoding of raw segmentation-model output into filtered detections."""

import logging
from typing import List, Optional, Sequence, Set

import numpy as np

from ..config import DetectionConfig
from .base import DetectionCandidate, FilteredDetection
from .labels import LabelTable

logger = logging.getLogger(__name__)

BOX_CHANNELS = 4
IOU_EPSILON = 1e-6


def box_iou(a: DetectionCandidate, b: DetectionCandidate) -> float:
    """Intersection over Union of two center/size boxes."""
    ax1, ay1, ax2, ay2 = a.to_xyxy()
    bx1, by1, bx2, by2 = b.to_xyxy()

    inter_w = max(0.0, min(ax2, bx2) - max(ax1, bx1))
    inter_h = max(0.0, min(ay2, by2) - max(ay1, by1))
    inter_area = inter_w * inter_h

    union_area = a.size[0] * a.size[1] + b.size[0] * b.size[1] - inter_area
    return inter_area / (union_area + IOU_EPSILON)


def non_max_suppression(
    candidates: Sequence[DetectionCandidate], iou_threshold: float
) -> List[DetectionCandidate]:
    """Greedy class-aware NMS.

    Candidates are sorted by confidence (stable), then each kept candidate
    suppresses later candidates of the same class whose IoU exceeds the
    threshold.

    Returns:
        Kept candidates in descending confidence order.
    """
    ordered = sorted(candidates, key=lambda c: c.confidence, reverse=True)
    kept: List[DetectionCandidate] = []
    suppressed = [False] * len(ordered)

    for i, candidate in enumerate(ordered):
        if suppressed[i]:
            continue
        kept.append(candidate)
        for j in range(i + 1, len(ordered)):
            if suppressed[j] or ordered[j].class_id != candidate.class_id:
                continue
            if box_iou(candidate, ordered[j]) > iou_threshold:
                suppressed[j] = True

    return kept


def _as_channels_by_anchors(tensor: np.ndarray) -> np.ndarray:
    tensor = np.asarray(tensor)
    if tensor.ndim == 3:
        if tensor.shape[0] != 1:
            raise ValueError(f"Expected batch size 1, got shape {tensor.shape}")
        tensor = tensor[0]
    if tensor.ndim != 2:
        raise ValueError(f"Detection tensor must be [1, 4+C+K, N], got shape {tensor.shape}")
    return tensor


class DetectionDecoder:
    """Turns the detection tensor into filtered, deduplicated detections.

    Attributes:
        labels: Class label table.
        confidence_threshold: Minimum max-class score to keep an anchor.
        iou_threshold: IoU above which same-class boxes are suppressed.
        allowed_ids: Allowed class ids, or None to allow every class.
        max_detections: Cap on emitted detections per cycle.
        num_mask_coefficients: K, trailing coefficient channels per anchor.
    """

    def __init__(
        self,
        labels: LabelTable,
        confidence_threshold: float = 0.75,
        iou_threshold: float = 0.5,
        class_names: Optional[Sequence[str]] = None,
        max_detections: int = 50,
        num_mask_coefficients: int = 32,
    ):
        self.labels = labels
        self.confidence_threshold = confidence_threshold
        self.iou_threshold = iou_threshold
        self.allowed_ids: Optional[Set[int]] = labels.resolve(class_names) if class_names else None
        self.max_detections = max_detections
        self.num_mask_coefficients = num_mask_coefficients

    @classmethod
    def from_config(cls, config: DetectionConfig, labels: LabelTable) -> "DetectionDecoder":
        """Create DetectionDecoder from DetectionConfig."""
        return cls(
            labels=labels,
            confidence_threshold=config.confidence_threshold,
            iou_threshold=config.iou_threshold,
            class_names=config.class_names,
            max_detections=config.max_detections,
            num_mask_coefficients=config.num_mask_coefficients,
        )

    def candidates(self, detection_tensor: np.ndarray) -> List[DetectionCandidate]:
        """Score every anchor slot and keep those passing threshold and allow-list."""
        data = _as_channels_by_anchors(detection_tensor)
        num_classes = data.shape[0] - BOX_CHANNELS - self.num_mask_coefficients
        if num_classes < 1:
            raise ValueError(
                f"Detection tensor has {data.shape[0]} channels, too few for "
                f"{self.num_mask_coefficients} mask coefficients"
            )

        scores = data[BOX_CHANNELS:BOX_CHANNELS + num_classes]
        class_ids = np.argmax(scores, axis=0)
        confidences = scores[class_ids, np.arange(data.shape[1])]

        keep = confidences >= self.confidence_threshold
        if self.allowed_ids is not None:
            keep &= np.isin(class_ids, list(self.allowed_ids))

        return [
            DetectionCandidate(
                anchor_index=int(n),
                class_id=int(class_ids[n]),
                confidence=float(confidences[n]),
                center=(float(data[0, n]), float(data[1, n])),
                size=(float(data[2, n]), float(data[3, n])),
            )
            for n in np.flatnonzero(keep)
        ]

    def decode(self, detection_tensor: np.ndarray) -> List[FilteredDetection]:
        """Decode, filter and deduplicate one detection tensor.

        Args:
            detection_tensor: Array shaped [1, 4+C+K, N] (or [4+C+K, N]).

        Returns:
            FilteredDetection list in descending confidence order.
        """
        data = _as_channels_by_anchors(detection_tensor)
        candidates = self.candidates(data)
        kept = non_max_suppression(candidates, self.iou_threshold)
        logger.debug("Before NMS: %d, after NMS: %d", len(candidates), len(kept))

        coeff_start = data.shape[0] - self.num_mask_coefficients
        detections = []
        for candidate in kept[: self.max_detections]:
            detections.append(
                FilteredDetection(
                    anchor_index=candidate.anchor_index,
                    class_id=candidate.class_id,
                    confidence=candidate.confidence,
                    center=candidate.center,
                    size=candidate.size,
                    class_name=self.labels.name(candidate.class_id),
                    mask_coefficients=np.array(
                        data[coeff_start:, candidate.anchor_index], dtype=np.float32
                    ),
                )
            )
        return detections
