"""Registry of world-anchored segmentation masks.

Anchors are deduplicated per class by proximity: a detection near an existing
same-class anchor updates that anchor instead of creating a new one. Updates
from the periodic auto-update pass are gated on a quality improvement.
"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Tuple

import numpy as np

from ..config import AnchorConfig, RenderConfig
from ..core.geometry import Pose, as_vector, distance
from ..detection.base import LiveDetection
from .render_mode import RenderMode, RenderModeState

logger = logging.getLogger(__name__)

# Raycast size estimates at or below this are not trusted.
MIN_MEASURED_SIZE = 0.01
MIN_WORLD_SIZE = 0.05
# World meters per normalized unit per meter of viewer distance.
DISTANCE_SIZE_SCALE = 1.2
AUTO_UPDATE_RADIUS_FACTOR = 2.0


@dataclass
class AnchoredMask:
    """A segmentation mask pinned to a world pose."""

    anchor_id: int
    class_name: str
    pose: Pose
    solid_bitmap: np.ndarray
    outline_bitmap: Optional[np.ndarray]
    quality_score: float
    confidence: float
    coverage: float
    world_size: Tuple[float, float]
    render: RenderModeState = field(default_factory=RenderModeState)

    @property
    def position(self) -> np.ndarray:
        return self.pose.position

    @property
    def render_mode(self) -> RenderMode:
        return self.render.current_mode

    @property
    def active_bitmap(self) -> Optional[np.ndarray]:
        return self.render.active_bitmap


class AnchorManager:
    """Creates, updates and removes anchored masks.

    Attributes:
        anchor_config: Spawn distance, update gating and placement settings.
        render_config: Distance-based render mode settings for new anchors.
    """

    def __init__(
        self,
        anchor_config: Optional[AnchorConfig] = None,
        render_config: Optional[RenderConfig] = None,
    ):
        self.anchor_config = anchor_config or AnchorConfig()
        self.render_config = render_config or RenderConfig()
        self._anchors: List[AnchoredMask] = []
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._anchors)

    def __iter__(self) -> Iterator[AnchoredMask]:
        return iter(list(self._anchors))

    def get(self, anchor_id: int) -> Optional[AnchoredMask]:
        for anchor in self._anchors:
            if anchor.anchor_id == anchor_id:
                return anchor
        return None

    def find_nearest(self, class_name: str, point, radius: float) -> Optional[AnchoredMask]:
        """Nearest same-class anchor strictly closer than radius, or None."""
        point = as_vector(point)
        best = None
        best_distance = radius
        for anchor in self._anchors:
            if anchor.class_name != class_name:
                continue
            d = distance(anchor.position, point)
            if d < best_distance:
                best = anchor
                best_distance = d
        return best

    def has_anchor_near(self, class_name: str, point, radius: Optional[float] = None) -> bool:
        if radius is None:
            radius = self.anchor_config.spawn_distance
        return self.find_nearest(class_name, point, radius) is not None

    def spawn(self, detections: Iterable[LiveDetection], viewer_pose: Optional[Pose] = None) -> int:
        """Anchor detections, replacing same-class anchors within spawn distance.

        Detections without a world point or without a mask are skipped.

        Returns:
            Number of newly created anchors.
        """
        created = 0
        for detection in detections:
            if not detection.is_anchorable:
                continue
            existing = self.find_nearest(
                detection.class_name, detection.world_point, self.anchor_config.spawn_distance
            )
            if existing is None:
                self._create(detection, viewer_pose)
                created += 1
            else:
                logger.info("Replacing existing anchor %d for '%s'", existing.anchor_id, existing.class_name)
                self._replace(existing, detection, viewer_pose)
        return created

    def auto_update(self, detections: Iterable[LiveDetection], viewer_pose: Optional[Pose] = None) -> int:
        """Refresh anchors whose class is re-detected nearby with better quality.

        The nearest same-class anchor within twice the spawn distance is
        updated in place when the new quality score beats its own by more
        than the improvement threshold.
        Other same-class anchors left inside the spawn distance of the moved
        anchor are merged into it.

        Returns:
            Number of anchors updated.
        """
        radius = self.anchor_config.spawn_distance * AUTO_UPDATE_RADIUS_FACTOR
        updated = 0
        for detection in detections:
            if not detection.is_anchorable:
                continue
            existing = self.find_nearest(detection.class_name, detection.world_point, radius)
            if existing is None:
                continue
            new_score = detection.quality_score
            improvement = new_score - existing.quality_score
            if improvement > self.anchor_config.improvement_threshold:
                logger.info(
                    "Auto-updating '%s': quality %.3f -> %.3f (improvement: %.3f)",
                    existing.class_name, existing.quality_score, new_score, improvement,
                )
                self._replace(existing, detection, viewer_pose)
                updated += 1
        return updated

    def update_render_modes(self, viewer_position) -> int:
        """Re-evaluate every anchor's render mode. Returns how many changed."""
        return sum(1 for anchor in self._anchors if anchor.render.update(viewer_position, anchor.position))

    def remove(self, anchor_id: int) -> bool:
        anchor = self.get(anchor_id)
        if anchor is None:
            return False
        self._anchors.remove(anchor)
        return True

    def clear(self) -> int:
        """Remove every anchor. Returns how many were removed."""
        count = len(self._anchors)
        self._anchors.clear()
        return count

    def _create(self, detection: LiveDetection, viewer_pose: Optional[Pose]) -> AnchoredMask:
        pose = self._anchor_pose(detection.world_point, viewer_pose)
        world_size = self._world_size(detection, viewer_pose)
        anchor = AnchoredMask(
            anchor_id=next(self._ids),
            class_name=detection.class_name,
            pose=pose,
            solid_bitmap=detection.solid_bitmap,
            outline_bitmap=detection.outline_bitmap,
            quality_score=detection.quality_score,
            confidence=detection.confidence,
            coverage=detection.coverage,
            world_size=world_size,
            render=RenderModeState(
                detection.solid_bitmap,
                detection.outline_bitmap,
                threshold=self.render_config.outline_distance_threshold,
                blend_width=self.render_config.blend_width,
            ),
        )
        self._anchors.append(anchor)
        logger.info(
            "Spawned anchor %d '%s' at %s, size: %.3fx%.3fm, quality: %.3f",
            anchor.anchor_id, anchor.class_name, np.round(pose.position, 3),
            world_size[0], world_size[1], anchor.quality_score,
        )
        return anchor

    def _replace(self, anchor: AnchoredMask, detection: LiveDetection, viewer_pose: Optional[Pose]) -> None:
        pose = self._anchor_pose(detection.world_point, viewer_pose)
        world_size = self._world_size(detection, viewer_pose)

        anchor.pose = pose
        anchor.world_size = world_size
        anchor.solid_bitmap = detection.solid_bitmap
        anchor.outline_bitmap = detection.outline_bitmap
        anchor.render.set_bitmaps(detection.solid_bitmap, detection.outline_bitmap)
        anchor.quality_score = detection.quality_score
        anchor.confidence = detection.confidence
        anchor.coverage = detection.coverage
        self._drop_neighbors(anchor)

    def _drop_neighbors(self, anchor: AnchoredMask) -> None:
        """Remove other same-class anchors inside the spawn distance of anchor."""
        radius = self.anchor_config.spawn_distance
        for other in list(self._anchors):
            if other is anchor or other.class_name != anchor.class_name:
                continue
            if distance(other.position, anchor.position) < radius:
                logger.info(
                    "Merged anchor %d '%s' into anchor %d", other.anchor_id, other.class_name, anchor.anchor_id
                )
                self._anchors.remove(other)

    def _anchor_pose(self, world_point, viewer_pose: Optional[Pose]) -> Pose:
        """Pose on the surface, nudged toward the viewer and facing it."""
        position = as_vector(world_point)
        if viewer_pose is None:
            return Pose(position=position)
        to_viewer = viewer_pose.position - position
        norm = float(np.linalg.norm(to_viewer))
        if norm > 0.0:
            position = position + to_viewer / norm * self.anchor_config.surface_offset
        return Pose.facing(position, viewer_pose.position)

    def _world_size(self, detection: LiveDetection, viewer_pose: Optional[Pose]) -> Tuple[float, float]:
        width, height = detection.world_size
        if not (width > MIN_MEASURED_SIZE and height > MIN_MEASURED_SIZE):
            if viewer_pose is not None:
                scale = distance(viewer_pose.position, detection.world_point) * DISTANCE_SIZE_SCALE
                width = detection.normalized_size[0] * scale
                height = detection.normalized_size[1] * scale
            else:
                rows, cols = detection.solid_bitmap.shape[:2]
                height = self.anchor_config.fallback_size
                width = height * cols / rows
        return (max(width, MIN_WORLD_SIZE), max(height, MIN_WORLD_SIZE))
