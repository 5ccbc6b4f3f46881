"""Per-cycle dispatch: decode, place, color and rasterize detections."""

import logging
import math
from typing import List, Optional, Tuple

import numpy as np

from .config import ColorConfig, MaskConfig, ProcessingConfig
from .core.geometry import Pose, distance
from .detection.base import FilteredDetection, LiveDetection
from .detection.decoder import DetectionDecoder
from .detection.labels import LabelTable
from .segmentation.color import best_contrast_color, sample_background
from .segmentation.masks import crop_region, generate_both, synthesize
from .world import Raycaster

logger = logging.getLogger(__name__)

# Raycast extents shorter than this are treated as failed.
MIN_RAYCAST_EXTENT = 0.01
# Half of the passthrough camera's horizontal field of view.
CAMERA_HALF_FOV_DEGREES = 45.0


class FramePipeline:
    """Turns the two output tensors of a cycle into live detections.

    Instances are callable with the scheduler's dispatch signature.

    Attributes:
        decoder: Detection decoder.
        raycaster: World raycaster, or None to skip world placement.
        input_size: Square model input resolution in pixels.
        mask_config: Outline settings.
        color_config: Overlay color settings.
    """

    def __init__(
        self,
        decoder: DetectionDecoder,
        raycaster: Optional[Raycaster] = None,
        input_size: int = 640,
        mask_config: Optional[MaskConfig] = None,
        color_config: Optional[ColorConfig] = None,
    ):
        self.decoder = decoder
        self.raycaster = raycaster
        self.input_size = input_size
        self.mask_config = mask_config or MaskConfig()
        self.color_config = color_config or ColorConfig()

    @classmethod
    def from_config(
        cls,
        config: ProcessingConfig,
        labels: LabelTable,
        raycaster: Optional[Raycaster] = None,
    ) -> "FramePipeline":
        """Create FramePipeline from ProcessingConfig."""
        return cls(
            decoder=DetectionDecoder.from_config(config.detection, labels),
            raycaster=raycaster,
            input_size=config.scheduler.input_size,
            mask_config=config.mask,
            color_config=config.color,
        )

    def __call__(
        self,
        detection_tensor: np.ndarray,
        prototype_tensor: np.ndarray,
        capture_pose: Optional[Pose] = None,
        image: Optional[np.ndarray] = None,
    ) -> List[LiveDetection]:
        detections = self.decoder.decode(detection_tensor)
        live = [self.build(det, prototype_tensor, capture_pose, image) for det in detections]
        logger.debug(
            "Dispatched %d detections, %d with masks, %d placed",
            len(live),
            sum(1 for d in live if d.has_mask),
            sum(1 for d in live if d.world_point is not None),
        )
        return live

    def build(
        self,
        detection: FilteredDetection,
        prototype_tensor: np.ndarray,
        capture_pose: Optional[Pose] = None,
        image: Optional[np.ndarray] = None,
    ) -> LiveDetection:
        """Build one live detection: world placement, color and bitmaps."""
        size = float(self.input_size)
        nx, ny = detection.center[0] / size, detection.center[1] / size
        nw, nh = detection.size[0] / size, detection.size[1] / size

        world_point = None
        world_size = (0.0, 0.0)
        if self.raycaster is not None and capture_pose is not None:
            world_point = self._raycast_viewport((nx, 1.0 - ny), capture_pose)
            if world_point is not None:
                world_size = self._estimate_world_size(
                    (nx, ny), (nw, nh), world_point, capture_pose
                )
                logger.debug(
                    "%s world size estimate: %.3fm x %.3fm",
                    detection.class_name, world_size[0], world_size[1],
                )

        color = self._overlay_color(image, (nx - nw / 2, ny - nh / 2, nw, nh))
        bitmaps = None
        region = crop_region(detection.center, detection.size, size, np.shape(prototype_tensor)[-1])
        if region.is_empty:
            logger.debug("Degenerate crop for %s, no mask", detection.class_name)
        else:
            mask = synthesize(detection.mask_coefficients, prototype_tensor)
            bitmaps = generate_both(
                mask,
                detection.center,
                detection.size,
                size,
                color,
                self.mask_config.outline_radius,
            )

        return LiveDetection(
            detection=detection,
            world_point=world_point,
            normalized_size=(nw, nh),
            world_size=world_size,
            solid_bitmap=bitmaps.solid if bitmaps else None,
            outline_bitmap=bitmaps.outline if bitmaps else None,
            color=color,
        )

    def _raycast_viewport(self, point: Tuple[float, float], pose: Pose) -> Optional[np.ndarray]:
        ray = self.raycaster.viewport_point_to_ray(point, pose)
        return self.raycaster.raycast(ray.origin, ray.direction)

    def _estimate_world_size(
        self,
        center: Tuple[float, float],
        normalized_size: Tuple[float, float],
        world_point: np.ndarray,
        pose: Pose,
    ) -> Tuple[float, float]:
        """Measure box extents by raycasting its edge midpoints.

        Sides whose raycasts miss (or collapse) fall back to a depth-based
        estimate from the camera field of view.
        """
        nx, ny = center
        nw, nh = normalized_size
        left = float(np.clip(nx - nw / 2, 0.0, 1.0))
        right = float(np.clip(nx + nw / 2, 0.0, 1.0))
        top = float(np.clip(ny - nh / 2, 0.0, 1.0))
        bottom = float(np.clip(ny + nh / 2, 0.0, 1.0))

        width = self._span((left, 1.0 - ny), (right, 1.0 - ny), pose)
        height = self._span((nx, 1.0 - top), (nx, 1.0 - bottom), pose)

        if width < MIN_RAYCAST_EXTENT or height < MIN_RAYCAST_EXTENT:
            depth = distance(pose.position, world_point)
            fov_scale = 2.0 * depth * math.tan(math.radians(CAMERA_HALF_FOV_DEGREES))
            if width < MIN_RAYCAST_EXTENT:
                width = nw * fov_scale
            if height < MIN_RAYCAST_EXTENT:
                height = nh * fov_scale
        return (width, height)

    def _span(self, a: Tuple[float, float], b: Tuple[float, float], pose: Pose) -> float:
        hit_a = self._raycast_viewport(a, pose)
        hit_b = self._raycast_viewport(b, pose)
        if hit_a is None or hit_b is None:
            return 0.0
        return distance(hit_a, hit_b)

    def _overlay_color(self, image, region) -> Tuple[float, float, float, float]:
        alpha = self.color_config.overlay_alpha
        if self.color_config.adaptive and image is not None:
            background = sample_background(image, region, self.color_config.sample_count)
            return best_contrast_color(background, alpha=alpha)
        r, g, b = self.color_config.default_color
        return (float(r), float(g), float(b), float(alpha))
