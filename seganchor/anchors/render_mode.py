"""Distance-based switching between solid and outline mask rendering.

Far from the viewer a mask is drawn solid; up close it is drawn as an outline
so the real object stays visible. The switch is hard: the bound bitmap is
swapped, never interpolated. The blend factor (0 = solid, 1 = outline) is
tracked for display layers that want to fade between the two.
"""

import enum
import logging
from typing import Optional, Tuple

import numpy as np

from ..config import MIN_OUTLINE_DISTANCE
from ..core.geometry import distance as point_distance

logger = logging.getLogger(__name__)

BLEND_ZONE_MIN_WIDTH = 0.001


class RenderMode(enum.Enum):
    SOLID_FILL = "solid_fill"
    OUTLINE_ONLY = "outline_only"


def select_render_mode(
    distance: float, threshold: float = 1.0, blend_width: float = 0.2
) -> Tuple[RenderMode, float]:
    """Choose the render mode for a viewer distance.

    Args:
        distance: Viewer-to-mask distance in meters.
        threshold: Distance at which rendering switches to outline.
        blend_width: Width of the transition zone centered on threshold.

    Returns:
        (mode, blend_factor) with blend_factor 1 for full outline and 0 for
        full solid.
    """
    threshold = max(MIN_OUTLINE_DISTANCE, threshold)
    blend_width = max(0.0, blend_width)

    if blend_width > BLEND_ZONE_MIN_WIDTH:
        near_edge = threshold - blend_width / 2.0
        far_edge = threshold + blend_width / 2.0
        if distance <= near_edge:
            return RenderMode.OUTLINE_ONLY, 1.0
        if distance >= far_edge:
            return RenderMode.SOLID_FILL, 0.0
        factor = 1.0 - (distance - near_edge) / blend_width
        mode = RenderMode.OUTLINE_ONLY if factor > 0.5 else RenderMode.SOLID_FILL
        return mode, factor

    if distance <= threshold:
        return RenderMode.OUTLINE_ONLY, 1.0
    return RenderMode.SOLID_FILL, 0.0


class RenderModeState:
    """Render mode of one mask, updated from viewer distance.

    Attributes:
        solid_bitmap: Filled bitmap shown in SOLID_FILL mode.
        outline_bitmap: Outline bitmap shown in OUTLINE_ONLY mode.
        threshold: Outline switch distance in meters.
        blend_width: Transition zone width in meters.
        current_mode: Mode in effect, SOLID_FILL until the first update.
        distance: Last measured viewer distance.
        blend_factor: Last computed blend factor.
    """

    def __init__(
        self,
        solid_bitmap: Optional[np.ndarray] = None,
        outline_bitmap: Optional[np.ndarray] = None,
        threshold: float = 1.0,
        blend_width: float = 0.2,
    ):
        self.solid_bitmap = solid_bitmap
        self.outline_bitmap = outline_bitmap
        self.threshold = max(MIN_OUTLINE_DISTANCE, threshold)
        self.blend_width = max(0.0, blend_width)
        self.current_mode = RenderMode.SOLID_FILL
        self.distance = 0.0
        self.blend_factor = 0.0

    def set_bitmaps(self, solid_bitmap: Optional[np.ndarray], outline_bitmap: Optional[np.ndarray]) -> None:
        self.solid_bitmap = solid_bitmap
        self.outline_bitmap = outline_bitmap

    def update_distance(self, distance: float) -> bool:
        """Re-evaluate the mode at a distance. Returns True if the mode changed."""
        self.distance = float(distance)
        mode, self.blend_factor = select_render_mode(self.distance, self.threshold, self.blend_width)
        if mode is self.current_mode:
            return False
        logger.debug(
            "Render mode %s -> %s at %.3fm (threshold %.3fm)",
            self.current_mode.name, mode.name, self.distance, self.threshold,
        )
        self.current_mode = mode
        return True

    def update(self, viewer_position, position) -> bool:
        """Re-evaluate the mode from viewer and mask positions."""
        return self.update_distance(point_distance(viewer_position, position))

    def force(self, mode: RenderMode) -> None:
        """Set a mode directly, bypassing the distance check."""
        self.current_mode = mode

    @property
    def active_bitmap(self) -> Optional[np.ndarray]:
        """Bitmap bound for the current mode."""
        if self.current_mode is RenderMode.OUTLINE_ONLY:
            return self.outline_bitmap
        return self.solid_bitmap
