"""Instance mask synthesis from prototype masks and per-detection coefficients.

Masks live in "mask space": an M x M grid (M=160 for 640 px input) that the
prototype tensor is defined on. Bitmaps produced here are float32 RGBA arrays
in [0, 1] with the bottom row first, matching texture upload order.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image

from ..config import MAX_OUTLINE_RADIUS, MIN_OUTLINE_RADIUS
from ..core.utils import clamp, sigmoid

MASK_THRESHOLD = 0.5
SOLID_ALPHA_SCALE = 0.8

Color = Tuple[float, ...]


@dataclass
class CropRegion:
    """Integer crop bounds of a detection box in mask space.

    Attributes:
        left, top: Inclusive start cell.
        right, bottom: Exclusive end cell.
        center: Box center in mask space before rounding.
        size: Box size in mask space before rounding.
    """

    left: int
    top: int
    right: int
    bottom: int
    center: Tuple[float, float]
    size: Tuple[float, float]

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def slices(self) -> Tuple[slice, slice]:
        return slice(self.top, self.bottom), slice(self.left, self.right)


@dataclass
class MaskBitmaps:
    """Solid and outline renderings of the same crop."""

    solid: np.ndarray
    outline: np.ndarray


def _prototype_stack(prototypes: np.ndarray) -> np.ndarray:
    prototypes = np.asarray(prototypes)
    if prototypes.ndim == 4:
        if prototypes.shape[0] != 1:
            raise ValueError(f"Expected batch size 1, got shape {prototypes.shape}")
        prototypes = prototypes[0]
    if prototypes.ndim != 3:
        raise ValueError(f"Prototype tensor must be [1, K, M, M], got shape {prototypes.shape}")
    return prototypes


def synthesize(coefficients: np.ndarray, prototypes: np.ndarray) -> np.ndarray:
    """Combine K coefficients with K prototype masks into one activation mask.

    Args:
        coefficients: K mask coefficients of one detection.
        prototypes: Prototype tensor [1, K, M, M] or [K, M, M].

    Returns:
        (M, M) float64 mask of sigmoid activations.

    Raises:
        ValueError: If the coefficient count does not match K.
    """
    stack = _prototype_stack(prototypes)
    coefficients = np.asarray(coefficients, dtype=np.float64).reshape(-1)
    if coefficients.shape[0] != stack.shape[0]:
        raise ValueError(
            f"Got {coefficients.shape[0]} coefficients for {stack.shape[0]} prototypes"
        )
    logits = np.tensordot(coefficients, stack.astype(np.float64), axes=1)
    return sigmoid(logits)


def crop_region(
    center: Tuple[float, float],
    size: Tuple[float, float],
    image_width: float,
    mask_size: int,
) -> CropRegion:
    """Map a box from input-image pixels into clamped mask-space cells.

    Both axes use ``mask_size / image_width`` as scale (square model input).
    """
    scale = mask_size / image_width
    cx, cy = center[0] * scale, center[1] * scale
    w, h = size[0] * scale, size[1] * scale

    return CropRegion(
        left=max(0, math.floor(cx - w / 2)),
        top=max(0, math.floor(cy - h / 2)),
        right=min(mask_size, math.ceil(cx + w / 2)),
        bottom=min(mask_size, math.ceil(cy + h / 2)),
        center=(cx, cy),
        size=(w, h),
    )


def circular_kernel(radius: int) -> np.ndarray:
    """Structuring element with cells where dx^2 + dy^2 <= radius^2."""
    offsets = np.arange(-radius, radius + 1)
    dy, dx = np.meshgrid(offsets, offsets, indexing="ij")
    return (dx * dx + dy * dy <= radius * radius).astype(np.uint8)


def edge_mask(full_mask: np.ndarray, outline_radius: int) -> np.ndarray:
    """Mark mask cells that lie within outline_radius of the mask boundary.

    Positions past the image border count as outside the mask, so a mask
    touching the border gets an outline there too.

    Returns:
        Boolean array with the shape of full_mask.
    """
    radius = int(clamp(int(outline_radius), MIN_OUTLINE_RADIUS, MAX_OUTLINE_RADIUS))
    inside = (np.asarray(full_mask) > MASK_THRESHOLD).astype(np.uint8)
    eroded = cv2.erode(
        inside,
        circular_kernel(radius),
        borderType=cv2.BORDER_CONSTANT,
        borderValue=0,
    )
    return inside.astype(bool) & ~eroded.astype(bool)


def rasterize(
    full_mask: np.ndarray,
    region: CropRegion,
    color: Color,
    keep: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Render the crop region as an RGBA bitmap, bottom row first.

    Cells above the threshold get the color with alpha = activation * 0.8;
    when ``keep`` is given only cells also set in it are drawn.
    """
    rows, cols = region.slices()
    values = np.asarray(full_mask)[rows, cols]
    opaque = values > MASK_THRESHOLD
    if keep is not None:
        opaque &= keep[rows, cols]

    bitmap = np.zeros((region.height, region.width, 4), dtype=np.float32)
    bitmap[opaque, 0] = color[0]
    bitmap[opaque, 1] = color[1]
    bitmap[opaque, 2] = color[2]
    bitmap[opaque, 3] = values[opaque] * SOLID_ALPHA_SCALE
    return np.ascontiguousarray(bitmap[::-1])


def crop(
    full_mask: np.ndarray,
    center: Tuple[float, float],
    size: Tuple[float, float],
    image_width: float,
    color: Color,
) -> Optional[np.ndarray]:
    """Solid-fill bitmap of the detection box, None for a zero-area crop."""
    region = crop_region(center, size, image_width, full_mask.shape[1])
    if region.is_empty:
        return None
    return rasterize(full_mask, region, color)


def crop_outline(
    full_mask: np.ndarray,
    center: Tuple[float, float],
    size: Tuple[float, float],
    image_width: float,
    color: Color,
    outline_radius: int,
) -> Optional[np.ndarray]:
    """Outline-only bitmap of the detection box, None for a zero-area crop."""
    region = crop_region(center, size, image_width, full_mask.shape[1])
    if region.is_empty:
        return None
    return rasterize(full_mask, region, color, keep=edge_mask(full_mask, outline_radius))


def generate_both(
    full_mask: np.ndarray,
    center: Tuple[float, float],
    size: Tuple[float, float],
    image_width: float,
    color: Color,
    outline_radius: int,
) -> Optional[MaskBitmaps]:
    """Solid and outline bitmaps from one crop and one edge computation."""
    region = crop_region(center, size, image_width, full_mask.shape[1])
    if region.is_empty:
        return None

    solid = rasterize(full_mask, region, color)
    rows, cols = region.slices()
    edges = edge_mask(full_mask, outline_radius)[rows, cols][::-1]
    outline = solid.copy()
    outline[~edges] = 0.0
    return MaskBitmaps(solid=solid, outline=outline)


def to_rgba8(bitmap: np.ndarray) -> np.ndarray:
    """Convert a float bitmap to top-row-first uint8 RGBA."""
    return np.clip(np.asarray(bitmap)[::-1] * 255.0 + 0.5, 0, 255).astype(np.uint8)


def to_image(bitmap: np.ndarray) -> Image.Image:
    """Convert a float bitmap to an upright Pillow RGBA image."""
    return Image.fromarray(to_rgba8(bitmap))
