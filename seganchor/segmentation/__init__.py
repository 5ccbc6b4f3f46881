"""Mask synthesis and overlay color selection."""

from .color import DEFAULT_PALETTE, best_contrast_color, delta_e, sample_background, srgb_to_lab
from .masks import CropRegion, MaskBitmaps, crop, crop_outline, crop_region, edge_mask, generate_both, synthesize

__all__ = [
    "CropRegion",
    "DEFAULT_PALETTE",
    "MaskBitmaps",
    "best_contrast_color",
    "crop",
    "crop_outline",
    "crop_region",
    "delta_e",
    "edge_mask",
    "generate_both",
    "sample_background",
    "srgb_to_lab",
    "synthesize",
]
