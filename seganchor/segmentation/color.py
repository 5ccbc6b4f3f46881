"""Background-aware overlay color selection.

Colors are (r, g, b) or (r, g, b, a) tuples of display-space (sRGB) floats in
[0, 1]. Contrast is measured as CIE76 Delta E in CIE LAB under a D65 white.
"""

import logging
import math
from typing import Optional, Sequence, Tuple

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

RGB = Tuple[float, float, float]
RGBA = Tuple[float, float, float, float]

NEUTRAL_GRAY: RGB = (0.5, 0.5, 0.5)

DEFAULT_PALETTE: Tuple[RGB, ...] = (
    (1.0, 0.0, 0.0),  # red
    (0.0, 1.0, 0.0),  # green
    (0.0, 0.0, 1.0),  # blue
    (1.0, 1.0, 0.0),  # yellow
    (1.0, 0.0, 1.0),  # magenta
    (0.0, 1.0, 1.0),  # cyan
    (1.0, 0.5, 0.0),  # orange
    (0.5, 0.0, 1.0),  # purple
    (0.0, 1.0, 0.5),  # spring green
    (1.0, 0.0, 0.5),  # rose
    (1.0, 1.0, 1.0),  # white
    (0.0, 0.0, 0.0),  # black
)

# sRGB -> XYZ, D65
_RGB_TO_XYZ = np.array(
    [
        [0.4124564, 0.3575761, 0.1804375],
        [0.2126729, 0.7151522, 0.0721750],
        [0.0193339, 0.1191920, 0.9503041],
    ]
)
D65_WHITE = np.array([95.047, 100.000, 108.883])
_LAB_DELTA = 6.0 / 29.0


def _linearize(channels: np.ndarray) -> np.ndarray:
    return np.where(
        channels > 0.04045,
        np.power((channels + 0.055) / 1.055, 2.4),
        channels / 12.92,
    )


def _lab_f(t: np.ndarray) -> np.ndarray:
    return np.where(
        t > _LAB_DELTA ** 3,
        np.cbrt(t),
        t / (3.0 * _LAB_DELTA ** 2) + 4.0 / 29.0,
    )


def srgb_to_xyz(rgb: Sequence[float]) -> np.ndarray:
    """Convert display-space RGB to XYZ scaled to Y=100 for white."""
    linear = _linearize(np.asarray(rgb, dtype=np.float64)[..., :3])
    return linear @ _RGB_TO_XYZ.T * 100.0


def xyz_to_lab(xyz: np.ndarray) -> np.ndarray:
    """Convert XYZ to CIE LAB using the D65 reference white."""
    fx, fy, fz = np.moveaxis(_lab_f(np.asarray(xyz) / D65_WHITE), -1, 0)
    return np.stack([116.0 * fy - 16.0, 500.0 * (fx - fy), 200.0 * (fy - fz)], axis=-1)


def srgb_to_lab(rgb: Sequence[float]) -> np.ndarray:
    """Convert display-space RGB (alpha ignored) to CIE LAB."""
    return xyz_to_lab(srgb_to_xyz(rgb))


def delta_e(lab1: Sequence[float], lab2: Sequence[float]) -> float:
    """CIE76 Delta E: Euclidean distance in LAB space."""
    return float(np.linalg.norm(np.asarray(lab1, dtype=np.float64) - np.asarray(lab2, dtype=np.float64)))


def delta_e_rgb(rgb1: Sequence[float], rgb2: Sequence[float]) -> float:
    """Delta E between two display-space colors."""
    return delta_e(srgb_to_lab(rgb1), srgb_to_lab(rgb2))


def describe_delta_e(value: float) -> str:
    """Human-readable perceptibility of a Delta E value."""
    if value < 1.0:
        return "Not perceptible"
    if value < 2.0:
        return "Perceptible through close observation"
    if value < 3.5:
        return "Perceptible at a glance"
    if value < 5.0:
        return "Obvious difference"
    return "Very obvious difference"


def best_contrast_color(
    background: Sequence[float],
    palette: Optional[Sequence[Sequence[float]]] = None,
    alpha: float = 0.7,
) -> RGBA:
    """Pick the palette color with the largest Delta E against the background.

    Ties keep the earlier palette entry.

    Args:
        background: Background color (alpha ignored).
        palette: Candidate colors, defaults to DEFAULT_PALETTE.
        alpha: Alpha of the returned color.

    Returns:
        The chosen palette color's RGB with the requested alpha.

    Raises:
        ValueError: If the palette is empty.
    """
    palette = DEFAULT_PALETTE if palette is None else palette
    if len(palette) == 0:
        raise ValueError("Palette must contain at least one color")

    background_lab = srgb_to_lab(background)
    best = palette[0]
    best_delta = 0.0
    for candidate in palette:
        delta = delta_e(background_lab, srgb_to_lab(candidate))
        if delta > best_delta:
            best_delta = delta
            best = candidate

    logger.debug(
        "Background RGB=(%.2f,%.2f,%.2f) best RGB=(%.2f,%.2f,%.2f) DeltaE=%.1f",
        background[0], background[1], background[2], best[0], best[1], best[2], best_delta,
    )
    return (float(best[0]), float(best[1]), float(best[2]), float(alpha))


def _as_float_rgb(image) -> Optional[np.ndarray]:
    if isinstance(image, Image.Image):
        image = np.asarray(image.convert("RGB"))
    array = np.asarray(image)
    if array.ndim == 2:
        array = np.repeat(array[:, :, np.newaxis], 3, axis=2)
    if array.ndim != 3 or array.shape[2] < 3 or array.size == 0:
        return None
    array = array[:, :, :3]
    if np.issubdtype(array.dtype, np.integer):
        return array.astype(np.float64) / 255.0
    return array.astype(np.float64)


def sample_background(
    image,
    region: Tuple[float, float, float, float],
    sample_count: int = 16,
) -> RGB:
    """Average color of a grid of samples inside a normalized region.

    Args:
        image: RGB array (H, W, 3), uint8 or float in [0, 1], or a Pillow image.
            None is allowed and yields neutral gray.
        region: (x, y, width, height) normalized to [0, 1], top-left origin.
        sample_count: Approximate number of samples; the grid is
            ceil(sqrt(sample_count)) on each side.

    Returns:
        Average (r, g, b) in [0, 1], or neutral gray if nothing was sampled.
    """
    if image is None:
        logger.warning("No background image, using neutral gray")
        return NEUTRAL_GRAY
    pixels = _as_float_rgb(image)
    if pixels is None:
        logger.warning("Background image has no samplable pixels, using neutral gray")
        return NEUTRAL_GRAY

    height, width = pixels.shape[:2]
    x, y, w, h = region
    left = int(np.clip(math.floor(x * width), 0, width - 1))
    top = int(np.clip(math.floor(y * height), 0, height - 1))
    span_w = int(np.clip(math.ceil(w * width), 1, width - left))
    span_h = int(np.clip(math.ceil(h * height), 1, height - top))

    grid = math.ceil(math.sqrt(max(sample_count, 0)))
    if grid == 0:
        return NEUTRAL_GRAY

    step_x = span_w / grid
    step_y = span_h / grid
    cols = np.clip(left + np.floor(np.arange(grid) * step_x + step_x / 2).astype(int), 0, width - 1)
    rows = np.clip(top + np.floor(np.arange(grid) * step_y + step_y / 2).astype(int), 0, height - 1)

    samples = pixels[np.ix_(rows, cols)].reshape(-1, 3)
    average = samples.mean(axis=0)
    return (float(average[0]), float(average[1]), float(average[2]))
