"""Numeric utility functions."""

import numpy as np


def sigmoid(x: np.ndarray | float) -> np.ndarray:
    """Logistic activation, stable for large magnitudes.

    Args:
        x: Scalar or array of logits.

    Returns:
        Activations strictly inside (0, 1) for finite input.
    """
    x = np.asarray(x, dtype=np.float64)
    decay = np.exp(-np.abs(x))
    return np.where(x >= 0, 1.0 / (1.0 + decay), decay / (1.0 + decay))


def clamp(value: float, low: float, high: float) -> float:
    """Clamp a scalar into [low, high]."""
    return max(low, min(high, value))


def blend_overlay(
    image: np.ndarray, overlay: np.ndarray, origin: tuple[int, int] = (0, 0)
) -> np.ndarray:
    """Alpha-composite an RGBA overlay onto an RGB image.

    Args:
        image: Background image (H, W, 3), uint8.
        overlay: Overlay (h, w, 4) with float channels in [0, 1], top row first.
        origin: (x, y) pixel position of the overlay's top-left corner.

    Returns:
        Blended image as uint8 array.

    Raises:
        ValueError: If the image is not RGB or the overlay is not RGBA.
    """
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"Expected RGB image, got shape {image.shape}")
    if overlay.ndim != 3 or overlay.shape[2] != 4:
        raise ValueError(f"Expected RGBA overlay, got shape {overlay.shape}")

    result = image.astype(np.float32)
    height, width = image.shape[:2]
    x0, y0 = origin
    x1 = min(width, x0 + overlay.shape[1])
    y1 = min(height, y0 + overlay.shape[0])
    if x1 <= max(x0, 0) or y1 <= max(y0, 0):
        return image.astype(np.uint8)

    src = overlay[max(0, -y0):y1 - y0, max(0, -x0):x1 - x0]
    x0, y0 = max(0, x0), max(0, y0)
    alpha = src[:, :, 3:4]
    region = result[y0:y1, x0:x1]
    result[y0:y1, x0:x1] = region * (1 - alpha) + src[:, :, :3] * 255.0 * alpha
    return np.clip(result, 0, 255).astype(np.uint8)
