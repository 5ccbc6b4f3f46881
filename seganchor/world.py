"""World raycasting collaborators.

A raycaster turns a viewport point seen from a capture pose into a ray, and
intersects rays with the environment. Viewport coordinates are normalized to
[0, 1] with (0, 0) at the bottom-left corner.
"""

import math
from typing import Optional, Protocol, Sequence, runtime_checkable

import numpy as np

from .core.geometry import Pose, Ray, as_vector, normalize

_PARALLEL_EPS = 1e-9


@runtime_checkable
class Raycaster(Protocol):
    def viewport_point_to_ray(self, point: Sequence[float], pose: Pose) -> Ray:
        ...

    def raycast(self, origin, direction) -> Optional[np.ndarray]:
        ...


class PlaneRaycaster:
    """Pinhole camera paired with a single infinite plane as the environment.

    Attributes:
        plane_point: Any point on the plane.
        plane_normal: Plane normal.
        horizontal_fov: Horizontal field of view in degrees.
        aspect: Viewport width / height.
        max_distance: Hits farther than this are ignored.
    """

    def __init__(
        self,
        plane_point=(0.0, 0.0, 2.0),
        plane_normal=(0.0, 0.0, -1.0),
        horizontal_fov: float = 90.0,
        aspect: float = 1.0,
        max_distance: float = 100.0,
    ):
        self.plane_point = as_vector(plane_point)
        self.plane_normal = normalize(plane_normal)
        if not self.plane_normal.any():
            raise ValueError("Plane normal must be non-zero")
        if not 0.0 < horizontal_fov < 180.0:
            raise ValueError(f"horizontal_fov must be in (0, 180), got {horizontal_fov}")
        self.horizontal_fov = horizontal_fov
        self.aspect = aspect
        self.max_distance = max_distance

    def viewport_point_to_ray(self, point: Sequence[float], pose: Pose) -> Ray:
        half_width = math.tan(math.radians(self.horizontal_fov) / 2.0)
        half_height = half_width / self.aspect
        local = np.array([
            (2.0 * point[0] - 1.0) * half_width,
            (2.0 * point[1] - 1.0) * half_height,
            1.0,
        ])
        return Ray(origin=pose.position, direction=pose.transform_direction(local))

    def raycast(self, origin, direction) -> Optional[np.ndarray]:
        origin = as_vector(origin)
        direction = normalize(direction)
        denom = float(np.dot(direction, self.plane_normal))
        if abs(denom) < _PARALLEL_EPS:
            return None
        t = float(np.dot(self.plane_point - origin, self.plane_normal)) / denom
        if t < 0.0 or t > self.max_distance:
            return None
        return origin + direction * t
