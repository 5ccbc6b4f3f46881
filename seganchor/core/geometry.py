"""Poses, rays and small vector helpers.

Conventions: positions are meters in world space, Y is up, and a pose's
orientation is a unit quaternion stored as (x, y, z, w). The local +Z axis is
"forward".
"""

from dataclasses import dataclass, field

import numpy as np

WORLD_UP = np.array([0.0, 1.0, 0.0])
_EPS = 1e-9


def as_vector(value) -> np.ndarray:
    """Return value as a float64 3-vector."""
    vec = np.asarray(value, dtype=np.float64).reshape(-1)
    if vec.shape != (3,):
        raise ValueError(f"Expected a 3-vector, got shape {vec.shape}")
    return vec


def normalize(vec) -> np.ndarray:
    """Unit vector in the direction of vec (zero vector stays zero)."""
    vec = as_vector(vec)
    norm = float(np.linalg.norm(vec))
    if norm < _EPS:
        return np.zeros(3)
    return vec / norm


def distance(a, b) -> float:
    """Euclidean distance between two points."""
    return float(np.linalg.norm(as_vector(a) - as_vector(b)))


def quaternion_from_matrix(matrix: np.ndarray) -> np.ndarray:
    """Convert a 3x3 rotation matrix to an (x, y, z, w) quaternion."""
    m = matrix
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0.0:
        s = np.sqrt(trace + 1.0) * 2.0
        w = 0.25 * s
        x = (m[2, 1] - m[1, 2]) / s
        y = (m[0, 2] - m[2, 0]) / s
        z = (m[1, 0] - m[0, 1]) / s
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = np.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2]) * 2.0
        w = (m[2, 1] - m[1, 2]) / s
        x = 0.25 * s
        y = (m[0, 1] + m[1, 0]) / s
        z = (m[0, 2] + m[2, 0]) / s
    elif m[1, 1] > m[2, 2]:
        s = np.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2]) * 2.0
        w = (m[0, 2] - m[2, 0]) / s
        x = (m[0, 1] + m[1, 0]) / s
        y = 0.25 * s
        z = (m[1, 2] + m[2, 1]) / s
    else:
        s = np.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1]) * 2.0
        w = (m[1, 0] - m[0, 1]) / s
        x = (m[0, 2] + m[2, 0]) / s
        y = (m[1, 2] + m[2, 1]) / s
        z = 0.25 * s
    quat = np.array([x, y, z, w], dtype=np.float64)
    return quat / np.linalg.norm(quat)


def look_rotation(forward, up=WORLD_UP) -> np.ndarray:
    """Quaternion whose +Z axis points along forward, keeping +Y near up."""
    z_axis = normalize(forward)
    if not z_axis.any():
        return np.array([0.0, 0.0, 0.0, 1.0])
    up = normalize(up)
    x_axis = np.cross(up, z_axis)
    if np.linalg.norm(x_axis) < 1e-6:
        # forward is parallel to up; pick any perpendicular reference
        fallback = np.array([0.0, 0.0, 1.0]) if abs(z_axis[2]) < 0.9 else np.array([1.0, 0.0, 0.0])
        x_axis = np.cross(fallback, z_axis)
    x_axis = normalize(x_axis)
    y_axis = np.cross(z_axis, x_axis)
    return quaternion_from_matrix(np.column_stack([x_axis, y_axis, z_axis]))


def rotate(quaternion, vec) -> np.ndarray:
    """Rotate vec by an (x, y, z, w) quaternion."""
    q = np.asarray(quaternion, dtype=np.float64)
    u = q[:3]
    w = q[3]
    v = as_vector(vec)
    return 2.0 * np.dot(u, v) * u + (w * w - np.dot(u, u)) * v + 2.0 * w * np.cross(u, v)


@dataclass
class Pose:
    """Position plus orientation in world space."""

    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0]))

    def __post_init__(self):
        self.position = as_vector(self.position)
        rotation = np.asarray(self.rotation, dtype=np.float64).reshape(-1)
        if rotation.shape != (4,):
            raise ValueError(f"Rotation must be an (x, y, z, w) quaternion, got {rotation.shape}")
        norm = float(np.linalg.norm(rotation))
        self.rotation = rotation / norm if norm > _EPS else np.array([0.0, 0.0, 0.0, 1.0])

    @property
    def forward(self) -> np.ndarray:
        return rotate(self.rotation, [0.0, 0.0, 1.0])

    @property
    def right(self) -> np.ndarray:
        return rotate(self.rotation, [1.0, 0.0, 0.0])

    @property
    def up(self) -> np.ndarray:
        return rotate(self.rotation, [0.0, 1.0, 0.0])

    def transform_direction(self, vec) -> np.ndarray:
        """Rotate a local-space direction into world space."""
        return rotate(self.rotation, vec)

    @classmethod
    def from_array(cls, values) -> "Pose":
        """Build a pose from 7 floats: position xyz followed by quaternion xyzw."""
        arr = np.asarray(values, dtype=np.float64).reshape(-1)
        if arr.shape != (7,):
            raise ValueError(f"Pose array must have 7 values, got {arr.shape}")
        return cls(position=arr[:3], rotation=arr[3:])

    def to_array(self) -> np.ndarray:
        return np.concatenate([self.position, self.rotation])

    @classmethod
    def facing(cls, position, target, up=WORLD_UP) -> "Pose":
        """Pose at position whose forward axis points at target."""
        position = as_vector(position)
        return cls(position=position, rotation=look_rotation(as_vector(target) - position, up))


@dataclass
class Ray:
    """Half-line with a normalized direction."""

    origin: np.ndarray
    direction: np.ndarray

    def __post_init__(self):
        self.origin = as_vector(self.origin)
        self.direction = normalize(self.direction)

    def point_at(self, t: float) -> np.ndarray:
        return self.origin + self.direction * t
