"""Label table, tensor dump and summary file I/O utilities."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

import numpy as np

from .geometry import Pose


DUMP_EXTENSIONS = {".npz"}


def is_dump_file(filename: str) -> bool:
    """Check if filename has a tensor dump extension.

    Args:
        filename: Path to file.

    Returns:
        True if file has a dump extension.
    """
    return Path(filename).suffix.lower() in DUMP_EXTENSIONS


def expand_dump_paths(paths: Iterable[str]) -> List[Path]:
    """Resolve files and directories into an ordered list of dump files.

    Directories contribute their dump files sorted by name.

    Raises:
        FileNotFoundError: If a path does not exist.
    """
    resolved: List[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            resolved.extend(sorted(p for p in path.iterdir() if is_dump_file(p.name)))
        elif path.exists():
            resolved.append(path)
        else:
            raise FileNotFoundError(f"Input not found: {raw}")
    return resolved


def read_labels(path: str | Path) -> List[str]:
    """Read a newline-delimited class label file.

    Trailing carriage returns are stripped; one trailing empty line is dropped
    so files ending in a newline keep their class count.
    """
    text = Path(path).read_text(encoding="utf-8")
    lines = [line.rstrip("\r") for line in text.split("\n")]
    if lines and lines[-1] == "":
        lines.pop()
    return lines


@dataclass
class TensorDump:
    """One recorded inference cycle."""

    path: Path
    detections: np.ndarray
    prototypes: np.ndarray
    image: Optional[np.ndarray] = None
    pose: Optional[Pose] = None


def load_dump(path: str | Path) -> TensorDump:
    """Load a tensor dump written by ``save_dump``.

    Raises:
        IOError: If required arrays are missing.
    """
    path = Path(path)
    with np.load(path, allow_pickle=False) as data:
        missing = [key for key in ("detections", "prototypes") if key not in data.files]
        if missing:
            raise IOError(f"Dump {path} is missing arrays: {', '.join(missing)}")
        detections = np.asarray(data["detections"], dtype=np.float32)
        prototypes = np.asarray(data["prototypes"], dtype=np.float32)
        image = np.asarray(data["image"]) if "image" in data.files else None
        pose = Pose.from_array(data["pose"]) if "pose" in data.files else None
    return TensorDump(path=path, detections=detections, prototypes=prototypes, image=image, pose=pose)


def save_dump(
    path: str | Path,
    detections: np.ndarray,
    prototypes: np.ndarray,
    image: Optional[np.ndarray] = None,
    pose: Optional[Pose] = None,
) -> Path:
    """Write one inference cycle to an ``.npz`` dump."""
    arrays = {"detections": detections, "prototypes": prototypes}
    if image is not None:
        arrays["image"] = image
    if pose is not None:
        arrays["pose"] = pose.to_array()
    path = Path(path)
    np.savez_compressed(path, **arrays)
    return path


def write_summary(path: str | Path, summary: dict) -> Path:
    """Write a JSON summary file."""
    path = Path(path)
    path.write_text(json.dumps(summary, indent=2), encoding="utf-8")
    return path
