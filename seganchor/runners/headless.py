"""Headless batch replay of recorded inference cycles."""

import sys
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np
from PIL import Image
from tqdm import tqdm

from ..anchors.manager import AnchorManager
from ..config import ProcessingConfig
from ..core.io import expand_dump_paths, load_dump, write_summary
from ..core.utils import blend_overlay
from ..detection.base import LiveDetection
from ..detection.labels import LabelTable
from ..inference.backend import ReplayBackend
from ..inference.scheduler import InferenceScheduler
from ..pipeline import FramePipeline
from ..segmentation.masks import to_image
from ..world import PlaneRaycaster


def run_cycle(scheduler: InferenceScheduler, dump) -> List[LiveDetection]:
    """Drive one scheduled cycle to completion and return its detections."""
    scheduler.backend.load(dump.detections, dump.prototypes)
    scheduler.schedule(dump.detections, dump.pose, dump.image)
    while scheduler.is_busy():
        scheduler.step()
    return scheduler.detections


def render_preview(image: np.ndarray, detections: List[LiveDetection], input_size: int) -> np.ndarray:
    """Composite solid masks onto the source image at their box positions.

    Args:
        image: Source RGB image (H, W, 3).
        detections: Live detections of the frame.
        input_size: Model input resolution the boxes are expressed in.

    Returns:
        RGB uint8 preview image.
    """
    preview = np.asarray(image)
    if preview.dtype != np.uint8:
        preview = np.clip(preview * 255.0 + 0.5, 0, 255).astype(np.uint8)
    preview = preview[:, :, :3]
    height, width = preview.shape[:2]
    scale_x, scale_y = width / input_size, height / input_size

    for det in detections:
        if det.solid_bitmap is None:
            continue
        cx, cy = det.detection.center
        w, h = det.detection.size
        x0 = int(round((cx - w / 2) * scale_x))
        y0 = int(round((cy - h / 2) * scale_y))
        box_w = max(1, int(round(w * scale_x)))
        box_h = max(1, int(round(h * scale_y)))
        overlay = cv2.resize(
            np.ascontiguousarray(det.solid_bitmap[::-1]),
            (box_w, box_h),
            interpolation=cv2.INTER_NEAREST,
        )
        preview = blend_overlay(preview, overlay, origin=(x0, y0))
    return preview


def _vector(value: Optional[np.ndarray]):
    return None if value is None else [round(float(v), 4) for v in value]


def run_headless(config: ProcessingConfig) -> dict:
    """Run headless batch processing.

    Args:
        config: Processing configuration.

    Returns:
        The summary written to ``summary.json``.

    Raises:
        SystemExit: If no tensor dumps are found.
    """
    labels = LabelTable.from_file(config.labels_path)
    dump_paths = expand_dump_paths(config.input_paths)
    if not dump_paths:
        print("No tensor dumps (.npz) found in the given inputs", file=sys.stderr)
        sys.exit(1)

    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    if config.detection.class_names:
        print(f"Keeping classes: {', '.join(config.detection.class_names)}")

    pipeline = FramePipeline.from_config(config, labels, raycaster=PlaneRaycaster())
    scheduler = InferenceScheduler(
        ReplayBackend(None, None),
        pipeline,
        layers_per_step=config.scheduler.layers_per_step,
    )
    anchors = AnchorManager(config.anchor, config.render)

    frames = []
    total_detections = 0
    for path in tqdm(dump_paths, desc="Processing"):
        dump = load_dump(path)
        detections = run_cycle(scheduler, dump)
        total_detections += len(detections)

        entries = []
        for index, det in enumerate(detections):
            entry = {
                "class": det.class_name,
                "confidence": round(det.confidence, 4),
                "center": list(det.detection.center),
                "size": list(det.detection.size),
                "world_point": _vector(det.world_point),
                "world_size": [round(v, 4) for v in det.world_size],
                "color": [round(c, 3) for c in det.color],
                "solid": None,
                "outline": None,
            }
            if det.has_mask:
                stem = f"{path.stem}_{index:02d}_{det.class_name}"
                to_image(det.solid_bitmap).save(output_dir / f"{stem}_solid.png")
                to_image(det.outline_bitmap).save(output_dir / f"{stem}_outline.png")
                entry["solid"] = f"{stem}_solid.png"
                entry["outline"] = f"{stem}_outline.png"
            entries.append(entry)

        if dump.image is not None:
            preview = render_preview(dump.image, detections, config.scheduler.input_size)
            Image.fromarray(preview).save(output_dir / f"{path.stem}_preview.png")

        if config.spawn and dump.pose is not None:
            anchors.spawn(detections, dump.pose)

        frames.append({"dump": path.name, "detections": entries})

    summary = {
        "dumps": len(dump_paths),
        "detections": total_detections,
        "cycles_failed": scheduler.cycles_failed,
        "frames": frames,
        "anchors": [
            {
                "id": anchor.anchor_id,
                "class": anchor.class_name,
                "position": _vector(anchor.position),
                "world_size": [round(v, 4) for v in anchor.world_size],
                "quality": round(anchor.quality_score, 4),
            }
            for anchor in anchors
        ],
    }
    write_summary(output_dir / "summary.json", summary)

    print(f"Processed {len(dump_paths)} dumps, {total_detections} detections")
    if config.spawn:
        print(f"Anchored objects: {len(anchors)}")
    if scheduler.cycles_failed:
        print(f"Failed cycles: {scheduler.cycles_failed}", file=sys.stderr)
    print(f"Output saved to: {output_dir}")
    return summary
