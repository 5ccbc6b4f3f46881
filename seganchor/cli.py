"""Command-line interface for seganchor."""

import argparse
from pathlib import Path

from . import __version__
from .config import MAX_OUTLINE_RADIUS, MIN_OUTLINE_RADIUS, ProcessingConfig

EPILOG = """\
Examples:
  seganchor dumps/ -o out --labels coco.txt
  seganchor frame_001.npz -o out --labels coco.txt --classes cup,bottle --spawn
  seganchor dumps/ -o out --labels coco.txt --confidence 0.6 --outline-radius 5

A dump is an .npz file holding the model's "detections" [1, 4+C+K, N] and
"prototypes" [1, K, M, M] outputs, plus an optional source "image" (H, W, 3)
and capture "pose" (position xyz + quaternion xyzw).
"""


def _split_classes(value: str) -> list[str]:
    return [name.strip() for name in value.split(",") if name.strip()]


def parse_args(args=None) -> ProcessingConfig:
    """Parse command-line arguments.

    Args:
        args: Arguments to parse (defaults to sys.argv).

    Returns:
        ProcessingConfig with parsed options.
    """
    parser = argparse.ArgumentParser(
        prog="seganchor",
        description="Decode segmentation model output into colored, anchorable instance masks.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "inputs",
        nargs="+",
        help="Tensor dump files (.npz) or directories containing them",
    )

    parser.add_argument(
        "-o", "--output",
        type=str,
        required=True,
        help="Output directory for mask images and summary.json",
    )

    parser.add_argument(
        "--labels",
        type=str,
        required=True,
        help="Newline-delimited class label file; line number = class id",
    )

    parser.add_argument(
        "--classes",
        type=str,
        default="",
        help="Comma-separated class names to keep (default: all classes)",
    )

    parser.add_argument(
        "--confidence",
        type=float,
        default=0.75,
        help="Minimum class score to keep a detection; 0.0-1.0 (default: 0.75)",
    )

    parser.add_argument(
        "--iou",
        type=float,
        default=0.5,
        help="IoU above which same-class boxes are suppressed; 0.0-1.0 (default: 0.5)",
    )

    parser.add_argument(
        "--max-detections",
        type=int,
        default=50,
        help="Maximum detections kept per frame (default: 50)",
    )

    parser.add_argument(
        "--outline-radius",
        type=int,
        default=3,
        help=(
            f"Outline width in mask cells, {MIN_OUTLINE_RADIUS}-{MAX_OUTLINE_RADIUS} "
            "(default: 3)"
        ),
    )

    parser.add_argument(
        "--layers-per-step",
        type=int,
        default=25,
        help="Model layers advanced per scheduler step (default: 25)",
    )

    parser.add_argument(
        "--no-adaptive-color",
        action="store_true",
        help="Use a fixed blue overlay instead of picking a contrasting color",
    )

    parser.add_argument(
        "--sample-count",
        type=int,
        default=16,
        help="Background samples per detection for color selection (default: 16)",
    )

    parser.add_argument(
        "--overlay-alpha",
        type=float,
        default=0.7,
        help="Overlay color alpha; 0.0-1.0 (default: 0.7)",
    )

    parser.add_argument(
        "--spawn-distance",
        type=float,
        default=0.25,
        help="Same-class detections closer than this (meters) share an anchor (default: 0.25)",
    )

    parser.add_argument(
        "--spawn",
        action="store_true",
        help="Anchor detections of dumps that carry a capture pose",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log per-frame detail",
    )

    parsed = parser.parse_args(args)

    for raw in parsed.inputs:
        if not Path(raw).exists():
            parser.error(f"Input not found: {raw}")
    if not Path(parsed.labels).is_file():
        parser.error(f"Label file not found: {parsed.labels}")
    if not 0.0 <= parsed.confidence <= 1.0:
        parser.error("--confidence must be between 0.0 and 1.0")
    if not 0.0 <= parsed.iou <= 1.0:
        parser.error("--iou must be between 0.0 and 1.0")
    if not 0.0 <= parsed.overlay_alpha <= 1.0:
        parser.error("--overlay-alpha must be between 0.0 and 1.0")
    if parsed.max_detections < 0:
        parser.error("--max-detections must not be negative")
    if parsed.layers_per_step < 1:
        parser.error("--layers-per-step must be at least 1")

    return ProcessingConfig.from_args(
        input_paths=parsed.inputs,
        output_dir=parsed.output,
        labels_path=parsed.labels,
        layers_per_step=parsed.layers_per_step,
        confidence_threshold=parsed.confidence,
        iou_threshold=parsed.iou,
        class_names=_split_classes(parsed.classes),
        max_detections=parsed.max_detections,
        outline_radius=parsed.outline_radius,
        adaptive_color=not parsed.no_adaptive_color,
        sample_count=parsed.sample_count,
        overlay_alpha=parsed.overlay_alpha,
        spawn_distance=parsed.spawn_distance,
        spawn=parsed.spawn,
        verbose=parsed.verbose,
    )
