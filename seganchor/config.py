"""Configuration dataclasses for seganchor."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


MIN_OUTLINE_RADIUS = 1
MAX_OUTLINE_RADIUS = 15
MIN_OUTLINE_DISTANCE = 0.1


def _clamp(name: str, value, low=None, high=None):
    """Clamp a config value into range, warning when it had to move."""
    clamped = value
    if low is not None and clamped < low:
        clamped = low
    if high is not None and clamped > high:
        clamped = high
    if clamped != value:
        logger.warning("Config %s=%r out of range, clamped to %r", name, value, clamped)
    return clamped


@dataclass
class SchedulerConfig:
    """Configuration for the inference scheduler."""

    layers_per_step: int = 25
    input_size: int = 640

    def __post_init__(self):
        self.layers_per_step = _clamp("layers_per_step", int(self.layers_per_step), low=1)
        self.input_size = _clamp("input_size", int(self.input_size), low=1)


@dataclass
class DetectionConfig:
    """Configuration for detection decoding.

    An empty ``class_names`` list allows every class.
    """

    confidence_threshold: float = 0.75
    iou_threshold: float = 0.5
    class_names: List[str] = field(default_factory=list)
    max_detections: int = 50
    num_mask_coefficients: int = 32

    def __post_init__(self):
        self.confidence_threshold = _clamp(
            "confidence_threshold", float(self.confidence_threshold), 0.0, 1.0
        )
        self.iou_threshold = _clamp("iou_threshold", float(self.iou_threshold), 0.0, 1.0)
        self.max_detections = _clamp("max_detections", int(self.max_detections), low=0)
        self.num_mask_coefficients = _clamp(
            "num_mask_coefficients", int(self.num_mask_coefficients), low=1
        )


@dataclass
class MaskConfig:
    """Configuration for mask synthesis."""

    outline_radius: int = 3

    def __post_init__(self):
        self.outline_radius = _clamp(
            "outline_radius", int(self.outline_radius), MIN_OUTLINE_RADIUS, MAX_OUTLINE_RADIUS
        )


@dataclass
class ColorConfig:
    """Configuration for overlay color selection."""

    adaptive: bool = True
    sample_count: int = 16
    overlay_alpha: float = 0.7
    default_color: Tuple[float, float, float] = (0.0, 0.0, 1.0)

    def __post_init__(self):
        self.sample_count = _clamp("sample_count", int(self.sample_count), low=1)
        self.overlay_alpha = _clamp("overlay_alpha", float(self.overlay_alpha), 0.0, 1.0)


@dataclass
class AnchorConfig:
    """Configuration for spatial anchors."""

    spawn_distance: float = 0.25
    auto_update: bool = True
    auto_update_interval: float = 0.5
    improvement_threshold: float = 0.05
    surface_offset: float = 0.01
    fallback_size: float = 0.3

    def __post_init__(self):
        self.spawn_distance = _clamp("spawn_distance", float(self.spawn_distance), low=0.0)
        self.auto_update_interval = _clamp(
            "auto_update_interval", float(self.auto_update_interval), low=0.0
        )
        self.improvement_threshold = _clamp(
            "improvement_threshold", float(self.improvement_threshold), low=0.0
        )
        self.surface_offset = _clamp("surface_offset", float(self.surface_offset), low=0.0)
        self.fallback_size = _clamp("fallback_size", float(self.fallback_size), low=0.0)


@dataclass
class RenderConfig:
    """Configuration for distance-based render mode switching."""

    outline_distance_threshold: float = 1.0
    blend_width: float = 0.2

    def __post_init__(self):
        self.outline_distance_threshold = _clamp(
            "outline_distance_threshold",
            float(self.outline_distance_threshold),
            low=MIN_OUTLINE_DISTANCE,
        )
        self.blend_width = _clamp("blend_width", float(self.blend_width), low=0.0)


@dataclass
class ProcessingConfig:
    """Combined configuration for a processing run."""

    input_paths: List[str]
    output_dir: str
    labels_path: str
    scheduler: SchedulerConfig
    detection: DetectionConfig
    mask: MaskConfig
    color: ColorConfig
    anchor: AnchorConfig
    render: RenderConfig
    spawn: bool = False
    verbose: bool = False

    @classmethod
    def from_args(
        cls,
        input_paths: List[str],
        output_dir: str,
        labels_path: str,
        # Scheduler config
        layers_per_step: int = 25,
        input_size: int = 640,
        # Detection config
        confidence_threshold: float = 0.75,
        iou_threshold: float = 0.5,
        class_names: Optional[List[str]] = None,
        max_detections: int = 50,
        # Mask config
        outline_radius: int = 3,
        # Color config
        adaptive_color: bool = True,
        sample_count: int = 16,
        overlay_alpha: float = 0.7,
        # Anchor config
        spawn_distance: float = 0.25,
        auto_update: bool = True,
        auto_update_interval: float = 0.5,
        improvement_threshold: float = 0.05,
        # Render config
        outline_distance_threshold: float = 1.0,
        blend_width: float = 0.2,
        spawn: bool = False,
        verbose: bool = False,
    ) -> "ProcessingConfig":
        """Create ProcessingConfig from CLI arguments."""
        return cls(
            input_paths=list(input_paths),
            output_dir=output_dir,
            labels_path=labels_path,
            scheduler=SchedulerConfig(layers_per_step=layers_per_step, input_size=input_size),
            detection=DetectionConfig(
                confidence_threshold=confidence_threshold,
                iou_threshold=iou_threshold,
                class_names=list(class_names or []),
                max_detections=max_detections,
            ),
            mask=MaskConfig(outline_radius=outline_radius),
            color=ColorConfig(
                adaptive=adaptive_color,
                sample_count=sample_count,
                overlay_alpha=overlay_alpha,
            ),
            anchor=AnchorConfig(
                spawn_distance=spawn_distance,
                auto_update=auto_update,
                auto_update_interval=auto_update_interval,
                improvement_threshold=improvement_threshold,
            ),
            render=RenderConfig(
                outline_distance_threshold=outline_distance_threshold,
                blend_width=blend_width,
            ),
            spawn=spawn,
            verbose=verbose,
        )
