"""Frame-driven orchestration of inference, live detections and anchors."""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np

from .anchors.manager import AnchorManager
from .anchors.render_mode import RenderModeState
from .config import AnchorConfig, ProcessingConfig, RenderConfig
from .core.geometry import Pose
from .detection.base import LiveDetection
from .detection.labels import LabelTable
from .inference.backend import InferenceBackend
from .inference.scheduler import InferenceScheduler
from .pipeline import FramePipeline
from .world import Raycaster

logger = logging.getLogger(__name__)

RESET_NOTIFICATION = -1


@dataclass
class Frame:
    """One captured camera frame ready for inference.

    Attributes:
        input_tensor: Preprocessed model input.
        image: Source RGB image used for background color sampling.
        capture_pose: Camera pose at capture time; the viewer pose is used
            when omitted.
    """

    input_tensor: object
    image: Optional[np.ndarray] = None
    capture_pose: Optional[Pose] = None


class DetectionSession:
    """Owns the live detection list and the anchor registry.

    Everything advances from ``tick``, called once per rendered frame.
    Sessions start paused; while paused no new inference is scheduled and
    auto-update is suspended, but a cycle already in flight still finishes.

    Attributes:
        scheduler: Inference scheduler driving the backend.
        anchors: Anchor registry.
        live_detections: Detections published by the last finished cycle.
        live_render: Render state per live detection, same order.
        paused: Whether scheduling and auto-update are suspended.
    """

    def __init__(
        self,
        backend: InferenceBackend,
        pipeline: FramePipeline,
        anchor_config: Optional[AnchorConfig] = None,
        render_config: Optional[RenderConfig] = None,
        layers_per_step: int = 25,
        on_objects_identified: Optional[Callable[[int], None]] = None,
    ):
        self.anchor_config = anchor_config or AnchorConfig()
        self.render_config = render_config or RenderConfig()
        self.anchors = AnchorManager(self.anchor_config, self.render_config)
        self.scheduler = InferenceScheduler(
            backend, pipeline, layers_per_step=layers_per_step, on_result=self._on_result
        )
        self.on_objects_identified = on_objects_identified
        self.live_detections: List[LiveDetection] = []
        self.live_render: List[RenderModeState] = []
        self.paused = True
        self._auto_update_elapsed = 0.0

    @classmethod
    def from_config(
        cls,
        config: ProcessingConfig,
        backend: InferenceBackend,
        labels: LabelTable,
        raycaster: Optional[Raycaster] = None,
    ) -> "DetectionSession":
        """Create DetectionSession from ProcessingConfig."""
        return cls(
            backend=backend,
            pipeline=FramePipeline.from_config(config, labels, raycaster),
            anchor_config=config.anchor,
            render_config=config.render,
            layers_per_step=config.scheduler.layers_per_step,
        )

    def set_paused(self, paused: bool) -> None:
        self.paused = paused

    def tick(self, dt: float, viewer_pose: Pose, frame: Optional[Frame] = None) -> None:
        """Advance the session by one frame.

        Args:
            dt: Seconds since the previous tick.
            viewer_pose: Current viewer (head) pose.
            frame: Newly captured frame, scheduled if the scheduler is idle.
        """
        if not self.paused and frame is not None and not self.scheduler.is_busy():
            self.scheduler.schedule(
                frame.input_tensor,
                frame.capture_pose if frame.capture_pose is not None else viewer_pose,
                frame.image,
            )

        self.scheduler.step()

        if self.anchor_config.auto_update and not self.paused:
            self._auto_update_elapsed += dt
            if self._auto_update_elapsed >= self.anchor_config.auto_update_interval:
                self._auto_update_elapsed = 0.0
                self.anchors.auto_update(self.live_detections, viewer_pose)

        self.anchors.update_render_modes(viewer_pose.position)
        self._update_live_render(viewer_pose)

    def spawn_current(self, viewer_pose: Pose) -> int:
        """Anchor the current live detections. Returns the number of new anchors."""
        count = self.anchors.spawn(self.live_detections, viewer_pose)
        self._notify(count)
        return count

    def reset(self) -> None:
        """Remove every anchor."""
        removed = self.anchors.clear()
        logger.info("Reset all anchors (%d removed)", removed)
        self._notify(RESET_NOTIFICATION)

    def recenter(self) -> None:
        """Drop anchors after the tracking origin moved."""
        removed = self.anchors.clear()
        logger.info("Tracking recentered, %d anchors removed", removed)
        self._notify(RESET_NOTIFICATION)

    def _on_result(self, detections: List[LiveDetection]) -> None:
        self.live_detections = detections
        self.live_render = [
            RenderModeState(
                det.solid_bitmap,
                det.outline_bitmap,
                threshold=self.render_config.outline_distance_threshold,
                blend_width=self.render_config.blend_width,
            )
            for det in detections
        ]

    def _update_live_render(self, viewer_pose: Pose) -> None:
        # Anchored objects already render through their anchor.
        for detection, state in zip(self.live_detections, self.live_render):
            if detection.world_point is None:
                continue
            if self.anchors.has_anchor_near(detection.class_name, detection.world_point):
                continue
            state.update(viewer_pose.position, detection.world_point)

    def _notify(self, count: int) -> None:
        if self.on_objects_identified is not None:
            self.on_objects_identified(count)
