"""Multi-frame inference scheduling.

The scheduler spreads one inference cycle over several ``step`` calls (one per
rendered frame): it advances the backend a bounded number of layers per
frame, reads both output tensors back without blocking, then hands them to a
dispatch callable that produces the cycle's live detections.
"""

import enum
import logging
from typing import Callable, Dict, List, Optional

import numpy as np

from ..core.geometry import Pose
from .backend import DETECTION_OUTPUT, PROTOTYPE_OUTPUT, InferenceBackend, ReadbackHandle

logger = logging.getLogger(__name__)

DispatchFn = Callable[[np.ndarray, np.ndarray, Optional[Pose], Optional[np.ndarray]], list]


class SchedulerState(enum.Enum):
    IDLE = "idle"
    STEPPING = "stepping"
    AWAIT_DETECTION_READBACK = "await_detection_readback"
    AWAIT_PROTOTYPE_READBACK = "await_prototype_readback"
    DISPATCH = "dispatch"
    ERROR = "error"
    CLEANUP = "cleanup"


class InferenceScheduler:
    """Cooperative state machine driving one inference cycle at a time.

    Exactly one state handler runs per ``step`` call. Any exception raised
    while handling a cycle is logged and routes the cycle to ERROR, which
    publishes zero detections.

    Attributes:
        backend: Steppable model backend.
        dispatch: Called with (detections, prototypes, capture_pose, image)
            once both tensors are on the host; returns live detections.
        layers_per_step: Maximum backend layers advanced per ``step``.
        on_result: Optional callback receiving each published detection list.
        detections: Detections published by the last finished cycle.
    """

    def __init__(
        self,
        backend: InferenceBackend,
        dispatch: DispatchFn,
        layers_per_step: int = 25,
        on_result: Optional[Callable[[list], None]] = None,
    ):
        self.backend = backend
        self.dispatch = dispatch
        self.layers_per_step = max(1, int(layers_per_step))
        self.on_result = on_result

        self.state = SchedulerState.IDLE
        self.detections: list = []
        self.cycles_completed = 0
        self.cycles_failed = 0

        self._capture_pose: Optional[Pose] = None
        self._image: Optional[np.ndarray] = None
        self._handles: Dict[int, ReadbackHandle] = {}
        self._tensors: Dict[int, np.ndarray] = {}
        self._handlers = {
            SchedulerState.STEPPING: self._run_layers,
            SchedulerState.AWAIT_DETECTION_READBACK: self._read_detections,
            SchedulerState.AWAIT_PROTOTYPE_READBACK: self._read_prototypes,
            SchedulerState.DISPATCH: self._dispatch,
            SchedulerState.ERROR: self._fail,
            SchedulerState.CLEANUP: self._cleanup,
        }

    def is_busy(self) -> bool:
        return self.state is not SchedulerState.IDLE

    def schedule(
        self,
        input_tensor,
        capture_pose: Optional[Pose] = None,
        image: Optional[np.ndarray] = None,
    ) -> bool:
        """Begin a cycle over input_tensor.

        Args:
            input_tensor: Model input.
            capture_pose: Camera pose when the frame was captured.
            image: Source frame used for background color sampling.

        Returns:
            False without side effects if a cycle is already in flight.
        """
        if self.is_busy():
            return False

        self._capture_pose = capture_pose
        self._image = image
        try:
            self.backend.start(input_tensor)
        except Exception:
            logger.exception("Failed to start inference")
            self.state = SchedulerState.ERROR
            return True
        self.state = SchedulerState.STEPPING
        return True

    def step(self) -> SchedulerState:
        """Run the handler for the current state; returns the new state."""
        handler = self._handlers.get(self.state)
        if handler is None:
            return self.state
        try:
            handler()
        except Exception:
            logger.exception("Inference cycle failed in state %s", self.state.name)
            self.state = SchedulerState.ERROR
        return self.state

    def _run_layers(self) -> None:
        for _ in range(self.layers_per_step):
            if not self.backend.step():
                self.state = SchedulerState.AWAIT_DETECTION_READBACK
                return

    def _read_detections(self) -> None:
        self._read_output(DETECTION_OUTPUT, SchedulerState.AWAIT_PROTOTYPE_READBACK)

    def _read_prototypes(self) -> None:
        self._read_output(PROTOTYPE_OUTPUT, SchedulerState.DISPATCH)

    def _read_output(self, index: int, next_state: SchedulerState) -> None:
        handle = self._handles.get(index)
        if handle is None:
            handle = self.backend.output(index)
            if handle is None:
                logger.error("Backend has no output %d", index)
                self.state = SchedulerState.ERROR
                return
            self._handles[index] = handle
            if not handle.request():
                logger.error("Readback of output %d returned no data", index)
                self.state = SchedulerState.ERROR
            return

        if not handle.is_done():
            return

        tensor = handle.materialize()
        if tensor is None or tensor.ndim == 0 or tensor.shape[0] == 0:
            logger.error("Readback of output %d produced an empty tensor", index)
            self.state = SchedulerState.ERROR
            return
        self._tensors[index] = tensor
        self.state = next_state

    def _dispatch(self) -> None:
        detections = self.dispatch(
            self._tensors[DETECTION_OUTPUT],
            self._tensors[PROTOTYPE_OUTPUT],
            self._capture_pose,
            self._image,
        )
        self.cycles_completed += 1
        self._publish(list(detections))
        self.state = SchedulerState.CLEANUP

    def _fail(self) -> None:
        self.cycles_failed += 1
        self._publish([])
        self.state = SchedulerState.CLEANUP

    def _cleanup(self) -> None:
        for handle in self._handles.values():
            handle.release()
        self._handles.clear()
        self._tensors.clear()
        self._capture_pose = None
        self._image = None
        self.state = SchedulerState.IDLE

    def _publish(self, detections: List) -> None:
        self.detections = detections
        logger.debug("Published %d detections", len(detections))
        if self.on_result is None:
            return
        try:
            self.on_result(detections)
        except Exception:
            logger.exception("Result callback failed")
