"""Inference backends and the multi-frame scheduler."""

from .backend import (
    DETECTION_OUTPUT,
    PROTOTYPE_OUTPUT,
    ArrayReadback,
    InferenceBackend,
    ReadbackHandle,
    ReplayBackend,
    TorchLayerBackend,
    TorchReadback,
)
from .scheduler import InferenceScheduler, SchedulerState

__all__ = [
    "DETECTION_OUTPUT",
    "PROTOTYPE_OUTPUT",
    "ArrayReadback",
    "InferenceBackend",
    "InferenceScheduler",
    "ReadbackHandle",
    "ReplayBackend",
    "SchedulerState",
    "TorchLayerBackend",
    "TorchReadback",
]
