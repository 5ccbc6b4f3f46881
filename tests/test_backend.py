from unittest.mock import MagicMock

import numpy as np
import pytest
import torch

from seganchor.inference import (
    DETECTION_OUTPUT,
    PROTOTYPE_OUTPUT,
    InferenceBackend,
    InferenceScheduler,
    ReadbackHandle,
    ReplayBackend,
    TorchLayerBackend,
    TorchReadback,
)


class SplitHeads(torch.nn.Module):
    """Toy segmentation head: detections and prototypes from one feature map."""

    def forward(self, x):
        detections = x.mean(dim=(2, 3)).unsqueeze(-1).repeat(1, 1, 4)
        return detections, x


def _layers():
    return [torch.nn.Identity(), torch.nn.ReLU(), SplitHeads()]


def test_backends_satisfy_protocols():
    assert isinstance(TorchLayerBackend(_layers()), InferenceBackend)
    assert isinstance(ReplayBackend(None, None), InferenceBackend)
    assert isinstance(TorchReadback(torch.zeros(1)), ReadbackHandle)


def test_torch_backend_runs_one_layer_per_step():
    backend = TorchLayerBackend(_layers())
    backend.start(np.ones((1, 3, 4, 4), dtype=np.float32))

    assert [backend.step() for _ in range(4)] == [True, True, True, False]
    assert backend.step() is False


def test_torch_backend_outputs_after_pass():
    backend = TorchLayerBackend(_layers())
    backend.start(torch.full((1, 3, 4, 4), -1.0))
    assert backend.output(DETECTION_OUTPUT) is None

    while backend.step():
        pass

    handle = backend.output(PROTOTYPE_OUTPUT)
    assert handle.request() is True
    assert handle.is_done() is True
    prototypes = handle.materialize()
    assert isinstance(prototypes, np.ndarray)
    assert prototypes.shape == (1, 3, 4, 4)
    assert (prototypes == 0).all()
    assert backend.output(2) is None


def test_last_layer_must_return_pair():
    backend = TorchLayerBackend([torch.nn.Identity()])
    backend.start(torch.zeros(1, 2))
    backend.step()

    with pytest.raises(ValueError):
        backend.step()


def test_readback_of_empty_tensor_reports_no_data():
    handle = TorchReadback(torch.zeros(0, 4))

    assert handle.request() is False
    assert handle.is_done() is False


def test_materialize_requires_request():
    with pytest.raises(RuntimeError):
        TorchReadback(torch.zeros(2)).materialize()


def test_scheduler_drives_torch_backend():
    dispatch = MagicMock(return_value=[])
    scheduler = InferenceScheduler(TorchLayerBackend(_layers()), dispatch, layers_per_step=1)
    scheduler.schedule(np.ones((1, 3, 4, 4), dtype=np.float32))

    for _ in range(20):
        scheduler.step()
        if not scheduler.is_busy():
            break

    assert scheduler.cycles_completed == 1
    detections, prototypes = dispatch.call_args.args[:2]
    assert detections.shape == (1, 3, 4)
    np.testing.assert_allclose(detections, 1.0)
    assert prototypes.shape == (1, 3, 4, 4)


def test_replay_backend_reloads_outputs():
    backend = ReplayBackend(np.ones((1, 2)), np.ones((1, 3)))
    backend.load(np.zeros((1, 5)), np.zeros((1, 6)))
    backend.start(None)
    while backend.step():
        pass

    handle = backend.output(DETECTION_OUTPUT)
    handle.request()
    assert handle.materialize().shape == (1, 5)
