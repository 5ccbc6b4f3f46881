"""Inference backends that the scheduler can step and read back from.

A backend runs a model one layer at a time so that a frame never blocks on a
full forward pass, then exposes its two outputs (detections and prototypes)
through readback handles that are requested once and polled until ready.
"""

from typing import Callable, Iterable, Optional, Protocol, Sequence, runtime_checkable

import numpy as np
import torch

DETECTION_OUTPUT = 0
PROTOTYPE_OUTPUT = 1


@runtime_checkable
class ReadbackHandle(Protocol):
    """Non-blocking device-to-host transfer of one output tensor."""

    def request(self) -> bool:
        """Start the transfer. Returns False when there is no data to read."""
        ...

    def is_done(self) -> bool:
        """Return True once the transfer has completed."""
        ...

    def materialize(self) -> np.ndarray:
        """Return the transferred tensor as a host array."""
        ...

    def release(self) -> None:
        """Free host and device storage held by the handle."""
        ...


@runtime_checkable
class InferenceBackend(Protocol):
    """Steppable model execution."""

    def start(self, input_tensor) -> None:
        """Begin a forward pass over input_tensor."""
        ...

    def step(self) -> bool:
        """Run one layer. Returns False once the pass has finished."""
        ...

    def output(self, index: int) -> Optional[ReadbackHandle]:
        """Readback handle for an output of the finished pass, or None."""
        ...


class TorchReadback:
    """Readback of a torch tensor using a non-blocking copy to the host.

    On CUDA the copy is tracked with an event so ``is_done`` never
    synchronizes the device.
    """

    def __init__(self, tensor: Optional[torch.Tensor]):
        self._tensor = tensor
        self._host: Optional[torch.Tensor] = None
        self._event = None

    def request(self) -> bool:
        if self._tensor is None or self._tensor.numel() == 0:
            return False
        source = self._tensor.detach()
        if source.is_cuda:
            host = torch.empty(source.shape, dtype=source.dtype, device="cpu", pin_memory=True)
            host.copy_(source, non_blocking=True)
            self._event = torch.cuda.Event()
            self._event.record()
            self._host = host
        else:
            self._host = source.to("cpu", non_blocking=True)
        return True

    def is_done(self) -> bool:
        if self._host is None:
            return False
        return self._event is None or self._event.query()

    def materialize(self) -> np.ndarray:
        if self._host is None:
            raise RuntimeError("Readback was not requested")
        return self._host.float().numpy().copy()

    def release(self) -> None:
        self._tensor = None
        self._host = None
        self._event = None


class TorchLayerBackend:
    """Runs a sequence of torch modules one layer per ``step`` call.

    Each layer receives the previous layer's output. The last layer must
    return a ``(detections, prototypes)`` pair.

    Attributes:
        layers: Modules or callables applied in order.
        device: Device that input tensors are moved to.
    """

    def __init__(self, layers: Sequence[Callable], device: str = "cpu"):
        self.layers = list(layers)
        self.device = device
        self._position = 0
        self._value = None
        self._outputs: Optional[tuple] = None
        self._running = False

    @property
    def layer_count(self) -> int:
        return len(self.layers)

    def start(self, input_tensor) -> None:
        if not isinstance(input_tensor, torch.Tensor):
            input_tensor = torch.as_tensor(np.asarray(input_tensor, dtype=np.float32))
        self._value = input_tensor.to(self.device)
        self._position = 0
        self._outputs = None
        self._running = True

    def step(self) -> bool:
        if not self._running:
            return False
        if self._position >= len(self.layers):
            self._finish()
            return False
        with torch.no_grad():
            self._value = self.layers[self._position](self._value)
        self._position += 1
        return True

    def _finish(self) -> None:
        self._running = False
        value = self._value
        self._value = None
        if not isinstance(value, (tuple, list)) or len(value) != 2:
            raise ValueError("Last layer must return a (detections, prototypes) pair")
        self._outputs = tuple(value)

    def output(self, index: int) -> Optional[TorchReadback]:
        if self._outputs is None or not 0 <= index < len(self._outputs):
            return None
        return TorchReadback(self._outputs[index])


class ArrayReadback:
    """Readback of a host array that reports completion after a few polls."""

    def __init__(self, array: Optional[np.ndarray], poll_delay: int = 0):
        self._array = array
        self._remaining_polls = poll_delay
        self._requested = False
        self.released = False

    def request(self) -> bool:
        if self._array is None:
            return False
        self._requested = True
        return True

    def is_done(self) -> bool:
        if not self._requested:
            return False
        if self._remaining_polls > 0:
            self._remaining_polls -= 1
            return False
        return True

    def materialize(self) -> np.ndarray:
        return np.array(self._array, dtype=np.float32)

    def release(self) -> None:
        self._array = None
        self.released = True


class ReplayBackend:
    """Backend that replays recorded output tensors.

    Used by the headless runner and tests. The forward pass takes
    ``layer_count`` steps and ignores its input.

    Attributes:
        layer_count: Number of ``step`` calls a pass takes.
        poll_delay: Polls each readback reports as pending before completing.
        missing_outputs: Output indices whose readback reports no data.
    """

    def __init__(
        self,
        detections: Optional[np.ndarray],
        prototypes: Optional[np.ndarray],
        layer_count: int = 1,
        poll_delay: int = 0,
        missing_outputs: Iterable[int] = (),
    ):
        self.layer_count = layer_count
        self.poll_delay = poll_delay
        self.missing_outputs = set(missing_outputs)
        self.started = 0
        self.handles = []
        self._remaining = 0
        self._finished = False
        self.load(detections, prototypes)

    def load(self, detections: Optional[np.ndarray], prototypes: Optional[np.ndarray]) -> None:
        """Replace the tensors returned by subsequent passes."""
        self._outputs = (detections, prototypes)

    def start(self, input_tensor) -> None:
        self.started += 1
        self._remaining = self.layer_count
        self._finished = False

    def step(self) -> bool:
        if self._remaining > 0:
            self._remaining -= 1
            return True
        self._finished = True
        return False

    def output(self, index: int) -> Optional[ArrayReadback]:
        if not self._finished or not 0 <= index < len(self._outputs):
            return None
        array = None if index in self.missing_outputs else self._outputs[index]
        handle = ArrayReadback(array, poll_delay=self.poll_delay)
        self.handles.append(handle)
        return handle
