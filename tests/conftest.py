import numpy as np
import pytest

from seganchor.detection.labels import LabelTable

NUM_CLASSES = 80
NUM_COEFFICIENTS = 32
MASK_SIZE = 160
INPUT_SIZE = 640

CLASS_NAMES = {0: "person", 39: "bottle", 41: "cup", 60: "dining table", 62: "tv", 64: "mouse", 66: "keyboard"}


def build_detection_tensor(entries, num_classes=NUM_CLASSES, num_coefficients=NUM_COEFFICIENTS, num_anchors=None):
    """Detection tensor [1, 4+C+K, N] with one anchor column per entry.

    Each entry is a dict with center, size, class_id, score and optionally
    coefficients (K floats) and scores (dict of extra class_id -> score).
    """
    num_anchors = num_anchors or max(len(entries), 1)
    data = np.zeros((1, 4 + num_classes + num_coefficients, num_anchors), dtype=np.float32)
    for n, entry in enumerate(entries):
        data[0, 0:2, n] = entry["center"]
        data[0, 2:4, n] = entry["size"]
        data[0, 4 + entry["class_id"], n] = entry["score"]
        for class_id, score in entry.get("scores", {}).items():
            data[0, 4 + class_id, n] = score
        if "coefficients" in entry:
            data[0, 4 + num_classes:, n] = entry["coefficients"]
    return data


def build_square_prototypes(rows, cols, num_coefficients=NUM_COEFFICIENTS, mask_size=MASK_SIZE, logit=10.0):
    """Prototypes [1, K, M, M] where prototype 0 is +logit inside a square."""
    prototypes = np.zeros((1, num_coefficients, mask_size, mask_size), dtype=np.float32)
    prototypes[0, 0] = -logit
    prototypes[0, 0, rows[0]:rows[1], cols[0]:cols[1]] = logit
    return prototypes


def first_prototype_coefficients(num_coefficients=NUM_COEFFICIENTS):
    coefficients = np.zeros(num_coefficients, dtype=np.float32)
    coefficients[0] = 1.0
    return coefficients


@pytest.fixture
def labels():
    return LabelTable([CLASS_NAMES.get(i, f"obj{i}") for i in range(NUM_CLASSES)])


@pytest.fixture
def make_detections():
    return build_detection_tensor


@pytest.fixture
def square_prototypes():
    """Mask-space square covering rows/cols 70..89, inside the center box crop."""
    return build_square_prototypes((70, 90), (70, 90))


@pytest.fixture
def center_cup(make_detections):
    """One cup at the center of a 640 px input: mask-space center 80, size 25."""
    return make_detections(
        [
            {
                "center": (320.0, 320.0),
                "size": (100.0, 100.0),
                "class_id": 41,
                "score": 0.9,
                "coefficients": first_prototype_coefficients(),
            }
        ]
    )
