from pathlib import Path

import numpy as np
import pytest

from seganchor.core.geometry import Pose
from seganchor.core.io import expand_dump_paths, is_dump_file, load_dump, read_labels, save_dump, write_summary
from seganchor.detection import LabelTable


def test_read_labels_keeps_class_count(tmp_path: Path):
    path = tmp_path / "labels.txt"
    path.write_bytes(b"person\r\nbicycle\r\ndining table\r\n")

    assert read_labels(path) == ["person", "bicycle", "dining table"]


def test_read_labels_without_trailing_newline(tmp_path: Path):
    path = tmp_path / "labels.txt"
    path.write_text("a\nb")

    assert read_labels(path) == ["a", "b"]


def test_label_table_lookup(tmp_path: Path):
    path = tmp_path / "labels.txt"
    path.write_text("person\ncell phone\n")
    table = LabelTable.from_file(path)

    assert len(table) == 2
    assert table.name(1) == "cell_phone"
    assert table.name(7) == "class_7"
    assert table.class_id("cell phone") == 1
    assert "cell_phone" in table
    assert "car" not in table
    with pytest.raises(KeyError):
        table.class_id("car")


def test_label_table_resolve_drops_unknown_names(caplog):
    table = LabelTable(["person", "cup"])

    assert table.resolve(["cup", "car"]) == {1}
    assert "car" in caplog.text


def test_is_dump_file():
    assert is_dump_file("frame.npz")
    assert is_dump_file("FRAME.NPZ")
    assert not is_dump_file("frame.npy")


def test_expand_dump_paths(tmp_path: Path):
    for name in ("b.npz", "a.npz", "notes.txt"):
        (tmp_path / name).write_bytes(b"")
    single = tmp_path / "single.bin"
    single.write_bytes(b"")

    paths = expand_dump_paths([str(tmp_path), str(single)])

    assert [p.name for p in paths] == ["a.npz", "b.npz", "single.bin"]


def test_expand_dump_paths_rejects_missing(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        expand_dump_paths([str(tmp_path / "missing")])


def test_dump_preserves_pose_and_image(tmp_path: Path):
    detections = np.arange(12, dtype=np.float32).reshape(1, 3, 4)
    prototypes = np.ones((1, 2, 4, 4), dtype=np.float32)
    image = np.full((8, 8, 3), 7, dtype=np.uint8)
    pose = Pose(position=(1.0, 2.0, 3.0), rotation=(0.0, 1.0, 0.0, 0.0))

    dump = load_dump(save_dump(tmp_path / "frame.npz", detections, prototypes, image=image, pose=pose))

    np.testing.assert_array_equal(dump.detections, detections)
    assert dump.image.dtype == np.uint8
    np.testing.assert_allclose(dump.pose.to_array(), pose.to_array())


def test_dump_without_optional_arrays(tmp_path: Path):
    dump = load_dump(save_dump(tmp_path / "frame.npz", np.zeros((1, 3, 4)), np.zeros((1, 2, 4, 4))))

    assert dump.image is None
    assert dump.pose is None
    assert dump.prototypes.dtype == np.float32


def test_load_dump_requires_both_tensors(tmp_path: Path):
    path = tmp_path / "broken.npz"
    np.savez(path, detections=np.zeros((1, 3, 4)))

    with pytest.raises(IOError, match="prototypes"):
        load_dump(path)


def test_write_summary(tmp_path: Path):
    path = write_summary(tmp_path / "summary.json", {"dumps": 1})

    assert path.read_text().startswith("{")
