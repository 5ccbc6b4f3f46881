import json
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from seganchor.config import ProcessingConfig
from seganchor.core.geometry import Pose
from seganchor.core.io import save_dump
from seganchor.runners.headless import render_preview, run_headless


@pytest.fixture
def label_file(tmp_path: Path, labels):
    path = tmp_path / "labels.txt"
    path.write_text("\n".join(labels.names) + "\n")
    return path


def _config(tmp_path, label_file, inputs, **kwargs):
    return ProcessingConfig.from_args(
        input_paths=[str(p) for p in inputs],
        output_dir=str(tmp_path / "out"),
        labels_path=str(label_file),
        **kwargs,
    )


def test_run_headless_writes_masks_and_summary(tmp_path, label_file, center_cup, square_prototypes, capsys):
    dumps = tmp_path / "dumps"
    dumps.mkdir()
    image = np.full((480, 480, 3), 40, dtype=np.uint8)
    save_dump(dumps / "frame_000.npz", center_cup, square_prototypes, image=image)
    save_dump(dumps / "frame_001.npz", center_cup, square_prototypes)

    summary = run_headless(_config(tmp_path, label_file, [dumps]))

    out = tmp_path / "out"
    assert summary["dumps"] == 2
    assert summary["detections"] == 2
    assert summary["cycles_failed"] == 0
    assert json.loads((out / "summary.json").read_text()) == summary

    first = summary["frames"][0]
    assert first["dump"] == "frame_000.npz"
    assert first["detections"][0]["class"] == "cup"
    assert first["detections"][0]["world_point"] is None
    solid = Image.open(out / first["detections"][0]["solid"])
    assert solid.size == (26, 26)
    assert solid.mode == "RGBA"
    assert (out / first["detections"][0]["outline"]).exists()
    assert (out / "frame_000_preview.png").exists()
    assert not (out / "frame_001_preview.png").exists()
    assert "Processed 2 dumps, 2 detections" in capsys.readouterr().out


def test_run_headless_spawns_anchors_for_posed_dumps(tmp_path, label_file, center_cup, square_prototypes):
    pose = Pose(position=(0.0, 0.0, 0.0))
    save_dump(tmp_path / "a.npz", center_cup, square_prototypes, pose=pose)
    save_dump(tmp_path / "b.npz", center_cup, square_prototypes, pose=pose)
    save_dump(tmp_path / "c.npz", center_cup, square_prototypes)

    summary = run_headless(
        _config(tmp_path, label_file, [tmp_path / "a.npz", tmp_path / "b.npz", tmp_path / "c.npz"], spawn=True)
    )

    assert len(summary["anchors"]) == 1
    anchor = summary["anchors"][0]
    assert anchor["class"] == "cup"
    assert anchor["position"] == pytest.approx([0.0, 0.0, 1.99])


def test_run_headless_filters_classes(tmp_path, label_file, center_cup, square_prototypes):
    save_dump(tmp_path / "a.npz", center_cup, square_prototypes)

    summary = run_headless(_config(tmp_path, label_file, [tmp_path / "a.npz"], class_names=["mouse"]))

    assert summary["detections"] == 0


def test_run_headless_exits_without_dumps(tmp_path, label_file):
    empty = tmp_path / "empty"
    empty.mkdir()

    with pytest.raises(SystemExit):
        run_headless(_config(tmp_path, label_file, [empty]))


def test_render_preview_tints_box_region():
    image = np.zeros((64, 64, 3), dtype=np.uint8)
    bitmap = np.zeros((4, 4, 4), dtype=np.float32)
    bitmap[:, :] = (1.0, 0.0, 0.0, 1.0)

    class Det:
        solid_bitmap = bitmap

        class detection:
            center = (320.0, 320.0)
            size = (100.0, 100.0)

    preview = render_preview(image, [Det()], 640)

    assert preview.shape == (64, 64, 3)
    assert (preview[32, 32] == [255, 0, 0]).all()
    assert (preview[0, 0] == 0).all()
