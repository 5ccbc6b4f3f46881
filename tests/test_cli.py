from pathlib import Path

import pytest

from seganchor.cli import parse_args


@pytest.fixture
def inputs(tmp_path: Path):
    dump = tmp_path / "frame.npz"
    dump.write_bytes(b"fake")
    labels = tmp_path / "labels.txt"
    labels.write_text("person\ncup\n")
    return str(dump), str(labels)


def test_cli_defaults(inputs):
    dump, labels = inputs

    config = parse_args([dump, "-o", "out", "--labels", labels])

    assert config.input_paths == [dump]
    assert config.output_dir == "out"
    assert config.detection.confidence_threshold == 0.75
    assert config.detection.iou_threshold == 0.5
    assert config.detection.class_names == []
    assert config.detection.max_detections == 50
    assert config.mask.outline_radius == 3
    assert config.scheduler.layers_per_step == 25
    assert config.color.adaptive is True
    assert config.anchor.spawn_distance == 0.25
    assert config.spawn is False


def test_cli_parses_flags(inputs):
    dump, labels = inputs

    config = parse_args(
        [
            dump,
            dump,
            "-o",
            "out",
            "--labels",
            labels,
            "--classes",
            "cup, dining table,,mouse",
            "--confidence",
            "0.6",
            "--iou",
            "0.4",
            "--max-detections",
            "10",
            "--outline-radius",
            "5",
            "--layers-per-step",
            "8",
            "--no-adaptive-color",
            "--sample-count",
            "9",
            "--overlay-alpha",
            "0.5",
            "--spawn-distance",
            "0.3",
            "--spawn",
            "-v",
        ]
    )

    assert config.input_paths == [dump, dump]
    assert config.detection.class_names == ["cup", "dining table", "mouse"]
    assert config.detection.confidence_threshold == 0.6
    assert config.detection.iou_threshold == 0.4
    assert config.detection.max_detections == 10
    assert config.mask.outline_radius == 5
    assert config.scheduler.layers_per_step == 8
    assert config.color.adaptive is False
    assert config.color.sample_count == 9
    assert config.color.overlay_alpha == 0.5
    assert config.anchor.spawn_distance == 0.3
    assert config.spawn is True
    assert config.verbose is True


def test_cli_clamps_outline_radius(inputs):
    dump, labels = inputs

    config = parse_args([dump, "-o", "out", "--labels", labels, "--outline-radius", "40"])

    assert config.mask.outline_radius == 15


@pytest.mark.parametrize(
    "flags",
    [
        ["--confidence", "1.5"],
        ["--iou", "-0.1"],
        ["--overlay-alpha", "2"],
        ["--max-detections", "-1"],
        ["--layers-per-step", "0"],
    ],
)
def test_cli_rejects_out_of_range_values(inputs, flags):
    dump, labels = inputs

    with pytest.raises(SystemExit):
        parse_args([dump, "-o", "out", "--labels", labels, *flags])


def test_cli_rejects_missing_input(inputs, tmp_path: Path):
    _, labels = inputs

    with pytest.raises(SystemExit):
        parse_args([str(tmp_path / "missing.npz"), "-o", "out", "--labels", labels])


def test_cli_rejects_missing_labels(inputs, tmp_path: Path):
    dump, _ = inputs

    with pytest.raises(SystemExit):
        parse_args([dump, "-o", "out", "--labels", str(tmp_path / "none.txt")])


def test_cli_requires_output(inputs):
    dump, labels = inputs

    with pytest.raises(SystemExit):
        parse_args([dump, "--labels", labels])
