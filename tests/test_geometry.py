import warnings

import numpy as np
import pytest

from seganchor.core.geometry import Pose, Ray, distance, look_rotation, normalize, rotate
from seganchor.core.utils import blend_overlay, clamp, sigmoid
from seganchor.world import PlaneRaycaster, Raycaster


def test_identity_rotation_leaves_vectors_alone():
    np.testing.assert_allclose(rotate([0.0, 0.0, 0.0, 1.0], [1.0, 2.0, 3.0]), [1.0, 2.0, 3.0])


def test_facing_points_forward_at_target():
    pose = Pose.facing([0.0, 0.0, 0.0], [0.0, 0.0, -1.0])

    np.testing.assert_allclose(pose.forward, [0.0, 0.0, -1.0], atol=1e-9)
    np.testing.assert_allclose(pose.up, [0.0, 1.0, 0.0], atol=1e-9)


def test_look_rotation_handles_forward_parallel_to_up():
    pose = Pose(rotation=look_rotation([0.0, 2.0, 0.0]))

    np.testing.assert_allclose(pose.forward, [0.0, 1.0, 0.0], atol=1e-9)


def test_look_rotation_of_zero_vector_is_identity():
    np.testing.assert_allclose(look_rotation([0.0, 0.0, 0.0]), [0.0, 0.0, 0.0, 1.0])


def test_pose_normalizes_rotation():
    pose = Pose(rotation=(0.0, 0.0, 0.0, 2.0))

    np.testing.assert_allclose(pose.rotation, [0.0, 0.0, 0.0, 1.0])


def test_pose_array_round_trip_and_validation():
    pose = Pose.from_array([1, 2, 3, 0, 0, 0, 1])

    np.testing.assert_allclose(pose.to_array(), [1, 2, 3, 0, 0, 0, 1])
    with pytest.raises(ValueError):
        Pose.from_array([1, 2, 3])
    with pytest.raises(ValueError):
        Pose(position=(1.0, 2.0))


def test_vector_helpers():
    assert distance([0, 0, 0], [3, 4, 0]) == pytest.approx(5.0)
    np.testing.assert_allclose(normalize([0, 0, 0]), [0, 0, 0])
    ray = Ray(origin=[0, 0, 0], direction=[0, 0, 5])
    np.testing.assert_allclose(ray.point_at(2.0), [0, 0, 2])


def test_plane_raycaster_satisfies_protocol():
    assert isinstance(PlaneRaycaster(), Raycaster)


def test_viewport_rays_follow_field_of_view():
    raycaster = PlaneRaycaster(horizontal_fov=90.0)
    pose = Pose()

    center = raycaster.viewport_point_to_ray((0.5, 0.5), pose)
    right = raycaster.viewport_point_to_ray((1.0, 0.5), pose)
    top = raycaster.viewport_point_to_ray((0.5, 1.0), pose)

    np.testing.assert_allclose(center.direction, [0.0, 0.0, 1.0])
    np.testing.assert_allclose(right.direction, np.array([1.0, 0.0, 1.0]) / np.sqrt(2.0))
    np.testing.assert_allclose(top.direction, np.array([0.0, 1.0, 1.0]) / np.sqrt(2.0))


def test_raycast_hits_plane_in_front():
    hit = PlaneRaycaster(plane_point=(0.0, 0.0, 2.0)).raycast([0, 0, 0], [0, 0, 1])

    np.testing.assert_allclose(hit, [0.0, 0.0, 2.0])


@pytest.mark.parametrize(
    ("direction", "max_distance"),
    [
        ([1.0, 0.0, 0.0], 100.0),
        ([0.0, 0.0, -1.0], 100.0),
        ([0.0, 0.0, 1.0], 1.0),
    ],
)
def test_raycast_misses(direction, max_distance):
    raycaster = PlaneRaycaster(plane_point=(0.0, 0.0, 2.0), max_distance=max_distance)

    assert raycaster.raycast([0, 0, 0], direction) is None


def test_plane_raycaster_rejects_bad_setup():
    with pytest.raises(ValueError):
        PlaneRaycaster(plane_normal=(0.0, 0.0, 0.0))
    with pytest.raises(ValueError):
        PlaneRaycaster(horizontal_fov=180.0)


def test_sigmoid_is_stable_for_large_logits():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        values = sigmoid(np.array([-1000.0, 0.0, 1000.0]))

    np.testing.assert_allclose(values, [0.0, 0.5, 1.0])


def test_clamp():
    assert clamp(5, 0, 1) == 1
    assert clamp(-5, 0, 1) == 0
    assert clamp(0.3, 0, 1) == 0.3


def test_blend_overlay_composites_with_alpha():
    image = np.zeros((4, 4, 3), dtype=np.uint8)
    overlay = np.zeros((2, 2, 4), dtype=np.float32)
    overlay[:, :] = (1.0, 1.0, 1.0, 0.5)

    result = blend_overlay(image, overlay, origin=(1, 1))

    assert result.dtype == np.uint8
    assert result[1, 1, 0] == 127
    assert result[0, 0, 0] == 0
    assert result[3, 3, 0] == 0


def test_blend_overlay_clips_to_image_bounds():
    image = np.zeros((4, 4, 3), dtype=np.uint8)
    overlay = np.ones((3, 3, 4), dtype=np.float32)

    result = blend_overlay(image, overlay, origin=(-1, 2))

    assert (result[2:4, 0:2] == 255).all()
    assert (result[:2] == 0).all()
    assert (result[:, 2:] == 0).all()


def test_blend_overlay_validates_shapes():
    with pytest.raises(ValueError):
        blend_overlay(np.zeros((4, 4)), np.zeros((2, 2, 4)))
    with pytest.raises(ValueError):
        blend_overlay(np.zeros((4, 4, 3)), np.zeros((2, 2, 3)))
