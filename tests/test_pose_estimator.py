import numpy as np
import pytest

from gesture_teleop.config import EstimatorConfig
from gesture_teleop.errors import InvalidIntrinsics, PoseUnavailable
from gesture_teleop.frame import INDEX_MCP, MIDDLE_TIP, RING_MCP, WRIST, Frame, Intrinsics, LandmarkSet
from gesture_teleop.pose_estimator import PoseEstimator

from .conftest import build_frame


def assert_orthonormal(rot):
    assert np.allclose(rot.T @ rot, np.eye(3), atol=1e-6)
    assert np.linalg.det(rot) == pytest.approx(1.0, abs=1e-6)


@pytest.fixture
def estimator():
    return PoseEstimator(EstimatorConfig())


def test_unproject_recovers_points(estimator, palm_points):
    landmarks, frame = build_frame(palm_points)
    points = estimator.unproject(landmarks, frame)

    assert set(points) == set(palm_points)
    for index, p in palm_points.items():
        assert np.allclose(points[index], p, atol=1e-9)


def test_unproject_with_smaller_depth_map(estimator, palm_points):
    landmarks, frame = build_frame(palm_points, depth_shape=(240, 320))
    points = estimator.unproject(landmarks, frame)

    assert np.allclose(points[WRIST], palm_points[WRIST], atol=1e-9)


def test_closed_form_pose(estimator, palm_points):
    landmarks, frame = build_frame(palm_points)
    pose = estimator.estimate(landmarks, frame)

    assert_orthonormal(pose.rotation)
    assert np.allclose(pose.translation, palm_points[WRIST])
    # X toward the wrist, Y across the knuckles, Z toward the camera
    assert np.allclose(pose.rotation[:, 0], [0.0, 1.0, 0.0], atol=1e-9)
    assert np.allclose(pose.rotation[:, 1], [1.0, 0.0, 0.0], atol=1e-9)
    assert np.allclose(pose.rotation[:, 2], [0.0, 0.0, -1.0], atol=1e-9)


def test_left_hand_mirrors_y_axis(estimator, palm_points):
    landmarks, frame = build_frame(palm_points, handedness="Left")
    pose = estimator.estimate(landmarks, frame)

    assert_orthonormal(pose.rotation)
    assert np.allclose(pose.rotation[:, 1], [-1.0, 0.0, 0.0], atol=1e-9)


def test_tilted_knuckles_are_orthogonalized(estimator, palm_points):
    palm_points[INDEX_MCP] = np.array([0.03, 0.0, 0.48])
    landmarks, frame = build_frame(palm_points)
    pose = estimator.estimate(landmarks, frame)

    assert_orthonormal(pose.rotation)
    assert abs(np.dot(pose.rotation[:, 0], pose.rotation[:, 1])) < 1e-9


def test_wrist_on_fingertip_is_unavailable(estimator, palm_points):
    palm_points[MIDDLE_TIP] = palm_points[WRIST].copy()
    landmarks, frame = build_frame(palm_points)

    with pytest.raises(PoseUnavailable):
        estimator.estimate(landmarks, frame)


def test_collinear_knuckles_are_unavailable(estimator, palm_points):
    # Knuckle axis parallel to the finger axis
    palm_points[INDEX_MCP] = np.array([0.0, 0.02, 0.5])
    palm_points[RING_MCP] = np.array([0.0, -0.06, 0.5])
    landmarks, frame = build_frame(palm_points)

    with pytest.raises(PoseUnavailable):
        estimator.estimate(landmarks, frame)


def test_too_few_depth_samples(estimator, palm_points):
    landmarks, frame = build_frame({WRIST: palm_points[WRIST], MIDDLE_TIP: palm_points[MIDDLE_TIP]})

    with pytest.raises(PoseUnavailable, match="valid depth samples"):
        estimator.estimate(landmarks, frame)


def test_invalid_depth_samples_are_skipped(estimator, palm_points):
    landmarks, frame = build_frame(palm_points)
    nan_depth = np.where(frame.depth > 0, np.nan, 0.0).astype(np.float32)
    frame = Frame(frame.rgb, nan_depth, frame.intrinsics, frame.timestamp_ms)

    with pytest.raises(PoseUnavailable):
        estimator.estimate(landmarks, frame)


def test_out_of_bounds_landmarks_are_skipped(estimator, palm_points):
    landmarks, frame = build_frame(palm_points)
    points = list(landmarks.points)
    points[WRIST] = (1.5, -0.2)
    points = estimator.unproject(LandmarkSet(points, "Right"), frame)

    assert WRIST not in points
    assert len(points) == len(palm_points) - 1


def test_no_landmarks(estimator, palm_points):
    _, frame = build_frame(palm_points)

    with pytest.raises(PoseUnavailable):
        estimator.estimate(None, frame)
    with pytest.raises(PoseUnavailable):
        estimator.estimate(LandmarkSet([], "Right"), frame)


@pytest.mark.parametrize("intrinsics", [
    Intrinsics(0.0, 500.0, 320.0, 240.0),
    Intrinsics(500.0, float("nan"), 320.0, 240.0),
    Intrinsics(500.0, 500.0, float("inf"), 240.0),
])
def test_invalid_intrinsics(estimator, palm_points, intrinsics):
    landmarks, frame = build_frame(palm_points)
    bad = Frame(frame.rgb, frame.depth, intrinsics, frame.timestamp_ms)

    with pytest.raises(InvalidIntrinsics):
        estimator.estimate(landmarks, bad)


def test_ransac_plane_pose(palm_points):
    estimator = PoseEstimator(EstimatorConfig(method="ransac"))
    landmarks, frame = build_frame(palm_points)
    pose = estimator.estimate(landmarks, frame)

    assert_orthonormal(pose.rotation)
    # Flat palm at z = 0.5: normal faces the camera
    assert np.allclose(pose.rotation[:, 2], [0.0, 0.0, -1.0], atol=1e-9)
    assert pose.translation[2] == pytest.approx(0.5)
    # X points from the centroid toward the wrist (+y in the image)
    assert pose.rotation[1, 0] > 0.9


def test_ransac_ignores_outlier(palm_points):
    estimator = PoseEstimator(EstimatorConfig(method="ransac"))
    palm_points[MIDDLE_TIP] = np.array([0.0, -0.13, 0.42])
    landmarks, frame = build_frame(palm_points)
    pose = estimator.estimate(landmarks, frame)

    assert np.allclose(pose.rotation[:, 2], [0.0, 0.0, -1.0], atol=1e-9)
    assert pose.translation[2] == pytest.approx(0.5)


def test_unknown_method():
    with pytest.raises(ValueError):
        PoseEstimator(EstimatorConfig(method="icp"))
