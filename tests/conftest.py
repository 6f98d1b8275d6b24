import math

import numpy as np
import pytest

from gesture_teleop.frame import (
    INDEX_MCP,
    MIDDLE_MCP,
    MIDDLE_TIP,
    NUM_LANDMARKS,
    PINKY_MCP,
    RING_MCP,
    WRIST,
    Frame,
    Intrinsics,
    LandmarkSet,
)
from gesture_teleop.pose import Pose

WIDTH, HEIGHT = 640, 480
K = Intrinsics(fx=500.0, fy=500.0, cx=320.0, cy=240.0)

# Upright right hand, palm toward the camera, 0.5 m away
PALM_POINTS = {
    WRIST: np.array([0.0, 0.05, 0.5]),
    INDEX_MCP: np.array([0.03, -0.03, 0.5]),
    MIDDLE_MCP: np.array([0.005, -0.035, 0.5]),
    MIDDLE_TIP: np.array([0.0, -0.13, 0.5]),
    RING_MCP: np.array([-0.02, -0.03, 0.5]),
    PINKY_MCP: np.array([-0.04, -0.02, 0.5]),
}


def build_frame(points, intrinsics=K, depth_shape=(HEIGHT, WIDTH), handedness="Right", timestamp_ms=0):
    """
    Project known 3D points through the intrinsics and write their depth
    under each landmark, the way a registered RGB-D camera would.

    Returns:
        (LandmarkSet, Frame)
    """
    depth_h, depth_w = depth_shape
    depth = np.zeros(depth_shape, dtype=np.float32)
    normalized = [(0.5, 0.95)] * NUM_LANDMARKS

    for index, p in points.items():
        u = intrinsics.fx * p[0] / p[2] + intrinsics.cx
        v = intrinsics.fy * p[1] / p[2] + intrinsics.cy
        x_n, y_n = u / WIDTH, v / HEIGHT
        normalized[index] = (x_n, y_n)
        depth[math.floor(y_n * depth_h), math.floor(x_n * depth_w)] = p[2]

    rgb = np.full((HEIGHT, WIDTH, 3), 128, dtype=np.uint8)
    frame = Frame(rgb=rgb, depth=depth, intrinsics=intrinsics, timestamp_ms=timestamp_ms)
    return LandmarkSet(points=normalized, handedness=handedness), frame


@pytest.fixture
def palm_points():
    return {i: p.copy() for i, p in PALM_POINTS.items()}


@pytest.fixture
def identity_pose():
    return Pose(np.array([0.0, 0.0, 0.5]), np.eye(3))
