import asyncio

import numpy as np
import pytest

from gesture_teleop.classifier import ClassifierGate, ImageOrientation, orientation_for_pose, reorient
from gesture_teleop.geometry import rotz
from gesture_teleop.pose import Pose


def pose_with_x_axis(angle):
    # rotz(angle) turns the X axis to (cos, sin, 0)
    return Pose(np.zeros(3), rotz(angle))


@pytest.mark.parametrize("angle, expected", [
    (np.pi / 2, ImageOrientation.UP),
    (-np.pi / 2, ImageOrientation.DOWN),
    (0.0, ImageOrientation.RIGHT),
    (np.pi, ImageOrientation.LEFT),
])
def test_orientation_from_x_axis(angle, expected):
    assert orientation_for_pose(pose_with_x_axis(angle)) is expected


def test_reorient_shapes():
    image = np.zeros((480, 640, 3), dtype=np.uint8)

    assert reorient(image, ImageOrientation.UP) is image
    assert reorient(image, ImageOrientation.DOWN).shape == (480, 640, 3)
    assert reorient(image, ImageOrientation.LEFT).shape == (640, 480, 3)
    assert reorient(image, ImageOrientation.RIGHT).shape == (640, 480, 3)


def test_reorient_clockwise_moves_top_left_to_top_right():
    image = np.zeros((2, 3, 3), dtype=np.uint8)
    image[0, 0] = 255
    rotated = reorient(image, ImageOrientation.RIGHT)
    assert rotated[0, -1, 0] == 255


def test_gate_reports_exceptions_as_failures():
    gate = ClassifierGate(max_consecutive_failures=2)

    async def ok(value):
        return value

    async def broken(value):
        raise RuntimeError("model crashed")

    async def scenario():
        results = [await gate.call(broken, 1), await gate.call(broken, 2)]
        problematic = gate.is_problematic()
        results.append(await gate.call(ok, 3))
        return results, problematic

    results, problematic = asyncio.run(scenario())

    assert results == [(False, None), (False, None), (True, 3)]
    assert problematic
    assert not gate.is_problematic()
    stats = gate.get_stats()
    assert stats["failures"] == 2
    assert stats["successes"] == 1
