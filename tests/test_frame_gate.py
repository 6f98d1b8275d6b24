import numpy as np
import pytest

from gesture_teleop.frame_gate import FrameGate


def good_frame(h=480, w=640):
    rgb = np.full((h, w, 3), 100, dtype=np.uint8)
    depth = np.full((h, w), 0.8, dtype=np.float32)
    return rgb, depth


@pytest.fixture
def gate():
    return FrameGate()


def test_valid_frame(gate):
    rgb, depth = good_frame()
    result = gate.validate(True, rgb, depth)

    assert result.valid
    assert result.reason == "ok"
    assert result.rgb is rgb
    assert result.depth is depth


@pytest.mark.parametrize("ok, rgb, depth, reason", [
    (False, *good_frame(), "read_failed"),
    (True, None, good_frame()[1], "frame_none"),
    (True, good_frame()[0], None, "frame_none"),
    (True, np.zeros((0, 0, 3), dtype=np.uint8), good_frame()[1], "empty_frame"),
    (True, np.zeros((480, 640), dtype=np.uint8), good_frame()[1], "invalid_dims"),
    (True, np.zeros((480, 640, 4), dtype=np.uint8), good_frame()[1], "invalid_channels"),
    (True, good_frame()[0], np.zeros((480, 640), dtype=np.float32), "no_depth"),
    (True, good_frame()[0], np.full((480, 640), np.nan, dtype=np.float32), "no_depth"),
])
def test_invalid_frames(gate, ok, rgb, depth, reason):
    result = gate.validate(ok, rgb, depth)
    assert not result.valid
    assert result.reason == reason
    assert result.rgb is None


def test_shape_change_is_rejected(gate):
    gate.validate(True, *good_frame())
    result = gate.validate(True, *good_frame(240, 320))

    assert not result.valid
    assert result.reason == "shape_changed"


def test_shape_change_allowed():
    gate = FrameGate(allow_shape_change=True)
    gate.validate(True, *good_frame())
    assert gate.validate(True, *good_frame(240, 320)).valid


def test_stats(gate):
    gate.validate(True, *good_frame())
    gate.validate(False, None, None)
    gate.validate(False, None, None)

    stats = gate.get_stats()
    assert stats["total_frames"] == 3
    assert stats["valid_frames"] == 1
    assert stats["consecutive_invalid"] == 2
    assert stats["last_valid_shape"] == (480, 640, 3)
