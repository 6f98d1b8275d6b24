import math

import numpy as np
import pytest

from gesture_teleop.command import Command, CommandEncoder, CommandType, decode
from gesture_teleop.config import EncoderConfig
from gesture_teleop.errors import CommandEncodeError
from gesture_teleop.geometry import quat_to_matrix, rotx, rotz
from gesture_teleop.pose import Pose


@pytest.fixture
def encoder():
    return CommandEncoder(EncoderConfig())


@pytest.fixture
def camera_aligned():
    # Robot frame equal to the camera frame
    return CommandEncoder(EncoderConfig(rotation_x_rad=0.0, rotation_z_rad=0.0))


def test_tag_only_commands(encoder):
    assert encoder.encode(Command.gripper()) == b"<Gripper>"
    assert encoder.encode(Command.reset()) == b"<Reset>"


def test_pose_command_format(camera_aligned):
    pose = Pose(np.array([0.1, -0.2, 0.5]), np.eye(3))
    data = camera_aligned.encode(Command.track(pose))

    assert data == b"<Track> 0.100000 -0.200000 0.500000 1.000000 0.000000 0.000000 0.000000"


def test_newline_terminator():
    encoder = CommandEncoder(EncoderConfig(newline=True))
    assert encoder.encode(Command.reset()) == b"<Reset>\n"


def test_robot_frame_transform(encoder):
    pose = Pose(np.array([0.0, 0.0, 0.5]), np.eye(3))
    parsed = decode(encoder.encode(Command.start(pose)))

    assert parsed.type is CommandType.START
    # Camera +Z (depth) becomes robot +Y
    assert np.allclose(parsed.translation, [0.0, 0.5, 0.0], atol=1e-6)
    expected = rotx(math.pi / 2).T
    assert np.allclose(quat_to_matrix(parsed.quaternion), expected, atol=1e-5)
    assert parsed.quaternion[0] >= 0.0


def test_robot_frame_with_z_rotation():
    encoder = CommandEncoder(EncoderConfig(rotation_x_rad=0.0, rotation_z_rad=math.pi / 2))
    pose = Pose(np.array([1.0, 0.0, 0.0]), np.eye(3))
    robot = encoder.to_robot_frame(pose)

    assert np.allclose(robot.translation, rotz(math.pi / 2).T @ [1.0, 0.0, 0.0])


def test_pose_command_without_pose(encoder):
    with pytest.raises(CommandEncodeError):
        encoder.encode(Command.end(None))
    assert encoder.get_stats()["dropped"] == 1


def test_tag_only_commands_reject_pose(identity_pose):
    with pytest.raises(ValueError):
        Command(CommandType.GRIPPER, identity_pose)


def test_stats(encoder, identity_pose):
    encoder.encode(Command.start(identity_pose))
    encoder.encode(Command.gripper())
    assert encoder.get_stats() == {"total_commands": 2, "encoded": 2, "dropped": 0}


def test_decode_tag_only():
    assert decode(b"<Gripper>").type is CommandType.GRIPPER
    assert decode(b"<Reset>\n").translation is None


@pytest.mark.parametrize("data", [
    b"",
    b"<Stop>",
    b"<Reset> 1.0",
    b"<Track> 1 2 3",
    b"<Track> 1 2 3 1 0 0 x",
    b"<End> 1 2 nan 1 0 0 0",
])
def test_decode_rejects_malformed(data):
    with pytest.raises(ValueError):
        decode(data)
