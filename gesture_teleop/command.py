"""
Teleop Commands and Wire Encoding.

Defines the command variants sent to the robot and the ASCII wire format:

    <Start> x y z qw qx qy qz
    <Track> x y z qw qx qy qz
    <End> x y z qw qx qy qz
    <Gripper>
    <Reset>

Poses are transformed from the camera frame into the robot frame before
serialization. The encoder performs no I/O.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from .config import EncoderConfig
from .errors import CommandEncodeError
from .geometry import rotx, rotz
from .pose import Pose

logger = logging.getLogger(__name__)


class CommandType(Enum):
    """Command tags as they appear on the wire."""
    START = "<Start>"
    TRACK = "<Track>"
    END = "<End>"
    GRIPPER = "<Gripper>"
    RESET = "<Reset>"

    @property
    def carries_pose(self) -> bool:
        return self in (CommandType.START, CommandType.TRACK, CommandType.END)


@dataclass(frozen=True)
class Command:
    """
    One discrete teleop command.

    Attributes:
        type: Command variant
        pose: Hand pose in the camera frame (Start/Track/End only)
    """
    type: CommandType
    pose: Optional[Pose] = None

    def __post_init__(self) -> None:
        if self.pose is not None and not self.type.carries_pose:
            raise ValueError(f"{self.type.name} does not carry a pose")

    @classmethod
    def start(cls, pose: Optional[Pose]) -> 'Command':
        return cls(CommandType.START, pose)

    @classmethod
    def track(cls, pose: Optional[Pose]) -> 'Command':
        return cls(CommandType.TRACK, pose)

    @classmethod
    def end(cls, pose: Optional[Pose]) -> 'Command':
        return cls(CommandType.END, pose)

    @classmethod
    def gripper(cls) -> 'Command':
        return cls(CommandType.GRIPPER)

    @classmethod
    def reset(cls) -> 'Command':
        return cls(CommandType.RESET)


@dataclass(frozen=True)
class ParsedCommand:
    """A command read back from the wire (robot frame values)."""
    type: CommandType
    translation: Optional[Tuple[float, float, float]] = None
    quaternion: Optional[Tuple[float, float, float, float]] = None


class CommandEncoder:
    """
    Serializes commands for the robot.

    Ensures:
    - Pose commands carry a pose
    - Every emitted value is finite
    - Quaternions are emitted with qw >= 0
    """

    def __init__(self, config: Optional[EncoderConfig] = None):
        """
        Initialize encoder.

        Args:
            config: Robot extrinsic rotation and number formatting
        """
        self.config = config or EncoderConfig()
        self._robot_rot = rotx(self.config.rotation_x_rad) @ rotz(self.config.rotation_z_rad)
        self._encoded_count = 0
        self._dropped_count = 0

    def to_robot_frame(self, pose: Pose) -> Pose:
        """Express a camera-frame pose in the robot frame."""
        R_t = self._robot_rot.T
        return Pose(R_t @ pose.translation, R_t @ pose.rotation)

    def format_pose(self, pose: Pose) -> str:
        """Space-separated 'x y z qw qx qy qz' for a robot-frame pose."""
        values = np.concatenate([pose.translation, pose.quaternion])
        if not np.all(np.isfinite(values)):
            raise CommandEncodeError(f"non-finite pose values: {values}")
        p = self.config.precision
        # Adding 0.0 turns -0.0 into 0.0 so values never print as "-0.000000"
        return " ".join(f"{round(float(v), p) + 0.0:.{p}f}" for v in values)

    def encode(self, command: Command) -> bytes:
        """
        Serialize a command to ASCII bytes.

        Args:
            command: Command to encode (pose in the camera frame)

        Returns:
            Encoded bytes ready for the transport

        Raises:
            CommandEncodeError: Pose command without a pose, or bad values.
        """
        message = command.type.value

        if command.type.carries_pose:
            if command.pose is None:
                self._dropped_count += 1
                raise CommandEncodeError(f"{command.type.value} requires a pose")
            try:
                message += " " + self.format_pose(self.to_robot_frame(command.pose))
            except CommandEncodeError:
                self._dropped_count += 1
                raise

        if self.config.newline:
            message += "\n"

        self._encoded_count += 1
        return message.encode("ascii")

    def get_stats(self) -> dict:
        """Get encoding statistics."""
        total = self._encoded_count + self._dropped_count
        return {
            "total_commands": total,
            "encoded": self._encoded_count,
            "dropped": self._dropped_count,
        }


def decode(data: bytes) -> ParsedCommand:
    """
    Parse one encoded command.

    Args:
        data: Bytes produced by CommandEncoder.encode

    Returns:
        ParsedCommand

    Raises:
        ValueError: Unknown tag, wrong field count or non-numeric field.
    """
    tokens = data.decode("ascii").split()
    if not tokens:
        raise ValueError("empty command")

    try:
        command_type = CommandType(tokens[0])
    except ValueError:
        raise ValueError(f"unknown command tag: {tokens[0]!r}")

    fields = tokens[1:]
    if not command_type.carries_pose:
        if fields:
            raise ValueError(f"{command_type.value} takes no payload")
        return ParsedCommand(command_type)

    if len(fields) != 7:
        raise ValueError(f"{command_type.value} expects 7 values, got {len(fields)}")
    values = [float(f) for f in fields]
    if not all(math.isfinite(v) for v in values):
        raise ValueError("non-finite payload")

    return ParsedCommand(
        command_type,
        translation=(values[0], values[1], values[2]),
        quaternion=(values[3], values[4], values[5], values[6]),
    )
