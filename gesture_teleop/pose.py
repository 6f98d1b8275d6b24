"""
Hand pose value type.
"""

from dataclasses import dataclass, field

import numpy as np

from .errors import InvalidRotation
from .geometry import is_rotation, matrix_to_quat


@dataclass(frozen=True, eq=False)
class Pose:
    """
    Rigid hand pose in the camera frame.

    Attributes:
        translation: Position (x, y, z) in meters
        rotation: 3x3 proper rotation; columns are the hand's X, Y, Z axes
    """
    translation: np.ndarray
    rotation: np.ndarray = field(repr=False)

    def __post_init__(self) -> None:
        translation = np.array(self.translation, dtype=np.float64).reshape(-1)
        rotation = np.array(self.rotation, dtype=np.float64)

        if translation.shape != (3,) or not np.all(np.isfinite(translation)):
            raise ValueError(f"translation must be a finite 3-vector, got {self.translation!r}")
        if not is_rotation(rotation):
            raise InvalidRotation("orientation is not an orthonormal right-handed rotation")

        translation.setflags(write=False)
        rotation.setflags(write=False)
        object.__setattr__(self, "translation", translation)
        object.__setattr__(self, "rotation", rotation)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Pose):
            return NotImplemented
        return bool(np.array_equal(self.translation, other.translation)
                    and np.array_equal(self.rotation, other.rotation))

    def __hash__(self) -> int:
        # + 0.0 folds -0.0 into 0.0 so equal poses hash alike
        return hash(((self.translation + 0.0).tobytes(), (self.rotation + 0.0).tobytes()))

    @property
    def quaternion(self) -> np.ndarray:
        """Orientation as a unit quaternion (w, x, y, z) with w >= 0."""
        return matrix_to_quat(self.rotation)

    @property
    def x_axis(self) -> np.ndarray:
        return self.rotation[:, 0]

    def distance_to(self, other: "Pose") -> float:
        """Euclidean distance between the two translations."""
        return float(np.linalg.norm(self.translation - other.translation))
