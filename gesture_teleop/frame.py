"""
Frame Data - captured RGB+depth frames, intrinsics and hand landmarks.
"""

import math
from dataclasses import dataclass, field
from typing import List, Tuple

import numpy as np

from .errors import InvalidIntrinsics

# ============================================================================
# MediaPipe Landmark Indices
# ============================================================================

WRIST = 0
THUMB_CMC, THUMB_MCP, THUMB_IP, THUMB_TIP = 1, 2, 3, 4
INDEX_MCP, INDEX_PIP, INDEX_DIP, INDEX_TIP = 5, 6, 7, 8
MIDDLE_MCP, MIDDLE_PIP, MIDDLE_DIP, MIDDLE_TIP = 9, 10, 11, 12
RING_MCP, RING_PIP, RING_DIP, RING_TIP = 13, 14, 15, 16
PINKY_MCP, PINKY_PIP, PINKY_DIP, PINKY_TIP = 17, 18, 19, 20

NUM_LANDMARKS = 21

# Wrist, knuckles and the middle fingertip
PALM_INDICES = (WRIST, INDEX_MCP, MIDDLE_MCP, MIDDLE_TIP, RING_MCP, PINKY_MCP)


@dataclass(frozen=True)
class Intrinsics:
    """
    Pinhole camera intrinsics for the RGB image resolution.

    Attributes:
        fx, fy: Focal lengths in pixels
        cx, cy: Principal point in pixels
    """
    fx: float
    fy: float
    cx: float
    cy: float

    def validate(self) -> None:
        """Raise InvalidIntrinsics unless all values are usable."""
        try:
            values = tuple(float(v) for v in (self.fx, self.fy, self.cx, self.cy))
        except (TypeError, ValueError):
            raise InvalidIntrinsics(f"malformed intrinsics: {self!r}")
        if not all(math.isfinite(v) for v in values):
            raise InvalidIntrinsics(f"non-finite intrinsics: {values}")
        if values[0] <= 0.0 or values[1] <= 0.0:
            raise InvalidIntrinsics(f"focal lengths must be positive: fx={self.fx}, fy={self.fy}")

    def as_matrix(self) -> np.ndarray:
        return np.array([
            [self.fx, 0.0, self.cx],
            [0.0, self.fy, self.cy],
            [0.0, 0.0, 1.0],
        ])


@dataclass(frozen=True)
class Frame:
    """
    One synchronized capture.

    Attributes:
        rgb: HxWx3 uint8 RGB image
        depth: hxw float32 depth map in meters (may differ in size from rgb)
        intrinsics: Camera intrinsics for the rgb resolution
        timestamp_ms: Monotonic capture timestamp in milliseconds
    """
    rgb: np.ndarray = field(repr=False)
    depth: np.ndarray = field(repr=False)
    intrinsics: Intrinsics
    timestamp_ms: int

    def __post_init__(self) -> None:
        # The arrays are not copied; the frame takes them over read-only
        rgb = np.asarray(self.rgb)
        depth = np.asarray(self.depth)
        rgb.setflags(write=False)
        depth.setflags(write=False)
        object.__setattr__(self, "rgb", rgb)
        object.__setattr__(self, "depth", depth)

    @property
    def rgb_size(self) -> Tuple[int, int]:
        """(width, height) of the RGB image."""
        h, w = self.rgb.shape[:2]
        return w, h

    @property
    def depth_size(self) -> Tuple[int, int]:
        """(width, height) of the depth map."""
        h, w = self.depth.shape[:2]
        return w, h


@dataclass(frozen=True)
class LandmarkSet:
    """
    Normalized 2D hand landmarks from one classifier call.

    Attributes:
        points: 21 (x, y) tuples normalized to [0, 1] image coordinates
        handedness: 'Left' or 'Right'
    """
    points: List[Tuple[float, float]]
    handedness: str

    def __len__(self) -> int:
        return len(self.points)

    def get(self, index: int) -> Tuple[float, float]:
        """Get landmark by index."""
        return self.points[index]

    def to_pixels(self, width: int, height: int) -> List[Tuple[int, int]]:
        """Landmarks as integer pixel positions in a width x height image."""
        return [(int(x * width), int(y * height)) for x, y in self.points]
