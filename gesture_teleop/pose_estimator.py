"""
Pose Estimator - 3D palm pose from 2D landmarks and a depth map.

Palm anchor landmarks are unprojected through the pinhole model using the
depth sample under each landmark, then turned into a rigid pose with one
of two constructions:

- closed_form: axes from wrist/fingertip/knuckle keypoints with
  Gram-Schmidt orthogonalization (deterministic, default)
- ransac: exhaustive 3-point plane fit over all valid palm points
"""

import logging
import math
from itertools import combinations
from typing import Dict, Optional

import numpy as np

from .config import EstimatorConfig
from .errors import PoseUnavailable
from .frame import INDEX_MCP, MIDDLE_TIP, RING_MCP, WRIST, Frame, LandmarkSet
from .pose import Pose

logger = logging.getLogger(__name__)

MIN_POINTS = 3
_EPS = 1e-9


def _unit(v: np.ndarray, what: str) -> np.ndarray:
    """Normalize a vector, refusing zero-length or non-finite input."""
    n = float(np.linalg.norm(v))
    if not math.isfinite(n) or n < _EPS:
        raise PoseUnavailable(f"degenerate {what}")
    return v / n


class PoseEstimator:
    """
    Reconstructs a hand pose in the camera frame.

    Usage:
        estimator = PoseEstimator(config.estimator)
        pose = estimator.estimate(landmarks, frame)  # raises PoseUnavailable
    """

    def __init__(self, config: Optional[EstimatorConfig] = None):
        self.config = config or EstimatorConfig()
        if self.config.method not in ("closed_form", "ransac"):
            raise ValueError(f"Unknown pose method: {self.config.method}")

    def estimate(self, landmarks: Optional[LandmarkSet], frame: Frame) -> Pose:
        """
        Compute the palm pose for one frame.

        Args:
            landmarks: Landmarks from the pose classifier call (None if no hand)
            frame: Frame the landmarks were detected on

        Returns:
            Pose in the camera frame

        Raises:
            PoseUnavailable: No landmarks, too few valid depth samples,
                degenerate geometry, or bad intrinsics (InvalidIntrinsics).
        """
        if landmarks is None or len(landmarks) == 0:
            raise PoseUnavailable("no hand landmarks")

        points = self.unproject(landmarks, frame)
        if len(points) < MIN_POINTS:
            raise PoseUnavailable(f"only {len(points)} valid depth samples")

        if self.config.method == "ransac":
            return self.fit_plane_pose(points)
        return self.keypoint_pose(points, landmarks.handedness)

    def unproject(self, landmarks: LandmarkSet, frame: Frame) -> Dict[int, np.ndarray]:
        """
        Lift palm anchor landmarks to 3D camera coordinates.

        Landmarks whose depth sample is outside the map, NaN or <= 0 are
        skipped.

        Returns:
            Mapping of landmark index -> (x, y, z) in meters.
        """
        K = frame.intrinsics
        K.validate()

        rgb_w, rgb_h = frame.rgb_size
        depth_w, depth_h = frame.depth_size
        depth = frame.depth

        points: Dict[int, np.ndarray] = {}
        for index in self.config.palm_indices:
            if index >= len(landmarks):
                logger.debug(f"Landmark index {index} out of range")
                continue

            x_n, y_n = landmarks.get(index)
            col = math.floor(x_n * depth_w)
            row = math.floor(y_n * depth_h)
            if not (0 <= row < depth_h and 0 <= col < depth_w):
                logger.debug(f"Skipping out-of-bounds landmark {index} at ({row}, {col})")
                continue

            d = float(depth[row, col])
            if math.isnan(d) or d <= 0.0:
                continue

            u = x_n * rgb_w
            v = y_n * rgb_h
            points[index] = np.array([
                (u - K.cx) * d / K.fx,
                (v - K.cy) * d / K.fy,
                d,
            ])

        return points

    def keypoint_pose(self, points: Dict[int, np.ndarray], handedness: str) -> Pose:
        """
        Closed-form hand frame from four keypoints.

        X runs from the middle fingertip to the wrist, Y across the knuckles
        (index MCP <- ring MCP, mirrored for left hands) made orthogonal to
        X, Z = X x Y. The wrist is the origin.
        """
        missing = [i for i in (WRIST, MIDDLE_TIP, INDEX_MCP, RING_MCP) if i not in points]
        if missing:
            raise PoseUnavailable(f"missing anchor landmarks {missing}")

        wrist = points[WRIST]
        x_axis = _unit(wrist - points[MIDDLE_TIP], "x axis")

        y_axis = _unit(points[INDEX_MCP] - points[RING_MCP], "y axis")
        if handedness == "Left":
            y_axis = -y_axis

        # Gram-Schmidt against X
        y_axis = _unit(y_axis - np.dot(y_axis, x_axis) * x_axis, "orthogonalized y axis")
        z_axis = _unit(np.cross(x_axis, y_axis), "z axis")

        return self._make_pose(wrist, np.column_stack([x_axis, y_axis, z_axis]))

    def fit_plane_pose(self, points: Dict[int, np.ndarray]) -> Pose:
        """
        Palm frame from a RANSAC plane fit.

        Every 3-point combination proposes a plane; the one with the most
        inliers (distance < ransac_epsilon_m) wins, ties going to the lowest
        RMS inlier residual. Z is the plane normal facing the camera, X the
        in-plane direction toward the wrist, origin the inlier centroid.
        """
        indices = sorted(points)
        pts = np.stack([points[i] for i in indices])
        eps = self.config.ransac_epsilon_m

        best_count = 0
        best_rms = math.inf
        best_normal: Optional[np.ndarray] = None
        best_mask: Optional[np.ndarray] = None

        for a, b, c in combinations(range(len(pts)), 3):
            normal = np.cross(pts[b] - pts[a], pts[c] - pts[a])
            n = float(np.linalg.norm(normal))
            if n < _EPS:
                continue
            normal = normal / n

            dist = np.abs((pts - pts[a]) @ normal)
            mask = dist < eps
            count = int(mask.sum())
            if count < MIN_POINTS:
                continue

            rms = float(np.sqrt(np.mean(dist[mask] ** 2)))
            if count > best_count or (count == best_count and rms < best_rms):
                best_count, best_rms = count, rms
                best_normal, best_mask = normal, mask

        if best_normal is None:
            raise PoseUnavailable("no plane hypothesis with enough inliers")

        centroid = pts[best_mask].mean(axis=0)
        z_axis = best_normal
        # Camera sits at the origin
        if np.dot(z_axis, centroid) > 0.0:
            z_axis = -z_axis

        candidates = []
        if WRIST in points:
            candidates.append(points[WRIST] - centroid)
        candidates.extend([np.array([1.0, 0.0, 0.0]), np.array([0.0, 1.0, 0.0])])

        x_axis = None
        for ref in candidates:
            projected = ref - np.dot(ref, z_axis) * z_axis
            if np.linalg.norm(projected) > 1e-6:
                x_axis = projected / np.linalg.norm(projected)
                break
        if x_axis is None:
            raise PoseUnavailable("no in-plane reference direction")

        y_axis = np.cross(z_axis, x_axis)
        logger.debug(f"Plane fit: {best_count}/{len(pts)} inliers, rms={best_rms * 1000:.2f}mm")

        return self._make_pose(centroid, np.column_stack([x_axis, y_axis, z_axis]))

    @staticmethod
    def _make_pose(translation: np.ndarray, rotation: np.ndarray) -> Pose:
        try:
            return Pose(translation, rotation)
        except ValueError as e:
            raise PoseUnavailable(str(e)) from e
