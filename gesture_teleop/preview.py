"""
Preview overlay: landmarks, the projected hand frame and command status.
"""

from typing import Optional

import cv2
import numpy as np

from .frame import Intrinsics
from .pipeline import OverlayUpdate
from .pose import Pose

FONT = cv2.FONT_HERSHEY_SIMPLEX
AXIS_LENGTH_M = 0.05

# BGR: X red, Y green, Z blue
AXIS_COLORS = ((0, 0, 255), (0, 255, 0), (255, 0, 0))


def project_point(point: np.ndarray, K: Intrinsics) -> Optional[tuple]:
    """Pinhole projection of a camera-frame point, or None behind the camera."""
    x, y, z = (float(v) for v in point)
    if z <= 0.0:
        return None
    return int(K.fx * x / z + K.cx), int(K.fy * y / z + K.cy)


def draw_axes(image: np.ndarray, pose: Pose, K: Intrinsics) -> None:
    origin = project_point(pose.translation, K)
    if origin is None:
        return
    for i, color in enumerate(AXIS_COLORS):
        tip = project_point(pose.translation + AXIS_LENGTH_M * pose.rotation[:, i], K)
        if tip is not None:
            cv2.line(image, origin, tip, color, 2)


def draw_overlay(
    image: np.ndarray,
    update: Optional[OverlayUpdate],
    connection: str = "",
) -> np.ndarray:
    """
    Draw the latest overlay on a BGR image in place.

    Args:
        image: BGR image at the RGB stream resolution
        update: Latest OverlayUpdate from the pipeline
        connection: Connection status text

    Returns:
        The same image, for chaining into cv2.imshow.
    """
    h = image.shape[0]

    if update is not None:
        for point in update.points:
            cv2.circle(image, point, 3, (0, 255, 255), -1)

        if update.pose is not None and update.intrinsics is not None:
            draw_axes(image, update.pose, update.intrinsics)

        if update.status:
            cv2.putText(image, update.status, (20, 40), FONT, 0.9, (0, 255, 0), 2)

    if connection:
        color = (0, 255, 0) if connection == "connected" else (0, 0, 255)
        cv2.putText(image, f"Robot: {connection}", (20, h - 20), FONT, 0.5, color, 1)

    return image
