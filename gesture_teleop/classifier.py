"""
Classifier Interface - the hand landmark / gesture inference service.

The pipeline makes two calls per frame:

1. recognize_pose() on the image as captured -> hand landmarks
2. recognize_gesture() on the image re-oriented so the fingers point up
   (derived from the estimated pose) -> gesture category

Both are coroutines so blocking inference can run off the event loop.
ClassifierGate wraps the calls so that an exception is counted and
reported as "no result" instead of escaping into the worker lane.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple

import cv2
import numpy as np

from .frame import LandmarkSet
from .pose import Pose

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GestureResult:
    """Top gesture category from the second classifier call."""
    category: str
    score: float


class HandClassifier(ABC):
    """Request/response hand inference service."""

    @abstractmethod
    async def recognize_pose(self, image: np.ndarray, timestamp_ms: int) -> Optional[LandmarkSet]:
        """Landmarks of the first detected hand, or None if no hand."""

    @abstractmethod
    async def recognize_gesture(self, image: np.ndarray, timestamp_ms: int) -> Optional[GestureResult]:
        """Top gesture category for the first detected hand, or None."""

    def close(self) -> None:
        """Release model resources."""


# ============================================================================
# Image Re-orientation
# ============================================================================

class ImageOrientation(Enum):
    """Rotation applied to the RGB image before gesture recognition."""
    UP = None  # fingers already point up
    DOWN = cv2.ROTATE_180
    LEFT = cv2.ROTATE_90_COUNTERCLOCKWISE
    RIGHT = cv2.ROTATE_90_CLOCKWISE


def orientation_for_pose(pose: Pose) -> ImageOrientation:
    """
    Pick the rotation that makes the hand upright in the image.

    Uses the image-plane components of the pose X axis, which points
    from the middle fingertip toward the wrist.
    """
    dx, dy = float(pose.x_axis[0]), float(pose.x_axis[1])
    if abs(dx) > abs(dy):
        return ImageOrientation.RIGHT if dx >= 0 else ImageOrientation.LEFT
    return ImageOrientation.UP if dy >= 0 else ImageOrientation.DOWN


def reorient(image: np.ndarray, orientation: ImageOrientation) -> np.ndarray:
    """Rotate an image by the given orientation."""
    if orientation.value is None:
        return image
    return cv2.rotate(image, orientation.value)


# ============================================================================
# Failure Gate
# ============================================================================

class ClassifierGate:
    """
    Gate for classifier call errors.

    Wraps classifier calls to catch exceptions and track failures. A failed
    call is reported exactly like "no hand found".
    """

    def __init__(self, max_consecutive_failures: int = 5):
        """
        Initialize ClassifierGate.

        Args:
            max_consecutive_failures: Number of consecutive failures before
                the classifier is reported as problematic.
        """
        self.max_consecutive_failures = max_consecutive_failures
        self._consecutive_failures = 0
        self._total_failures = 0
        self._total_successes = 0

    async def call(
        self,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> Tuple[bool, Any]:
        """
        Await a classifier call, catching exceptions.

        Returns:
            Tuple of (success: bool, result or None)
        """
        try:
            result = await fn(*args)
        except Exception as e:
            self._consecutive_failures += 1
            self._total_failures += 1
            logger.warning(f"Classifier error: {e}")
            if self._consecutive_failures == self.max_consecutive_failures:
                logger.error(f"Classifier failed {self._consecutive_failures} times in a row")
            return False, None

        self._consecutive_failures = 0
        self._total_successes += 1
        return True, result

    def is_problematic(self) -> bool:
        """Check if the classifier has too many consecutive failures."""
        return self._consecutive_failures >= self.max_consecutive_failures

    def get_stats(self) -> dict:
        """Get call statistics."""
        total = self._total_successes + self._total_failures
        return {
            "total_calls": total,
            "successes": self._total_successes,
            "failures": self._total_failures,
            "success_rate": self._total_successes / total if total > 0 else 0.0,
            "consecutive_failures": self._consecutive_failures,
        }
