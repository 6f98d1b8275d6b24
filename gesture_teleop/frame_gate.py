"""
Frame Quality Gate - Validates RGB+depth captures before they reach the
scheduler.

A broken read must never become a hand pose: failed grabs, empty or
malformed images, resolution changes mid-stream and depth maps with no
usable sample are all dropped here.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class FrameValidationResult:
    """Result of frame validation."""
    valid: bool
    reason: str
    rgb: Optional[np.ndarray] = None
    depth: Optional[np.ndarray] = None


class FrameGate:
    """
    Frame quality gate for RGB+depth captures.

    Validates:
    - grab/retrieve success
    - RGB image present, non-empty, shape (H, W, 3)
    - Depth map present, 2-D, with at least one positive finite sample
    - RGB shape consistency across frames
    """

    def __init__(self, allow_shape_change: bool = False):
        """
        Initialize FrameGate.

        Args:
            allow_shape_change: If True, don't treat RGB shape changes as
                invalid. Intrinsics are tied to one resolution, so the
                default is to reject them.
        """
        self.allow_shape_change = allow_shape_change

        self._last_valid_shape: Optional[Tuple[int, ...]] = None
        self._consecutive_invalid = 0
        self._total_invalid_count = 0
        self._total_valid_count = 0

    def validate(
        self,
        ok: bool,
        rgb: Optional[np.ndarray],
        depth: Optional[np.ndarray],
    ) -> FrameValidationResult:
        """
        Validate one capture.

        Args:
            ok: Whether the camera read succeeded
            rgb: HxWx3 color image
            depth: hxw depth map in meters

        Returns:
            FrameValidationResult with valid flag, reason and the images if valid.
        """
        if not ok:
            return self._invalid("read_failed")

        if rgb is None or depth is None:
            return self._invalid("frame_none")

        if rgb.size == 0 or depth.size == 0:
            return self._invalid("empty_frame")

        if rgb.ndim != 3 or depth.ndim != 2:
            return self._invalid("invalid_dims")

        if rgb.shape[2] != 3:
            return self._invalid("invalid_channels")

        if not self.allow_shape_change and self._last_valid_shape is not None:
            if rgb.shape != self._last_valid_shape:
                logger.warning(
                    f"Frame shape changed from {self._last_valid_shape} to {rgb.shape}"
                )
                return self._invalid("shape_changed")

        valid_depth = np.isfinite(depth) & (depth > 0)
        if not np.any(valid_depth):
            return self._invalid("no_depth")

        self._mark_valid(rgb.shape)
        return FrameValidationResult(True, "ok", rgb, depth)

    def _invalid(self, reason: str) -> FrameValidationResult:
        self._total_invalid_count += 1
        self._consecutive_invalid += 1
        logger.debug(f"Frame invalid: {reason}")
        return FrameValidationResult(False, reason)

    def _mark_valid(self, shape: Tuple[int, ...]) -> None:
        self._total_valid_count += 1
        self._last_valid_shape = shape
        self._consecutive_invalid = 0

    def get_stats(self) -> dict:
        """Get validation statistics."""
        total = self._total_valid_count + self._total_invalid_count
        return {
            "total_frames": total,
            "valid_frames": self._total_valid_count,
            "invalid_frames": self._total_invalid_count,
            "valid_rate": self._total_valid_count / total if total > 0 else 0.0,
            "consecutive_invalid": self._consecutive_invalid,
            "last_valid_shape": self._last_valid_shape,
        }
