"""
Pose Filter - outlier rejection and temporal smoothing of raw hand poses.

A raw pose that jumps too far from the last accepted pose (in angle or in
position) is treated as a bad reading. Accepted poses are blended toward
the previous one: SLERP for orientation, EMA for position.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from .config import FilterConfig
from .geometry import ema, geodesic_angle, slerp
from .pose import Pose

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterResult:
    """
    Outcome of filtering one raw pose.

    Attributes:
        pose: Pose to use this frame (None when rejected or unavailable)
        last_pose: Last accepted pose to carry into the next frame
        rejected: True if the raw pose failed the plausibility check
        angle_rad: Angular jump from the previous pose (0 if no previous)
        distance_m: Positional jump from the previous pose (0 if no previous)
    """
    pose: Optional[Pose]
    last_pose: Optional[Pose]
    rejected: bool = False
    angle_rad: float = 0.0
    distance_m: float = 0.0


class PoseFilter:
    """
    Stateless pose filter; the last accepted pose is passed in and returned.

    Usage:
        result = pose_filter.apply(raw_pose, state.last_pose, state.tracking)
        state = state.with_last_pose(result.last_pose)
    """

    def __init__(self, config: Optional[FilterConfig] = None):
        self.config = config or FilterConfig()

    def apply(
        self,
        raw: Optional[Pose],
        previous: Optional[Pose],
        tracking: bool,
    ) -> FilterResult:
        """
        Filter a newly computed pose against the last accepted one.

        Args:
            raw: Pose computed for this frame (None if unavailable)
            previous: Last accepted pose, if any
            tracking: Whether the state machine is currently tracking

        Returns:
            FilterResult with this frame's pose and the pose to keep.
        """
        if raw is None:
            return FilterResult(pose=None, last_pose=previous)

        if previous is None:
            logger.debug("Accepting pose as new baseline")
            return FilterResult(pose=raw, last_pose=raw)

        angle = geodesic_angle(previous.rotation, raw.rotation)
        distance = previous.distance_to(raw)

        if angle > self.config.max_angle_rad or distance > self.config.max_distance_m:
            logger.debug(
                f"Rejecting pose: angle={math.degrees(angle):.1f}deg, distance={distance:.3f}m"
            )
            return FilterResult(
                pose=None,
                last_pose=previous if tracking else None,
                rejected=True,
                angle_rad=angle,
                distance_m=distance,
            )

        blended = self.blend(previous, raw)
        return FilterResult(
            pose=blended,
            last_pose=blended,
            angle_rad=angle,
            distance_m=distance,
        )

    def blend(self, previous: Pose, raw: Pose) -> Pose:
        """SLERP the orientation and EMA the translation from previous toward raw."""
        rotation = slerp(previous.rotation, raw.rotation, self.config.slerp_t)
        translation = ema(previous.translation, raw.translation, self.config.ema_alpha)
        return Pose(translation, rotation)
