"""
Teleop Pipeline - one worker-lane turn per frame.

    classifier #1 (landmarks) -> PoseEstimator -> PoseFilter
        -> classifier #2 (gesture, image re-oriented from the pose)
        -> GestureStateMachine -> CommandEncoder -> transport

Every failure along the way degrades to "no pose / no label" for the frame;
the state machine still steps so confidences keep decaying while the hand
is missing.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from .classifier import ClassifierGate, HandClassifier, orientation_for_pose, reorient
from .command import Command, CommandEncoder
from .config import TeleopConfig
from .errors import CommandEncodeError, InvalidIntrinsics, PoseUnavailable
from .frame import Frame, Intrinsics, LandmarkSet
from .gesture_state import CommandStatus, GestureLabel, GestureState, GestureStateMachine
from .pose import Pose
from .pose_estimator import PoseEstimator
from .pose_filter import PoseFilter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverlayUpdate:
    """
    Data for the UI overlay after each frame.

    Attributes:
        points: Landmark pixel positions in the RGB image (empty if none)
        status: Short-lived command status text ('' when nothing to show)
        pose: Filtered pose for axis drawing (camera frame)
        intrinsics: Intrinsics for projecting the pose axes
        timestamp_ms: Frame timestamp
    """
    points: List[Tuple[int, int]] = field(default_factory=list)
    status: str = ""
    pose: Optional[Pose] = None
    intrinsics: Optional[Intrinsics] = None
    timestamp_ms: int = 0


@dataclass
class PipelineStats:
    frames: int = 0
    no_hand: int = 0
    pose_unavailable: int = 0
    pose_rejected: int = 0
    no_gesture: int = 0
    commands_sent: int = 0
    commands_dropped: int = 0


class TeleopPipeline:
    """
    Perception-to-command pipeline.

    Owns the session's GestureState; process() must only be called from
    the worker lane (the FrameScheduler guarantees one frame at a time).
    """

    def __init__(
        self,
        classifier: HandClassifier,
        send: Callable[[bytes], bool],
        config: Optional[TeleopConfig] = None,
        on_overlay: Optional[Callable[[OverlayUpdate], None]] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            classifier: Landmark/gesture inference service
            send: Transport hand-off; returns False if the bytes were dropped
            config: Full client configuration
            on_overlay: Optional fire-and-forget overlay callback
        """
        self.config = config or TeleopConfig()
        self.classifier = classifier
        self._send = send
        self.on_overlay = on_overlay

        self.estimator = PoseEstimator(self.config.estimator)
        self.pose_filter = PoseFilter(self.config.filter)
        self.machine = GestureStateMachine(self.config.gestures)
        self.encoder = CommandEncoder(self.config.encoder)
        self.gate = ClassifierGate()

        self.state: GestureState = self.machine.initial_state()
        self.command_status = CommandStatus(display_ms=self.config.gestures.status_display_ms)
        self.stats = PipelineStats()

    async def process(self, frame: Frame) -> Optional[Command]:
        """
        Run one frame through the pipeline.

        Returns:
            The command emitted for this frame, if any.
        """
        self.stats.frames += 1
        ts = frame.timestamp_ms

        # ====== STAGE 1: LANDMARKS + POSE ======
        landmarks = await self._detect_landmarks(frame)
        raw_pose = self._estimate(landmarks, frame)

        filtered = self.pose_filter.apply(raw_pose, self.state.last_pose, self.state.tracking)
        if filtered.rejected:
            self.stats.pose_rejected += 1
        self.state = self.state.with_last_pose(filtered.last_pose)

        # ====== STAGE 2: GESTURE ON RE-ORIENTED IMAGE ======
        pose = filtered.pose
        label: Optional[GestureLabel] = None
        if filtered.pose is not None:
            label = await self._classify_gesture(frame, filtered.pose)
            if label is None:
                pose = None

        # ====== STATE MACHINE + COMMAND ======
        result = self.machine.step(self.state, label, pose, ts)
        self.state = result.state

        if result.status:
            self.command_status.update(result.status, ts)
        if result.command is not None:
            self._dispatch(result.command)

        self._publish_overlay(frame, landmarks, filtered.pose, ts)
        return result.command

    async def _detect_landmarks(self, frame: Frame) -> Optional[LandmarkSet]:
        ok, landmarks = await self.gate.call(
            self.classifier.recognize_pose, frame.rgb, frame.timestamp_ms
        )
        if not ok or landmarks is None or len(landmarks) == 0:
            self.stats.no_hand += 1
            return None
        return landmarks

    def _estimate(self, landmarks: Optional[LandmarkSet], frame: Frame) -> Optional[Pose]:
        if landmarks is None:
            return None
        try:
            return self.estimator.estimate(landmarks, frame)
        except InvalidIntrinsics as e:
            self.stats.pose_unavailable += 1
            logger.warning(f"Skipping pose for frame {frame.timestamp_ms}: {e}")
        except PoseUnavailable as e:
            self.stats.pose_unavailable += 1
            logger.debug(f"Pose unavailable: {e}")
        return None

    async def _classify_gesture(self, frame: Frame, pose: Pose) -> Optional[GestureLabel]:
        orientation = orientation_for_pose(pose)
        image = reorient(frame.rgb, orientation)
        ok, gesture = await self.gate.call(
            self.classifier.recognize_gesture, image, frame.timestamp_ms
        )
        if not ok or gesture is None:
            self.stats.no_gesture += 1
            return None

        logger.debug(f"gesture: {gesture.category} ({gesture.score:.2f}), orientation={orientation.name}")
        return GestureLabel.from_category(gesture.category)

    def _dispatch(self, command: Command) -> None:
        """Encode and hand a command to the transport."""
        try:
            data = self.encoder.encode(command)
        except CommandEncodeError as e:
            self.stats.commands_dropped += 1
            logger.warning(f"Dropping command: {e}")
            return

        if self._send(data):
            self.stats.commands_sent += 1
        else:
            self.stats.commands_dropped += 1
            logger.warning(f"Failed to queue {command.type.value}")

    def _publish_overlay(
        self,
        frame: Frame,
        landmarks: Optional[LandmarkSet],
        pose: Optional[Pose],
        ts: int,
    ) -> None:
        if self.on_overlay is None:
            return

        status = self.command_status.display_message(ts)
        if landmarks is None or pose is None:
            update = OverlayUpdate(status=status, timestamp_ms=ts)
        else:
            w, h = frame.rgb_size
            update = OverlayUpdate(
                points=landmarks.to_pixels(w, h),
                status=status,
                pose=pose,
                intrinsics=frame.intrinsics,
                timestamp_ms=ts,
            )

        try:
            self.on_overlay(update)
        except Exception as e:
            logger.warning(f"Overlay callback failed: {e}")

    def get_stats(self) -> dict:
        """Get pipeline statistics."""
        return {
            "frames": self.stats.frames,
            "no_hand": self.stats.no_hand,
            "pose_unavailable": self.stats.pose_unavailable,
            "pose_rejected": self.stats.pose_rejected,
            "no_gesture": self.stats.no_gesture,
            "commands_sent": self.stats.commands_sent,
            "commands_dropped": self.stats.commands_dropped,
            "tracking": self.state.tracking,
            "gripper_closed": self.state.gripper_closed,
            "classifier": self.gate.get_stats(),
            "encoder": self.encoder.get_stats(),
        }
