"""
Gesture State Machine - per-frame gesture labels to discrete teleop commands.

Three confidence accumulators (open palm, gripper trigger, reset trigger)
rise while their gesture is seen and decay otherwise. Commands fire when a
confidence crosses its threshold, in priority order:

1. Gripper toggle (higher threshold, cooldown)
2. Reset (cooldown)
3. Start / Track / End tracking

The state is an immutable value: step() takes the current state and
returns the next one, so the worker lane is its only owner.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Optional

from .command import Command
from .config import GestureConfig
from .geometry import clamp
from .pose import Pose

logger = logging.getLogger(__name__)


class GestureLabel(Enum):
    """Gesture classes the state machine reacts to."""
    OPEN_PALM = auto()
    GRIPPER_TRIGGER = auto()
    RESET_TRIGGER = auto()
    OTHER = auto()

    @classmethod
    def from_category(cls, name: Optional[str]) -> Optional['GestureLabel']:
        """Map a classifier category name to a label (None stays None)."""
        if name is None:
            return None
        return CATEGORY_LABELS.get(name, cls.OTHER)


# MediaPipe canned gesture categories
CATEGORY_LABELS = {
    "Open_Palm": GestureLabel.OPEN_PALM,
    "Victory": GestureLabel.GRIPPER_TRIGGER,
    "ILoveYou": GestureLabel.RESET_TRIGGER,
}


@dataclass(frozen=True)
class GestureState:
    """
    Session state for one teleop session.

    Attributes:
        open_palm: Open-palm confidence in [0, 1]
        gripper_trigger: Gripper-trigger confidence in [0, 1]
        reset_trigger: Reset-trigger confidence in [0, 1]
        tracking: Whether Start has been sent without a matching End
        gripper_closed: Gripper state as last commanded
        last_pose: Last accepted (filtered) pose
        last_gripper_ms: Timestamp of the last Gripper command
        last_reset_ms: Timestamp of the last Reset command
    """
    open_palm: float = 0.0
    gripper_trigger: float = 0.0
    reset_trigger: float = 0.0
    tracking: bool = False
    gripper_closed: bool = False
    last_pose: Optional[Pose] = None
    last_gripper_ms: Optional[int] = None
    last_reset_ms: Optional[int] = None

    def with_last_pose(self, pose: Optional[Pose]) -> 'GestureState':
        return replace(self, last_pose=pose)


@dataclass(frozen=True)
class StepResult:
    """Next state plus the command (if any) and its status text."""
    state: GestureState
    command: Optional[Command] = None
    status: Optional[str] = None


class GestureStateMachine:
    """
    Converts gesture labels into commands.

    Usage:
        machine = GestureStateMachine(config.gestures)
        state = machine.initial_state()
        result = machine.step(state, GestureLabel.OPEN_PALM, pose, timestamp_ms)
        state = result.state
    """

    def __init__(self, config: Optional[GestureConfig] = None):
        self.config = config or GestureConfig()

    def initial_state(self) -> GestureState:
        return GestureState()

    def _accumulate(self, current: float, seen: bool) -> float:
        if seen:
            return clamp(current + self.config.increment, 0.0, 1.0)
        return clamp(current - self.config.decrement, 0.0, 1.0)

    def update_confidences(self, state: GestureState, label: Optional[GestureLabel]) -> GestureState:
        """Raise the matching accumulator and decay the other two."""
        return replace(
            state,
            open_palm=self._accumulate(state.open_palm, label is GestureLabel.OPEN_PALM),
            gripper_trigger=self._accumulate(state.gripper_trigger, label is GestureLabel.GRIPPER_TRIGGER),
            reset_trigger=self._accumulate(state.reset_trigger, label is GestureLabel.RESET_TRIGGER),
        )

    @staticmethod
    def _cooled_down(last_ms: Optional[int], now_ms: int, cooldown_ms: int) -> bool:
        if last_ms is None:
            return True
        return (now_ms - last_ms) >= cooldown_ms

    def step(
        self,
        state: GestureState,
        label: Optional[GestureLabel],
        pose: Optional[Pose],
        timestamp_ms: int,
    ) -> StepResult:
        """
        Advance the state machine by one frame.

        Args:
            state: Current session state (last_pose already updated by the filter)
            label: Gesture seen this frame, or None
            pose: Filtered pose for this frame, or None
            timestamp_ms: Frame timestamp in milliseconds

        Returns:
            StepResult with at most one command.
        """
        state = self.update_confidences(state, label)

        result = self._gripper(state, timestamp_ms)
        if result is not None:
            return result

        result = self._reset(state, timestamp_ms)
        if result is not None:
            return result

        return self._tracking(state, pose)

    def _gripper(self, state: GestureState, now_ms: int) -> Optional[StepResult]:
        if state.gripper_trigger <= self.config.gripper_threshold:
            return None
        if not self._cooled_down(state.last_gripper_ms, now_ms, self.config.gripper_cooldown_ms):
            return None

        closed = not state.gripper_closed
        state = replace(
            state,
            gripper_trigger=0.0,
            gripper_closed=closed,
            last_gripper_ms=now_ms,
        )
        action = "Closing" if closed else "Opening"
        logger.info(f"{action.lower()} gripper")
        return StepResult(state, Command.gripper(), f"{action} Gripper")

    def _reset(self, state: GestureState, now_ms: int) -> Optional[StepResult]:
        if state.reset_trigger <= self.config.command_threshold:
            return None
        if not self._cooled_down(state.last_reset_ms, now_ms, self.config.reset_cooldown_ms):
            return None

        state = replace(state, reset_trigger=0.0, last_reset_ms=now_ms)
        logger.info("reset")
        return StepResult(state, Command.reset(), "Resetting")

    def _tracking(self, state: GestureState, pose: Optional[Pose]) -> StepResult:
        if state.open_palm > self.config.command_threshold:
            # Start and Track are only meaningful with a pose for this frame
            if pose is None:
                return StepResult(state)
            if not state.tracking:
                logger.info("start tracking")
                return StepResult(replace(state, tracking=True), Command.start(pose), "Tracking")
            return StepResult(state, Command.track(pose), "Tracking")

        if state.tracking:
            end_pose = state.last_pose
            logger.info("end tracking")
            return StepResult(
                replace(state, tracking=False, last_pose=None),
                Command.end(end_pose),
                "Ending Tracking",
            )

        return StepResult(state)


@dataclass
class CommandStatus:
    """Short-lived status text shown on the overlay after a command."""
    display_ms: int = 500
    last_message: Optional[str] = None
    last_timestamp_ms: Optional[int] = None

    def update(self, message: str, timestamp_ms: int) -> None:
        self.last_message = message
        self.last_timestamp_ms = timestamp_ms

    def display_message(self, now_ms: int) -> str:
        """Message to show at now_ms, or '' once it has expired."""
        if self.last_message is None or self.last_timestamp_ms is None:
            return ""
        if now_ms - self.last_timestamp_ms >= self.display_ms:
            return ""
        return self.last_message
