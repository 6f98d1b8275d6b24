"""
Configuration for the gesture teleop client.

Every tunable lives in a dataclass section with its default. Values can be
overridden from the environment:

    TELEOP_SERVER         Transport URL (default: tcp://127.0.0.1:5000)
    TELEOP_RETRY_S        Reconnect interval in seconds (default: 3.0)
    TELEOP_MODEL_PATH     MediaPipe gesture recognizer model
    TELEOP_POSE_METHOD    'closed_form' or 'ransac'
    TELEOP_MAX_ANGLE_DEG  Pose rejection angle (default: 30)
    TELEOP_MAX_DIST_M     Pose rejection distance (default: 0.25)
    TELEOP_SLERP_T        Orientation blend factor (default: 0.2)
    TELEOP_EMA_ALPHA      Position blend factor (default: 0.5)
    TELEOP_COOLDOWN_MS    Gripper/reset cooldown (default: 2000)
    TELEOP_FX, TELEOP_FY, TELEOP_CX, TELEOP_CY
                          Camera intrinsics for the RGB stream
"""

import math
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from .frame import PALM_INDICES, Intrinsics


@dataclass
class CameraConfig:
    device: int = 0
    # Kinect-class defaults for a 640x480 registered stream
    fx: float = 525.0
    fy: float = 525.0
    cx: float = 319.5
    cy: float = 239.5
    depth_scale: float = 0.001  # raw depth units (mm) -> meters

    def intrinsics(self) -> Intrinsics:
        return Intrinsics(self.fx, self.fy, self.cx, self.cy)


@dataclass
class ClassifierConfig:
    model_path: str = "gesture_recognizer.task"
    min_hand_detection_confidence: float = 0.5
    min_hand_presence_confidence: float = 0.3
    min_tracking_confidence: float = 0.3


@dataclass
class EstimatorConfig:
    method: str = "closed_form"  # or "ransac"
    palm_indices: Tuple[int, ...] = PALM_INDICES
    ransac_epsilon_m: float = 0.005


@dataclass
class FilterConfig:
    max_angle_rad: float = math.pi / 6
    max_distance_m: float = 0.25
    slerp_t: float = 0.2
    ema_alpha: float = 0.5


@dataclass
class GestureConfig:
    increment: float = 0.04
    decrement: float = 0.027
    command_threshold: float = 0.7
    gripper_threshold: float = 0.9
    gripper_cooldown_ms: int = 2000
    reset_cooldown_ms: int = 2000
    status_display_ms: int = 500


@dataclass
class EncoderConfig:
    # Robot frame = camera frame rotated by Rx(rotation_x) * Rz(rotation_z)
    rotation_x_rad: float = math.pi / 2
    rotation_z_rad: float = 0.0
    precision: int = 6
    newline: bool = False


@dataclass
class TransportConfig:
    url: str = "tcp://127.0.0.1:5000"
    retry_interval_s: float = 3.0
    queue_size: int = 100


@dataclass
class TeleopConfig:
    camera: CameraConfig = field(default_factory=CameraConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    estimator: EstimatorConfig = field(default_factory=EstimatorConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    gestures: GestureConfig = field(default_factory=GestureConfig)
    encoder: EncoderConfig = field(default_factory=EncoderConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)


def load_config(environ: Optional[Mapping[str, str]] = None) -> TeleopConfig:
    """
    Build a TeleopConfig from defaults and TELEOP_* environment variables.

    Args:
        environ: Mapping to read from. Defaults to os.environ.

    Returns:
        TeleopConfig with overrides applied.
    """
    env = os.environ if environ is None else environ
    config = TeleopConfig()

    config.transport.url = env.get("TELEOP_SERVER", config.transport.url)
    config.transport.retry_interval_s = float(
        env.get("TELEOP_RETRY_S", config.transport.retry_interval_s)
    )

    config.classifier.model_path = env.get("TELEOP_MODEL_PATH", config.classifier.model_path)
    config.estimator.method = env.get("TELEOP_POSE_METHOD", config.estimator.method)

    if "TELEOP_MAX_ANGLE_DEG" in env:
        config.filter.max_angle_rad = math.radians(float(env["TELEOP_MAX_ANGLE_DEG"]))
    config.filter.max_distance_m = float(env.get("TELEOP_MAX_DIST_M", config.filter.max_distance_m))
    config.filter.slerp_t = float(env.get("TELEOP_SLERP_T", config.filter.slerp_t))
    config.filter.ema_alpha = float(env.get("TELEOP_EMA_ALPHA", config.filter.ema_alpha))

    cooldown_ms = int(env.get("TELEOP_COOLDOWN_MS", config.gestures.gripper_cooldown_ms))
    config.gestures.gripper_cooldown_ms = cooldown_ms
    config.gestures.reset_cooldown_ms = cooldown_ms

    config.camera.fx = float(env.get("TELEOP_FX", config.camera.fx))
    config.camera.fy = float(env.get("TELEOP_FY", config.camera.fy))
    config.camera.cx = float(env.get("TELEOP_CX", config.camera.cx))
    config.camera.cy = float(env.get("TELEOP_CY", config.camera.cy))

    if config.estimator.method not in ("closed_form", "ransac"):
        raise ValueError(f"Unknown pose method: {config.estimator.method}")

    return config
