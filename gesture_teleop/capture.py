"""
Depth Camera Capture.

DepthCamera reads registered color + depth from an OpenNI2 device
(Kinect, Xtion, Astra) through OpenCV. CaptureThread pulls frames as fast
as the sensor delivers them, gates them, and submits them to the
FrameScheduler without ever waiting on processing.
"""

import logging
import threading
import time
from typing import Callable, Optional, Tuple

import cv2
import numpy as np

from .config import CameraConfig
from .frame import Frame, Intrinsics
from .frame_gate import FrameGate

logger = logging.getLogger(__name__)


class DepthCamera:
    """
    OpenNI2 RGB-D camera with depth registered to the color image.

    Needs an OpenCV built with OpenNI2 support. The opencv-python wheels on
    PyPI are not, so install a build configured with WITH_OPENNI2=ON.
    """

    def __init__(self, config: Optional[CameraConfig] = None):
        self.config = config or CameraConfig()
        self.cap: Optional[cv2.VideoCapture] = None

    def open(self) -> bool:
        """Open the device. Returns False if it is not available."""
        logger.info(f"Opening OpenNI2 device {self.config.device}")
        self.cap = cv2.VideoCapture(self.config.device, cv2.CAP_OPENNI2)

        if not self.cap.isOpened():
            logger.error("Failed to open depth camera")
            return False

        # Depth pixels line up with color pixels
        self.cap.set(cv2.CAP_OPENNI_REGISTRATION, 1)

        width = int(self.cap.get(cv2.CAP_OPENNI_IMAGE_GENERATOR + cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self.cap.get(cv2.CAP_OPENNI_IMAGE_GENERATOR + cv2.CAP_PROP_FRAME_HEIGHT))
        fps = self.cap.get(cv2.CAP_OPENNI_IMAGE_GENERATOR + cv2.CAP_PROP_FPS)
        logger.info(f"Depth camera opened: {width}x{height} @ {fps:.1f} fps")
        return True

    def read(self) -> Tuple[bool, Optional[np.ndarray], Optional[np.ndarray]]:
        """
        Grab one synchronized capture.

        Returns:
            Tuple of (ok, RGB image, depth map in meters)
        """
        if self.cap is None or not self.cap.grab():
            return False, None, None

        ok_depth, raw_depth = self.cap.retrieve(flag=cv2.CAP_OPENNI_DEPTH_MAP)
        ok_bgr, bgr = self.cap.retrieve(flag=cv2.CAP_OPENNI_BGR_IMAGE)
        if not (ok_depth and ok_bgr) or raw_depth is None or bgr is None:
            return False, None, None

        rgb = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
        # 0 means "no reading" and stays 0
        depth = raw_depth.astype(np.float32) * self.config.depth_scale
        return True, rgb, depth

    def release(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None


class CaptureThread:
    """
    Background thread feeding frames to the scheduler.

    The most recent valid RGB image is kept for the preview window.
    """

    def __init__(
        self,
        camera: DepthCamera,
        submit: Callable[[Frame], None],
        intrinsics: Intrinsics,
        gate: Optional[FrameGate] = None,
    ):
        """
        Initialize capture thread.

        Args:
            camera: Opened depth camera
            submit: Scheduler hand-off (must not block)
            intrinsics: Intrinsics for the RGB stream
            gate: Frame quality gate
        """
        self.camera = camera
        self.submit = submit
        self.intrinsics = intrinsics
        self.gate = gate or FrameGate()

        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._latest_lock = threading.Lock()
        self._latest_rgb: Optional[np.ndarray] = None

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._capture_loop, name="capture", daemon=True)
        self._thread.start()
        logger.info("Capture thread started")

    def stop(self) -> None:
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
        logger.info("Capture thread stopped")

    def latest_rgb(self) -> Optional[np.ndarray]:
        """Most recent valid RGB image, if any."""
        with self._latest_lock:
            return self._latest_rgb

    def _capture_loop(self) -> None:
        """Pull camera frames as fast as the sensor delivers them."""
        while self._running:
            try:
                self.capture_once()
            except Exception as e:
                logger.error(f"Capture thread error: {e}")
                time.sleep(0.1)

    def capture_once(self) -> Optional[Frame]:
        """Read, gate and submit one frame. Returns the submitted frame."""
        ok, rgb, depth = self.camera.read()
        result = self.gate.validate(ok, rgb, depth)
        if not result.valid:
            if result.reason == "read_failed":
                time.sleep(0.01)
            return None

        frame = Frame(
            rgb=result.rgb,
            depth=result.depth,
            intrinsics=self.intrinsics,
            timestamp_ms=int(time.monotonic() * 1000),
        )
        with self._latest_lock:
            self._latest_rgb = result.rgb

        self.submit(frame)
        return frame
