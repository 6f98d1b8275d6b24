"""
MediaPipe Classifier - HandClassifier backed by MediaPipe Tasks.

Two GestureRecognizer instances are used, one per call, so each keeps its
own video-mode tracking state: the pose call sees the image as captured,
the gesture call sees it re-oriented.

Download the model from:
https://storage.googleapis.com/mediapipe-models/gesture_recognizer/gesture_recognizer/float16/1/gesture_recognizer.task
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import mediapipe as mp
import numpy as np

from .classifier import GestureResult, HandClassifier
from .config import ClassifierConfig
from .frame import LandmarkSet

logger = logging.getLogger(__name__)

# MediaPipe Tasks API imports
BaseOptions = mp.tasks.BaseOptions
GestureRecognizer = mp.tasks.vision.GestureRecognizer
GestureRecognizerOptions = mp.tasks.vision.GestureRecognizerOptions
VisionRunningMode = mp.tasks.vision.RunningMode


class _Recognizer:
    """One video-mode recognizer with a strictly increasing timestamp."""

    def __init__(self, options: GestureRecognizerOptions):
        self._recognizer = GestureRecognizer.create_from_options(options)
        self._last_timestamp_ms = -1

    def recognize(self, image: np.ndarray, timestamp_ms: int):
        # Video mode rejects non-increasing timestamps
        if timestamp_ms <= self._last_timestamp_ms:
            timestamp_ms = self._last_timestamp_ms + 1
        self._last_timestamp_ms = timestamp_ms

        rgb = np.ascontiguousarray(image)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
        return self._recognizer.recognize_for_video(mp_image, timestamp_ms)

    def close(self) -> None:
        self._recognizer.close()


class MediaPipeClassifier(HandClassifier):
    """
    MediaPipe gesture recognizer wrapper.

    Inference runs in a worker thread (asyncio.to_thread) so the event
    loop stays responsive.
    """

    def __init__(self, config: Optional[ClassifierConfig] = None):
        """
        Initialize classifier.

        Args:
            config: Model path and detection thresholds

        Raises:
            FileNotFoundError: The model file does not exist.
        """
        self.config = config or ClassifierConfig()
        model_path = Path(self.config.model_path)
        if not model_path.exists():
            raise FileNotFoundError(f"Model file not found: {model_path}")

        self._pose = _Recognizer(self._options(model_path))
        self._gesture = _Recognizer(self._options(model_path))
        logger.info(f"MediaPipe gesture recognizer loaded from {model_path}")

    def _options(self, model_path: Path) -> GestureRecognizerOptions:
        return GestureRecognizerOptions(
            base_options=BaseOptions(model_asset_path=str(model_path)),
            running_mode=VisionRunningMode.VIDEO,
            num_hands=1,
            min_hand_detection_confidence=self.config.min_hand_detection_confidence,
            min_hand_presence_confidence=self.config.min_hand_presence_confidence,
            min_tracking_confidence=self.config.min_tracking_confidence,
        )

    async def recognize_pose(self, image: np.ndarray, timestamp_ms: int) -> Optional[LandmarkSet]:
        result = await asyncio.to_thread(self._pose.recognize, image, timestamp_ms)
        if not result.hand_landmarks or not result.handedness:
            return None

        points = [(lm.x, lm.y) for lm in result.hand_landmarks[0]]
        handedness = result.handedness[0][0].category_name
        return LandmarkSet(points=points, handedness=handedness)

    async def recognize_gesture(self, image: np.ndarray, timestamp_ms: int) -> Optional[GestureResult]:
        result = await asyncio.to_thread(self._gesture.recognize, image, timestamp_ms)
        if not result.gestures or not result.gestures[0]:
            return None

        top = result.gestures[0][0]
        return GestureResult(category=top.category_name, score=top.score)

    def close(self) -> None:
        self._pose.close()
        self._gesture.close()
