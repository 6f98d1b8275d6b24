#!/usr/bin/env python3
"""
Gesture Teleop Client - Main Entry Point

Reads RGB+depth frames from an OpenNI2 camera, tracks the operator's palm
pose and gestures with MediaPipe, and streams tracking / gripper / reset
commands to a robot controller over TCP (or WebSocket).

Usage:
    gesture-teleop --server tcp://192.168.1.20:5000 --model gesture_recognizer.task
    gesture-teleop --server ws://127.0.0.1:8080/teleop --preview --debug
"""

import argparse
import asyncio
import logging
import math
import signal
import sys
from typing import Optional

import cv2

from .capture import CaptureThread, DepthCamera
from .config import TeleopConfig, load_config
from .mediapipe_classifier import MediaPipeClassifier
from .pipeline import OverlayUpdate, TeleopPipeline
from .preview import draw_overlay
from .scheduler import FrameScheduler
from .transport import ConnectionStatus, TransportClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

STATS_INTERVAL_S = 10.0
PREVIEW_RATE_HZ = 30.0


class TeleopClient:
    """
    Main client that integrates all components:
    - Depth camera capture thread
    - Frame scheduler (worker lane)
    - Teleop pipeline (pose, filter, gestures, encoding)
    - Robot transport
    - Optional preview window
    """

    def __init__(self, config: TeleopConfig, show_preview: bool = False):
        self.config = config
        self.show_preview = show_preview

        self.camera = DepthCamera(config.camera)
        self.classifier: Optional[MediaPipeClassifier] = None
        self.transport: Optional[TransportClient] = None
        self.pipeline: Optional[TeleopPipeline] = None
        self.scheduler: Optional[FrameScheduler] = None
        self.capture: Optional[CaptureThread] = None

        self._lane: Optional[asyncio.Task] = None
        self._overlay: Optional[OverlayUpdate] = None
        self._running = False
        self._stopped = False

    async def start(self) -> None:
        """Start the client."""
        logger.info("Starting Gesture Teleop Client...")

        if not self.camera.open():
            raise RuntimeError("Failed to initialize depth camera")

        self.classifier = MediaPipeClassifier(self.config.classifier)

        self.transport = TransportClient(
            url=self.config.transport.url,
            retry_interval_s=self.config.transport.retry_interval_s,
            queue_size=self.config.transport.queue_size,
            on_status_change=self._on_status_change,
        )
        await self.transport.start()

        self.pipeline = TeleopPipeline(
            self.classifier,
            self.transport.send,
            self.config,
            on_overlay=self._on_overlay,
        )
        self.scheduler = FrameScheduler(self.pipeline.process)
        self._lane = asyncio.create_task(self.scheduler.run())

        self.capture = CaptureThread(
            self.camera,
            self.scheduler.submit,
            self.config.camera.intrinsics(),
        )
        self.capture.start()

        self._running = True
        logger.info("Gesture Teleop Client started")

    def request_stop(self) -> None:
        self._running = False

    async def stop(self) -> None:
        """Stop the client and clean up resources."""
        if self._stopped:
            return
        self._stopped = True
        self._running = False
        logger.info("Stopping Gesture Teleop Client...")

        if self.capture:
            self.capture.stop()

        if self.scheduler:
            self.scheduler.stop()
        if self._lane:
            try:
                await asyncio.wait_for(self._lane, timeout=2.0)
            except asyncio.TimeoutError:
                logger.warning("Worker lane did not finish in time")

        if self.transport:
            await self.transport.stop()

        self.camera.release()

        if self.classifier:
            self.classifier.close()

        if self.show_preview:
            cv2.destroyAllWindows()

        self._log_stats()
        logger.info("Gesture Teleop Client stopped")

    async def run(self) -> None:
        """Supervise the pipeline and drive the preview window."""
        interval = 1.0 / PREVIEW_RATE_HZ if self.show_preview else 0.5
        since_stats = 0.0

        while self._running:
            if self.show_preview:
                self._draw_preview()
                key = cv2.waitKey(1) & 0xFF
                if key in (27, ord('q')):
                    logger.info("Quit requested")
                    self._running = False

            await asyncio.sleep(interval)
            since_stats += interval
            if since_stats >= STATS_INTERVAL_S:
                since_stats = 0.0
                self._log_stats()

    def _on_overlay(self, update: OverlayUpdate) -> None:
        self._overlay = update

    def _on_status_change(self, status: ConnectionStatus) -> None:
        if status is ConnectionStatus.CONNECTED:
            logger.info("Connected to robot")
        elif status is ConnectionStatus.FAILED:
            logger.warning("Robot connection failed")

    def _draw_preview(self) -> None:
        rgb = self.capture.latest_rgb() if self.capture else None
        if rgb is None:
            return
        image = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
        connection = self.transport.status.value if self.transport else ""
        draw_overlay(image, self._overlay, connection)
        cv2.imshow("Gesture Teleop", image)

    def _log_stats(self) -> None:
        if self.scheduler:
            logger.debug(f"scheduler: {self.scheduler.get_stats()}")
        if self.pipeline:
            logger.debug(f"pipeline: {self.pipeline.get_stats()}")
        if self.capture:
            logger.debug(f"frames: {self.capture.gate.get_stats()}")
        if self.transport:
            logger.debug(f"transport: {self.transport.get_stats()}")


async def main_async(config: TeleopConfig, show_preview: bool) -> None:
    """Async main entry point."""
    client = TeleopClient(config, show_preview=show_preview)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Shutdown signal received")
        client.request_stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await client.start()
        await client.run()
    except (RuntimeError, FileNotFoundError) as e:
        logger.error(f"Client error: {e}")
    finally:
        await client.stop()


def build_parser(config: TeleopConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Gesture Teleop Client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--server",
        type=str,
        default=config.transport.url,
        help="Robot URL (tcp://host:port or ws://host:port/path)",
    )
    parser.add_argument(
        "--retry",
        type=float,
        default=config.transport.retry_interval_s,
        help="Reconnect interval (s)",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=config.classifier.model_path,
        help="MediaPipe gesture recognizer model (.task)",
    )
    parser.add_argument(
        "--device",
        type=int,
        default=config.camera.device,
        help="OpenNI2 device index (requires an OpenCV build with OpenNI2 support)",
    )
    parser.add_argument(
        "--pose-method",
        choices=("closed_form", "ransac"),
        default=config.estimator.method,
        help="Palm pose construction",
    )
    parser.add_argument(
        "--max-angle",
        type=float,
        default=math.degrees(config.filter.max_angle_rad),
        help="Reject poses rotating more than this per frame (deg)",
    )
    parser.add_argument(
        "--max-distance",
        type=float,
        default=config.filter.max_distance_m,
        help="Reject poses moving more than this per frame (m)",
    )
    parser.add_argument(
        "--newline",
        action="store_true",
        help="Terminate each command with a newline",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Show preview window",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def apply_args(config: TeleopConfig, args: argparse.Namespace) -> TeleopConfig:
    """Override configuration with command line values."""
    config.transport.url = args.server
    config.transport.retry_interval_s = args.retry
    config.classifier.model_path = args.model
    config.camera.device = args.device
    config.estimator.method = args.pose_method
    config.filter.max_angle_rad = math.radians(args.max_angle)
    config.filter.max_distance_m = args.max_distance
    if args.newline:
        config.encoder.newline = True
    return config


def main() -> None:
    """Main entry point."""
    try:
        config = load_config()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    args = build_parser(config).parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    config = apply_args(config, args)

    try:
        asyncio.run(main_async(config, args.preview))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
