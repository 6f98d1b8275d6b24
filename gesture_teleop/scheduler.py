"""
Frame Scheduler - single-slot, last-write-wins hand-off from capture to
the worker lane.

The capture thread calls submit() at sensor rate and never blocks on
processing. At most one frame is in flight and at most one is pending;
a newer submission replaces the pending frame. When the in-flight frame
finishes (successfully or not) the pending frame is promoted atomically.

The worker lane is a coroutine (run()) on an asyncio event loop; every
downstream stage executes inside it.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

FrameHandler = Callable[[Any], Awaitable[None]]


@dataclass
class SchedulerStats:
    """Counters about scheduled frames."""
    submitted: int = 0
    processed: int = 0
    superseded: int = 0
    failed: int = 0


class FrameScheduler:
    """
    Backpressure-safe frame scheduler.

    Usage:
        scheduler = FrameScheduler(pipeline.process)
        lane = asyncio.create_task(scheduler.run())
        ...
        scheduler.submit(frame)   # from any thread
        ...
        scheduler.stop()
        await lane
    """

    def __init__(self, handler: FrameHandler):
        """
        Initialize scheduler.

        Args:
            handler: Coroutine function processing one frame. Exceptions
                are logged and counted; they never stall the lane.
        """
        self._handler = handler

        # Guarded by _lock
        self._lock = threading.Lock()
        self._in_flight: Optional[Any] = None
        self._pending: Optional[Any] = None
        self.stats = SchedulerStats()

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._running = False

    @property
    def busy(self) -> bool:
        """True while a frame is in flight."""
        with self._lock:
            return self._in_flight is not None

    @property
    def pending(self) -> Optional[Any]:
        """The frame waiting to be processed next, if any."""
        with self._lock:
            return self._pending

    def submit(self, frame: Any) -> None:
        """
        Hand a frame to the worker lane. Never blocks on processing.

        If the lane is idle the frame starts immediately; otherwise it
        replaces whatever frame was pending.
        """
        with self._lock:
            self.stats.submitted += 1
            if self._in_flight is None:
                self._in_flight = frame
                start = True
            else:
                if self._pending is not None:
                    self.stats.superseded += 1
                self._pending = frame
                start = False

        if start:
            self._notify()

    def _notify(self) -> None:
        loop = self._loop
        if loop is None or self._wakeup is None:
            # Lane not started yet; run() picks the frame up on entry
            return
        try:
            loop.call_soon_threadsafe(self._wakeup.set)
        except RuntimeError:
            logger.debug("Event loop closed, frame left in slot")

    def _complete(self) -> Optional[Any]:
        """Promote the pending frame (or go idle) and return the new in-flight frame."""
        with self._lock:
            self._in_flight = self._pending
            self._pending = None
            return self._in_flight

    async def run(self) -> None:
        """Worker lane. Processes frames until stop() is called."""
        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        self._running = True
        logger.info("Frame scheduler started")

        try:
            while self._running:
                with self._lock:
                    frame = self._in_flight

                if frame is None:
                    self._wakeup.clear()
                    await self._wakeup.wait()
                    continue

                while frame is not None and self._running:
                    await self._process(frame)
                    frame = self._complete()
        finally:
            self._running = False
            logger.info("Frame scheduler stopped")

    async def _process(self, frame: Any) -> None:
        try:
            await self._handler(frame)
            self.stats.processed += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.stats.failed += 1
            logger.warning(f"Frame processing failed: {e}")

    def stop(self) -> None:
        """Ask the lane to exit after the current frame. Thread-safe."""
        self._running = False
        if self._loop is not None and self._wakeup is not None:
            try:
                self._loop.call_soon_threadsafe(self._wakeup.set)
            except RuntimeError:
                pass

    def get_stats(self) -> dict:
        """Get scheduling statistics."""
        with self._lock:
            return {
                "submitted": self.stats.submitted,
                "processed": self.stats.processed,
                "superseded": self.stats.superseded,
                "failed": self.stats.failed,
                "busy": self._in_flight is not None,
                "pending": self._pending is not None,
            }
