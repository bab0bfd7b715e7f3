"""
Frame channel between a source and the orchestrator.

Supports:
- Bounded, latest-wins buffering (oldest frame dropped when full)
- Blocking or polling consumption
- A pump thread that feeds a queue from a FrameSource
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Optional

from loguru import logger

from depth_upsampler.core.contracts import FrameBundle
from .frame_source import FrameSource


class FrameQueue:
    """
    Thread-safe bounded queue of frame bundles.

    When the consumer falls behind, the oldest pending bundle is dropped so
    the orchestrator always works on recent data.
    """

    def __init__(self, max_frames: int = 2):
        """
        Initialize frame queue.

        Args:
            max_frames: Maximum pending bundles before the oldest is dropped
        """
        if max_frames < 1:
            raise ValueError(f"max_frames must be positive, got {max_frames}")
        self.max_frames = max_frames

        self._frames: Deque[FrameBundle] = deque()
        self._condition = threading.Condition()
        self._closed = False
        self._dropped = 0

    def put(self, bundle: FrameBundle) -> bool:
        """
        Enqueue a bundle.

        Returns:
            False if the queue is closed
        """
        with self._condition:
            if self._closed:
                return False
            if len(self._frames) >= self.max_frames:
                dropped = self._frames.popleft()
                self._dropped += 1
                logger.debug(f"Frame queue full, dropping frame {dropped.frame_id}")
            self._frames.append(bundle)
            self._condition.notify()
            return True

    def get(self, timeout: Optional[float] = None) -> Optional[FrameBundle]:
        """
        Dequeue the oldest pending bundle.

        Blocks up to ``timeout`` seconds (None = forever, 0 = poll).
        Returns None on timeout or once the queue is closed and drained.
        """
        with self._condition:
            if not self._frames and not self._closed and timeout != 0:
                self._condition.wait_for(lambda: self._frames or self._closed, timeout)
            if self._frames:
                return self._frames.popleft()
            return None

    def close(self):
        """Stop accepting frames and wake up waiting consumers."""
        with self._condition:
            self._closed = True
            self._condition.notify_all()
        logger.debug("Frame queue closed")

    def clear(self):
        with self._condition:
            self._frames.clear()

    def __len__(self) -> int:
        with self._condition:
            return len(self._frames)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def dropped_frames(self) -> int:
        return self._dropped


class FramePump:
    """
    Background thread moving bundles from a FrameSource into a FrameQueue.

    Closes the queue when the source is exhausted or the pump is stopped.
    """

    def __init__(
        self,
        source: FrameSource,
        frame_queue: FrameQueue,
        idle_sleep: float = 0.001,
    ):
        self.source = source
        self.frame_queue = frame_queue
        self.idle_sleep = idle_sleep

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._frames_pushed = 0

    def start(self) -> bool:
        """Start the source and the pump thread."""
        if self._thread is not None:
            return True
        if not self.source.start():
            logger.error("Failed to start frame source")
            return False

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="frame-pump", daemon=True)
        self._thread.start()
        logger.info("Frame pump started")
        return True

    def _run(self):
        try:
            while not self._stop_event.is_set():
                bundle = self.source.get_frame()
                if bundle is None:
                    if self.source.is_exhausted:
                        logger.info(f"Frame source exhausted after {self._frames_pushed} frames")
                        break
                    self._stop_event.wait(self.idle_sleep)
                    continue
                if not self.frame_queue.put(bundle):
                    break
                self._frames_pushed += 1
        except Exception as e:
            logger.exception(f"Frame pump failed: {e}")
        finally:
            self.frame_queue.close()

    def stop(self):
        """Stop the pump thread and the source."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        self.source.stop()
        logger.info("Frame pump stopped")

    @property
    def frames_pushed(self) -> int:
        return self._frames_pushed
