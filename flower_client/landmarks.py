"""
Landmark Source - camera capture and MediaPipe hand detection.

The detector runs in a background thread at its own pace and writes
every result into a LatestValue cell. The render loop reads the cell
whenever it wants; stale results are overwritten, never queued.
"""

import logging
import threading
import time
from typing import Optional

import cv2
import mediapipe as mp

from .gesture import GestureSample, extract_gesture, first_hand
from .latest import LatestValue

logger = logging.getLogger(__name__)


class MediaPipeGate:
    """
    Gate for MediaPipe processing errors.

    Wraps MediaPipe hand processing to catch exceptions so that a bad
    frame yields "no hand" instead of killing the detector thread.
    """

    def __init__(self, max_consecutive_failures: int = 5):
        """
        Initialize MediaPipeGate.

        Args:
            max_consecutive_failures: Number of consecutive processing failures
                before the stream is reported as problematic.
        """
        self.max_consecutive_failures = max_consecutive_failures
        self._consecutive_failures = 0
        self._total_failures = 0
        self._total_successes = 0

    def process(self, hands, rgb_frame):
        """
        Process frame with MediaPipe hands, catching exceptions.

        Returns:
            Tuple of (success: bool, result: MediaPipe result or None)
        """
        try:
            result = hands.process(rgb_frame)
        except Exception as e:
            self._consecutive_failures += 1
            self._total_failures += 1
            logger.warning(f"MediaPipe processing error: {e}")
            if self._consecutive_failures == self.max_consecutive_failures:
                logger.error(
                    f"{self._consecutive_failures} consecutive MediaPipe failures"
                )
            return False, None
        self._consecutive_failures = 0
        self._total_successes += 1
        return True, result

    def is_stream_problematic(self) -> bool:
        """Check if the stream has too many consecutive failures."""
        return self._consecutive_failures >= self.max_consecutive_failures

    def get_stats(self) -> dict:
        """Get processing statistics."""
        total = self._total_successes + self._total_failures
        return {
            "total_processed": total,
            "successes": self._total_successes,
            "failures": self._total_failures,
            "success_rate": self._total_successes / total if total > 0 else 0.0,
            "consecutive_failures": self._consecutive_failures,
        }


class LandmarkSource:
    """
    Camera + MediaPipe Hands in a background thread.

    Publishes one GestureSample per processed frame into ``cell``.
    """

    def __init__(
        self,
        cell: LatestValue[GestureSample],
        camera_index: int = 0,
        width: int = 640,
        height: int = 480,
        mirror: bool = True,
    ):
        """
        Initialize landmark source.

        Args:
            cell: Cell receiving gesture samples
            camera_index: Camera device index
            width: Requested capture width
            height: Requested capture height
            mirror: Flip frames horizontally before detection
        """
        self.cell = cell
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self.mirror = mirror

        self.gate = MediaPipeGate()
        self._cap: Optional[cv2.VideoCapture] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._read_failures = 0

    def start(self) -> bool:
        """
        Open the camera and start the detector thread.

        Returns:
            True if the camera opened
        """
        if self._running:
            return True

        logger.info(f"Opening camera index: {self.camera_index}")
        self._cap = cv2.VideoCapture(self.camera_index)
        if not self._cap.isOpened():
            logger.error("Failed to open camera source")
            self._cap = None
            return False

        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        logger.info(f"Camera opened: {width}x{height}")

        self._running = True
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        return True

    def stop(self) -> None:
        """Stop the detector thread and release the camera."""
        if not self._running:
            return
        self._running = False
        if self._thread:
            self._thread.join(timeout=2.0)
            self._thread = None
        if self._cap:
            self._cap.release()
            self._cap = None
        logger.info("Landmark source stopped")

    def _run(self) -> None:
        hands = mp.solutions.hands.Hands(
            static_image_mode=False,
            max_num_hands=1,
            model_complexity=1,
            min_detection_confidence=0.6,
            min_tracking_confidence=0.6,
        )
        try:
            while self._running:
                ok, frame = self._cap.read()
                if not ok or frame is None:
                    self._read_failures += 1
                    time.sleep(0.01)
                    continue

                if self.mirror:
                    frame = cv2.flip(frame, 1)
                rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

                mp_ok, results = self.gate.process(hands, rgb)
                landmarks = first_hand(results) if mp_ok else None
                self.cell.set(extract_gesture(landmarks))
        finally:
            hands.close()

    def get_stats(self) -> dict:
        """Get source statistics."""
        return {
            "running": self._running,
            "samples": self.cell.writes,
            "read_failures": self._read_failures,
            "stream_problematic": self.gate.is_stream_problematic(),
            "mediapipe": self.gate.get_stats(),
        }
