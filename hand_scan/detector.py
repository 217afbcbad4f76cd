"""
Landmark Detector - MediaPipe Hands wrapped for the frame pump.

MediaPipe is imported and the model built in load(), which runs off the
event loop. Until load() completes the detector reports not ready.
Handedness labels produced by the model are ignored.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

import cv2
import numpy as np

from .errors import AnalysisError, DetectorLoadError, DetectorNotReadyError

logger = logging.getLogger(__name__)

# Standard MediaPipe 21-landmark hand skeleton
HAND_CONNECTIONS: Tuple[Tuple[int, int], ...] = (
    (0, 1), (1, 2), (2, 3), (3, 4),
    (0, 5), (5, 6), (6, 7), (7, 8),
    (5, 9), (9, 10), (10, 11), (11, 12),
    (9, 13), (13, 14), (14, 15), (15, 16),
    (13, 17), (0, 17), (17, 18), (18, 19), (19, 20),
)

Keypoint = Tuple[float, float, float]


@dataclass
class DetectorOptions:
    """
    Options passed to MediaPipe Hands.

    Attributes:
        max_hands: Maximum number of hands to detect
        model_complexity: Landmark model complexity (0 or 1)
        min_detection_confidence: Minimum palm detection confidence
        min_tracking_confidence: Minimum landmark tracking confidence
    """
    max_hands: int = 2
    model_complexity: int = 1
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5

    def __post_init__(self):
        if self.max_hands < 1:
            raise ValueError(f"max_hands must be >= 1, got {self.max_hands}")
        if self.model_complexity not in (0, 1):
            raise ValueError(f"model_complexity must be 0 or 1, got {self.model_complexity}")
        for name in ("min_detection_confidence", "min_tracking_confidence"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")


@dataclass
class DetectionResult:
    """Hands found in one frame."""
    hands_found: int
    keypoints: List[List[Keypoint]] = field(default_factory=list)

    @classmethod
    def empty(cls) -> 'DetectionResult':
        return cls(hands_found=0)

    @classmethod
    def from_mediapipe(cls, results) -> 'DetectionResult':
        """Convert a MediaPipe Hands result."""
        hands = getattr(results, "multi_hand_landmarks", None) or []
        keypoints = [
            [(float(p.x), float(p.y), float(p.z)) for p in hand.landmark]
            for hand in hands
        ]
        return cls(hands_found=len(keypoints), keypoints=keypoints)


def _mediapipe_hands_factory(options: DetectorOptions):
    import mediapipe as mp
    return mp.solutions.hands.Hands(
        static_image_mode=False,
        max_num_hands=options.max_hands,
        model_complexity=options.model_complexity,
        min_detection_confidence=options.min_detection_confidence,
        min_tracking_confidence=options.min_tracking_confidence,
    )


class MediaPipeHandDetector:
    """
    Asynchronous hand landmark detector.

    Usage:
        detector = MediaPipeHandDetector()
        await detector.load()
        await detector.configure(DetectorOptions(max_hands=1))
        result = await detector.analyze(bgr_frame)
    """

    def __init__(
        self,
        options: Optional[DetectorOptions] = None,
        hands_factory: Callable[[DetectorOptions], Any] = _mediapipe_hands_factory,
    ):
        """
        Initialize the detector.

        Args:
            options: Detection options (defaults used if None)
            hands_factory: Builds the model object; must return something
                with process(rgb) and close()
        """
        self.options = options or DetectorOptions()
        self._hands_factory = hands_factory
        self._hands: Optional[Any] = None
        # Held while the model processes a frame; close() and swaps wait on it
        self._model_lock = threading.Lock()

    @property
    def ready(self) -> bool:
        return self._hands is not None

    async def configure(self, options: DetectorOptions) -> None:
        """
        Apply new options.

        A loaded model is rebuilt in a worker thread, and only when the
        options changed. The old model is closed after any frame it is
        processing has finished.
        """
        if options == self.options:
            return
        self.options = options
        if self._hands is not None:
            await asyncio.to_thread(self._rebuild, options)
            logger.info(f"Hand detector reconfigured: {options}")

    def _rebuild(self, options: DetectorOptions) -> None:
        hands = self._hands_factory(options)
        with self._model_lock:
            old, self._hands = self._hands, hands
            if old is not None:
                old.close()

    async def load(self) -> None:
        """
        Load the detection library and build the model.

        Raises:
            DetectorLoadError: If MediaPipe cannot be imported or initialized
        """
        if self._hands is not None:
            return

        logger.info("Loading hand detection model...")
        try:
            self._hands = await asyncio.to_thread(self._hands_factory, self.options)
        except Exception as e:
            logger.error(f"Error loading MediaPipe: {e}")
            raise DetectorLoadError(f"Failed to load hand detection library: {e}") from e
        logger.info("Hand detection model loaded")

    async def analyze(self, frame: np.ndarray) -> DetectionResult:
        """
        Detect hands in a BGR frame.

        Raises:
            DetectorNotReadyError: If load() has not completed
            AnalysisError: If the model fails on this frame
        """
        if self._hands is None:
            raise DetectorNotReadyError("Hand detector not loaded")

        try:
            results = await asyncio.to_thread(self._process, frame)
        except DetectorNotReadyError:
            raise
        except Exception as e:
            raise AnalysisError(f"Hand detection failed: {e}") from e
        return DetectionResult.from_mediapipe(results)

    def _process(self, frame: np.ndarray):
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        with self._model_lock:
            if self._hands is None:
                raise DetectorNotReadyError("Hand detector closed")
            return self._hands.process(rgb)

    def close(self) -> None:
        """
        Release the model. Safe to call more than once.

        Blocks until a frame being processed in a worker thread finishes.
        """
        with self._model_lock:
            hands, self._hands = self._hands, None
            if hands is None:
                return
            hands.close()
        logger.info("Hand detector closed")
