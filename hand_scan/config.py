"""
Scan Configuration - Defaults and validation for a scan session.
"""

import argparse
from dataclasses import dataclass

from .camera import CameraConstraints
from .detector import DetectorOptions

# Consecutive frames with a hand needed to confirm it
DEFAULT_DETECTION_THRESHOLD = 30

# Seconds between the final confirmation and revealing the asset
DEFAULT_REVEAL_DELAY = 1.0

DEFAULT_ASSET_PATH = "meme.mp4"


@dataclass
class ScanConfig:
    """
    Configuration for one scan session.

    Attributes:
        detection_threshold: Consecutive hand frames required per confirmation
        camera_index: OpenCV camera device index
        width: Requested capture width
        height: Requested capture height
        mirror: Flip frames horizontally (selfie view)
        max_hands: Maximum hands reported by the detector
        model_complexity: MediaPipe model complexity (0 or 1)
        min_detection_confidence: MediaPipe detection confidence
        min_tracking_confidence: MediaPipe tracking confidence
        reveal_delay: Seconds to wait after completion before revealing
        asset_path: Video revealed when the scan completes
        max_fps: Frame pump rate cap (0 = uncapped)
        show_preview: Whether to show the OpenCV preview window
    """
    detection_threshold: int = DEFAULT_DETECTION_THRESHOLD
    camera_index: int = 0
    width: int = 1280
    height: int = 720
    mirror: bool = True
    max_hands: int = 2
    model_complexity: int = 1
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5
    reveal_delay: float = DEFAULT_REVEAL_DELAY
    asset_path: str = DEFAULT_ASSET_PATH
    max_fps: float = 0.0
    show_preview: bool = False

    def __post_init__(self):
        if self.detection_threshold <= 0:
            raise ValueError(
                f"detection_threshold must be positive, got {self.detection_threshold}"
            )
        if self.reveal_delay < 0:
            raise ValueError(f"reveal_delay must be >= 0, got {self.reveal_delay}")
        if self.max_fps < 0:
            raise ValueError(f"max_fps must be >= 0, got {self.max_fps}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid capture size {self.width}x{self.height}")
        # Validates the detector fields as well
        self.detector_options()

    def detector_options(self) -> DetectorOptions:
        """Build the Landmark Detector options."""
        return DetectorOptions(
            max_hands=self.max_hands,
            model_complexity=self.model_complexity,
            min_detection_confidence=self.min_detection_confidence,
            min_tracking_confidence=self.min_tracking_confidence,
        )

    def camera_constraints(self) -> CameraConstraints:
        """Build the Frame Source constraints."""
        return CameraConstraints(width=self.width, height=self.height)

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> 'ScanConfig':
        """Create a config from parsed command line arguments."""
        return cls(
            detection_threshold=args.threshold,
            camera_index=args.camera,
            width=args.width,
            height=args.height,
            mirror=not args.no_mirror,
            max_hands=args.max_hands,
            model_complexity=args.model_complexity,
            min_detection_confidence=args.min_detection_confidence,
            min_tracking_confidence=args.min_tracking_confidence,
            reveal_delay=args.reveal_delay,
            asset_path=args.asset,
            max_fps=args.max_fps,
            show_preview=args.preview,
        )
