"""
Error types raised by the hand scan client.

Acquisition failures are fatal to a scan session. Per-frame analysis
failures are recovered by the frame pump and only logged.
"""


class ScanError(RuntimeError):
    """Base class for hand scan errors."""


class FrameSourceError(ScanError):
    """The frame source could not be started."""


class CameraUnavailableError(FrameSourceError):
    """Camera could not be opened (denied, busy or missing)."""

    def __init__(self, camera_index: int, reason: str = "failed to open"):
        self.camera_index = camera_index
        self.reason = reason
        super().__init__(f"Camera {camera_index} unavailable: {reason}")


class DetectorLoadError(ScanError):
    """The hand detection library failed to load."""


class DetectorNotReadyError(ScanError):
    """The hand detector was used before load() completed."""


class AnalysisError(ScanError):
    """Hand detection failed for a single frame."""
