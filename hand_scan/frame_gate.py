"""
Frame Gates - Validate camera reads and guard detector calls.

A frame that fails validation is skipped entirely: it is neither a hand
observation nor an analysis failure. A detector call that raises is an
analysis failure, which the scan treats as a frame without hands.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class FrameValidationResult:
    """Result of frame validation."""
    valid: bool
    reason: str
    frame: Optional[np.ndarray] = None


class FrameGate:
    """
    Readiness check for frames coming off the camera.

    Validates:
    - read success
    - Frame not None/empty
    - Frame has shape (H, W, 3)
    """

    def __init__(self):
        self._total_invalid_count = 0
        self._total_valid_count = 0
        self._consecutive_invalid = 0
        self._last_reason = "ok"

    def validate(self, ok: bool, frame: Optional[np.ndarray]) -> FrameValidationResult:
        """
        Validate a frame returned by the frame source.

        Args:
            ok: Whether the read succeeded
            frame: The frame array (BGR)

        Returns:
            FrameValidationResult with valid flag, reason, and frame if valid.
        """
        if not ok:
            return self._invalid("read_failed")
        if frame is None:
            return self._invalid("frame_none")
        if frame.size == 0:
            return self._invalid("empty_frame")
        if frame.ndim != 3:
            return self._invalid("invalid_dims")
        if frame.shape[2] != 3:
            return self._invalid("invalid_channels")

        self._total_valid_count += 1
        if self._consecutive_invalid:
            logger.debug(f"Frames valid again after {self._consecutive_invalid} invalid")
        self._consecutive_invalid = 0
        return FrameValidationResult(True, "ok", frame)

    def _invalid(self, reason: str) -> FrameValidationResult:
        self._total_invalid_count += 1
        self._consecutive_invalid += 1
        if reason != self._last_reason:
            logger.debug(f"Frame invalid: {reason}")
        self._last_reason = reason
        return FrameValidationResult(False, reason)

    @property
    def consecutive_invalid(self) -> int:
        return self._consecutive_invalid

    def reset(self) -> None:
        """Reset all tracking state."""
        self._total_invalid_count = 0
        self._total_valid_count = 0
        self._consecutive_invalid = 0
        self._last_reason = "ok"

    def get_stats(self) -> dict:
        """Get validation statistics."""
        total = self._total_valid_count + self._total_invalid_count
        return {
            "total_frames": total,
            "valid_frames": self._total_valid_count,
            "invalid_frames": self._total_invalid_count,
            "valid_rate": self._total_valid_count / total if total > 0 else 0.0,
            "consecutive_invalid": self._consecutive_invalid,
        }


class AnalysisGate:
    """
    Wraps detector calls, catching exceptions and tracking failures.
    """

    def __init__(self):
        self._consecutive_failures = 0
        self._total_failures = 0
        self._total_successes = 0

    async def process(
        self,
        analyze: Callable[[np.ndarray], Awaitable[Any]],
        frame: np.ndarray,
    ) -> Tuple[bool, Any]:
        """
        Run one detector call.

        Args:
            analyze: The detector's analyze coroutine function
            frame: BGR frame to analyze

        Returns:
            Tuple of (success, result) on success or (False, exception)
        """
        try:
            result = await analyze(frame)
        except Exception as e:
            self._consecutive_failures += 1
            self._total_failures += 1
            logger.warning(f"Hand detection error: {e}")
            return False, e

        self._consecutive_failures = 0
        self._total_successes += 1
        return True, result

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def reset(self) -> None:
        self._consecutive_failures = 0

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
