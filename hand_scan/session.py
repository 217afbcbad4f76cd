"""
Scan Session - Begin/reset entry points and completion side effects.

The session owns one state machine, frame source, detector and frame pump.
When the machine reaches COMPLETE the camera is stopped and, after a short
delay, the terminal asset is revealed.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from .camera import CameraFrameSource
from .config import ScanConfig
from .detector import MediaPipeHandDetector
from .errors import DetectorLoadError, DetectorNotReadyError, FrameSourceError
from .pump import FramePump, ResultCallback
from .scan_state import Listener, ScanSnapshot, ScanStateMachine, ScanStep

logger = logging.getLogger(__name__)

LOAD_FAILED_MESSAGE = "Failed to load hand detection library. Please restart the scan."
NOT_READY_MESSAGE = "Please wait, loading hand detection library..."
CAMERA_DENIED_MESSAGE = "Camera permission denied. Please allow camera access to continue."
CAPTURE_FAILED_MESSAGE = "Scanning stopped unexpectedly. Press R to reset."


class SessionStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


def status_message(snapshot: ScanSnapshot) -> str:
    """User prompt for the current scan state."""
    hand = None
    if snapshot.step is ScanStep.AWAITING_LEFT_HAND:
        hand = "left"
    elif snapshot.step is ScanStep.AWAITING_RIGHT_HAND:
        hand = "right"

    if hand is not None:
        if snapshot.tally == 0:
            return f"Position your {hand} hand in the camera view"
        shown = min(snapshot.tally, snapshot.threshold)
        return f"Detecting {hand} hand... ({shown}/{snapshot.threshold})"
    if snapshot.step is ScanStep.COMPLETE:
        return "Scanning complete!"
    return "Press SPACE to start scanning"


class ScanSession:
    """
    One hand scan attempt and its collaborators.

    Usage:
        session = ScanSession(config, on_reveal=play_video)
        await session.prepare()
        await session.begin()
        await session.pump.join()
    """

    def __init__(
        self,
        config: Optional[ScanConfig] = None,
        source=None,
        detector=None,
        on_reveal: Optional[Callable[[str], None]] = None,
        on_result: Optional[ResultCallback] = None,
        on_failure: Optional[Callable[[BaseException], None]] = None,
    ):
        """
        Initialize the session.

        Args:
            config: Session configuration (defaults used if None)
            source: Frame source (camera from config if None)
            detector: Landmark detector (MediaPipe from config if None)
            on_reveal: Called with the asset path when it is revealed
            on_result: Forwarded to the frame pump for drawing
            on_failure: Called with the error if capture dies mid-scan
        """
        self.config = config or ScanConfig()
        self.source = source or CameraFrameSource(
            camera_index=self.config.camera_index,
            mirror=self.config.mirror,
        )
        self.detector = detector or MediaPipeHandDetector(self.config.detector_options())
        self.machine = ScanStateMachine(
            threshold=self.config.detection_threshold,
            on_complete=self._on_complete,
            on_error=self._on_analysis_error,
        )
        self.pump = FramePump(
            self.source,
            self.detector,
            self.machine,
            on_result=on_result,
            max_fps=self.config.max_fps,
            on_failure=self._on_pump_failure,
        )
        self.on_reveal = on_reveal
        self.on_failure = on_failure

        self.status = SessionStatus.READY if self.detector.ready else SessionStatus.LOADING
        self.error = ""
        self.revealed = False
        self._reveal_handle: Optional[asyncio.TimerHandle] = None

    @property
    def snapshot(self) -> ScanSnapshot:
        return self.machine.snapshot()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.machine.subscribe(listener)

    async def prepare(self) -> None:
        """
        Load the hand detector.

        Raises:
            DetectorLoadError: If the detection library cannot be loaded
        """
        self.status = SessionStatus.LOADING
        try:
            await self.detector.load()
        except DetectorLoadError:
            self.status = SessionStatus.FAILED
            self.error = LOAD_FAILED_MESSAGE
            raise
        self.status = SessionStatus.READY
        self.error = ""

    async def begin(self) -> None:
        """
        Start the camera and the frame pump and await the left hand.

        Raises:
            DetectorNotReadyError: If prepare() has not completed
            FrameSourceError: If the camera cannot be started
        """
        if not self.detector.ready:
            self.error = NOT_READY_MESSAGE
            raise DetectorNotReadyError(NOT_READY_MESSAGE)

        if self.machine.step is not ScanStep.IDLE:
            logger.warning(f"Scan already in progress ({self.machine.step.value})")
            return

        # A previous attempt may still be finishing its last frame
        await self.pump.join()

        self.error = ""
        try:
            self.source.start(self.config.camera_constraints())
        except FrameSourceError as e:
            logger.error(f"Error accessing camera: {e}")
            self.status = SessionStatus.FAILED
            self.error = CAMERA_DENIED_MESSAGE
            raise

        await self.detector.configure(self.config.detector_options())
        self.machine.begin()
        self.status = SessionStatus.RUNNING
        self.pump.start()
        logger.info("Scan started")

    def stop_capture(self) -> None:
        """Stop the frame pump and release the camera. Idempotent."""
        self.pump.stop()
        self.source.stop()

    def reveal(self) -> None:
        """Reveal the terminal asset once."""
        self._reveal_handle = None
        if self.revealed:
            return
        self.revealed = True
        logger.info(f"Revealing {self.config.asset_path}")
        if self.on_reveal is not None:
            self.on_reveal(self.config.asset_path)

    def reset(self) -> None:
        """Stop capture and return to the initial state."""
        self.stop_capture()
        self._cancel_reveal()
        self.revealed = False
        self.error = ""
        self.machine.reset()
        self.status = SessionStatus.READY if self.detector.ready else SessionStatus.LOADING

    async def close(self) -> None:
        """Tear everything down (navigating away)."""
        self.pump.stop()
        self._cancel_reveal()
        await self.pump.join()
        self.source.stop()
        self.detector.close()
        logger.info("Scan session closed")

    def _cancel_reveal(self) -> None:
        if self._reveal_handle is not None:
            self._reveal_handle.cancel()
            self._reveal_handle = None

    def _on_complete(self) -> None:
        self.stop_capture()
        self.status = SessionStatus.COMPLETE
        loop = asyncio.get_running_loop()
        self._reveal_handle = loop.call_later(self.config.reveal_delay, self.reveal)

    def _on_pump_failure(self, error: BaseException) -> None:
        self.stop_capture()
        self.status = SessionStatus.FAILED
        self.error = CAPTURE_FAILED_MESSAGE
        if self.on_failure is not None:
            self.on_failure(error)

    def _on_analysis_error(self, error: BaseException) -> None:
        logger.debug(f"Frame analysis failed, counted as no hands: {error}")
