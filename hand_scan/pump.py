"""
Frame Pump - Continuous camera -> detector -> state machine loop.

Frames are handled strictly one at a time: the next frame is not requested
until the previous frame's result has been applied to the state machine.
After stop() no further observations are applied, including results of a
detection that was already in flight.
"""

import asyncio
import logging
from typing import Callable, Optional

import numpy as np

from .detector import DetectionResult
from .frame_gate import AnalysisGate, FrameGate
from .scan_state import ScanStateMachine

logger = logging.getLogger(__name__)

# Pause after an unusable camera read
INVALID_FRAME_SLEEP = 0.01

ResultCallback = Callable[[np.ndarray, Optional[DetectionResult]], None]


class FramePump:
    """
    Drives the state machine from a frame source and a landmark detector.

    The source must provide an async read() returning (ok, frame) and the
    detector an async analyze(frame) returning a DetectionResult.
    """

    def __init__(
        self,
        source,
        detector,
        machine: ScanStateMachine,
        on_result: Optional[ResultCallback] = None,
        max_fps: float = 0.0,
        on_failure: Optional[Callable[[BaseException], None]] = None,
    ):
        """
        Initialize the pump.

        Args:
            source: Frame source
            detector: Landmark detector
            machine: State machine receiving one observation per frame
            on_result: Called with (frame, result) after each analyzed frame;
                result is None when analysis failed
            max_fps: Rate cap in frames per second (0 = uncapped)
            on_failure: Called with the exception when the loop dies on an
                unexpected error (camera read, state machine hook)
        """
        self.source = source
        self.detector = detector
        self.machine = machine
        self.on_result = on_result
        self.max_fps = max_fps
        self.on_failure = on_failure

        self.frame_gate = FrameGate()
        self.analysis_gate = AnalysisGate()

        self._running = False
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self.frames_processed = 0
        self.results_discarded = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> asyncio.Task:
        """Schedule the pump on the running event loop."""
        if self._running and self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.create_task(self._pump(self._activate()))
        return self._task

    def stop(self) -> None:
        """Stop pumping. Idempotent; late results are discarded."""
        if not self._running:
            return
        self._running = False
        self._generation += 1
        logger.info(f"Frame pump stopped after {self.frames_processed} frames")

    async def join(self) -> None:
        """Wait for the pump task to finish."""
        if self._task is not None:
            await self._task

    def _active(self, generation: int) -> bool:
        return self._running and generation == self._generation

    def _activate(self) -> int:
        self._running = True
        self._generation += 1
        return self._generation

    async def run(self) -> None:
        """Pump frames in the current task until stop() is called."""
        if self._running:
            return
        await self._pump(self._activate())

    async def _pump(self, generation: int) -> None:
        logger.info("Frame pump started")
        try:
            await self._loop(generation)
        except Exception as e:
            logger.error(f"Frame pump failed: {e}")
            if self.on_failure is not None and self._active(generation):
                self.on_failure(e)
        finally:
            if generation == self._generation and self._running:
                self._running = False
                self._generation += 1

    async def _loop(self, generation: int) -> None:
        loop = asyncio.get_running_loop()
        target_dt = 1.0 / self.max_fps if self.max_fps > 0 else 0.0

        while self._active(generation):
            loop_start = loop.time()

            ok, frame = await self.source.read()
            if not self._active(generation):
                break

            checked = self.frame_gate.validate(ok, frame)
            if not checked.valid:
                await asyncio.sleep(INVALID_FRAME_SLEEP)
                continue

            success, outcome = await self.analysis_gate.process(
                self.detector.analyze, checked.frame
            )
            if not self._active(generation):
                self.results_discarded += 1
                logger.debug("Discarding detection result that arrived after stop")
                break

            if success:
                self.machine.observe(outcome.hands_found)
            else:
                self.machine.observe_error(outcome)
            self.frames_processed += 1

            if self.on_result is not None:
                try:
                    self.on_result(checked.frame, outcome if success else None)
                except Exception as e:
                    logger.error(f"Error in result callback: {e}")

            # Rate limiting
            elapsed = loop.time() - loop_start
            if elapsed < target_dt:
                await asyncio.sleep(target_dt - elapsed)
            else:
                await asyncio.sleep(0)
