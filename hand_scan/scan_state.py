"""
Scan State Machine - Debounces per-frame hand detections into confirmations.

Each analyzed frame is reported as a hand count. A hand is confirmed only
after a threshold number of consecutive frames contain at least one hand. The
first confirmation is called the left hand and the second the right hand;
the detector's own handedness labels are not used.
"""

import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class ScanStep(str, Enum):
    """Active step of a scan attempt."""
    IDLE = "idle"
    AWAITING_LEFT_HAND = "left-hand"
    AWAITING_RIGHT_HAND = "right-hand"
    COMPLETE = "complete"


AWAITING_STEPS = (ScanStep.AWAITING_LEFT_HAND, ScanStep.AWAITING_RIGHT_HAND)


@dataclass(frozen=True)
class ScanSnapshot:
    """Read-only view of the state machine for the UI layer."""
    step: ScanStep
    tally: int
    left_confirmed: bool
    right_confirmed: bool
    threshold: int

    @property
    def progress(self) -> float:
        """Fraction of the threshold reached by the current tally."""
        return min(self.tally, self.threshold) / self.threshold

    @property
    def awaiting_hand(self) -> bool:
        return self.step in AWAITING_STEPS

    def as_dict(self) -> dict:
        d = asdict(self)
        d["step"] = self.step.value
        return d


Listener = Callable[[ScanSnapshot], None]


class ScanStateMachine:
    """
    Single-writer state machine for the hand scan.

    Manages:
    - The active ScanStep (strictly forward, reset is the only way back)
    - The consecutive detection tally for the active step
    - Left/right confirmation flags

    All transitions are synchronous so that each observation is applied
    atomically with respect to the frame pump.
    """

    def __init__(
        self,
        threshold: int = 30,
        on_complete: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ):
        """
        Initialize the state machine.

        Args:
            threshold: Consecutive hand frames required to confirm a hand
            on_complete: Called once when the scan reaches COMPLETE
            on_error: Called with analysis errors reported via observe_error
        """
        if threshold <= 0:
            raise ValueError(f"threshold must be positive, got {threshold}")

        self._threshold = threshold
        self.on_complete = on_complete
        self.on_error = on_error
        self._listeners: List[Listener] = []

        self._step = ScanStep.IDLE
        self._tally = 0
        self._left_confirmed = False
        self._right_confirmed = False

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def step(self) -> ScanStep:
        return self._step

    @property
    def tally(self) -> int:
        return self._tally

    @property
    def left_confirmed(self) -> bool:
        return self._left_confirmed

    @property
    def right_confirmed(self) -> bool:
        return self._right_confirmed

    @property
    def complete(self) -> bool:
        return self._step is ScanStep.COMPLETE

    def snapshot(self) -> ScanSnapshot:
        return ScanSnapshot(
            step=self._step,
            tally=self._tally,
            left_confirmed=self._left_confirmed,
            right_confirmed=self._right_confirmed,
            threshold=self._threshold,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for state changes.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def begin(self) -> None:
        """Start a scan attempt: IDLE -> AWAITING_LEFT_HAND."""
        if self._step is not ScanStep.IDLE:
            logger.debug(f"begin() ignored in step {self._step.value}")
            return
        self._set_step(ScanStep.AWAITING_LEFT_HAND)
        self._notify()

    def observe(self, hand_count: int) -> None:
        """
        Apply one analyzed frame.

        Args:
            hand_count: Number of hand landmark sets found in the frame
        """
        if hand_count < 0:
            raise ValueError(f"hand_count must be >= 0, got {hand_count}")

        if self._step not in AWAITING_STEPS:
            return

        if hand_count == 0:
            if self._tally == 0:
                return
            self._tally = 0
            self._notify()
            return

        self._tally += 1
        completed = False
        if self._tally >= self._threshold:
            self._tally = 0
            completed = self._confirm()
        self._notify()

        if completed and self.on_complete is not None:
            self.on_complete()

    def observe_error(self, error: BaseException) -> None:
        """Apply a frame whose analysis failed; counts as zero hands."""
        if self.on_error is not None:
            self.on_error(error)
        self.observe(0)

    def reset(self) -> None:
        """Return every entity to its initial value."""
        self._step = ScanStep.IDLE
        self._tally = 0
        self._left_confirmed = False
        self._right_confirmed = False
        logger.info("Scan reset")
        self._notify()

    def _confirm(self) -> bool:
        # Exactly one confirmation per threshold crossing
        if not self._left_confirmed:
            self._left_confirmed = True
            logger.info("Left hand confirmed")
            self._set_step(ScanStep.AWAITING_RIGHT_HAND)
            return False
        elif not self._right_confirmed:
            self._right_confirmed = True
            logger.info("Right hand confirmed, scan complete")
            self._set_step(ScanStep.COMPLETE)
            return True
        return False

    def _set_step(self, step: ScanStep) -> None:
        logger.debug(f"Step {self._step.value} -> {step.value}")
        self._step = step
        self._tally = 0

    def _notify(self) -> None:
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception as e:
                logger.error(f"Error in snapshot listener: {e}")
