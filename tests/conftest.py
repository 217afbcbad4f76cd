"""Shared fakes for the frame source and the landmark detector."""

import asyncio
import threading
from types import SimpleNamespace
from typing import Callable, Iterable, List, Optional

import numpy as np
import pytest

from hand_scan.detector import DetectionResult
from hand_scan.errors import CameraUnavailableError

HAND = [(0.5, 0.5, 0.0)] * 21


def make_frame(value: int = 0) -> np.ndarray:
    return np.full((4, 4, 3), value, dtype=np.uint8)


class FakeSource:
    """Frame source yielding scripted reads, then numbered frames forever."""

    def __init__(self, reads: Optional[Iterable] = None, fail_start: bool = False):
        self._reads = list(reads or [])
        self.fail_start = fail_start
        self.started = False
        self.start_calls = 0
        self.stop_calls = 0
        self.read_count = 0
        self.constraints = None

    def start(self, constraints=None) -> None:
        self.start_calls += 1
        if self.fail_start:
            raise CameraUnavailableError(0, "permission denied")
        self.constraints = constraints
        self.started = True

    def stop(self) -> None:
        self.stop_calls += 1
        self.started = False

    async def read(self):
        self.read_count += 1
        await asyncio.sleep(0)
        if self._reads:
            return self._reads.pop(0)
        return True, make_frame(self.read_count % 256)


class ScriptedDetector:
    """
    Detector returning scripted hand counts.

    Script items are hand counts or exceptions to raise. When the script
    runs out, on_exhausted is called (if set) and zero hands are reported.
    """

    def __init__(
        self,
        script: Iterable = (),
        ready: bool = True,
        default: int = 0,
        on_exhausted: Optional[Callable[[], None]] = None,
    ):
        self.script: List = list(script)
        self._ready = ready
        self.default = default
        self.on_exhausted = on_exhausted
        self.seen: List[int] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.configured = []
        self.closed = False

    @property
    def ready(self) -> bool:
        return self._ready

    async def load(self) -> None:
        self._ready = True

    async def configure(self, options) -> None:
        self.configured.append(options)

    async def analyze(self, frame: np.ndarray) -> DetectionResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.seen.append(int(frame[0, 0, 0]))
            await asyncio.sleep(0)
            if self.script:
                item = self.script.pop(0)
            else:
                if self.on_exhausted is not None:
                    self.on_exhausted()
                item = self.default
            if isinstance(item, BaseException):
                raise item
            return DetectionResult(hands_found=item, keypoints=[list(HAND)] * item)
        finally:
            self.in_flight -= 1

    def close(self) -> None:
        self.closed = True


class BlockingHands:
    """
    Model stand-in whose process() waits for release to be set.

    Every call is appended to the shared log, marked if the model had
    already been closed when processing finished.
    """

    def __init__(self, log: List[str]):
        self.log = log
        self.busy = threading.Event()
        self.release = threading.Event()
        self.closed = False

    def process(self, rgb):
        self.busy.set()
        self.release.wait(2.0)
        self.log.append("process on closed model" if self.closed else "process")
        return SimpleNamespace(multi_hand_landmarks=None)

    def close(self):
        self.closed = True
        self.log.append("close")


class BlockingHandsFactory:
    def __init__(self):
        self.log: List[str] = []
        self.built: List[BlockingHands] = []

    def __call__(self, options):
        hands = BlockingHands(self.log)
        self.built.append(hands)
        return hands


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def scripted_detector():
    return ScriptedDetector
