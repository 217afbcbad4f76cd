"""Tests for ScanSession (begin, completion, reveal, reset)."""

import asyncio

import pytest

from conftest import BlockingHandsFactory, FakeSource, ScriptedDetector
from hand_scan.camera import CameraConstraints
from hand_scan.config import ScanConfig
from hand_scan.detector import DetectorOptions, MediaPipeHandDetector
from hand_scan.errors import CameraUnavailableError, DetectorLoadError, DetectorNotReadyError
from hand_scan.scan_state import ScanSnapshot, ScanStep
from hand_scan.session import (
    CAMERA_DENIED_MESSAGE,
    CAPTURE_FAILED_MESSAGE,
    LOAD_FAILED_MESSAGE,
    NOT_READY_MESSAGE,
    ScanSession,
    SessionStatus,
    status_message,
)


def make_session(threshold=3, reveal_delay=0.0, source=None, detector=None, reveals=None):
    config = ScanConfig(detection_threshold=threshold, reveal_delay=reveal_delay, asset_path="clip.mp4")
    return ScanSession(
        config,
        source=source or FakeSource(),
        detector=detector or ScriptedDetector(default=1),
        on_reveal=reveals.append if reveals is not None else None,
    )


async def wait_for(predicate, timeout=2.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


class TestBegin:
    """Entry point and startup failures."""

    def test_begin_before_ready_raises_not_ready(self):
        session = make_session(detector=ScriptedDetector(ready=False))
        assert session.status is SessionStatus.LOADING

        with pytest.raises(DetectorNotReadyError):
            asyncio.run(session.begin())

        assert session.error == NOT_READY_MESSAGE
        assert session.machine.step is ScanStep.IDLE
        assert session.source.start_calls == 0

    def test_prepare_loads_detector(self):
        session = make_session(detector=ScriptedDetector(ready=False))
        asyncio.run(session.prepare())
        assert session.status is SessionStatus.READY
        assert session.detector.ready

    def test_prepare_failure_is_surfaced(self):
        def broken_factory(options):
            raise ImportError("no mediapipe")

        session = make_session(detector=MediaPipeHandDetector(hands_factory=broken_factory))

        with pytest.raises(DetectorLoadError):
            asyncio.run(session.prepare())

        assert session.status is SessionStatus.FAILED
        assert session.error == LOAD_FAILED_MESSAGE

    def test_camera_failure_is_fatal(self):
        source = FakeSource(fail_start=True)
        session = make_session(source=source)

        with pytest.raises(CameraUnavailableError):
            asyncio.run(session.begin())

        assert session.status is SessionStatus.FAILED
        assert session.error == CAMERA_DENIED_MESSAGE
        assert session.machine.step is ScanStep.IDLE
        assert not session.pump.running
        assert source.start_calls == 1

    def test_begin_starts_camera_and_configures_detector(self):
        detector = ScriptedDetector()
        source = FakeSource()
        session = make_session(source=source, detector=detector)

        async def go():
            await session.begin()
            assert session.pump.running
            session.reset()
            await session.pump.join()

        asyncio.run(go())

        assert source.constraints == CameraConstraints(width=1280, height=720)
        assert detector.configured == [DetectorOptions()]


class TestCompletion:
    """Completion stops capture and reveals the asset once."""

    def test_full_scan_reveals_asset(self):
        reveals = []
        source = FakeSource()
        session = make_session(threshold=3, reveal_delay=0.01, source=source, reveals=reveals)

        async def go():
            await session.begin()
            await wait_for(lambda: session.revealed)
            await session.pump.join()
            # Give any stray callbacks a chance to run
            await asyncio.sleep(0.05)

        asyncio.run(go())

        assert session.machine.step is ScanStep.COMPLETE
        assert session.machine.left_confirmed and session.machine.right_confirmed
        assert session.status is SessionStatus.COMPLETE
        assert reveals == ["clip.mp4"]
        assert not source.started
        assert not session.pump.running
        assert session.pump.frames_processed == 6

    def test_reveal_waits_for_delay(self):
        reveals = []
        session = make_session(threshold=1, reveal_delay=0.2, reveals=reveals)

        async def go():
            await session.begin()
            await wait_for(lambda: session.machine.complete)
            assert not session.revealed
            await wait_for(lambda: session.revealed)

        asyncio.run(go())
        assert reveals == ["clip.mp4"]

    def test_reveal_is_one_shot(self):
        reveals = []
        session = make_session(reveals=reveals)
        session.reveal()
        session.reveal()
        assert reveals == ["clip.mp4"]

    def test_reset_cancels_pending_reveal(self):
        reveals = []
        session = make_session(threshold=1, reveal_delay=0.1, reveals=reveals)

        async def go():
            await session.begin()
            await wait_for(lambda: session.machine.complete)
            session.reset()
            await asyncio.sleep(0.2)

        asyncio.run(go())

        assert reveals == []
        assert not session.revealed
        assert session.machine.step is ScanStep.IDLE
        assert session.status is SessionStatus.READY


class TestResetAndClose:
    """reset() and close()."""

    def test_reset_mid_scan(self):
        source = FakeSource()
        session = make_session(threshold=100, source=source)

        async def go():
            await session.begin()
            await wait_for(lambda: session.machine.tally > 3)
            session.reset()
            await session.pump.join()

        asyncio.run(go())

        snap = session.snapshot
        assert snap.step is ScanStep.IDLE
        assert snap.tally == 0
        assert not snap.left_confirmed and not snap.right_confirmed
        assert not source.started
        assert session.error == ""

    def test_scan_can_restart_after_reset(self):
        reveals = []
        session = make_session(threshold=2, reveals=reveals)

        async def go():
            await session.begin()
            await wait_for(lambda: session.revealed)
            session.reset()
            await session.begin()
            await wait_for(lambda: session.revealed)

        asyncio.run(go())
        assert reveals == ["clip.mp4", "clip.mp4"]

    def test_close_releases_everything(self):
        detector = ScriptedDetector()
        source = FakeSource()
        session = make_session(threshold=100, source=source, detector=detector)

        async def go():
            await session.begin()
            await session.close()

        asyncio.run(go())

        assert detector.closed
        assert not source.started
        assert not session.pump.running


class TestStatusMessage:
    """User prompts."""

    @pytest.mark.parametrize("step,tally,expected", [
        (ScanStep.IDLE, 0, "Press SPACE to start scanning"),
        (ScanStep.AWAITING_LEFT_HAND, 0, "Position your left hand in the camera view"),
        (ScanStep.AWAITING_LEFT_HAND, 12, "Detecting left hand... (12/30)"),
        (ScanStep.AWAITING_RIGHT_HAND, 0, "Position your right hand in the camera view"),
        (ScanStep.AWAITING_RIGHT_HAND, 29, "Detecting right hand... (29/30)"),
        (ScanStep.COMPLETE, 0, "Scanning complete!"),
    ])
    def test_messages(self, step, tally, expected):
        snap = ScanSnapshot(step=step, tally=tally, left_confirmed=False,
                            right_confirmed=False, threshold=30)
        assert status_message(snap) == expected


class TestLifecycleOrdering:
    """Nothing is closed or released while a worker thread is using it."""

    def test_restart_waits_for_frame_in_progress(self):
        factory = BlockingHandsFactory()
        detector = MediaPipeHandDetector(hands_factory=factory)
        source = FakeSource()
        session = make_session(threshold=100, source=source, detector=detector)

        async def go():
            await session.prepare()
            await session.begin()
            model = factory.built[0]
            assert await asyncio.to_thread(model.busy.wait, 1.0)

            session.reset()
            restart = asyncio.create_task(session.begin())
            await asyncio.sleep(0.05)
            assert not restart.done()
            assert source.start_calls == 1

            model.release.set()
            await asyncio.wait_for(restart, 1.0)
            assert session.pump.running
            await session.close()

        asyncio.run(go())

        assert "process on closed model" not in factory.log
        assert factory.log[-1] == "close"
        assert len(factory.built) == 1
        assert session.pump.results_discarded >= 1


class BrokenSource(FakeSource):
    async def read(self):
        raise OSError("device unplugged")


class TestCaptureFailure:
    """Unexpected errors inside the frame loop."""

    def test_raising_listener_does_not_stop_scan(self):
        reveals = []
        session = make_session(threshold=3, reveals=reveals)

        def broken_listener(snapshot):
            if snapshot.tally == 2:
                raise ValueError("ui bug")

        session.subscribe(broken_listener)

        async def go():
            await session.begin()
            await wait_for(lambda: session.revealed)

        asyncio.run(go())

        assert session.status is SessionStatus.COMPLETE
        assert reveals == ["clip.mp4"]

    def test_source_error_fails_session(self):
        failures = []
        source = BrokenSource()
        session = ScanSession(
            ScanConfig(detection_threshold=3),
            source=source,
            detector=ScriptedDetector(default=1),
            on_failure=failures.append,
        )

        async def go():
            await session.begin()
            await asyncio.wait_for(session.pump.join(), 1.0)

        asyncio.run(go())

        assert session.status is SessionStatus.FAILED
        assert session.error == CAPTURE_FAILED_MESSAGE
        assert not session.pump.running
        assert not source.started
        assert len(failures) == 1
        assert isinstance(failures[0], OSError)

    def test_reset_after_failure_allows_restart(self):
        session = make_session(source=BrokenSource())

        async def go():
            await session.begin()
            await session.pump.join()
            session.reset()

        asyncio.run(go())

        assert session.status is SessionStatus.READY
        assert session.error == ""
        assert session.machine.step is ScanStep.IDLE
