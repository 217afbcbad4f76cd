#!/usr/bin/env python3
"""
Hand Scan Client - Main Entry Point

Opens the webcam, detects hands with MediaPipe and confirms the left hand
then the right hand before revealing the prediction video.

Usage:
    python -m hand_scan.main --camera 0 --preview
    python -m hand_scan.main --threshold 15 --asset meme.mp4
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from .config import (
    DEFAULT_ASSET_PATH,
    DEFAULT_DETECTION_THRESHOLD,
    DEFAULT_REVEAL_DELAY,
    ScanConfig,
)
from .errors import ScanError
from .preview import PreviewWindow
from .scan_state import ScanSnapshot, ScanStep
from .session import ScanSession, status_message

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Preview refresh rate (Hz)
UI_RATE = 30.0


class ScanClient:
    """
    Main client that integrates all components:
    - Scan session (camera, detector, frame pump, state machine)
    - Optional OpenCV preview window
    - Status logging
    """

    def __init__(self, config: ScanConfig):
        self.config = config
        self.session = ScanSession(
            config,
            on_reveal=self._on_reveal,
            on_failure=self._on_failure,
        )
        self.preview: Optional[PreviewWindow] = None
        self._running = False
        self._stopped = False
        self._finished = asyncio.Event()
        self._last_message = ""

        if config.show_preview:
            self.preview = PreviewWindow(self.session, size=(config.width, config.height))
            self.session.pump.on_result = self.preview.on_result

        self.session.subscribe(self._log_progress)

    async def start(self) -> None:
        """Load the detector; without a preview the scan begins immediately."""
        logger.info("Starting Hand Scan Client...")
        await self.session.prepare()
        self._running = True

        if self.preview is None:
            await self.session.begin()
        logger.info("Hand Scan Client started")

    async def stop(self) -> None:
        """Stop the client and clean up resources."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("Stopping Hand Scan Client...")
        self._running = False
        self._finished.set()
        await self.session.close()
        if self.preview is not None:
            self.preview.close()
        logger.info("Hand Scan Client stopped")

    async def run(self) -> None:
        """Main loop."""
        if self.preview is None:
            await self._finished.wait()
            return

        target_dt = 1.0 / UI_RATE
        while self._running:
            action = self.preview.show()
            if action == "quit":
                logger.info("Quit requested")
                self._running = False
            elif action == "reset":
                self.preview.stop_asset()
                self.session.reset()
            elif action == "begin" and self.session.machine.step is ScanStep.IDLE:
                try:
                    await self.session.begin()
                except ScanError as e:
                    logger.error(f"Unable to start scan: {e}")
            await asyncio.sleep(target_dt)

    def _on_reveal(self, asset_path: str) -> None:
        if self.preview is not None:
            self.preview.on_reveal(asset_path)
        else:
            logger.info(f"Prediction ready: {asset_path}")
        self._finished.set()

    def _on_failure(self, error: BaseException) -> None:
        logger.error(f"Scan aborted: {error}")
        # The preview stays open so the user can reset
        if self.preview is None:
            self._finished.set()

    def _log_progress(self, snapshot: ScanSnapshot) -> None:
        message = status_message(snapshot)
        # Log each prompt once and progress in steps of 10 frames
        if snapshot.tally and snapshot.tally % 10:
            return
        if message != self._last_message:
            self._last_message = message
            logger.info(message)


async def main_async(args: argparse.Namespace) -> None:
    """Async main entry point."""
    client = ScanClient(ScanConfig.from_args(args))

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Shutdown signal received")
        asyncio.create_task(client.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await client.start()
        await client.run()
    except ScanError as e:
        logger.error(f"Scan error: {e}")
    finally:
        await client.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Webcam Hand Scan",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--camera",
        type=int,
        default=0,
        help="Camera device index",
    )
    parser.add_argument(
        "--width",
        type=int,
        default=1280,
        help="Requested capture width",
    )
    parser.add_argument(
        "--height",
        type=int,
        default=720,
        help="Requested capture height",
    )
    parser.add_argument(
        "--no-mirror",
        action="store_true",
        help="Do not flip frames horizontally",
    )
    parser.add_argument(
        "--threshold",
        type=int,
        default=DEFAULT_DETECTION_THRESHOLD,
        help="Consecutive frames with a hand needed to confirm it",
    )
    parser.add_argument(
        "--max-hands",
        type=int,
        default=2,
        help="Maximum hands detected per frame",
    )
    parser.add_argument(
        "--model-complexity",
        type=int,
        choices=(0, 1),
        default=1,
        help="MediaPipe model complexity",
    )
    parser.add_argument(
        "--min-detection-confidence",
        type=float,
        default=0.5,
        help="MediaPipe minimum detection confidence",
    )
    parser.add_argument(
        "--min-tracking-confidence",
        type=float,
        default=0.5,
        help="MediaPipe minimum tracking confidence",
    )
    parser.add_argument(
        "--reveal-delay",
        type=float,
        default=DEFAULT_REVEAL_DELAY,
        help="Seconds between scan completion and the reveal",
    )
    parser.add_argument(
        "--asset",
        type=str,
        default=DEFAULT_ASSET_PATH,
        help="Video revealed when the scan completes",
    )
    parser.add_argument(
        "--max-fps",
        type=float,
        default=0.0,
        help="Frame pump rate cap (0 = camera rate)",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Show preview window",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main() -> None:
    """Main entry point."""
    args = build_parser().parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        asyncio.run(main_async(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()
