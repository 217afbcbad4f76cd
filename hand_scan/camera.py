"""
Camera Frame Source - OpenCV capture for the frame pump.

Opening the camera is the only fatal failure of a scan session: if the
device cannot be opened, CameraUnavailableError is raised and no retry is
attempted.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from .errors import CameraUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class CameraConstraints:
    """Requested capture properties."""
    width: int = 1280
    height: int = 720


class CameraFrameSource:
    """
    Frame source backed by cv2.VideoCapture.

    Frames are read in a worker thread so the event loop is never blocked
    by the camera driver.
    """

    def __init__(
        self,
        camera_index: int = 0,
        mirror: bool = True,
    ):
        """
        Initialize the frame source.

        Args:
            camera_index: Camera device index
            mirror: Flip frames horizontally (user-facing camera)
        """
        self.camera_index = camera_index
        self.mirror = mirror
        self.cap: Optional[cv2.VideoCapture] = None
        # VideoCapture is not thread-safe: read and release never overlap
        self._cap_lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self.cap is not None

    def start(self, constraints: Optional[CameraConstraints] = None) -> None:
        """
        Open the camera.

        Raises:
            CameraUnavailableError: If the device cannot be opened
        """
        if self.cap is not None:
            return

        constraints = constraints or CameraConstraints()
        logger.info(f"Opening camera index: {self.camera_index}")
        cap = cv2.VideoCapture(self.camera_index)

        if not cap.isOpened():
            cap.release()
            logger.error("Failed to open camera source")
            raise CameraUnavailableError(self.camera_index)

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)

        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        fps = cap.get(cv2.CAP_PROP_FPS)
        logger.info(f"Camera opened: {width}x{height} @ {fps:.1f} fps")

        with self._cap_lock:
            self.cap = cap

    def read_now(self) -> Tuple[bool, Optional[np.ndarray]]:
        """Synchronously pull the current frame."""
        with self._cap_lock:
            if self.cap is None:
                return False, None
            ok, frame = self.cap.read()

        if ok and frame is not None and self.mirror:
            frame = cv2.flip(frame, 1)
        return ok, frame

    async def read(self) -> Tuple[bool, Optional[np.ndarray]]:
        """Pull the current frame without blocking the event loop."""
        if self.cap is None:
            return False, None
        return await asyncio.to_thread(self.read_now)

    def stop(self) -> None:
        """
        Release the camera. Safe to call more than once.

        A read in progress in a worker thread finishes before the device
        is released.
        """
        with self._cap_lock:
            cap, self.cap = self.cap, None
        if cap is None:
            return
        cap.release()
        logger.info("Camera released")
