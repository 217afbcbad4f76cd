"""
Preview Window - OpenCV rendering of the scan for the user.

Reads state only: it receives frames and detection results from the frame
pump, snapshots from the state machine, and the revealed asset path from
the session.
"""

import logging
from typing import List, Optional

import cv2
import numpy as np

from .detector import HAND_CONNECTIONS, DetectionResult, Keypoint
from .scan_state import ScanSnapshot, ScanStep
from .session import ScanSession, status_message

logger = logging.getLogger(__name__)

WINDOW_NAME = "Hand Scan"

# BGR colors
COLOR_CONNECTION = (0, 255, 0)
COLOR_LANDMARK = (0, 0, 255)
COLOR_GUIDE = (255, 255, 0)
COLOR_TEXT = (255, 255, 255)
COLOR_PROGRESS = (245, 85, 168)
COLOR_PROGRESS_BG = (81, 65, 55)

KEY_ACTIONS = {
    27: "quit",
    ord('q'): "quit",
    ord('Q'): "quit",
    ord('r'): "reset",
    ord('R'): "reset",
    ord(' '): "begin",
}


def draw_hand(frame: np.ndarray, keypoints: List[Keypoint]) -> None:
    """Draw one hand skeleton from normalized keypoints."""
    h, w = frame.shape[:2]
    pts = [(int(x * w), int(y * h)) for x, y, _ in keypoints]
    for a, b in HAND_CONNECTIONS:
        if a < len(pts) and b < len(pts):
            cv2.line(frame, pts[a], pts[b], COLOR_CONNECTION, 3)
    for p in pts:
        cv2.circle(frame, p, 4, COLOR_LANDMARK, -1)


def draw_hand_guide(frame: np.ndarray) -> None:
    """Draw a semi-transparent hand outline showing where to place the hand."""
    h, w = frame.shape[:2]
    cx, cy = w // 2, h // 2
    scale = min(w, h) * 0.3
    overlay = frame.copy()

    cv2.ellipse(
        overlay,
        (cx, int(cy + scale * 0.3)),
        (int(scale * 0.4), int(scale * 0.6)),
        0, 0, 360, COLOR_GUIDE, 3,
    )

    spacing = scale * 0.25
    base_x = cx - spacing * 1.5
    for i in range(4):
        fx = int(base_x + i * spacing)
        fy = int(cy - scale * 0.2)
        cv2.line(overlay, (fx, fy), (fx, int(fy - scale * 0.8)), COLOR_GUIDE, 3)

    # Thumb
    cv2.line(
        overlay,
        (int(cx - scale * 0.5), int(cy + scale * 0.2)),
        (int(cx - scale * 0.8), int(cy - scale * 0.3)),
        COLOR_GUIDE, 3,
    )

    cv2.addWeighted(overlay, 0.6, frame, 0.4, 0, dst=frame)
    text = "Place your hand here"
    size, _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, 0.8, 2)
    cv2.putText(
        frame, text, (cx - size[0] // 2, int(cy + scale * 1.2)),
        cv2.FONT_HERSHEY_SIMPLEX, 0.8, COLOR_TEXT, 2,
    )


def draw_status(frame: np.ndarray, snapshot: ScanSnapshot) -> None:
    """Status prompt, confirmation markers and progress bar."""
    h, w = frame.shape[:2]
    cv2.putText(frame, status_message(snapshot), (20, 40),
                cv2.FONT_HERSHEY_SIMPLEX, 0.9, COLOR_TEXT, 2)

    for i, (name, done) in enumerate((("L", snapshot.left_confirmed),
                                      ("R", snapshot.right_confirmed))):
        center = (w - 90 + i * 50, 35)
        color = (94, 197, 34) if done else (81, 65, 55)
        cv2.circle(frame, center, 18, color, -1)
        cv2.putText(frame, name, (center[0] - 8, center[1] + 7),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, COLOR_TEXT, 2)

    if snapshot.awaiting_hand and snapshot.tally > 0:
        x0, y0, bar_w = 20, h - 40, w - 40
        cv2.rectangle(frame, (x0, y0), (x0 + bar_w, y0 + 10), COLOR_PROGRESS_BG, -1)
        filled = int(bar_w * snapshot.progress)
        cv2.rectangle(frame, (x0, y0), (x0 + filled, y0 + 10), COLOR_PROGRESS, -1)


class PreviewWindow:
    """
    OpenCV window showing the camera, detections and scan progress, and
    playing the revealed asset once the scan completes.
    """

    def __init__(self, session: ScanSession, size=(1280, 720)):
        self.session = session
        self.size = size
        self._frame: Optional[np.ndarray] = None
        self._result: Optional[DetectionResult] = None
        self._asset: Optional[cv2.VideoCapture] = None
        self._snapshot = session.snapshot
        self._unsubscribe = session.subscribe(self._on_snapshot)

    def _on_snapshot(self, snapshot: ScanSnapshot) -> None:
        self._snapshot = snapshot
        if not snapshot.awaiting_hand:
            self._result = None
        if snapshot.step is ScanStep.IDLE:
            self._frame = None

    def on_result(self, frame: np.ndarray, result: Optional[DetectionResult]) -> None:
        """Frame pump callback."""
        self._frame = frame
        self._result = result

    def on_reveal(self, asset_path: str) -> None:
        """Session callback: start looping the asset."""
        cap = cv2.VideoCapture(asset_path)
        if not cap.isOpened():
            cap.release()
            logger.error(f"Unable to open asset {asset_path}")
            return
        self._asset = cap

    def _next_asset_frame(self) -> Optional[np.ndarray]:
        ok, frame = self._asset.read()
        if not ok:
            # Loop playback
            self._asset.set(cv2.CAP_PROP_POS_FRAMES, 0)
            ok, frame = self._asset.read()
        return frame if ok else None

    def render(self) -> np.ndarray:
        """Compose the current window contents."""
        if self._asset is not None:
            frame = self._next_asset_frame()
            if frame is not None:
                return frame

        snapshot = self._snapshot
        if self._frame is not None and not self.session.revealed and snapshot.step is not ScanStep.IDLE:
            frame = self._frame.copy()
        else:
            frame = np.zeros((self.size[1], self.size[0], 3), dtype=np.uint8)

        if snapshot.awaiting_hand:
            if self._result is not None and self._result.hands_found > 0:
                for hand in self._result.keypoints:
                    draw_hand(frame, hand)
            else:
                draw_hand_guide(frame)

        draw_status(frame, snapshot)
        if self.session.error:
            cv2.putText(frame, self.session.error, (20, 80),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 255), 2)
        return frame

    def show(self) -> Optional[str]:
        """
        Draw the window and poll the keyboard.

        Returns:
            "quit", "reset", "begin" or None
        """
        cv2.imshow(WINDOW_NAME, self.render())
        key = cv2.waitKey(1) & 0xFF
        return KEY_ACTIONS.get(key)

    def stop_asset(self) -> None:
        if self._asset is not None:
            self._asset.release()
            self._asset = None

    def close(self) -> None:
        self._unsubscribe()
        self.stop_asset()
        cv2.destroyAllWindows()
