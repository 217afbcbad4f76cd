"""
Hand Scan - Webcam hand scanning client.

Captures camera frames locally, runs MediaPipe hand detection on them and
walks the user through a two-step scan (left hand, then right hand) before
revealing a pre-recorded video.

NO NETWORK DEPENDENCIES.
"""

__version__ = "1.0.0"
