"""
physio-track: live exercise telemetry from body-pose keypoints.

Frames from an external pose detector are normalized, windowed, and
classified by a bidirectional LSTM into exercise type, repetition phase, and
form quality. A small state machine turns the phase stream into a rep count.
"""

__version__ = "0.1.0"
