"""
Detection pipeline for the on-device detector.

The pipeline decouples frame production from inference:
- Frames are offered to the DetectionScheduler at camera rate
- A single worker thread runs detection, dropping frames while busy
- Results are published as immutable DetectionState snapshots
"""

from .scheduler import DetectionScheduler, JobState
from .state import DetectionState, DetectionStateHolder

__all__ = [
    "DetectionScheduler",
    "JobState",
    "DetectionState",
    "DetectionStateHolder",
]
