"""
Typed models for the detection pipeline.

Frames, detections and configuration are plain dataclasses so they can be
handed between threads without locking.
"""

from .frame import FrameData
from .detection import BoundingBox, Detection, DetectionBatch
from .config import (
    Config,
    CameraConfig,
    ModelConfig,
    BackendConfig,
    DetectorConfig,
    SchedulerConfig,
)

__all__ = [
    # Frame
    "FrameData",
    # Detection
    "BoundingBox",
    "Detection",
    "DetectionBatch",
    # Config
    "Config",
    "CameraConfig",
    "ModelConfig",
    "BackendConfig",
    "DetectorConfig",
    "SchedulerConfig",
]
