"""
Frame sources for the detector CLI.

Each source implements the FrameSource interface and returns FrameData
objects tagged with their channel order.
"""

from .base import FrameSource, SourceConfig
from .opencv_source import OpenCVSource, OpenCVSourceConfig

__all__ = [
    "FrameSource",
    "SourceConfig",
    "OpenCVSource",
    "OpenCVSourceConfig",
]
