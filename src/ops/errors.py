"""
Error types for the detection pipeline.

Construction-time faults (bad assets, no usable backend) propagate to the
caller. Per-frame faults are recorded and degrade to "no detections" for that
frame; they never escape the detector facade.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all detection pipeline errors."""


class AssetError(PipelineError):
    """Model or label file is missing, unreadable or has an unexpected shape."""


class BackendError(PipelineError):
    """An inference backend tier could not be created."""

    def __init__(self, message: str, tier: str | None = None):
        super().__init__(message)
        self.tier = tier


class InferenceError(PipelineError):
    """A single inference call failed."""


class DecodeError(PipelineError):
    """The raw model output does not match the declared output shape."""
