"""
FrameData model for captured video frames.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

CHANNEL_ORDERS = ("BGR", "RGB", "BGRA", "RGBA", "GRAY")


@dataclass(frozen=True)
class FrameData:
    """
    Metadata and payload for a captured video frame.

    The pixel buffer belongs to the caller. Pipeline components read it
    during a single call and never keep a reference afterwards.

    Attributes:
        frame: The raw frame data as a numpy array (HxWxC or HxW, uint8).
        width: Frame width in pixels.
        height: Frame height in pixels.
        timestamp: Unix timestamp when frame was captured.
        frame_index: Sequential frame number since start.
        source: Identifier for the camera/video source.
        channel_order: Channel layout of `frame` (BGR for OpenCV captures).
    """
    frame: np.ndarray
    width: int
    height: int
    timestamp: float
    frame_index: int = 0
    source: Optional[str] = None
    channel_order: str = "BGR"

    @classmethod
    def from_numpy(
        cls,
        frame: np.ndarray,
        timestamp: float = 0.0,
        frame_index: int = 0,
        source: Optional[str] = None,
        channel_order: Optional[str] = None,
    ) -> "FrameData":
        """Create FrameData from a numpy array, inferring the channel order when not given."""
        h, w = frame.shape[:2]
        if channel_order is None:
            channels = 1 if frame.ndim == 2 else frame.shape[2]
            channel_order = {1: "GRAY", 3: "BGR", 4: "BGRA"}.get(channels, "BGR")
        return cls(
            frame=frame,
            width=w,
            height=h,
            timestamp=timestamp,
            frame_index=frame_index,
            source=source,
            channel_order=channel_order,
        )

    @property
    def shape(self) -> Tuple[int, ...]:
        """Return the raw array shape (height, width[, channels])."""
        return self.frame.shape

    @property
    def size(self) -> Tuple[int, int]:
        """Return (width, height)."""
        return (self.width, self.height)

    def copy(self) -> "FrameData":
        """Return a FrameData with a private copy of the pixel buffer."""
        return FrameData(
            frame=self.frame.copy(),
            width=self.width,
            height=self.height,
            timestamp=self.timestamp,
            frame_index=self.frame_index,
            source=self.source,
            channel_order=self.channel_order,
        )
