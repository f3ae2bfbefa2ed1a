"""
OpenCV frame source for cameras and video files.

Frames come out of cv2.VideoCapture in BGR order and are tagged as such, so
the tensor codec converts them to the network's channel order.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Optional, Union

import cv2

from models.config import CameraConfig
from models.frame import FrameData
from .base import FrameSource, SourceConfig


@dataclass
class OpenCVSourceConfig(SourceConfig):
    """
    Attributes:
        device_id: Camera index (int) or video file path (str).
        max_retries: Attempts to open a camera before giving up.
        max_read_failures: Consecutive camera read failures before read()
            gives up and returns None.
        buffer_size: Capture buffer size; 1 keeps live frames fresh.
    """
    device_id: Union[int, str] = 0
    max_retries: int = 3
    max_read_failures: int = 3
    buffer_size: int = 1

    @classmethod
    def from_camera_config(cls, camera: CameraConfig, source_id: str = "camera") -> "OpenCVSourceConfig":
        """Adapter: Create from the typed camera config section."""
        return cls(
            source_id=source_id,
            resolution=tuple(camera.resolution) if camera.resolution else None,
            fps=camera.fps,
            device_id=camera.device_id,
        )


class OpenCVSource(FrameSource):
    """
    cv2.VideoCapture wrapper returning FrameData.

    Cameras are reopened on transient read failures; files end with None.
    """

    def __init__(self, config: OpenCVSourceConfig):
        super().__init__(config)
        self._cv_config = config
        self._cap: Optional[cv2.VideoCapture] = None
        self._read_failures = 0

    @property
    def device_id(self) -> Union[int, str]:
        return self._cv_config.device_id

    @property
    def is_file(self) -> bool:
        return isinstance(self.device_id, str) and os.path.exists(self.device_id)

    def open(self) -> None:
        if self._is_open:
            return
        self._connect()
        self._is_open = True
        self._frame_index = 0
        logging.info(f"OpenCVSource opened: source_id={self.source_id}, device={self.device_id}")

    def _connect(self) -> None:
        cfg = self._cv_config
        for attempt in range(max(1, cfg.max_retries)):
            if self._cap is not None:
                self._cap.release()
            if attempt > 0:
                wait_time = min(2 ** attempt, 10)
                logging.info(f"Retrying open of {self.device_id} in {wait_time}s ({attempt + 1}/{cfg.max_retries})")
                time.sleep(wait_time)

            self._cap = cv2.VideoCapture(self.device_id)
            if self._cap.isOpened() or self.is_file:
                break

        if self._cap is None or not self._cap.isOpened():
            if self._cap is not None:
                self._cap.release()
            self._cap = None
            raise RuntimeError(f"Failed to open video source {self.device_id}")

        if isinstance(self.device_id, int):
            if cfg.resolution:
                w, h = cfg.resolution
                self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
                self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
            if cfg.fps:
                self._cap.set(cv2.CAP_PROP_FPS, cfg.fps)
            self._cap.set(cv2.CAP_PROP_BUFFERSIZE, cfg.buffer_size)

    def read(self) -> Optional[FrameData]:
        if not self._is_open or self._cap is None:
            return None

        ret, frame = self._cap.read()
        if not ret or frame is None:
            if self.is_file:
                logging.info("End of video file reached")
                return None
            self._read_failures += 1
            if self._read_failures > self._cv_config.max_read_failures:
                logging.error(f"Too many consecutive read failures ({self._read_failures})")
                return None
            logging.warning(f"Failed to read frame ({self._read_failures}), reconnecting")
            try:
                self._connect()
            except RuntimeError as e:
                logging.error(f"Reconnect failed: {e}")
                return None
            ret, frame = self._cap.read()
            if not ret or frame is None:
                return None

        self._read_failures = 0
        self._frame_index += 1
        return FrameData.from_numpy(
            frame,
            timestamp=time.time(),
            frame_index=self._frame_index,
            source=self.source_id,
            channel_order="BGR" if frame.ndim == 3 and frame.shape[2] == 3 else None,
        )

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        if self._is_open:
            logging.info(f"OpenCVSource closed: source_id={self.source_id}")
        self._is_open = False
