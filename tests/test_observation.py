"""
Tests for observation layer.
"""

import time
from typing import Optional
from unittest import mock

import cv2
import numpy as np
import pytest

from models.config import CameraConfig
from models.frame import FrameData
from observation.base import FrameSource, SourceConfig
from observation.opencv_source import OpenCVSource, OpenCVSourceConfig


class MockSource(FrameSource):
    """Mock frame source for testing."""

    def __init__(self, config: SourceConfig, frames: list = None):
        super().__init__(config)
        self._frames = frames or []
        self._pos = 0

    def open(self) -> None:
        self._is_open = True
        self._pos = 0
        self._frame_index = 0

    def read(self) -> Optional[FrameData]:
        if not self._is_open or self._pos >= len(self._frames):
            return None

        frame = self._frames[self._pos]
        self._pos += 1
        self._frame_index += 1

        return FrameData.from_numpy(
            frame,
            timestamp=time.time(),
            frame_index=self._frame_index,
            source=self.source_id,
        )

    def close(self) -> None:
        self._is_open = False


class FakeCapture:
    """Stand-in for cv2.VideoCapture driven by a list of read results."""

    def __init__(self, opened=True, reads=()):
        self.opened = opened
        self.reads = list(reads)
        self.props = {}
        self.released = False

    def isOpened(self):
        return self.opened and not self.released

    def read(self):
        if not self.reads:
            return False, None
        return self.reads.pop(0)

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def get(self, prop):
        return self.props.get(prop, 0)

    def release(self):
        self.released = True


def frame_bgr(value=0):
    return np.full((48, 64, 3), value, dtype=np.uint8)


class TestSourceConfig:
    def test_default_config(self):
        config = SourceConfig()
        assert config.source_id == "camera"
        assert config.resolution is None
        assert config.fps is None


class TestOpenCVSourceConfig:
    def test_from_camera_config(self):
        camera_cfg = CameraConfig(device_id="videos/desk.mp4", resolution=[1280, 720], fps=30)

        config = OpenCVSourceConfig.from_camera_config(camera_cfg, source_id="desk")

        assert config.source_id == "desk"
        assert config.device_id == "videos/desk.mp4"
        assert config.resolution == (1280, 720)
        assert config.fps == 30
        assert config.buffer_size == 1

    def test_defaults_without_resolution(self):
        config = OpenCVSourceConfig.from_camera_config(CameraConfig())
        assert config.device_id == 0
        assert config.resolution is None


class TestMockSource:
    def test_source_lifecycle(self):
        config = SourceConfig(source_id="test")
        frames = [np.zeros((100, 100, 3), dtype=np.uint8) for _ in range(3)]
        source = MockSource(config, frames)

        assert not source.is_open
        source.open()
        assert source.is_open
        assert source.frame_index == 0

        fd = source.read()
        assert fd is not None
        assert fd.source == "test"
        assert fd.frame_index == 1
        assert source.frame_index == 1

        source.close()
        assert not source.is_open

    def test_context_manager(self):
        config = SourceConfig(source_id="ctx-test")
        frames = [np.zeros((50, 50, 3), dtype=np.uint8) for _ in range(2)]

        with MockSource(config, frames) as source:
            assert source.is_open
            count = sum(1 for _ in source)
            assert count == 2

        assert not source.is_open

    def test_iteration_requires_open(self):
        source = MockSource(SourceConfig(), [])

        with pytest.raises(RuntimeError, match="must be open"):
            list(source)


class TestOpenCVSource:
    def test_open_failure_raises(self):
        with mock.patch("observation.opencv_source.cv2.VideoCapture", return_value=FakeCapture(opened=False)):
            source = OpenCVSource(OpenCVSourceConfig(device_id=3, max_retries=1))
            with pytest.raises(RuntimeError, match="Failed to open"):
                source.open()
        assert not source.is_open

    def test_camera_properties_applied(self):
        cap = FakeCapture()
        with mock.patch("observation.opencv_source.cv2.VideoCapture", return_value=cap):
            source = OpenCVSource(OpenCVSourceConfig(device_id=0, resolution=(1280, 720), fps=15))
            source.open()

        assert cap.props[cv2.CAP_PROP_FRAME_WIDTH] == 1280
        assert cap.props[cv2.CAP_PROP_FRAME_HEIGHT] == 720
        assert cap.props[cv2.CAP_PROP_FPS] == 15
        assert cap.props[cv2.CAP_PROP_BUFFERSIZE] == 1

    def test_read_tags_frames_as_bgr(self):
        cap = FakeCapture(reads=[(True, frame_bgr(1)), (True, frame_bgr(2))])
        with mock.patch("observation.opencv_source.cv2.VideoCapture", return_value=cap):
            source = OpenCVSource(OpenCVSourceConfig(source_id="cam", device_id=0))
            source.open()
            first = source.read()
            second = source.read()

        assert first.channel_order == "BGR"
        assert first.size == (64, 48)
        assert first.source == "cam"
        assert [first.frame_index, second.frame_index] == [1, 2]

    def test_camera_reconnects_after_read_failure(self):
        broken = FakeCapture(reads=[(False, None)])
        fresh = FakeCapture(reads=[(True, frame_bgr(7))])
        with mock.patch("observation.opencv_source.cv2.VideoCapture", side_effect=[broken, fresh]):
            source = OpenCVSource(OpenCVSourceConfig(device_id=0, max_retries=1))
            source.open()
            fd = source.read()

        assert fd is not None
        assert fd.frame[0, 0, 0] == 7
        assert broken.released

    def test_camera_gives_up_after_repeated_failures(self):
        caps = [FakeCapture() for _ in range(5)]
        with mock.patch("observation.opencv_source.cv2.VideoCapture", side_effect=caps):
            source = OpenCVSource(OpenCVSourceConfig(device_id=0, max_retries=1, max_read_failures=1))
            source.open()
            assert source.read() is None
            assert source.read() is None

    def test_file_ends_with_none(self, tmp_path):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"")
        cap = FakeCapture(reads=[(True, frame_bgr())])
        with mock.patch("observation.opencv_source.cv2.VideoCapture", return_value=cap):
            source = OpenCVSource(OpenCVSourceConfig(device_id=str(video)))
            source.open()
            frames = list(source)

        assert len(frames) == 1
        assert source.is_file

    def test_close_releases_capture(self):
        cap = FakeCapture()
        with mock.patch("observation.opencv_source.cv2.VideoCapture", return_value=cap):
            source = OpenCVSource(OpenCVSourceConfig(device_id=0))
            source.open()
        source.close()
        source.close()

        assert cap.released
        assert not source.is_open
        assert source.read() is None

    def test_source_id_property(self):
        config = OpenCVSourceConfig(source_id="my-camera", device_id=0)
        source = OpenCVSource(config)
        assert source.source_id == "my-camera"
        assert not source.is_file
