"""
Smoke tests for typed models and adapters.
"""

import time
import pytest
import numpy as np

from models.frame import FrameData
from models.detection import BoundingBox, Detection, DetectionBatch


def det(confidence, class_id, class_name=None):
    return Detection(BoundingBox(0, 0, 10, 10), confidence, class_id, class_name)


class TestBoundingBox:
    def test_properties(self):
        bbox = BoundingBox(x1=100, y1=100, x2=200, y2=150)
        assert bbox.width == 100
        assert bbox.height == 50

    def test_as_tuple(self):
        bbox = BoundingBox(x1=10.4, y1=20.6, x2=30.4, y2=40.6)
        assert bbox.as_tuple() == (10.4, 20.6, 30.4, 40.6)
        assert bbox.as_int_tuple() == (10, 21, 30, 41)

    def test_from_tuple(self):
        bbox = BoundingBox.from_tuple(np.array([1, 2, 3, 4], dtype=np.float32))
        assert bbox.as_tuple() == (1.0, 2.0, 3.0, 4.0)
        assert isinstance(bbox.x1, float)

    def test_immutable(self):
        bbox = BoundingBox(0, 0, 1, 1)
        with pytest.raises(AttributeError):
            bbox.x1 = 5


class TestDetection:
    def test_fields(self):
        d = Detection(BoundingBox(10, 20, 30, 40), confidence=0.9, class_id=2, class_name="car")
        assert d.bbox.x1 == 10
        assert d.bbox.y2 == 40
        assert d.confidence == 0.9
        assert d.class_name == "car"

    def test_class_name_optional(self):
        assert det(0.5, 3).class_name is None


class TestDetectionBatch:
    def make_batch(self):
        return DetectionBatch(
            detections=(det(0.9, 41, "cup"), det(0.3, 41, "cup"), det(0.8, 0, "person")),
            elapsed_ms=12.0,
            frame_index=3,
        )

    def test_empty(self):
        batch = DetectionBatch.empty(elapsed_ms=4.0)
        assert batch.is_empty
        assert len(batch) == 0
        assert batch.elapsed_ms == 4.0
        assert not batch.skipped

    def test_skip_marks_batch(self):
        batch = DetectionBatch.skip()
        assert batch.skipped
        assert batch.is_empty
        assert batch.elapsed_ms == 0.0

    def test_of_class(self):
        batch = self.make_batch()
        assert len(batch.of_class(41)) == 2
        assert len(batch.of_class(41, min_confidence=0.5)) == 1
        assert batch.of_class(7) == []

    def test_of_class_threshold_inclusive(self):
        assert len(self.make_batch().of_class(41, min_confidence=0.9)) == 1

    def test_class_ids(self):
        assert self.make_batch().class_ids() == [0, 41]

    def test_iteration(self):
        assert [d.class_name for d in self.make_batch()] == ["cup", "cup", "person"]


class TestFrameData:
    def test_from_numpy(self):
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        ts = time.time()
        fd = FrameData.from_numpy(frame, timestamp=ts, frame_index=42)

        assert fd.width == 640
        assert fd.height == 480
        assert fd.frame_index == 42
        assert fd.size == (640, 480)
        assert fd.shape == (480, 640, 3)

    @pytest.mark.parametrize("shape,order", [((4, 4), "GRAY"), ((4, 4, 3), "BGR"), ((4, 4, 4), "BGRA")])
    def test_channel_order_inferred(self, shape, order):
        assert FrameData.from_numpy(np.zeros(shape, dtype=np.uint8)).channel_order == order

    def test_explicit_channel_order(self):
        fd = FrameData.from_numpy(np.zeros((4, 4, 3), dtype=np.uint8), channel_order="RGB")
        assert fd.channel_order == "RGB"

    def test_copy_owns_buffer(self):
        frame = np.zeros((4, 4, 3), dtype=np.uint8)
        fd = FrameData.from_numpy(frame, frame_index=9, source="cam")

        copied = fd.copy()
        frame[:] = 255

        assert copied.frame.max() == 0
        assert copied.frame_index == 9
        assert copied.source == "cam"
