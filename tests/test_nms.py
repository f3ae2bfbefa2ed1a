"""
Tests for class-aware non-maximum suppression.
"""

import numpy as np
import pytest

from detection.nms import CLASS_OFFSET, box_iou, suppress


class TestBoxIou:
    def test_identical_boxes(self):
        assert box_iou((0, 0, 10, 10), (0, 0, 10, 10)) == pytest.approx(1.0, abs=1e-6)

    def test_disjoint_boxes(self):
        assert box_iou((0, 0, 10, 10), (20, 20, 30, 30)) == 0.0

    def test_touching_boxes(self):
        assert box_iou((0, 0, 10, 10), (10, 0, 20, 10)) == 0.0

    def test_partial_overlap(self):
        assert box_iou((0, 0, 100, 100), (0, 0, 100, 90)) == pytest.approx(0.9, abs=1e-6)


class TestSuppress:
    def test_high_overlap_same_class_keeps_best(self):
        boxes = [[0, 0, 100, 100], [0, 0, 100, 90]]
        keep = suppress(boxes, [0.8, 0.9], [0, 0], 0.25, 0.45)
        assert keep == [1]

    def test_different_classes_never_suppress_each_other(self):
        boxes = [[0, 0, 100, 100], [0, 0, 100, 100]]
        keep = suppress(boxes, [0.9, 0.8], [0, 1], 0.25, 0.45)
        assert sorted(keep) == [0, 1]

    def test_iou_equal_to_threshold_not_suppressed(self):
        """Suppression needs IoU strictly above the threshold."""
        boxes = [[0, 0, 100, 100], [0, 0, 100, 90]]
        iou = box_iou(boxes[0], boxes[1])
        keep = suppress(boxes, [0.9, 0.8], [0, 0], 0.25, iou)
        assert keep == [0, 1]

    def test_low_overlap_both_kept(self):
        boxes = [[0, 0, 10, 10], [8, 8, 18, 18]]
        assert suppress(boxes, [0.9, 0.8], [0, 0], 0.25, 0.45) == [0, 1]

    def test_score_threshold_filters(self):
        boxes = [[0, 0, 10, 10], [50, 50, 60, 60]]
        assert suppress(boxes, [0.9, 0.2], [0, 0], 0.25, 0.45) == [0]

    def test_sorted_by_score_ties_by_index(self):
        boxes = [[0, 0, 10, 10], [20, 20, 30, 30], [40, 40, 50, 50]]
        keep = suppress(boxes, [0.5, 0.9, 0.5], [0, 0, 0], 0.25, 0.45)
        assert keep == [1, 0, 2]

    def test_max_outputs(self):
        boxes = [[i * 20, 0, i * 20 + 10, 10] for i in range(10)]
        keep = suppress(boxes, np.linspace(0.9, 0.5, 10), [0] * 10, 0.25, 0.45, max_outputs=3)
        assert keep == [0, 1, 2]

    def test_idempotent(self):
        rng = np.random.default_rng(11)
        xy = rng.uniform(0, 200, size=(60, 2))
        wh = rng.uniform(10, 60, size=(60, 2))
        boxes = np.hstack([xy, xy + wh])
        scores = rng.uniform(0.3, 1.0, size=60)
        classes = rng.integers(0, 3, size=60)

        first = suppress(boxes, scores, classes, 0.25, 0.45)
        second = suppress(boxes[first], scores[first], classes[first], 0.25, 0.45)

        assert second == list(range(len(first)))

    def test_deterministic(self):
        rng = np.random.default_rng(5)
        xy = rng.uniform(0, 100, size=(40, 2))
        boxes = np.hstack([xy, xy + 30])
        scores = rng.uniform(0.3, 1.0, size=40)
        classes = rng.integers(0, 2, size=40)

        assert suppress(boxes, scores, classes, 0.25, 0.45) == suppress(boxes, scores, classes, 0.25, 0.45)

    def test_class_offset_exceeds_frame_sizes(self):
        # boxes spanning a full 4K frame in adjacent classes still separate
        boxes = [[0, 0, 3840, 2160], [0, 0, 3840, 2160]]
        assert CLASS_OFFSET > 3840
        assert sorted(suppress(boxes, [0.9, 0.9], [3, 4], 0.25, 0.1)) == [0, 1]

    def test_empty_input(self):
        assert suppress(np.zeros((0, 4)), [], [], 0.25, 0.45) == []

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            suppress([[0, 0, 1, 1], [0, 0, 2, 2]], [0.9], [0], 0.25, 0.45)
