"""
Output decoder for anchor-free YOLO heads.

The network emits one flat, channel-major buffer shaped
[1, 4 + num_classes, num_predictions]: row 0..3 hold (cx, cy, w, h) for every
prediction, row 4 + c holds the score of class c. Each prediction gets a
single label (argmax over its class scores).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Tuple

import numpy as np

from ops.errors import DecodeError


@dataclass(frozen=True)
class CandidateBox:
    """One decoded prediction in model space."""
    box: Tuple[float, float, float, float]
    class_id: int
    score: float


@dataclass(frozen=True)
class CandidateBoxes:
    """
    Column-oriented set of decoded predictions.

    Attributes:
        boxes: (N, 4) float32 (left, top, right, bottom) in model space.
        scores: (N,) float32 best class score.
        class_ids: (N,) int32 best class index.
    """
    boxes: np.ndarray
    scores: np.ndarray
    class_ids: np.ndarray

    @classmethod
    def empty(cls) -> "CandidateBoxes":
        return cls(
            boxes=np.zeros((0, 4), dtype=np.float32),
            scores=np.zeros((0,), dtype=np.float32),
            class_ids=np.zeros((0,), dtype=np.int32),
        )

    def __len__(self) -> int:
        return int(self.scores.shape[0])

    def __iter__(self) -> Iterator[CandidateBox]:
        for box, class_id, score in zip(self.boxes, self.class_ids, self.scores):
            yield CandidateBox(
                box=(float(box[0]), float(box[1]), float(box[2]), float(box[3])),
                class_id=int(class_id),
                score=float(score),
            )

    def take(self, indices) -> "CandidateBoxes":
        """Return the subset at `indices`, in that order."""
        idx = np.asarray(indices, dtype=np.int64)
        return CandidateBoxes(
            boxes=self.boxes[idx],
            scores=self.scores[idx],
            class_ids=self.class_ids[idx],
        )

    def with_boxes(self, boxes: np.ndarray) -> "CandidateBoxes":
        """Same scores and classes with replaced boxes (e.g. after inverse mapping)."""
        return CandidateBoxes(boxes=boxes, scores=self.scores, class_ids=self.class_ids)


def decode(
    raw_output: np.ndarray,
    num_predictions: int,
    num_classes: int,
    conf_threshold: float,
) -> CandidateBoxes:
    """
    Decode a channel-major output buffer into candidate boxes.

    Predictions whose best class score is below conf_threshold are dropped;
    a score equal to the threshold is kept.

    Raises:
        DecodeError: If the buffer size does not match the declared layout.
    """
    if num_predictions <= 0 or num_classes <= 0:
        raise DecodeError(
            f"Invalid output layout: num_predictions={num_predictions}, num_classes={num_classes}"
        )
    expected = (4 + num_classes) * num_predictions
    flat = np.asarray(raw_output, dtype=np.float32).reshape(-1)
    if flat.size != expected:
        raise DecodeError(
            f"Output size {flat.size} does not match (4 + {num_classes}) x {num_predictions} = {expected}"
        )

    table = flat.reshape(4 + num_classes, num_predictions)
    class_scores = table[4:]

    # argmax returns the first maximum, matching a strict '>' scan
    best_class = np.argmax(class_scores, axis=0)
    best_score = class_scores[best_class, np.arange(num_predictions)]

    keep = best_score >= conf_threshold
    if not np.any(keep):
        return CandidateBoxes.empty()

    cx, cy, w, h = table[0, keep], table[1, keep], table[2, keep], table[3, keep]
    half_w = w / 2
    half_h = h / 2
    boxes = np.stack([cx - half_w, cy - half_h, cx + half_w, cy + half_h], axis=1).astype(np.float32)

    return CandidateBoxes(
        boxes=boxes,
        scores=best_score[keep].astype(np.float32),
        class_ids=best_class[keep].astype(np.int32),
    )


def filter_small_boxes(candidates: CandidateBoxes, min_size: float = 1.0) -> CandidateBoxes:
    """Drop boxes whose width or height is <= min_size (source pixels)."""
    if len(candidates) == 0:
        return candidates
    widths = candidates.boxes[:, 2] - candidates.boxes[:, 0]
    heights = candidates.boxes[:, 3] - candidates.boxes[:, 1]
    keep = np.flatnonzero((widths > min_size) & (heights > min_size))
    if keep.size == len(candidates):
        return candidates
    return candidates.take(keep)
