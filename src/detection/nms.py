"""
Class-aware non-maximum suppression in a single greedy pass.

Boxes are shifted by class_id * CLASS_OFFSET on both axes before any IoU test,
which places every class in its own region of the plane; boxes of different
classes then never overlap and one pass over all classes behaves like
per-class NMS.
"""

from __future__ import annotations

from typing import List, Sequence, Union

import numpy as np

# Larger than any frame dimension we expect to see (8K width).
CLASS_OFFSET = 7680.0
IOU_EPS = 1e-5

ArrayLike = Union[np.ndarray, Sequence]


def box_iou(a: ArrayLike, b: ArrayLike) -> float:
    """IoU of two (x1, y1, x2, y2) boxes."""
    ax1, ay1, ax2, ay2 = (float(v) for v in a)
    bx1, by1, bx2, by2 = (float(v) for v in b)
    iw = min(ax2, bx2) - max(ax1, bx1)
    ih = min(ay2, by2) - max(ay1, by1)
    if iw <= 0 or ih <= 0:
        return 0.0
    inter = iw * ih
    area_a = (ax2 - ax1) * (ay2 - ay1)
    area_b = (bx2 - bx1) * (by2 - by1)
    return inter / (area_a + area_b - inter + IOU_EPS)


def suppress(
    boxes: ArrayLike,
    scores: ArrayLike,
    class_ids: ArrayLike,
    score_threshold: float,
    iou_threshold: float,
    max_outputs: int = 300,
) -> List[int]:
    """
    Greedy class-aware NMS.

    Args:
        boxes: (N, 4) boxes as (x1, y1, x2, y2).
        scores: (N,) confidence scores.
        class_ids: (N,) integer class ids.
        score_threshold: Boxes scoring below this are ignored.
        iou_threshold: A box is suppressed when its IoU with a kept box of the
            same class is strictly greater than this.
        max_outputs: Stop once this many boxes are kept.

    Returns:
        Indices into the inputs of the kept boxes, highest score first.
        Equal scores keep their input order.
    """
    boxes_arr = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    scores_arr = np.asarray(scores, dtype=np.float64).reshape(-1)
    classes_arr = np.asarray(class_ids, dtype=np.float64).reshape(-1)
    n = scores_arr.shape[0]
    if n == 0 or max_outputs <= 0:
        return []
    if boxes_arr.shape[0] != n or classes_arr.shape[0] != n:
        raise ValueError(
            f"Length mismatch: boxes={boxes_arr.shape[0]}, scores={n}, class_ids={classes_arr.shape[0]}"
        )

    candidates = np.flatnonzero(scores_arr >= score_threshold)
    if candidates.size == 0:
        return []
    # lexsort sorts by the last key first: score descending, then index ascending
    order = candidates[np.lexsort((candidates, -scores_arr[candidates]))]

    offset = (classes_arr * CLASS_OFFSET)[:, None]
    shifted = boxes_arr + offset
    x1, y1, x2, y2 = shifted[:, 0], shifted[:, 1], shifted[:, 2], shifted[:, 3]
    areas = (x2 - x1) * (y2 - y1)

    suppressed = np.zeros(n, dtype=bool)
    keep: List[int] = []
    for pos, idx in enumerate(order):
        if suppressed[idx]:
            continue
        keep.append(int(idx))
        if len(keep) >= max_outputs:
            break

        rest = order[pos + 1:]
        rest = rest[~suppressed[rest]]
        if rest.size == 0:
            continue

        iw = np.minimum(x2[idx], x2[rest]) - np.maximum(x1[idx], x1[rest])
        ih = np.minimum(y2[idx], y2[rest]) - np.maximum(y1[idx], y1[rest])
        overlapping = (iw > 0) & (ih > 0)
        inter = np.where(overlapping, iw * ih, 0.0)
        iou = inter / (areas[idx] + areas[rest] - inter + IOU_EPS)
        suppressed[rest[overlapping & (iou > iou_threshold)]] = True

    return keep
