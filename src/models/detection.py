"""
Detection models for object detection results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class BoundingBox:
    """
    A bounding box in pixel coordinates of the source frame.

    Attributes:
        x1: Left edge x coordinate.
        y1: Top edge y coordinate.
        x2: Right edge x coordinate.
        y2: Bottom edge y coordinate.
    """
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    def as_tuple(self) -> Tuple[float, float, float, float]:
        """Return as (x1, y1, x2, y2) tuple."""
        return (self.x1, self.y1, self.x2, self.y2)

    def as_int_tuple(self) -> Tuple[int, int, int, int]:
        """Return as rounded integer (x1, y1, x2, y2) tuple."""
        return (round(self.x1), round(self.y1), round(self.x2), round(self.y2))

    @classmethod
    def from_tuple(cls, t: Tuple[float, float, float, float]) -> "BoundingBox":
        """Create from (x1, y1, x2, y2) tuple."""
        return cls(x1=float(t[0]), y1=float(t[1]), x2=float(t[2]), y2=float(t[3]))


@dataclass(frozen=True)
class Detection:
    """
    A single detection in source-frame pixel coordinates.

    Attributes:
        bbox: Bounding box in pixel coordinates.
        confidence: Detection confidence score (0-1).
        class_id: Class index from the model.
        class_name: Human-readable class name, when a label file is loaded.
    """
    bbox: BoundingBox
    confidence: float
    class_id: int
    class_name: Optional[str] = None


@dataclass(frozen=True)
class DetectionBatch:
    """
    All detections for one frame.

    A batch replaces the previously published one; it is never merged.

    Attributes:
        detections: Detections ordered by descending confidence.
        elapsed_ms: Wall time spent in the detector for this frame.
        frame_index: Index of the frame the batch was computed from.
        timestamp: Capture timestamp of that frame.
        skipped: The detector did not run (rate limited or disposed). A
            skipped batch carries no result and must not replace one.
    """
    detections: Tuple[Detection, ...] = ()
    elapsed_ms: float = 0.0
    frame_index: int = 0
    timestamp: Optional[float] = None
    skipped: bool = False

    @classmethod
    def empty(cls, elapsed_ms: float = 0.0) -> "DetectionBatch":
        return cls(detections=(), elapsed_ms=elapsed_ms)

    @classmethod
    def skip(cls) -> "DetectionBatch":
        return cls(detections=(), skipped=True)

    def __len__(self) -> int:
        return len(self.detections)

    def __iter__(self):
        return iter(self.detections)

    @property
    def is_empty(self) -> bool:
        return not self.detections

    def of_class(self, class_id: int, min_confidence: float = 0.0) -> List[Detection]:
        """Return detections of one class at or above min_confidence."""
        return [
            d for d in self.detections
            if d.class_id == class_id and d.confidence >= min_confidence
        ]

    def class_ids(self) -> List[int]:
        """Sorted distinct class ids present in the batch."""
        return sorted({d.class_id for d in self.detections})
