from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from models.config import Config
from pipeline.state import DetectionState
from .resources import ResourceRegistry


@dataclass
class RuntimeContext:
    """Holds runtime state and service references; avoids global singletons."""

    config: Config
    registry: ResourceRegistry
    detector: Any = None
    scheduler: Any = None
    source: Any = None

    # Observability
    stats: Dict[str, Any] = field(default_factory=dict)
    last_state: Optional[DetectionState] = None

    def on_state(self, state: DetectionState) -> None:
        """Scheduler observer: remember the latest snapshot and count target hits."""
        self.last_state = state
        self.stats["published"] = self.stats.get("published", 0) + 1
        if state.target_detected:
            self.stats["target_hits"] = self.stats.get("target_hits", 0) + 1

    def get_stats_copy(self) -> Dict[str, Any]:
        stats = dict(self.stats)
        if self.scheduler is not None:
            stats["submitted_frames"] = self.scheduler.submitted_frames
            stats["dropped_frames"] = self.scheduler.dropped_frames
            stats["failed_detections"] = self.scheduler.failed_detections
        stats["resources"] = self.registry.stats()
        return stats

    def close(self) -> None:
        """Release every registered resource."""
        self.registry.close_all()
