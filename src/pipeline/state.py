"""
Observable detection state.

The scheduler's worker replaces the whole snapshot on every publish; readers
always see one consistent DetectionState and never a partially updated one.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Tuple

from models.detection import Detection

Observer = Callable[["DetectionState"], None]
Dispatcher = Callable[[Callable[[], None]], None]


@dataclass(frozen=True)
class DetectionState:
    """
    Last published detection result.

    Attributes:
        detections: All detections of the last completed frame.
        target_detected: A detection of the target class met the target
            confidence.
        inference_time_ms: Time spent in the detector for that frame.
        is_processing: A detection is currently running.
        generation: Scheduler generation that produced this snapshot.
        frame_index: Index of the frame the detections belong to.
    """
    detections: Tuple[Detection, ...] = ()
    target_detected: bool = False
    inference_time_ms: float = 0.0
    is_processing: bool = False
    generation: int = 0
    frame_index: int = 0

    @classmethod
    def empty(cls, generation: int = 0) -> "DetectionState":
        return cls(generation=generation)


class DetectionStateHolder:
    """
    Thread-safe holder of the current DetectionState.

    Observers are called with each published snapshot, either inline on the
    publishing thread or through `dispatcher`, which receives a zero-argument
    callable and runs it in the observers' own context (e.g. a UI loop).
    """

    def __init__(self, dispatcher: Optional[Dispatcher] = None):
        self._lock = threading.Lock()
        self._state = DetectionState.empty()
        self._observers: List[Observer] = []
        self._dispatcher = dispatcher
        self.publish_count = 0

    @property
    def state(self) -> DetectionState:
        with self._lock:
            return self._state

    def snapshot(self) -> DetectionState:
        return self.state

    def replace(self, state: DetectionState) -> None:
        """Swap the stored snapshot without notifying observers."""
        with self._lock:
            self._state = state

    def set_processing(self, processing: bool) -> None:
        with self._lock:
            self._state = replace(self._state, is_processing=processing)

    def publish(self, state: DetectionState) -> None:
        """Swap the stored snapshot and notify observers."""
        self.replace(state)
        self.notify(state)

    def notify(self, state: DetectionState) -> None:
        """Deliver `state` to every observer."""
        with self._lock:
            self.publish_count += 1
            observers = list(self._observers)
        for observer in observers:
            if self._dispatcher is not None:
                self._dispatcher(lambda o=observer: self._notify(o, state))
            else:
                self._notify(observer, state)

    def _notify(self, observer: Observer, state: DetectionState) -> None:
        try:
            observer(state)
        except Exception as e:
            logging.warning(f"Detection state observer error: {e}")

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer; returns a function that unsubscribes it."""
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe
