"""
Detection scheduler.

Accepts frames from a producer at any rate and runs detection on a single
dedicated worker thread, dropping frames instead of queueing them:

    IDLE -> QUEUED -> RUNNING -> PUBLISHED | CANCELLED | FAILED -> IDLE

At most one detection is in flight. Each completed detection publishes one
DetectionState snapshot through the state holder. start(), stop() and dispose()
reset the snapshot and notify observers when that clears a visible result.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Callable, Optional, Union

import numpy as np

from models.config import SchedulerConfig
from models.frame import FrameData
from .state import DetectionState, DetectionStateHolder, Dispatcher, Observer

# Consecutive drops above this are logged at debug level.
MAX_CONSECUTIVE_DROPS = 3


class JobState(str, Enum):
    IDLE = "idle"
    QUEUED = "queued"
    RUNNING = "running"
    PUBLISHED = "published"
    CANCELLED = "cancelled"
    FAILED = "failed"


class DetectionScheduler:
    """
    Drop-frame scheduler around a detector.

    Args:
        detector: Object with detect(frame) -> (DetectionBatch, elapsed_ms)
            and dispose().
        config: Cadence, target class and shutdown timeout.
        dispatcher: Optional callable that runs observer notifications in
            the observers' context. Inline on the worker when None.
        clock: Monotonic clock in seconds.
        autostart: Accept frames immediately after construction.

    Example:
        scheduler = DetectionScheduler(detector, SchedulerConfig())
        scheduler.subscribe(lambda state: print(state.target_detected))
        for frame in source:
            scheduler.submit_frame(frame)
        scheduler.dispose()
    """

    def __init__(
        self,
        detector,
        config: Optional[SchedulerConfig] = None,
        dispatcher: Optional[Dispatcher] = None,
        clock: Callable[[], float] = time.monotonic,
        autostart: bool = True,
    ):
        self.detector = detector
        self.config = config or SchedulerConfig()
        self._clock = clock
        self._holder = DetectionStateHolder(dispatcher)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="detection")

        self._lock = threading.RLock()
        # orders observer notifications; taken before _lock, never while holding it
        self._notify_lock = threading.RLock()
        self._idle = threading.Event()
        self._idle.set()
        self._active = False
        self._disposed = False
        self._generation = 0
        self._job_seq = 0
        self._job_state = JobState.IDLE
        self.last_outcome = JobState.IDLE
        self._pending: Optional[Future] = None
        self._last_accepted: Optional[float] = None
        self._worker_ident: Optional[int] = None
        self._release_detector_on_exit = False

        self.submitted_frames = 0
        self.dropped_frames = 0
        self.completed_detections = 0
        self.failed_detections = 0
        self._consecutive_drops = 0

        if autostart:
            self.start()
        logging.info(
            f"DetectionScheduler initialized: interval={self.config.detection_interval_ms} ms, "
            f"target_class={self.config.target_class_id}"
        )

    # ------------------------------------------------------------------ #
    # Observation
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> DetectionState:
        """Current published snapshot."""
        return self._holder.state

    @property
    def job_state(self) -> JobState:
        with self._lock:
            return self._job_state

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._active

    @property
    def is_disposed(self) -> bool:
        with self._lock:
            return self._disposed

    @property
    def publish_count(self) -> int:
        return self._holder.publish_count

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        return self._holder.subscribe(observer)

    # ------------------------------------------------------------------ #
    # Submission
    # ------------------------------------------------------------------ #

    def submit_frame(self, frame: Union[FrameData, np.ndarray]) -> bool:
        """
        Offer a frame for detection without blocking.

        Returns:
            True if the frame was accepted. Frames are dropped while inactive,
            within detection_interval_ms of the last accepted frame, or while
            a detection is running. Accepted frames are copied.
        """
        with self._lock:
            self.submitted_frames += 1
            if self._disposed or not self._active:
                self.dropped_frames += 1
                return False

            now = self._clock()
            if (
                self._last_accepted is not None
                and (now - self._last_accepted) * 1000.0 < self.config.detection_interval_ms
            ):
                self._drop()
                return False

            if self._job_state == JobState.RUNNING:
                self._drop()
                return False

            if self._pending is not None and self._job_state == JobState.QUEUED:
                # a job the worker already picked up exits on its stale token
                if self._pending.cancel():
                    logging.debug("Cancelled queued detection in favour of a newer frame")

            if isinstance(frame, FrameData):
                private = frame.copy()
            else:
                private = FrameData.from_numpy(frame.copy(), timestamp=time.time())

            self._consecutive_drops = 0
            self._last_accepted = now
            self._job_state = JobState.QUEUED
            self._job_seq += 1
            self._pending = self._executor.submit(
                self._run_job, private, self._generation, self._job_seq
            )
            return True

    def _drop(self) -> None:
        self.dropped_frames += 1
        self._consecutive_drops += 1
        if self._consecutive_drops > MAX_CONSECUTIVE_DROPS:
            logging.debug(f"Dropped {self._consecutive_drops} consecutive frames")

    # ------------------------------------------------------------------ #
    # Worker
    # ------------------------------------------------------------------ #

    def _run_job(self, frame: FrameData, generation: int, token: int) -> None:
        with self._lock:
            self._worker_ident = threading.get_ident()
            superseded = token != self._job_seq
            if superseded or generation != self._generation or not self._active:
                self.last_outcome = JobState.CANCELLED
                if not superseded:
                    self._job_state = JobState.IDLE
                return
            self._job_state = JobState.RUNNING
            self._idle.clear()
        self._holder.set_processing(True)

        try:
            failures_before = getattr(self.detector, "failure_count", 0)
            failed = False
            try:
                batch, elapsed_ms = self.detector.detect(frame)
            except Exception as e:
                logging.error(f"Detection failed: {e}")
                batch, elapsed_ms, failed = None, 0.0, True
            if getattr(self.detector, "failure_count", 0) != failures_before:
                failed = True

            with self._lock:
                if generation != self._generation:
                    # stopped or restarted while running; result is stale
                    self._job_state = JobState.CANCELLED
                    return
                if not failed and batch is not None and batch.skipped:
                    # detector declined the call; keep the last result
                    logging.debug("Detector skipped the frame")
                    self._job_state = JobState.CANCELLED
                    return
                if failed or batch is None:
                    state = DetectionState.empty(generation)
                    self._job_state = JobState.FAILED
                    self.failed_detections += 1
                else:
                    target = bool(
                        batch.of_class(self.config.target_class_id, self.config.target_min_confidence)
                    )
                    state = DetectionState(
                        detections=batch.detections,
                        target_detected=target,
                        inference_time_ms=elapsed_ms,
                        is_processing=False,
                        generation=generation,
                        frame_index=frame.frame_index,
                    )
                    self._job_state = JobState.PUBLISHED
                    self.completed_detections += 1
                    if target:
                        logging.debug(f"Target class {self.config.target_class_id} detected")
                    logging.debug(f"Detection completed: {len(batch)} total, {elapsed_ms:.1f} ms")
                # stored under the lock so stop() cannot be overwritten by a stale result
                self._holder.replace(state)

            if not self._notify_if_current(state, generation):
                with self._lock:
                    self._job_state = JobState.CANCELLED
        finally:
            with self._lock:
                self.last_outcome = self._job_state
                self._job_state = JobState.IDLE
                release = self._release_detector_on_exit
                self._release_detector_on_exit = False
            self._holder.set_processing(False)
            if release:
                self._dispose_detector()
            self._idle.set()

    def _notify_if_current(self, state: DetectionState, generation: int) -> bool:
        """Notify observers unless a later stop/start/dispose has superseded `generation`."""
        with self._notify_lock:
            with self._lock:
                current = generation == self._generation
            if current:
                self._holder.notify(state)
            return current

    def _reset_state(self) -> Optional[DetectionState]:
        """
        Store an empty snapshot for the current generation. Called under _lock.

        Returns the new snapshot when it differs from what observers last
        saw, otherwise None.
        """
        previous = self._holder.state
        state = DetectionState.empty(self._generation)
        self._holder.replace(state)
        if (previous.detections, previous.target_detected, previous.inference_time_ms) == (
            state.detections, state.target_detected, state.inference_time_ms
        ):
            return None
        return state

    def _publish_reset(self, state: Optional[DetectionState]) -> None:
        if state is not None:
            self._notify_if_current(state, state.generation)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Begin accepting frames with a clean published state."""
        with self._lock:
            if self._disposed:
                logging.warning("start() called on a disposed scheduler")
                return
            if self._active:
                return
            self._active = True
            self._generation += 1
            self._last_accepted = None
            self._consecutive_drops = 0
            reset = self._reset_state()
        self._publish_reset(reset)
        logging.info("Detection scheduler started")

    def stop(self) -> None:
        """
        Stop accepting frames and reset the published state.

        The worker stays alive; a detection still running finishes but its
        result is discarded.
        """
        with self._lock:
            was_active = self._active
            self._active = False
            self._generation += 1
            self._cancel_pending()
            reset = self._reset_state()
        self._publish_reset(reset)
        if was_active:
            logging.info(
                f"Detection scheduler stopped: {self.completed_detections} published, "
                f"{self.dropped_frames} dropped"
            )

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        if self._job_state == JobState.QUEUED:
            self._job_state = JobState.IDLE

    def dispose(self) -> None:
        """
        Halt the worker, then dispose the detector. Idempotent.

        Waits up to shutdown_timeout_s for a running detection. When called
        from the worker itself (e.g. an inline observer), or when the wait
        times out, the detector is disposed by the worker as its job ends.
        """
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            self._active = False
            self._generation += 1
            self._cancel_pending()
            on_worker = threading.get_ident() == self._worker_ident
            busy = not self._idle.is_set()
            reset = self._reset_state()
            if busy:
                self._release_detector_on_exit = True

        self._executor.shutdown(wait=False, cancel_futures=True)

        if busy and not on_worker:
            if not self._idle.wait(self.config.shutdown_timeout_s):
                logging.warning(
                    f"Detection still running after {self.config.shutdown_timeout_s}s; "
                    f"detector will be released when it finishes"
                )
            with self._lock:
                # The worker may have exited before seeing the flag.
                release_now = self._release_detector_on_exit and self._idle.is_set()
                if release_now:
                    self._release_detector_on_exit = False
            if release_now:
                self._dispose_detector()
        elif not busy:
            self._dispose_detector()

        self._publish_reset(reset)
        logging.info("Detection scheduler disposed")

    def _dispose_detector(self) -> None:
        try:
            self.detector.dispose()
        except Exception as e:
            logging.warning(f"Error disposing detector: {e}")

    def __enter__(self) -> "DetectionScheduler":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()
