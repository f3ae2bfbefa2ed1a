"""
YOLO detector facade.

Wires the tensor codec, inference engine, output decoder and suppressor into
one call:

    encode -> run -> decode -> suppress -> inverse-map -> drop tiny boxes

detect() never raises; a bad frame yields an empty batch and a log line.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from models.config import BackendConfig, DetectorConfig, ModelConfig
from models.detection import BoundingBox, Detection, DetectionBatch
from models.frame import FrameData
from ops.errors import AssetError
from inference.engine import InferenceEngine
from .codec import TensorCodec
from .decoder import decode, filter_small_boxes
from .labels import check_label_count, load_class_names, lookup_class_name
from .nms import suppress


class YoloDetector:
    """
    Single-stage anchor-free detector over a fixed-size network input.

    Args:
        model_config: Model and label assets, box format, channel order.
        detector_config: Thresholds, max detections, rate limit.
        backend_config: Backend tiering (ignored when `engine` is given).
        engine: Pre-built inference engine, mainly for tests.
        class_names: Class names; loaded from model_config.labels when None.
        clock: Monotonic clock in seconds, for the rate limit.

    Raises:
        AssetError: If the model or label assets are unusable.
        BackendError: If no backend tier could be created.

    Example:
        detector = YoloDetector(ModelConfig(path="yolo11n.onnx", labels="coco.txt"))
        batch, elapsed_ms = detector.detect(frame_data)
    """

    def __init__(
        self,
        model_config: ModelConfig,
        detector_config: Optional[DetectorConfig] = None,
        backend_config: Optional[BackendConfig] = None,
        engine: Optional[InferenceEngine] = None,
        class_names: Optional[Sequence[str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.model_config = model_config
        self.config = detector_config or DetectorConfig()
        self._clock = clock

        self.class_names: List[str] = (
            list(class_names) if class_names is not None else load_class_names(model_config.labels)
        )
        if not self.class_names:
            raise AssetError("No class names provided")

        self._engine = engine or InferenceEngine(
            model_config.path,
            backend_config or BackendConfig(),
            input_size=tuple(model_config.input_size) if model_config.input_size else None,
        )
        if self._engine.num_classes < 1:
            raise AssetError(f"Model declares no classes (output {list(self._engine.output_shape)})")
        check_label_count(self.class_names, self._engine.num_classes)

        width, height = self._engine.input_size
        self._codec = TensorCodec(
            width,
            height,
            input_dtype=self._engine.input_dtype,
            channels_last=self._engine.channels_last,
            channel_order=model_config.channel_order,
            pad_value=model_config.pad_value,
            normalized_boxes=model_config.box_format == "normalized",
        )

        self._last_detect_time: Optional[float] = None
        self._disposed = False
        self.detect_count = 0
        self.failure_count = 0

        logging.info(
            f"YoloDetector ready: {self._engine.describe()}, labels={len(self.class_names)}, "
            f"conf={self.config.conf_threshold}, iou={self.config.iou_threshold}"
        )

    # ------------------------------------------------------------------ #
    # Detection
    # ------------------------------------------------------------------ #

    def detect(
        self,
        frame: Union[FrameData, np.ndarray],
        conf_threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> Tuple[DetectionBatch, float]:
        """
        Detect objects in one frame.

        Returns:
            (batch, elapsed_ms). Calls made within min_interval_ms of the last
            completed detection, or after dispose(), return a skipped batch
            with zero elapsed.
        """
        if self._disposed:
            return DetectionBatch.skip(), 0.0

        now = self._clock()
        if self._last_detect_time is not None:
            since_ms = (now - self._last_detect_time) * 1000.0
            if since_ms < self.config.min_interval_ms:
                return DetectionBatch.skip(), 0.0

        conf = self.config.conf_threshold if conf_threshold is None else conf_threshold
        iou = self.config.iou_threshold if iou_threshold is None else iou_threshold

        start = time.perf_counter()
        try:
            if isinstance(frame, np.ndarray):
                frame = FrameData.from_numpy(frame)
            detections = self._run_pipeline(frame, conf, iou)
        except Exception as e:
            self.failure_count += 1
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            logging.warning(f"Detection failed after {elapsed_ms:.1f} ms: {e}")
            return DetectionBatch.empty(elapsed_ms), elapsed_ms

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        self._last_detect_time = now
        self.detect_count += 1
        logging.debug(f"Detected {len(detections)} objects in {elapsed_ms:.1f} ms")
        batch = DetectionBatch(
            detections=tuple(detections),
            elapsed_ms=elapsed_ms,
            frame_index=frame.frame_index,
            timestamp=frame.timestamp,
        )
        return batch, elapsed_ms

    def _run_pipeline(self, frame: FrameData, conf: float, iou: float) -> List[Detection]:
        tensor = self._codec.encode(frame)

        engine = self._engine
        raw = engine.run(tensor)
        if engine.last_fault is not None:
            raise engine.last_fault

        candidates = decode(raw, engine.num_predictions, engine.num_classes, conf)
        if len(candidates) == 0:
            return []

        keep = suppress(
            candidates.boxes,
            candidates.scores,
            candidates.class_ids,
            score_threshold=conf,
            iou_threshold=iou,
            max_outputs=self.config.max_detections,
        )
        survivors = candidates.take(keep)
        survivors = survivors.with_boxes(self._codec.decode(survivors.boxes, frame.size))
        survivors = filter_small_boxes(survivors, self.config.min_box_size)

        return [
            Detection(
                bbox=BoundingBox.from_tuple(c.box),
                confidence=c.score,
                class_id=c.class_id,
                class_name=lookup_class_name(self.class_names, c.class_id),
            )
            for c in survivors
        ]

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    @property
    def num_classes(self) -> int:
        return self._engine.num_classes

    @property
    def input_size(self) -> Tuple[int, int]:
        """Network input (width, height)."""
        return self._codec.model_size

    @property
    def engine(self) -> InferenceEngine:
        return self._engine

    @property
    def codec(self) -> TensorCodec:
        return self._codec

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def class_name(self, class_id: int) -> Optional[str]:
        return lookup_class_name(self.class_names, class_id)

    def find_class_id(self, name: str) -> Optional[int]:
        """Case-insensitive lookup of a class id by name."""
        wanted = name.strip().lower()
        for i, n in enumerate(self.class_names):
            if n.lower() == wanted:
                return i
        return None

    def validate_class_id(self, class_id: int) -> bool:
        return 0 <= class_id < self.num_classes

    def input_details(self) -> Dict[str, object]:
        """Model input/output details for logging and validation."""
        return {
            "backend": self._engine.tier.value if self._engine.tier else None,
            "input_shape": list(self._engine.input_shape),
            "input_dtype": str(self._engine.input_dtype),
            "quantized": self._engine.is_quantized,
            "output_shape": list(self._engine.output_shape),
            "num_classes": self.num_classes,
            "num_labels": len(self.class_names),
            "box_format": self.model_config.box_format,
        }

    # ------------------------------------------------------------------ #
    # Disposal
    # ------------------------------------------------------------------ #

    def dispose(self) -> None:
        """Release the engine and codec buffers. Later detect() calls are skipped."""
        if self._disposed:
            return
        self._disposed = True
        self._engine.dispose()
        self._codec.release()
        logging.info(
            f"YoloDetector disposed after {self.detect_count} detections ({self.failure_count} failed)"
        )
