"""
Pytest configuration and shared fixtures.
"""

import os
import sys
from typing import List, Sequence, Tuple

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from inference.backend import BackendCapabilities, BackendTier, TensorSpec  # noqa: E402
from ops.errors import BackendError  # noqa: E402


class FakeBackend:
    """In-memory backend: returns a fixed output and records every input."""

    def __init__(
        self,
        tier: BackendTier,
        input_shape: Tuple = (1, 64, 64, 3),
        input_dtype=np.float32,
        output_shape: Tuple = (1, 6, 8),
        output: np.ndarray = None,
        fail_first_infer: bool = False,
    ):
        self.tier = tier
        self.input_spec = TensorSpec("images", tuple(input_shape), np.dtype(input_dtype))
        self.output_spec = TensorSpec("output0", tuple(output_shape), np.dtype(np.float32))
        static = all(isinstance(d, int) for d in output_shape)
        self.output = output if output is not None else (
            np.zeros(output_shape, dtype=np.float32) if static else None
        )
        self.calls: List[np.ndarray] = []
        self.error: Exception = None
        self.closed = False
        self._fail_next = fail_first_infer

    def infer(self, tensor: np.ndarray) -> np.ndarray:
        self.calls.append(np.array(tensor, copy=True))
        if self._fail_next:
            self._fail_next = False
            raise RuntimeError("first call failed")
        if self.error is not None:
            raise self.error
        return self.output

    def close(self) -> None:
        self.closed = True


class FakeBackendFactory:
    """Backend factory that fails the listed tiers and remembers what it built."""

    def __init__(self, failing_tiers: Sequence[BackendTier] = (), **backend_kwargs):
        self.failing_tiers = set(failing_tiers)
        self.backend_kwargs = backend_kwargs
        self.attempts: List[BackendTier] = []
        self.created: List[FakeBackend] = []

    def __call__(self, tier: BackendTier) -> FakeBackend:
        self.attempts.append(tier)
        if tier in self.failing_tiers:
            raise BackendError(f"{tier.value} unavailable", tier=tier.value)
        backend = FakeBackend(tier, **self.backend_kwargs)
        self.created.append(backend)
        return backend

    @property
    def backend(self) -> FakeBackend:
        return self.created[-1]


ALL_TIERS = BackendCapabilities(accelerator=True, gpu=True, providers=frozenset())
CPU_ONLY = BackendCapabilities(accelerator=False, gpu=False, providers=frozenset())


def make_raw_output(predictions, num_classes: int, num_predictions: int) -> np.ndarray:
    """
    Build a channel-major [1, 4 + num_classes, num_predictions] output.

    Args:
        predictions: (cx, cy, w, h, class_id, score) tuples; one per slot,
            remaining slots are all-zero.
    """
    out = np.zeros((1, 4 + num_classes, num_predictions), dtype=np.float32)
    for i, (cx, cy, w, h, class_id, score) in enumerate(predictions):
        out[0, 0:4, i] = (cx, cy, w, h)
        out[0, 4 + class_id, i] = score
    return out


@pytest.fixture
def fake_factory():
    """Factory building default fake backends (64x64 float input, 2 classes, 8 predictions)."""
    return FakeBackendFactory()


@pytest.fixture
def labels_file(tmp_path):
    path = tmp_path / "labels.txt"
    path.write_text("person\n\ncup\n")
    return str(path)


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
model:
  path: "models/yolo11n.onnx"
  labels: "models/coco.txt"
  box_format: "pixels"

backend:
  prefer_accelerator: true
  allow_gpu: true

detector:
  conf_threshold: 0.25
  iou_threshold: 0.45
  max_detections: 300

scheduler:
  detection_interval_ms: 50
  target_class_id: 41

camera:
  device_id: 0
  resolution: [640, 480]
  fps: 30

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "model": {
            "path": "models/yolo11n.onnx",
            "labels": "models/coco.txt",
            "input_size": [320, 320],
            "box_format": "pixels",
            "channel_order": "RGB",
            "pad_value": 114,
        },
        "backend": {
            "prefer_accelerator": True,
            "allow_gpu": False,
            "num_threads": 2,
            "warmup": True,
        },
        "detector": {
            "conf_threshold": 0.25,
            "iou_threshold": 0.45,
            "max_detections": 300,
            "min_interval_ms": 50,
        },
        "scheduler": {
            "detection_interval_ms": 50,
            "target_class_id": 41,
            "target_min_confidence": 0.5,
        },
        "camera": {
            "device_id": 0,
            "resolution": [1280, 720],
            "fps": 30,
        },
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }
