"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

BOX_FORMATS = ("pixels", "normalized")


@dataclass
class CameraConfig:
    """Frame source configuration."""
    device_id: Union[int, str] = 0
    resolution: Optional[List[int]] = None
    fps: Optional[int] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CameraConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            device_id=d.get("device_id", 0),
            resolution=d.get("resolution"),
            fps=d.get("fps"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"device_id": self.device_id}
        if self.resolution is not None:
            d["resolution"] = self.resolution
        if self.fps is not None:
            d["fps"] = self.fps
        return d


@dataclass
class ModelConfig:
    """
    Model asset configuration.

    Attributes:
        path: ONNX model file, input [1,H,W,3], output [1,4+nc,np].
        labels: Newline-delimited class-name file (index = line number).
        input_size: [width, height] used when the model leaves its spatial
            dims dynamic. Must agree with a fixed declared size.
        box_format: "pixels" when the head emits model-space pixel
            coordinates, "normalized" when it emits [0,1] coordinates.
        channel_order: Channel order the network was trained on.
        pad_value: Letterbox padding value per channel.
    """
    path: str = ""
    labels: str = ""
    input_size: Optional[List[int]] = None
    box_format: str = "pixels"
    channel_order: str = "RGB"
    pad_value: int = 114

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ModelConfig":
        return cls(
            path=d.get("path", ""),
            labels=d.get("labels", ""),
            input_size=d.get("input_size"),
            box_format=d.get("box_format", "pixels"),
            channel_order=d.get("channel_order", "RGB"),
            pad_value=d.get("pad_value", 114),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "path": self.path,
            "labels": self.labels,
            "box_format": self.box_format,
            "channel_order": self.channel_order,
            "pad_value": self.pad_value,
        }
        if self.input_size is not None:
            d["input_size"] = self.input_size
        return d


@dataclass
class BackendConfig:
    """
    Inference backend tiering.

    Attributes:
        prefer_accelerator: Try the accelerator tier first.
        allow_gpu: Try the GPU tier before falling back to CPU.
        num_threads: CPU intra-op threads. None = max(1, cores - 2).
        warmup: Run one warm-up inference after construction.
    """
    prefer_accelerator: bool = True
    allow_gpu: bool = True
    num_threads: Optional[int] = None
    warmup: bool = True

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BackendConfig":
        return cls(
            prefer_accelerator=d.get("prefer_accelerator", True),
            allow_gpu=d.get("allow_gpu", True),
            num_threads=d.get("num_threads"),
            warmup=d.get("warmup", True),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "prefer_accelerator": self.prefer_accelerator,
            "allow_gpu": self.allow_gpu,
            "warmup": self.warmup,
        }
        if self.num_threads is not None:
            d["num_threads"] = self.num_threads
        return d


@dataclass
class DetectorConfig:
    """Detector facade configuration."""
    conf_threshold: float = 0.25
    iou_threshold: float = 0.45
    max_detections: int = 300
    min_interval_ms: float = 50.0
    min_box_size: float = 1.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectorConfig":
        return cls(
            conf_threshold=d.get("conf_threshold", 0.25),
            iou_threshold=d.get("iou_threshold", 0.45),
            max_detections=d.get("max_detections", 300),
            min_interval_ms=d.get("min_interval_ms", 50.0),
            min_box_size=d.get("min_box_size", 1.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conf_threshold": self.conf_threshold,
            "iou_threshold": self.iou_threshold,
            "max_detections": self.max_detections,
            "min_interval_ms": self.min_interval_ms,
            "min_box_size": self.min_box_size,
        }


@dataclass
class SchedulerConfig:
    """Detection scheduler configuration."""
    detection_interval_ms: float = 50.0
    target_class_id: int = 41
    target_min_confidence: float = 0.5
    shutdown_timeout_s: float = 2.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SchedulerConfig":
        return cls(
            detection_interval_ms=d.get("detection_interval_ms", 50.0),
            target_class_id=d.get("target_class_id", 41),
            target_min_confidence=d.get("target_min_confidence", 0.5),
            shutdown_timeout_s=d.get("shutdown_timeout_s", 2.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detection_interval_ms": self.detection_interval_ms,
            "target_class_id": self.target_class_id,
            "target_min_confidence": self.target_min_confidence,
            "shutdown_timeout_s": self.shutdown_timeout_s,
        }


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    model: ModelConfig = field(default_factory=ModelConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    log_path: str = "logs/detector.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            model=ModelConfig.from_dict(d.get("model", {}) or {}),
            backend=BackendConfig.from_dict(d.get("backend", {}) or {}),
            detector=DetectorConfig.from_dict(d.get("detector", {}) or {}),
            scheduler=SchedulerConfig.from_dict(d.get("scheduler", {}) or {}),
            camera=CameraConfig.from_dict(d.get("camera", {}) or {}),
            log_path=d.get("log_path", "logs/detector.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or logging)."""
        return {
            "model": self.model.to_dict(),
            "backend": self.backend.to_dict(),
            "detector": self.detector.to_dict(),
            "scheduler": self.scheduler.to_dict(),
            "camera": self.camera.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
