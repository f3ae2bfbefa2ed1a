"""
Diagnostic reports for the detection pipeline.

Each check returns a ValidationReport listing blocking issues, non-blocking
warnings and suggestions. Used by `main.py --validate` to explain why a setup
produces no detections.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from models.detection import DetectionBatch
from models.frame import FrameData

SLOW_INFERENCE_MS = 200.0
MODERATE_INFERENCE_MS = 100.0
SUSPICIOUS_INFERENCE_MS = 1.0
MIN_FRAME_SIDE = 100
MAX_FRAME_SIDE = 2000
SMALL_BOX_PX = 20.0
LOW_CONFIDENCE = 0.1


@dataclass
class ValidationReport:
    """Outcome of one validation step."""
    is_valid: bool = True
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    @classmethod
    def from_lists(cls, issues: List[str], warnings: List[str], suggestions: List[str]) -> "ValidationReport":
        return cls(is_valid=not issues, issues=issues, warnings=warnings, suggestions=suggestions)

    def merge(self, other: "ValidationReport") -> "ValidationReport":
        """Combine two reports; the result is valid only if both are."""
        return ValidationReport.from_lists(
            self.issues + other.issues,
            self.warnings + other.warnings,
            self.suggestions + other.suggestions,
        )


def validate_model_setup(detector, target_class_id: int, target_class_name: Optional[str] = None) -> ValidationReport:
    """Check that the target class exists and log the model details."""
    issues: List[str] = []
    warnings: List[str] = []
    suggestions: List[str] = []

    try:
        if not detector.validate_class_id(target_class_id):
            issues.append(f"Target class ID {target_class_id} is out of range (model has {detector.num_classes})")
            suggestions.append(
                f"The label file should list at least {target_class_id + 1} classes (0-{target_class_id})"
            )
        name = detector.class_name(target_class_id)
        if name is not None:
            logging.info(f"Target class {target_class_id} maps to '{name}'")
            if target_class_name and name.lower() != target_class_name.lower():
                warnings.append(f"Class {target_class_id} is '{name}', not '{target_class_name}' as expected")
                suggestions.append("Verify the model was trained with the same class mapping as the label file")
                alt = detector.find_class_id(target_class_name)
                if alt is not None:
                    suggestions.append(f"Consider target_class_id {alt} ('{target_class_name}')")
        if len(detector.class_names) != detector.num_classes:
            warnings.append(
                f"Label file has {len(detector.class_names)} classes, model outputs {detector.num_classes}"
            )
        logging.info(f"Model details: {detector.input_details()}")
    except Exception as e:
        issues.append(f"Error accessing detector: {e}")

    return ValidationReport.from_lists(issues, warnings, suggestions)


def validate_frame(frame: Union[FrameData, np.ndarray, None]) -> ValidationReport:
    """Check that a frame is usable as detector input."""
    issues: List[str] = []
    warnings: List[str] = []
    suggestions: List[str] = []

    pixels = frame.frame if isinstance(frame, FrameData) else frame
    if pixels is None or pixels.size == 0:
        issues.append("Frame is empty")
        return ValidationReport.from_lists(issues, warnings, suggestions)

    if pixels.dtype != np.uint8:
        issues.append(f"Frame dtype is {pixels.dtype}, expected uint8")
        suggestions.append("Convert frames to 8-bit before detection")
    if pixels.ndim not in (2, 3) or (pixels.ndim == 3 and pixels.shape[2] not in (1, 3, 4)):
        issues.append(f"Unsupported frame shape {pixels.shape}")

    h, w = pixels.shape[:2]
    if w < MIN_FRAME_SIDE or h < MIN_FRAME_SIDE:
        warnings.append(f"Frame is very small: {w}x{h}")
        suggestions.append("Ensure the camera provides adequate resolution")
    if w > MAX_FRAME_SIDE or h > MAX_FRAME_SIDE:
        warnings.append(f"Frame is very large: {w}x{h}")
        suggestions.append("Consider a lower capture resolution to reduce resize cost")

    logging.debug(f"Frame validation: {w}x{h}, dtype={pixels.dtype}")
    return ValidationReport.from_lists(issues, warnings, suggestions)


def validate_input_tensor(
    tensor: Optional[np.ndarray],
    expected_shape: Sequence[int],
    quantized: bool,
) -> ValidationReport:
    """Check shape and value range of an encoded input tensor."""
    issues: List[str] = []
    warnings: List[str] = []
    suggestions: List[str] = []

    if tensor is None:
        issues.append("Input tensor is missing")
        return ValidationReport.from_lists(issues, warnings, suggestions)

    if tuple(tensor.shape) != tuple(expected_shape):
        issues.append(f"Input tensor shape mismatch: expected {list(expected_shape)}, got {list(tensor.shape)}")
        suggestions.append("Check letterbox preprocessing and buffer allocation")

    if quantized and tensor.dtype != np.uint8:
        issues.append(f"Quantized model expects uint8 input, got {tensor.dtype}")

    flat = tensor.reshape(-1)
    if flat.size and not np.any(flat):
        warnings.append("Input tensor contains all zeros")
        suggestions.append("Check the frame source; the image might be completely black")
    elif flat.size and np.all(flat == flat[0]):
        warnings.append("Input tensor contains all identical values")
        suggestions.append("Check the frame source; the image might be a uniform colour")

    if not quantized and flat.size and (flat.min() < 0.0 or flat.max() > 1.0):
        warnings.append("Float input values outside [0, 1]")
        suggestions.append("Verify normalization divides by 255")

    return ValidationReport.from_lists(issues, warnings, suggestions)


def validate_inference_results(
    batch: DetectionBatch,
    target_class_id: int,
    num_classes: Optional[int] = None,
) -> ValidationReport:
    """Check timing and contents of one detection batch."""
    issues: List[str] = []
    warnings: List[str] = []
    suggestions: List[str] = []

    elapsed = batch.elapsed_ms
    if elapsed > SLOW_INFERENCE_MS:
        warnings.append(f"Inference time is high: {elapsed:.1f} ms")
        suggestions.append("Enable an accelerator/GPU backend or use a quantized model")
    elif elapsed > MODERATE_INFERENCE_MS:
        warnings.append(f"Inference time is moderate: {elapsed:.1f} ms")
    elif elapsed < SUSPICIOUS_INFERENCE_MS:
        warnings.append(f"Inference time suspiciously low: {elapsed:.2f} ms")
        suggestions.append("Verify inference is actually running")

    if batch.is_empty:
        warnings.append("No detections found")
        suggestions.extend([
            "Check that objects are clearly visible and well lit",
            "Ensure the target object is large enough in the frame",
            "Consider lowering the confidence threshold temporarily",
        ])
        return ValidationReport.from_lists(issues, warnings, suggestions)

    for i, d in enumerate(batch):
        logging.debug(f"  {i}: class={d.class_id} conf={d.confidence:.3f} box={d.bbox.as_int_tuple()}")
        if d.confidence < LOW_CONFIDENCE:
            warnings.append(f"Very low confidence detection: {d.confidence:.3f}")
        if d.bbox.width < SMALL_BOX_PX or d.bbox.height < SMALL_BOX_PX:
            warnings.append(f"Very small detection box: {d.bbox.width:.0f}x{d.bbox.height:.0f}")
        if d.class_id < 0 or (num_classes is not None and d.class_id >= num_classes):
            issues.append(f"Invalid class ID: {d.class_id}")

    targets = batch.of_class(target_class_id)
    if targets:
        logging.info(f"Target class {target_class_id} detected {len(targets)} times")
    else:
        warnings.append(f"Target class {target_class_id} not detected. Found classes: {batch.class_ids()}")
        suggestions.append(f"Verify the target object is the correct type for class {target_class_id}")

    return ValidationReport.from_lists(issues, warnings, suggestions)


def log_report(report: ValidationReport, title: str) -> None:
    logging.info(f"=== {title} === valid={report.is_valid}")
    for issue in report.issues:
        logging.error(f"  issue: {issue}")
    for warning in report.warnings:
        logging.warning(f"  warning: {warning}")
    for suggestion in report.suggestions:
        logging.info(f"  suggestion: {suggestion}")


def validate_pipeline(
    detector,
    frame: Union[FrameData, np.ndarray],
    target_class_id: int,
    target_class_name: Optional[str] = None,
) -> Tuple[ValidationReport, Optional[DetectionBatch]]:
    """
    Run every check against one frame, logging each report.

    Returns:
        (combined report, detection batch or None when no detection ran)
    """
    logging.info("Running detection pipeline validation")

    report = validate_model_setup(detector, target_class_id, target_class_name)
    log_report(report, "Model Setup")

    frame_report = validate_frame(frame)
    log_report(frame_report, "Frame")
    report = report.merge(frame_report)
    if not frame_report.is_valid:
        return report, None

    batch, _ = detector.detect(frame)

    tensor_report = validate_input_tensor(
        detector.codec.tensor, detector.engine.input_shape, detector.engine.is_quantized
    )
    log_report(tensor_report, "Input Tensor")
    report = report.merge(tensor_report)

    results_report = validate_inference_results(batch, target_class_id, detector.num_classes)
    log_report(results_report, "Inference Results")
    report = report.merge(results_report)

    log_report(report, "Pipeline Summary")
    return report, batch
