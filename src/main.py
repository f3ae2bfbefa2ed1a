"""
On-device object detector.

Reads frames from a camera or video file, runs them through the drop-frame
detection scheduler and logs the published results.

Usage:
    python src/main.py --config config/config.yaml

Arguments:
    --config: Path to configuration file
    --validate: Run the pipeline validation report on the first frame and exit
    --max-frames: Stop after this many frames (0 = until end of stream)
"""

import os
import sys
import argparse
import logging
import time
import yaml
from typing import Dict, Any, Tuple, Optional

from models.config import BOX_FORMATS, Config
from detection.detector import YoloDetector
from detection.validation import validate_pipeline
from observation import OpenCVSource, OpenCVSourceConfig
from ops.errors import PipelineError
from ops.logging import setup_logging
from pipeline.scheduler import DetectionScheduler
from pipeline.state import DetectionState
from runtime.context import RuntimeContext
from runtime.resources import ResourcePriority, ResourceRegistry

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
STATS_LOG_INTERVAL_S = 10.0


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def _read_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)
    """
    config_dir = os.path.dirname(config_path)
    try:
        base_path = os.path.join(config_dir, "default.yaml")
        base_cfg = _read_yaml(base_path) if os.path.exists(base_path) else {}

        local_overrides_path = os.path.join(config_dir, "config.yaml")
        local_cfg = _read_yaml(local_overrides_path) if os.path.exists(local_overrides_path) else {}

        merged = _deep_merge(base_cfg, local_cfg)

        if (
            os.path.exists(config_path)
            and os.path.abspath(config_path) != os.path.abspath(local_overrides_path)
            and os.path.abspath(config_path) != os.path.abspath(base_path)
        ):
            merged = _deep_merge(merged, _read_yaml(config_path))

        return merged
    except (OSError, yaml.YAMLError) as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    required_sections = ['model', 'detector', 'scheduler', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    # Model assets
    model = config.get('model') or {}
    for key in ('path', 'labels'):
        if not isinstance(model.get(key), str) or not model.get(key):
            return False, f"model.{key} must be a non-empty string"
    input_size = model.get('input_size')
    if input_size is not None:
        if not isinstance(input_size, list) or len(input_size) != 2:
            return False, "model.input_size must be a list of [width, height]"
        if not all(isinstance(x, int) and x > 0 for x in input_size):
            return False, "model.input_size values must be positive integers"
    if model.get('box_format', 'pixels') not in BOX_FORMATS:
        return False, f"model.box_format must be one of: {', '.join(BOX_FORMATS)}"
    if model.get('channel_order', 'RGB') not in ('RGB', 'BGR'):
        return False, "model.channel_order must be one of: RGB, BGR"
    pad_value = model.get('pad_value', 114)
    if not isinstance(pad_value, int) or not (0 <= pad_value <= 255):
        return False, "model.pad_value must be an integer in [0, 255]"

    # Backend tiering (optional)
    backend = config.get('backend') or {}
    for key in ('prefer_accelerator', 'allow_gpu', 'warmup'):
        if key in backend and not isinstance(backend[key], bool):
            return False, f"backend.{key} must be a boolean"
    if backend.get('num_threads') is not None:
        if not isinstance(backend['num_threads'], int) or backend['num_threads'] <= 0:
            return False, "backend.num_threads must be a positive integer"

    # Detector thresholds
    detector = config.get('detector') or {}
    for key in ('conf_threshold', 'iou_threshold'):
        if key in detector:
            value = detector[key]
            if not _is_number(value) or not (0 <= value <= 1):
                return False, f"detector.{key} must be a number between 0 and 1"
    if 'max_detections' in detector:
        if not isinstance(detector['max_detections'], int) or detector['max_detections'] <= 0:
            return False, "detector.max_detections must be a positive integer"
    for key in ('min_interval_ms', 'min_box_size'):
        if key in detector and (not _is_number(detector[key]) or detector[key] < 0):
            return False, f"detector.{key} must be a non-negative number"

    # Scheduler
    scheduler = config.get('scheduler') or {}
    if 'detection_interval_ms' in scheduler:
        if not _is_number(scheduler['detection_interval_ms']) or scheduler['detection_interval_ms'] < 0:
            return False, "scheduler.detection_interval_ms must be a non-negative number"
    if 'target_class_id' in scheduler:
        if not isinstance(scheduler['target_class_id'], int) or scheduler['target_class_id'] < 0:
            return False, "scheduler.target_class_id must be a non-negative integer"
    if 'target_min_confidence' in scheduler:
        value = scheduler['target_min_confidence']
        if not _is_number(value) or not (0 <= value <= 1):
            return False, "scheduler.target_min_confidence must be a number between 0 and 1"
    if 'shutdown_timeout_s' in scheduler:
        if not _is_number(scheduler['shutdown_timeout_s']) or scheduler['shutdown_timeout_s'] <= 0:
            return False, "scheduler.shutdown_timeout_s must be a positive number"

    # Frame source (optional)
    camera = config.get('camera') or {}
    if 'device_id' in camera:
        device_id = camera['device_id']
        if isinstance(device_id, bool) or not isinstance(device_id, (int, str)):
            return False, "camera.device_id must be an integer (index) or string (file path)"
        if isinstance(device_id, int) and device_id < 0:
            return False, "camera.device_id integer must be non-negative"
    if camera.get('resolution') is not None:
        resolution = camera['resolution']
        if not isinstance(resolution, list) or len(resolution) != 2:
            return False, "camera.resolution must be a list of [width, height]"
        if not all(isinstance(x, int) and x > 0 for x in resolution):
            return False, "camera.resolution values must be positive integers"
    if camera.get('fps') is not None:
        if not isinstance(camera['fps'], int) or camera['fps'] <= 0:
            return False, "camera.fps must be a positive integer"

    if config['log_level'] not in VALID_LOG_LEVELS:
        return False, f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}"

    return True, None


def build_context(cfg: Config, registry: ResourceRegistry) -> RuntimeContext:
    """Construct detector, scheduler and frame source and register them for release."""
    ctx = RuntimeContext(config=cfg, registry=registry)

    detector = YoloDetector(cfg.model, cfg.detector, cfg.backend)
    # The scheduler disposes the detector; registered too so eviction still
    # reaches it if the scheduler is never built.
    ctx.detector = registry.register("detector", detector, ResourcePriority.CRITICAL)

    scheduler = DetectionScheduler(detector, cfg.scheduler)
    scheduler.subscribe(ctx.on_state)
    ctx.scheduler = registry.register("scheduler", scheduler, ResourcePriority.HIGH)

    source = OpenCVSource(OpenCVSourceConfig.from_camera_config(cfg.camera))
    ctx.source = registry.register("source", source, ResourcePriority.LOW)
    return ctx


def _log_state(state: DetectionState) -> None:
    if state.detections:
        names = ", ".join(
            f"{d.class_name or d.class_id}:{d.confidence:.2f}" for d in state.detections[:5]
        )
        logging.info(
            f"[frame {state.frame_index}] {len(state.detections)} detections "
            f"({state.inference_time_ms:.1f} ms) target={state.target_detected} {names}"
        )


def run_validation(ctx: RuntimeContext) -> bool:
    """Validate the pipeline against the first frame from the source."""
    ctx.source.open()
    frame_data = ctx.source.read()
    if frame_data is None:
        logging.error("Validation failed: could not read a frame from the source")
        return False
    report, _ = validate_pipeline(ctx.detector, frame_data, ctx.config.scheduler.target_class_id)
    return report.is_valid


def run(ctx: RuntimeContext, max_frames: int = 0) -> None:
    """Feed frames to the scheduler until end of stream, max_frames or Ctrl-C."""
    ctx.scheduler.subscribe(_log_state)
    ctx.source.open()
    logging.info(f"Detection started: source={ctx.source.source_id}")

    frames = 0
    last_stats = time.time()
    try:
        for frame_data in ctx.source:
            ctx.scheduler.submit_frame(frame_data)
            frames += 1
            if max_frames and frames >= max_frames:
                logging.info(f"Reached --max-frames {max_frames}")
                break
            if time.time() - last_stats >= STATS_LOG_INTERVAL_S:
                logging.info(f"Status: frames={frames}, stats={ctx.get_stats_copy()}")
                last_stats = time.time()
    except KeyboardInterrupt:
        logging.info("Detection interrupted by user")
    finally:
        logging.info(f"Detection finished after {frames} frames: {ctx.get_stats_copy()}")


def main():
    """Main application function."""
    parser = argparse.ArgumentParser(description='On-device object detector')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--validate', action='store_true',
                        help='Run pipeline validation on one frame and exit')
    parser.add_argument('--max-frames', type=int, default=0,
                        help='Stop after this many frames (0 = no limit)')
    args = parser.parse_args()

    config = load_config(args.config)

    is_valid, error_msg = validate_config(config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        sys.exit(1)

    setup_logging(config['log_path'], config['log_level'])
    cfg = Config.from_dict(config)
    logging.info("Starting on-device object detector")

    registry = ResourceRegistry()
    exit_code = 0
    try:
        ctx = build_context(cfg, registry)
        if args.validate:
            exit_code = 0 if run_validation(ctx) else 2
        else:
            run(ctx, max_frames=args.max_frames)
    except PipelineError as e:
        logging.error(f"Detector setup failed: {e}")
        exit_code = 1
    except RuntimeError as e:
        logging.error(f"Frame source error: {e}")
        exit_code = 1
    finally:
        registry.close_all()
        logging.info("Shutdown complete")

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
