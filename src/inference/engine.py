"""
Inference engine adapter.

Owns the backend handle and the reusable output buffer, picks a backend tier
with fallback, warms the model up once and exposes a single synchronous
run(). Faults inside run() are recorded on the engine instead of raised, so a
bad frame never takes the stream down.
"""

from __future__ import annotations

import logging
import os
import time
from functools import partial
from typing import Callable, List, Optional, Tuple

import numpy as np

from models.config import BackendConfig
from ops.errors import AssetError, BackendError, DecodeError, InferenceError, PipelineError
from .backend import Backend, BackendCapabilities, BackendTier, TensorSpec, select_tiers

BackendFactory = Callable[[BackendTier], Backend]


class InferenceEngine:
    """
    Runs one detection network on the best available tier.

    Args:
        model_path: ONNX model path (used by the default backend factory).
        config: Tier preferences, CPU threads, warm-up switch.
        input_size: (width, height) for models whose spatial dims are dynamic.
            When the model declares a fixed size, it must agree.
        backend_factory: Creates a backend for a tier; defaults to
            onnxruntime. Must raise BackendError for a tier it cannot serve.
        capabilities: Host capabilities; queried from onnxruntime by default.

    Not thread safe: run() must be called from one thread at a time.
    """

    def __init__(
        self,
        model_path: str = "",
        config: Optional[BackendConfig] = None,
        input_size: Optional[Tuple[int, int]] = None,
        backend_factory: Optional[BackendFactory] = None,
        capabilities: Optional[BackendCapabilities] = None,
    ):
        self.model_path = model_path
        self.config = config or BackendConfig()
        self._requested_input_size = tuple(input_size) if input_size else None

        if backend_factory is None:
            if not model_path or not os.path.isfile(model_path):
                raise AssetError(f"Model file not found: {model_path!r}")
            from .onnx_backend import OnnxRuntimeBackend, query_capabilities

            capabilities = capabilities or query_capabilities()
            backend_factory = partial(
                OnnxRuntimeBackend,
                model_path,
                num_threads=self.config.num_threads,
                available_providers=capabilities.providers,
            )
        elif capabilities is None:
            capabilities = BackendCapabilities(accelerator=True, gpu=True)

        self._factory = backend_factory
        self.capabilities = capabilities
        self._backend: Optional[Backend] = None
        self._output: Optional[np.ndarray] = None
        self._disposed = False

        self.input_shape: Tuple[int, ...] = ()
        self.input_dtype = np.dtype(np.float32)
        self.channels_last = True
        self.output_shape: Tuple[int, int, int] = (0, 0, 0)

        self.last_fault: Optional[PipelineError] = None
        self.fault_count = 0
        self.failed_tiers: List[Tuple[BackendTier, str]] = []

        self.configure(self.config.prefer_accelerator)

    # ------------------------------------------------------------------ #
    # Backend lifecycle
    # ------------------------------------------------------------------ #

    def configure(self, prefer_accelerator: bool = True) -> Backend:
        """
        Create a backend, trying accelerator -> GPU -> CPU.

        Each BackendError falls through to the next tier. AssetError is not
        retried since every tier loads the same file.

        Raises:
            BackendError: If every tier failed.
            AssetError: If the model file or its declared shapes are invalid.
        """
        if self._disposed:
            raise BackendError("Engine has been disposed")
        self._close_backend()

        tiers = select_tiers(self.capabilities, prefer_accelerator, self.config.allow_gpu)
        self.failed_tiers = []
        backend: Optional[Backend] = None
        for tier in tiers:
            try:
                backend = self._factory(tier)
                break
            except BackendError as e:
                self.failed_tiers.append((tier, str(e)))
                logging.warning(f"Backend tier '{tier.value}' unavailable, falling back: {e}")

        if backend is None:
            summary = "; ".join(f"{t.value}: {msg}" for t, msg in self.failed_tiers)
            raise BackendError(f"No inference backend could be created ({summary})")

        try:
            self._bind(backend)
        except Exception:
            backend.close()
            raise

        self._backend = backend
        logging.info(
            f"Inference backend ready: tier={backend.tier.value}, input={self.input_shape} "
            f"{self.input_dtype}, output={self.output_shape}"
        )
        if self.config.warmup:
            self.warmup()
        return backend

    def _bind(self, backend: Backend) -> None:
        """Resolve input/output layout from the backend's declared specs."""
        self.input_shape, self.channels_last = self._resolve_input(backend.input_spec)
        self.input_dtype = backend.input_spec.dtype
        if self.input_dtype not in (np.dtype(np.uint8), np.dtype(np.float32), np.dtype(np.float16)):
            raise AssetError(f"Unsupported model input type {self.input_dtype}")

        out = backend.output_spec
        if out.is_static:
            shape = tuple(int(d) for d in out.shape)
        else:
            # Dynamic head: take the shape from one real run.
            sample = np.asarray(backend.infer(np.zeros(self.input_shape, dtype=self.input_dtype)))
            shape = tuple(sample.shape)
        if len(shape) != 3 or shape[0] != 1 or shape[1] <= 4 or shape[2] <= 0:
            raise AssetError(f"Expected output shape [1, 4+numClasses, numPredictions], got {list(shape)}")
        self.output_shape = (shape[0], shape[1], shape[2])
        self._output = np.zeros(self.output_shape, dtype=np.float32)

    def _resolve_input(self, spec: TensorSpec) -> Tuple[Tuple[int, int, int, int], bool]:
        shape = spec.shape
        if len(shape) != 4:
            raise AssetError(f"Expected a 4D model input, got {list(shape)}")
        if shape[3] == 3:
            channels_last, h_dim, w_dim = True, shape[1], shape[2]
        elif shape[1] == 3:
            channels_last, h_dim, w_dim = False, shape[2], shape[3]
        else:
            raise AssetError(f"Expected input [1,H,W,3] or [1,3,H,W], got {list(shape)}")

        requested = self._requested_input_size
        if isinstance(h_dim, int) and isinstance(w_dim, int) and h_dim > 0 and w_dim > 0:
            if requested and tuple(requested) != (w_dim, h_dim):
                raise AssetError(
                    f"Configured input size {requested[0]}x{requested[1]} does not match "
                    f"model input {w_dim}x{h_dim}"
                )
            width, height = w_dim, h_dim
        elif requested:
            width, height = int(requested[0]), int(requested[1])
        else:
            raise AssetError("Model input size is dynamic; configure model.input_size")

        if channels_last:
            return (1, height, width, 3), True
        return (1, 3, height, width), False

    def warmup(self) -> None:
        """Run one inference on a zero input to absorb first-call setup cost."""
        if self._backend is None:
            return
        start = time.perf_counter()
        try:
            self._backend.infer(np.zeros(self.input_shape, dtype=self.input_dtype))
        except Exception as e:
            logging.warning(f"Warm-up inference failed on tier '{self._backend.tier.value}': {e}")
            return
        logging.debug(f"Warm-up inference took {(time.perf_counter() - start) * 1000:.1f} ms")

    # ------------------------------------------------------------------ #
    # Inference
    # ------------------------------------------------------------------ #

    def run(self, tensor: np.ndarray) -> np.ndarray:
        """
        Run one inference and return the engine's output buffer.

        Never raises. On failure the buffer is zeroed and the fault is stored
        in `last_fault` (InferenceError, or DecodeError for an output of the
        wrong size). The buffer is reused by the next call.
        """
        self.last_fault = None
        if self._backend is None or self._output is None:
            return self._fail(InferenceError("Inference engine is not configured or disposed"))

        try:
            result = self._backend.infer(tensor)
        except Exception as e:
            return self._fail(InferenceError(f"Inference failed on tier '{self._backend.tier.value}': {e}"))

        result = np.asarray(result)
        if result.size != self._output.size:
            return self._fail(
                DecodeError(f"Output has {result.size} values, expected {self._output.size} {self.output_shape}")
            )
        np.copyto(self._output, result.reshape(self.output_shape), casting="unsafe")
        return self._output

    def _fail(self, fault: PipelineError) -> np.ndarray:
        self.last_fault = fault
        self.fault_count += 1
        logging.warning(str(fault))
        if self._output is None:
            return np.zeros((1, 4, 0), dtype=np.float32)
        self._output.fill(0.0)
        return self._output

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def tier(self) -> Optional[BackendTier]:
        return self._backend.tier if self._backend is not None else None

    @property
    def input_size(self) -> Tuple[int, int]:
        """(width, height) of the network input."""
        if self.channels_last:
            return (self.input_shape[2], self.input_shape[1])
        return (self.input_shape[3], self.input_shape[2])

    @property
    def num_classes(self) -> int:
        return self.output_shape[1] - 4

    @property
    def num_predictions(self) -> int:
        return self.output_shape[2]

    @property
    def is_quantized(self) -> bool:
        return self.input_dtype == np.dtype(np.uint8)

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def describe(self) -> str:
        """Human-readable model and backend details."""
        tier = self.tier.value if self.tier else "none"
        dtype = "UINT8" if self.is_quantized else str(self.input_dtype).upper()
        return (
            f"Backend: {tier}, Input: {list(self.input_shape)} {dtype}, "
            f"Output: {list(self.output_shape)}, Classes: {self.num_classes}"
        )

    # ------------------------------------------------------------------ #
    # Disposal
    # ------------------------------------------------------------------ #

    def _close_backend(self) -> None:
        if self._backend is not None:
            try:
                self._backend.close()
            except Exception as e:
                logging.warning(f"Error closing backend: {e}")
            self._backend = None

    def dispose(self) -> None:
        """Release the backend and buffers. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True
        self._close_backend()
        self._output = None
        logging.info("Inference engine disposed")
