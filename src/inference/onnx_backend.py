"""
ONNX Runtime backend variants.

Every tier loads the same .onnx file; the tier only decides which execution
providers the session is created with:
- accelerator: TensorRT, OpenVINO, CoreML, NNAPI or QNN
- gpu: CUDA, ROCm or DirectML
- cpu: the default CPU provider with tuned thread count and full graph
  optimization (vectorized kernels)
"""

from __future__ import annotations

import logging
import os
from typing import FrozenSet, Iterable, List, Optional

import numpy as np
import onnxruntime as ort
from onnxruntime.capi.onnxruntime_pybind11_state import InvalidGraph, InvalidProtobuf, NoSuchFile

from ops.errors import AssetError, BackendError
from .backend import BackendCapabilities, BackendTier, TensorSpec, default_cpu_threads

ACCELERATOR_PROVIDERS = (
    "TensorrtExecutionProvider",
    "OpenVINOExecutionProvider",
    "CoreMLExecutionProvider",
    "NnapiExecutionProvider",
    "QNNExecutionProvider",
)
GPU_PROVIDERS = (
    "CUDAExecutionProvider",
    "ROCMExecutionProvider",
    "DmlExecutionProvider",
)
CPU_PROVIDER = "CPUExecutionProvider"

_ORT_TYPES = {
    "tensor(float)": np.float32,
    "tensor(float16)": np.float16,
    "tensor(uint8)": np.uint8,
}


def query_capabilities(available: Optional[Iterable[str]] = None) -> BackendCapabilities:
    """Check once which tiers this onnxruntime build can attempt."""
    providers: FrozenSet[str] = frozenset(available if available is not None else ort.get_available_providers())
    return BackendCapabilities(
        accelerator=any(p in providers for p in ACCELERATOR_PROVIDERS),
        gpu=any(p in providers for p in GPU_PROVIDERS),
        providers=providers,
    )


def providers_for_tier(tier: BackendTier, available: Iterable[str]) -> List[str]:
    """
    Provider list for a tier, primary provider first.

    The CPU provider is appended to accelerator/GPU lists so operators the
    primary provider cannot run still have a home.

    Raises:
        BackendError: If no provider of the tier is available.
    """
    available = set(available)
    if tier is BackendTier.CPU:
        return [CPU_PROVIDER]

    candidates = ACCELERATOR_PROVIDERS if tier is BackendTier.ACCELERATOR else GPU_PROVIDERS
    chosen = [p for p in candidates if p in available]
    if not chosen:
        raise BackendError(f"No {tier.value} execution provider available", tier=tier.value)
    return [chosen[0], CPU_PROVIDER]


def _tensor_spec(node) -> TensorSpec:
    dtype = _ORT_TYPES.get(node.type)
    if dtype is None:
        raise AssetError(f"Unsupported tensor type {node.type} for {node.name}")
    return TensorSpec(name=node.name, shape=tuple(node.shape), dtype=np.dtype(dtype))


class OnnxRuntimeBackend:
    """
    One onnxruntime session bound to one tier.

    Raises BackendError when the tier cannot be created (provider missing or
    failed to initialize), AssetError when the model file itself is bad.
    """

    def __init__(
        self,
        model_path: str,
        tier: BackendTier,
        num_threads: Optional[int] = None,
        available_providers: Optional[Iterable[str]] = None,
    ):
        if not os.path.isfile(model_path):
            raise AssetError(f"Model file not found: {model_path!r}")

        self.tier = tier
        self.model_path = model_path
        available = available_providers if available_providers is not None else ort.get_available_providers()
        providers = providers_for_tier(tier, available)

        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        if tier is BackendTier.CPU:
            options.intra_op_num_threads = num_threads or default_cpu_threads()
            options.inter_op_num_threads = 1
            options.execution_mode = ort.ExecutionMode.ORT_SEQUENTIAL

        try:
            session = ort.InferenceSession(model_path, sess_options=options, providers=providers)
        except (InvalidProtobuf, InvalidGraph, NoSuchFile) as e:
            raise AssetError(f"Invalid model file {model_path}: {e}") from e
        except Exception as e:
            raise BackendError(f"{tier.value} session creation failed: {e}", tier=tier.value) from e

        # onnxruntime silently drops providers that fail to initialize
        active = session.get_providers()
        if providers[0] not in active:
            raise BackendError(
                f"{providers[0]} did not initialize (active providers: {active})", tier=tier.value
            )

        self._session: Optional[ort.InferenceSession] = session
        self.providers = active
        self.input_spec = _tensor_spec(session.get_inputs()[0])
        self.output_spec = _tensor_spec(session.get_outputs()[0])
        logging.debug(
            f"onnxruntime session ready: tier={tier.value}, providers={active}, "
            f"input={self.input_spec.shape} {self.input_spec.dtype}, output={self.output_spec.shape}"
        )

    def infer(self, tensor: np.ndarray) -> np.ndarray:
        if self._session is None:
            raise RuntimeError("Backend is closed")
        outputs = self._session.run([self.output_spec.name], {self.input_spec.name: tensor})
        return outputs[0]

    def close(self) -> None:
        self._session = None
