"""
Tests for onnxruntime provider selection.
"""

import types

import numpy as np
import pytest

from inference.backend import BackendTier
from inference.onnx_backend import (
    CPU_PROVIDER,
    OnnxRuntimeBackend,
    _tensor_spec,
    query_capabilities,
    providers_for_tier,
)
from ops.errors import AssetError, BackendError


class TestQueryCapabilities:
    def test_cpu_only_build(self):
        caps = query_capabilities([CPU_PROVIDER])
        assert not caps.accelerator
        assert not caps.gpu

    def test_gpu_build(self):
        caps = query_capabilities(["CUDAExecutionProvider", CPU_PROVIDER])
        assert caps.gpu
        assert not caps.accelerator
        assert "CUDAExecutionProvider" in caps.providers

    def test_accelerator_build(self):
        assert query_capabilities(["NnapiExecutionProvider", CPU_PROVIDER]).accelerator

    def test_installed_build_has_cpu(self):
        assert CPU_PROVIDER in query_capabilities().providers


class TestProvidersForTier:
    def test_cpu(self):
        assert providers_for_tier(BackendTier.CPU, []) == [CPU_PROVIDER]

    def test_gpu_keeps_cpu_fallback(self):
        available = ["DmlExecutionProvider", "CUDAExecutionProvider", CPU_PROVIDER]
        assert providers_for_tier(BackendTier.GPU, available) == ["CUDAExecutionProvider", CPU_PROVIDER]

    def test_accelerator_preference_order(self):
        available = ["CoreMLExecutionProvider", "TensorrtExecutionProvider"]
        assert providers_for_tier(BackendTier.ACCELERATOR, available)[0] == "TensorrtExecutionProvider"

    def test_missing_tier_raises_backend_error(self):
        with pytest.raises(BackendError) as exc:
            providers_for_tier(BackendTier.ACCELERATOR, [CPU_PROVIDER])
        assert exc.value.tier == "accelerator"


def test_missing_model_file(tmp_path):
    with pytest.raises(AssetError):
        OnnxRuntimeBackend(str(tmp_path / "missing.onnx"), BackendTier.CPU)


def test_corrupt_model_file(tmp_path):
    model = tmp_path / "broken.onnx"
    model.write_bytes(b"not a model")
    with pytest.raises((AssetError, BackendError)):
        OnnxRuntimeBackend(str(model), BackendTier.CPU, available_providers=[CPU_PROVIDER])


class TestTensorSpec:
    @pytest.mark.parametrize("ort_type,dtype", [
        ("tensor(float)", np.float32),
        ("tensor(float16)", np.float16),
        ("tensor(uint8)", np.uint8),
    ])
    def test_supported_types(self, ort_type, dtype):
        spec = _tensor_spec(types.SimpleNamespace(type=ort_type, name="images", shape=[1, 3, 64, 64]))
        assert spec.dtype == np.dtype(dtype)
        assert spec.shape == (1, 3, 64, 64)

    @pytest.mark.parametrize("ort_type", ["tensor(int8)", "tensor(double)", "tensor(int64)"])
    def test_unsupported_types_rejected_at_load(self, ort_type):
        with pytest.raises(AssetError):
            _tensor_spec(types.SimpleNamespace(type=ort_type, name="images", shape=[1, 3, 64, 64]))
