"""
Inference backend interface.

A backend runs one network on one hardware path (a tier). Tier selection is a
pure function of the capabilities queried once at startup, so it can be tested
without any runtime installed.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional, Protocol, Tuple, Union

import numpy as np

Dim = Union[int, str, None]


class BackendTier(str, Enum):
    ACCELERATOR = "accelerator"
    GPU = "gpu"
    CPU = "cpu"


@dataclass(frozen=True)
class BackendCapabilities:
    """
    Which tiers the host can attempt.

    Attributes:
        accelerator: An NPU/DSP style execution path is available.
        gpu: A GPU execution path is available.
        providers: Raw runtime provider names, for logging.
    """
    accelerator: bool = False
    gpu: bool = False
    providers: FrozenSet[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class TensorSpec:
    """Declared name, shape and element type of a model input or output."""
    name: str
    shape: Tuple[Dim, ...]
    dtype: np.dtype

    @property
    def is_static(self) -> bool:
        return all(isinstance(d, int) and d > 0 for d in self.shape)


class Backend(Protocol):
    """One loaded network on one tier. Not safe for concurrent infer() calls."""

    tier: BackendTier
    input_spec: TensorSpec
    output_spec: TensorSpec

    def infer(self, tensor: np.ndarray) -> np.ndarray:
        ...

    def close(self) -> None:
        ...


def select_tiers(
    capabilities: BackendCapabilities,
    prefer_accelerator: bool = True,
    allow_gpu: bool = True,
) -> List[BackendTier]:
    """
    Ordered tiers to attempt: accelerator, then GPU, then CPU.

    CPU is always present and always last.
    """
    tiers: List[BackendTier] = []
    if prefer_accelerator and capabilities.accelerator:
        tiers.append(BackendTier.ACCELERATOR)
    if allow_gpu and capabilities.gpu:
        tiers.append(BackendTier.GPU)
    tiers.append(BackendTier.CPU)
    return tiers


def default_cpu_threads(cpu_count: Optional[int] = None) -> int:
    """Leave two cores for capture and the UI: max(1, cores - 2)."""
    cores = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    return max(1, cores - 2)
