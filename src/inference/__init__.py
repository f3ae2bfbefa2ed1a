from .backend import Backend, BackendCapabilities, BackendTier, TensorSpec, default_cpu_threads, select_tiers
from .engine import InferenceEngine

__all__ = [
    "Backend",
    "BackendCapabilities",
    "BackendTier",
    "TensorSpec",
    "default_cpu_threads",
    "select_tiers",
    "InferenceEngine",
]
