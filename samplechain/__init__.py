"""
samplechain: configurable sampler chains for autoregressive text generation.

Resolve generation tunables from the environment, compose the ordered chain
of sampling stages applied at every step, and record per-run telemetry.
"""

from samplechain.config import ParameterResolver, ResolvedParameters
from samplechain.errors import (
    CapacityExceededError,
    ConflictingOptionsError,
    DuplicateSlotNameError,
    IncompatibleSamplersError,
    SamplerChainError,
    SamplerSpecError,
    UnknownSlotError,
)
from samplechain.sampling import (
    SamplerChain,
    SamplerChainBuilder,
    SamplerSlot,
    build_default_builder,
    create_sampler_chain,
)
from samplechain.telemetry import InferenceLog, InferenceStats

__version__ = "0.1.0"

__all__ = [
    "CapacityExceededError",
    "ConflictingOptionsError",
    "DuplicateSlotNameError",
    "IncompatibleSamplersError",
    "InferenceLog",
    "InferenceStats",
    "ParameterResolver",
    "ResolvedParameters",
    "SamplerChain",
    "SamplerChainBuilder",
    "SamplerChainError",
    "SamplerSlot",
    "SamplerSpecError",
    "UnknownSlotError",
    "build_default_builder",
    "create_sampler_chain",
]
