"""
Sampler chain: stages, slots, the chain builder and the default catalog.

This module composes independently configurable sampling stages
(penalties, truncation, temperature, mirostat) into the ordered pipeline
that picks each generated token.
"""

from .chain import SLOT_ORDER, SamplerChain, SamplerChainBuilder
from .defaults import (
    STAGE_TYPES,
    build_default_builder,
    configure_overrides,
    create_sampler_chain,
    parse_sampler_spec,
)
from .slots import SamplerSlot, SlotKind
from .stages import SamplerStage, TerminalStage

__all__ = [
    "SLOT_ORDER",
    "STAGE_TYPES",
    "SamplerChain",
    "SamplerChainBuilder",
    "SamplerSlot",
    "SamplerStage",
    "SlotKind",
    "TerminalStage",
    "build_default_builder",
    "configure_overrides",
    "create_sampler_chain",
    "parse_sampler_spec",
]
