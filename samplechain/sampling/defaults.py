"""
Default stage catalog and sampler override parsing.

``build_default_builder`` wires one slot per known name with the default
stage for that position. The top-k and temperature defaults are bound to the
resolved parameters, every other default is a fixed configuration (most of
them no-ops until overridden).

Overrides use the same short syntax as the CLI ``--sampler`` option::

    topk:k=50
    temperature:temperature=0.3
    repetition:penalty=1.1:last_n=128
    mirostat2:tau=4.0
"""

import inspect
import logging
from functools import partial
from typing import Dict, Iterable, Tuple, Type, Union

from pydantic import TypeAdapter, ValidationError

from samplechain.config.parameters import ResolvedParameters
from samplechain.errors import SamplerSpecError, UnknownSlotError
from samplechain.sampling.chain import SLOT_ORDER, SamplerChain, SamplerChainBuilder
from samplechain.sampling.slots import SamplerSlot
from samplechain.sampling.stages import (
    SampleFreqPresence,
    SampleLocallyTypical,
    SampleMinP,
    SampleMirostat1,
    SampleMirostat2,
    SampleRepetition,
    SampleSeqRepetition,
    SampleTailFree,
    SampleTemperature,
    SampleTopA,
    SampleTopK,
    SampleTopP,
    SamplerStage,
)

logger = logging.getLogger(__name__)

STAGE_TYPES: Dict[str, Type[SamplerStage]] = {
    "repetition": SampleRepetition,
    "freqpresence": SampleFreqPresence,
    "seqrepetition": SampleSeqRepetition,
    "topk": SampleTopK,
    "tailfree": SampleTailFree,
    "locallytypical": SampleLocallyTypical,
    "topp": SampleTopP,
    "topa": SampleTopA,
    "minp": SampleMinP,
    "temperature": SampleTemperature,
    "mirostat1": SampleMirostat1,
    "mirostat2": SampleMirostat2,
}

SamplerOverride = Union[str, Tuple[str, SamplerStage]]


def build_default_builder(params: ResolvedParameters) -> SamplerChainBuilder:
    """
    Create a builder with every slot empty and its default factory set.

    Args:
        params: Resolved tunables; ``top_k`` and ``temperature`` feed the
            corresponding default stages

    Returns:
        SamplerChainBuilder ready for overrides and ``ensure_default_slots``
    """
    return SamplerChainBuilder(
        [
            (
                "repetition",
                SamplerSlot.new_chain(
                    partial(SampleRepetition, penalty=1.30, last_n=64)
                ),
            ),
            (
                "freqpresence",
                SamplerSlot.new_chain(partial(SampleFreqPresence, last_n=64)),
            ),
            ("seqrepetition", SamplerSlot.new_chain(SampleSeqRepetition)),
            ("topk", SamplerSlot.new_single(partial(SampleTopK, k=params.top_k))),
            ("tailfree", SamplerSlot.new_single(SampleTailFree)),
            ("locallytypical", SamplerSlot.new_single(SampleLocallyTypical)),
            ("topp", SamplerSlot.new_single(partial(SampleTopP, p=0.95))),
            ("topa", SamplerSlot.new_single(partial(SampleTopA, a1=0.0, a2=0.0))),
            ("minp", SamplerSlot.new_single(partial(SampleMinP, p=0.0))),
            (
                "temperature",
                SamplerSlot.new_single(
                    partial(SampleTemperature, temperature=params.temperature)
                ),
            ),
            ("mirostat1", SamplerSlot.new_single(partial(SampleMirostat1, enabled=False))),
            ("mirostat2", SamplerSlot.new_single(partial(SampleMirostat2, enabled=False))),
        ]
    )


def parse_sampler_spec(spec: str) -> Tuple[str, SamplerStage]:
    """
    Parse an override such as ``"topk:k=50"`` into a slot name and stage.

    Option values are converted to the type annotated on the stage
    constructor.

    Raises:
        UnknownSlotError: If the slot name is not known
        SamplerSpecError: If an option is malformed, unknown or invalid
    """
    name, _, options = spec.strip().partition(":")
    name = name.strip().lower()
    if name not in STAGE_TYPES:
        raise UnknownSlotError(name, SLOT_ORDER)

    stage_class = STAGE_TYPES[name]
    parameters = inspect.signature(stage_class.__init__).parameters

    kwargs = {}
    for option in filter(None, (part.strip() for part in options.split(":"))):
        key, sep, raw = option.partition("=")
        key = key.strip().replace("-", "_")
        if not sep or not raw.strip():
            raise SamplerSpecError(
                f"Malformed option '{option}' in sampler '{spec}', expected key=value"
            )
        if key == "self" or key not in parameters:
            valid = ", ".join(p for p in parameters if p != "self")
            raise SamplerSpecError(
                f"Unknown option '{key}' for sampler '{name}'. Valid options: {valid}"
            )
        try:
            kwargs[key] = TypeAdapter(parameters[key].annotation).validate_python(
                raw.strip()
            )
        except ValidationError as e:
            raise SamplerSpecError(
                f"Invalid value for '{key}' in sampler '{spec}': {e.errors()[0]['msg']}"
            ) from e

    try:
        stage = stage_class(**kwargs)
    except ValueError as e:
        raise SamplerSpecError(f"Invalid sampler '{spec}': {e}") from e

    return name, stage


def configure_overrides(
    builder: SamplerChainBuilder, overrides: Iterable[SamplerOverride]
) -> SamplerChainBuilder:
    """Insert every override (spec string or ``(slot_name, stage)``) into ``builder``."""
    for override in overrides:
        if isinstance(override, str):
            name, stage = parse_sampler_spec(override)
        else:
            name, stage = override
        builder.configure(name, stage)
    return builder


def create_sampler_chain(
    params: ResolvedParameters, overrides: Iterable[SamplerOverride] = ()
) -> SamplerChain:
    """
    Build the full chain for one run.

    Args:
        params: Resolved tunables for the default stages
        overrides: Sampler spec strings or ``(slot_name, stage)`` pairs

    Returns:
        The executable SamplerChain

    Raises:
        SamplerChainError: On any structural problem (unknown slot, second
            stage in a single slot, both mirostat controllers enabled, ...)
    """
    builder = configure_overrides(build_default_builder(params), overrides)
    builder.ensure_default_slots()
    return builder.into_chain()
