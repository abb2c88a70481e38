"""
Sampler chain builder and the executable chain it produces.

The builder holds one slot per known slot name. Whatever order slots are
added or configured in, the chain always runs them in ``SLOT_ORDER``:

1. penalties (repetition, frequency/presence, sequence repetition) on the
   raw logits, since they need unmodified scores to penalise correctly
2. truncation (top-k, tail-free, locally typical, top-p, top-a, min-p)
3. temperature on the surviving distribution
4. at most one mirostat controller, which selects the token

When no mirostat controller is active the chain ends by drawing a token from
the softmax of whatever survived.
"""

import logging
import threading
from typing import Dict, Iterable, Iterator, Optional, Sequence, Tuple

import torch

from samplechain.errors import (
    DuplicateSlotNameError,
    IncompatibleSamplersError,
    UnknownSlotError,
)
from samplechain.sampling.slots import SamplerSlot
from samplechain.sampling.stages import SamplerStage, sample_from_logits

logger = logging.getLogger(__name__)

SLOT_ORDER: Tuple[str, ...] = (
    "repetition",
    "freqpresence",
    "seqrepetition",
    "topk",
    "tailfree",
    "locallytypical",
    "topp",
    "topa",
    "minp",
    "temperature",
    "mirostat1",
    "mirostat2",
)

MUTUALLY_EXCLUSIVE: Tuple[Tuple[str, str], ...] = (("mirostat1", "mirostat2"),)


class SamplerChain:
    """
    The resolved, ordered pipeline of stages run once per generated token.

    ``sample`` is guarded by a lock so several generation runs can share one
    chain. Stage state (e.g. the mirostat surprise bound) still evolves per
    call, so runs that need independent state should build their own chain.
    """

    def __init__(self, stages: Iterable[SamplerStage]):
        self._stages = tuple(stages)
        self._lock = threading.Lock()

    @property
    def stages(self) -> Tuple[SamplerStage, ...]:
        return self._stages

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(stage.name for stage in self._stages)

    @property
    def active_stages(self) -> Tuple[SamplerStage, ...]:
        return tuple(stage for stage in self._stages if stage.active)

    def apply(self, logits: torch.Tensor, history: Sequence[int]) -> torch.Tensor:
        """Run every active transforming stage, stopping before a terminal one."""
        for stage in self._stages:
            if not stage.active:
                continue
            if stage.terminal:
                break
            logits = stage(logits, history)
        return logits

    def sample(
        self,
        logits: torch.Tensor,
        history: Sequence[int],
        generator: Optional[torch.Generator] = None,
    ) -> int:
        """
        Select the next token.

        Args:
            logits: Next-token logits with shape [vocab_size]
            history: Token ids seen so far (prompt + generated)
            generator: Optional torch RNG for reproducible runs

        Returns:
            Selected token id
        """
        with self._lock:
            for stage in self._stages:
                if not stage.active:
                    continue
                if stage.terminal:
                    return stage.select(logits, history, generator)
                logits = stage(logits, history)

            return sample_from_logits(logits, generator)

    def reset(self) -> None:
        """Reset adaptive stage state between runs."""
        with self._lock:
            for stage in self._stages:
                reset = getattr(stage, "reset", None)
                if reset is not None:
                    reset()

    def __len__(self) -> int:
        return len(self._stages)

    def __iter__(self) -> Iterator[SamplerStage]:
        return iter(self._stages)

    def __repr__(self) -> str:
        return f"SamplerChain({' -> '.join(self.names)})"


class SamplerChainBuilder:
    """
    Ordered collection of named sampler slots.

    Example:
        builder = SamplerChainBuilder([
            ("topk", SamplerSlot.new_single(SampleTopK)),
            ("temperature", SamplerSlot.new_single(SampleTemperature)),
        ])
        builder.configure("temperature", SampleTemperature(0.3))
        builder.ensure_default_slots()
        chain = builder.into_chain()
    """

    def __init__(self, slots: Iterable[Tuple[str, SamplerSlot]] = ()):
        self._slots: Dict[str, SamplerSlot] = {}
        for name, slot in slots:
            self.add_slot(name, slot)

    def add_slot(self, name: str, slot: SamplerSlot) -> None:
        """
        Register ``slot`` under ``name``.

        Raises:
            DuplicateSlotNameError: If ``name`` is already registered
            UnknownSlotError: If ``name`` is not one of SLOT_ORDER
        """
        if name in self._slots:
            raise DuplicateSlotNameError(name)
        if name not in SLOT_ORDER:
            raise UnknownSlotError(name, SLOT_ORDER)

        slot.name = name
        self._slots[name] = slot

    @property
    def names(self) -> Tuple[str, ...]:
        """Registered slot names in declaration order."""
        return tuple(name for name in SLOT_ORDER if name in self._slots)

    def __getitem__(self, name: str) -> SamplerSlot:
        try:
            return self._slots[name]
        except KeyError:
            raise UnknownSlotError(name, self.names) from None

    def __contains__(self, name: str) -> bool:
        return name in self._slots

    def __iter__(self) -> Iterator[Tuple[str, SamplerSlot]]:
        for name in self.names:
            yield name, self._slots[name]

    def __len__(self) -> int:
        return len(self._slots)

    def configure(self, name: str, stage: SamplerStage) -> None:
        """Insert an explicit override into slot ``name``."""
        self[name].insert(stage)
        logger.info(f"Configured sampler slot '{name}': {stage!r}")

    def is_enabled(self, name: str) -> bool:
        """True when slot ``name`` holds explicitly configured (non-default) stages."""
        return self[name].configured

    def ensure_default_slots(self) -> None:
        """Fill every empty slot from its default factory, in declaration order."""
        for _, slot in self:
            slot.ensure_default()

    def validate(self) -> None:
        """
        Check cross-slot constraints.

        Raises:
            IncompatibleSamplersError: If two mutually exclusive slots are
                both enabled
        """
        for first, second in MUTUALLY_EXCLUSIVE:
            if first not in self or second not in self:
                continue
            if self.is_enabled(first) and self.is_enabled(second):
                raise IncompatibleSamplersError(first, second)

    def into_chain(self) -> SamplerChain:
        """Flatten all slots, in declaration order, into an executable chain."""
        self.validate()

        stages = [stage for _, slot in self for stage in slot.stages]
        chain = SamplerChain(stages)
        logger.info(
            f"Built sampler chain with {len(chain.active_stages)} active of "
            f"{len(chain)} stages"
        )
        return chain
