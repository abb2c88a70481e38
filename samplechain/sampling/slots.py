"""
Named containers for sampler stages.

A slot owns the stages configured for one position of the chain plus a
factory that produces the default stage for that position. ``chain`` slots
accept any number of stages, ``single`` slots at most one.
"""

import logging
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple

from samplechain.errors import CapacityExceededError
from samplechain.sampling.stages import SamplerStage

logger = logging.getLogger(__name__)

StageFactory = Callable[[], SamplerStage]


class SlotKind(Enum):
    """Capacity policy of a slot."""

    CHAIN = "chain"
    SINGLE = "single"


class SamplerSlot:
    """
    A slot holding zero or more stages and a default factory.

    Contents are either *configured* (inserted explicitly) or *default*
    (produced by ``ensure_default``). An explicit insert into a slot that only
    holds its default replaces the default.
    """

    def __init__(
        self,
        kind: SlotKind,
        default_factory: StageFactory,
        stages: Iterable[SamplerStage] = (),
        name: Optional[str] = None,
    ):
        self.kind = kind
        self.default_factory = default_factory
        self.name = name
        self._stages: List[SamplerStage] = []
        self._is_default = False

        for stage in stages:
            self.insert(stage)

    @classmethod
    def new_chain(
        cls, default_factory: StageFactory, initial_stages: Iterable[SamplerStage] = ()
    ) -> "SamplerSlot":
        """Create a slot that accepts any number of stages."""
        return cls(SlotKind.CHAIN, default_factory, initial_stages)

    @classmethod
    def new_single(
        cls, default_factory: StageFactory, initial_stage: Optional[SamplerStage] = None
    ) -> "SamplerSlot":
        """Create a slot that accepts at most one stage."""
        stages = [] if initial_stage is None else [initial_stage]
        return cls(SlotKind.SINGLE, default_factory, stages)

    @property
    def capacity(self) -> Optional[int]:
        """Maximum number of stages, ``None`` when unbounded."""
        return 1 if self.kind is SlotKind.SINGLE else None

    @property
    def stages(self) -> Tuple[SamplerStage, ...]:
        return tuple(self._stages)

    @property
    def is_empty(self) -> bool:
        return not self._stages

    @property
    def is_default(self) -> bool:
        """True when the slot holds the stage produced by its default factory."""
        return self._is_default

    @property
    def configured(self) -> bool:
        """True when the slot holds explicitly configured stages."""
        return bool(self._stages) and not self._is_default

    def insert(self, stage: SamplerStage) -> None:
        """
        Add an explicitly configured stage.

        Raises:
            CapacityExceededError: If this is a single slot that already
                holds a configured stage. The slot is left unchanged.
        """
        if self._is_default:
            self._stages.clear()
            self._is_default = False

        if self.capacity is not None and len(self._stages) >= self.capacity:
            raise CapacityExceededError(self.name or "<unnamed>")

        self._stages.append(stage)

    def replace(self, stage: SamplerStage) -> None:
        """Swap whatever the slot holds for ``stage``."""
        self._stages = [stage]
        self._is_default = False

    def clear(self) -> None:
        self._stages = []
        self._is_default = False

    def ensure_default(self) -> None:
        """Fill an empty slot from its default factory; no-op otherwise."""
        if self._stages:
            return

        self._stages.append(self.default_factory())
        self._is_default = True
        logger.debug(f"Slot '{self.name}' filled with default {self._stages[0]!r}")

    def __len__(self) -> int:
        return len(self._stages)

    def __repr__(self) -> str:
        state = "default" if self._is_default else "configured"
        if not self._stages:
            state = "empty"
        return (
            f"SamplerSlot(name={self.name!r}, kind={self.kind.value}, "
            f"{state}, stages={list(self._stages)!r})"
        )
