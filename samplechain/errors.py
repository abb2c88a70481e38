"""
Structural errors raised while assembling a sampler chain.

Bad *values* coming from the environment never end up here: the parameter
resolver logs them and falls back to a default. The exceptions below signal
programming or configuration mistakes and stop a run before any token is
generated.
"""


class SamplerChainError(Exception):
    """Base class for every chain construction failure."""


class CapacityExceededError(SamplerChainError):
    """A second stage was inserted into a single-capacity slot."""

    def __init__(self, slot_name: str):
        self.slot_name = slot_name
        super().__init__(
            f"Slot '{slot_name}' holds at most one sampler and is already occupied"
        )


class DuplicateSlotNameError(SamplerChainError):
    """The same slot name was declared twice in a builder."""

    def __init__(self, slot_name: str):
        self.slot_name = slot_name
        super().__init__(f"Duplicate sampler slot name: '{slot_name}'")


class UnknownSlotError(SamplerChainError):
    """A slot name outside the fixed slot vocabulary was used."""

    def __init__(self, slot_name: str, valid_names):
        self.slot_name = slot_name
        super().__init__(
            f"Unknown sampler slot: '{slot_name}'. "
            f"Valid slots are: {', '.join(valid_names)}"
        )


class IncompatibleSamplersError(SamplerChainError):
    """Two mutually exclusive samplers were enabled at the same time."""

    def __init__(self, first: str, second: str):
        self.first = first
        self.second = second
        super().__init__(f"Cannot enable both '{first}' and '{second}' samplers")


class SamplerSpecError(SamplerChainError):
    """A sampler override string could not be parsed."""


class ConflictingOptionsError(SamplerChainError):
    """Two command line options that exclude each other were both given."""

    def __init__(self, first: str, second: str):
        self.first = first
        self.second = second
        super().__init__(f"Cannot specify both {first} and {second}")
