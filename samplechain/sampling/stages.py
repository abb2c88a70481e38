"""
Sampling stages applied to a model's next-token logits.

Each stage is one named step of the sampler chain. Transforming stages take
the logits for the next position (a 1-D tensor over the vocabulary) together
with the token history and return new logits; candidates that a stage removes
are set to -inf. Terminal stages (the mirostat controllers) pick the token
themselves.

The module-level ``apply_*`` functions hold the math so they can be used and
tested on their own; the ``Sample*`` classes bind a configuration to them.
"""

import math
from abc import ABC, abstractmethod
from collections import Counter
from typing import Any, Dict, Optional, Sequence

import torch
import torch.nn.functional as F

NEG_INF = float("-inf")


def _window(history: Sequence[int], last_n: int) -> list:
    """Return the last ``last_n`` tokens of ``history`` (empty when last_n <= 0)."""
    if last_n <= 0:
        return []
    return list(history[-last_n:])


def _keep_top(
    remove: torch.Tensor, probs: torch.Tensor, min_keep: int
) -> torch.Tensor:
    """Clear the removal flag for the ``min_keep`` most likely tokens."""
    keep = min(max(min_keep, 1), probs.size(-1))
    top_indices = torch.topk(probs, keep).indices
    remove[top_indices] = False
    return remove


def apply_repetition_penalty(
    logits: torch.Tensor, history: Sequence[int], penalty: float, last_n: int
) -> torch.Tensor:
    """
    Penalise tokens that already appeared in the recent history.

    Positive logits are divided by ``penalty`` and negative logits multiplied
    by it, so a penalty above 1.0 always makes a repeated token less likely.
    Every distinct token is penalised once no matter how often it occurred.

    Args:
        logits: Next-token logits with shape [vocab_size]
        history: Token ids seen so far (prompt + generated)
        penalty: Penalty factor (1.0 = disabled)
        last_n: How many of the most recent tokens to look at

    Returns:
        Penalised logits
    """
    window = _window(history, last_n)
    if penalty == 1.0 or not window:
        return logits

    vocab_size = logits.size(-1)
    tokens = torch.tensor(
        sorted({t for t in window if 0 <= t < vocab_size}),
        dtype=torch.long,
        device=logits.device,
    )
    if tokens.numel() == 0:
        return logits

    penalised = logits.clone()
    selected = penalised[tokens]
    penalised[tokens] = torch.where(selected > 0, selected / penalty, selected * penalty)
    return penalised


def apply_freq_presence(
    logits: torch.Tensor,
    history: Sequence[int],
    frequency_penalty: float,
    presence_penalty: float,
    last_n: int,
) -> torch.Tensor:
    """
    Apply OpenAI-style frequency and presence penalties.

    ``logit -= count * frequency_penalty + presence_penalty`` for every token
    that occurs ``count > 0`` times in the last ``last_n`` tokens.
    """
    window = _window(history, last_n)
    if (frequency_penalty == 0.0 and presence_penalty == 0.0) or not window:
        return logits

    vocab_size = logits.size(-1)
    counts = Counter(t for t in window if 0 <= t < vocab_size)
    if not counts:
        return logits

    tokens = torch.tensor(list(counts.keys()), dtype=torch.long, device=logits.device)
    occurrences = torch.tensor(
        list(counts.values()), dtype=logits.dtype, device=logits.device
    )

    penalised = logits.clone()
    penalised[tokens] -= occurrences * frequency_penalty + presence_penalty
    return penalised


def apply_seq_repetition(
    logits: torch.Tensor,
    history: Sequence[int],
    flat_penalty: float,
    stacking_penalty: float,
    min_length: int,
    last_n: int,
) -> torch.Tensor:
    """
    Penalise tokens that would continue a sequence already seen in the history.

    The current suffix of the history is matched against every earlier
    position in the window. When an earlier occurrence matches for at least
    ``min_length`` tokens, the token that followed it there is penalised by
    ``flat_penalty + stacking_penalty * (match_length - min_length)``. Longer
    matches therefore stack up a bigger penalty.
    """
    window = _window(history, last_n)
    if min_length < 1 or (flat_penalty == 0.0 and stacking_penalty == 0.0):
        return logits
    if len(window) < 2:
        return logits

    last_token = window[-1]
    match_lengths: Dict[int, int] = {}

    # Exclude the last position since it always matches itself
    for i, token in enumerate(window[:-1]):
        if token != last_token:
            continue

        match_length = 1
        while i - match_length >= 0 and (
            window[i - match_length] == window[-(match_length + 1)]
        ):
            match_length += 1

        if match_length >= min_length:
            next_token = window[i + 1]
            match_lengths[next_token] = max(
                match_length, match_lengths.get(next_token, 0)
            )

    if not match_lengths:
        return logits

    vocab_size = logits.size(-1)
    penalised = logits.clone()
    for token, match_length in match_lengths.items():
        if 0 <= token < vocab_size:
            penalised[token] -= flat_penalty + stacking_penalty * (
                match_length - min_length
            )
    return penalised


def apply_top_k(logits: torch.Tensor, k: int, min_keep: int = 1) -> torch.Tensor:
    """
    Apply top-k filtering to logits.

    Only the k most likely tokens survive, everything else is set to -inf.

    Args:
        logits: Next-token logits with shape [vocab_size]
        k: Number of top tokens to keep (1 = greedy, vocab_size = no filtering)
        min_keep: Lower bound on the number of surviving tokens

    Returns:
        Filtered logits with only top-k tokens possible
    """
    if k <= 0:
        raise ValueError("k must be positive")

    k = max(k, min_keep)
    if k >= logits.size(-1):
        return logits  # No filtering needed

    # Get the k-th largest logit value (threshold)
    top_k_logits, _ = torch.topk(logits, k)
    min_top_k = top_k_logits[..., -1, None]

    return logits.masked_fill(logits < min_top_k, NEG_INF)


def apply_tail_free(logits: torch.Tensor, z: float, min_keep: int = 1) -> torch.Tensor:
    """
    Apply tail-free sampling.

    The sorted probability curve is differentiated twice; tokens after the
    point where the normalised cumulative second derivative exceeds ``z`` are
    treated as the "tail" and removed.
    """
    if z >= 1.0 or logits.size(-1) <= 2:
        return logits

    probs = F.softmax(logits, dim=-1)
    sorted_probs, sorted_indices = torch.sort(probs, descending=True)

    d2 = sorted_probs.diff().diff().abs()
    total = d2.sum()
    if total <= 0:
        return logits
    d2_cdf = (d2 / total).cumsum(dim=-1)

    # Centre the mask around the cutoff: the first token is always kept and
    # the last one (which has no second derivative) always dropped
    sorted_to_remove = torch.cat(
        (
            torch.zeros(1, dtype=torch.bool, device=logits.device),
            d2_cdf > z,
            torch.ones(1, dtype=torch.bool, device=logits.device),
        )
    )
    to_remove = sorted_to_remove.scatter(-1, sorted_indices, sorted_to_remove)
    to_remove = _keep_top(to_remove, probs, min_keep)
    return logits.masked_fill(to_remove, NEG_INF)


def apply_locally_typical(
    logits: torch.Tensor, p: float, min_keep: int = 1
) -> torch.Tensor:
    """
    Apply locally typical sampling.

    Tokens are ranked by how close their surprise is to the entropy of the
    distribution, and the smallest such set with cumulative probability of at
    least ``p`` is kept.
    """
    if p >= 1.0:
        return logits

    log_probs = F.log_softmax(logits, dim=-1)
    probs = log_probs.exp()
    entropy = -(probs * log_probs).nansum()

    shifted = (-log_probs - entropy).abs()
    _, sorted_indices = torch.sort(shifted)
    cumulative_probs = probs[sorted_indices].cumsum(dim=-1)

    # Keep tokens up to and including the first one that crosses p
    sorted_to_remove = cumulative_probs > p
    sorted_to_remove[1:] = sorted_to_remove[:-1].clone()
    # min_keep counts in typicality order, not probability order
    sorted_to_remove[: max(min_keep, 1)] = False

    to_remove = sorted_to_remove.scatter(-1, sorted_indices, sorted_to_remove)
    return logits.masked_fill(to_remove, NEG_INF)


def apply_top_p(logits: torch.Tensor, p: float, min_keep: int = 1) -> torch.Tensor:
    """
    Apply nucleus (top-p) sampling to logits.

    Keeps the smallest set of tokens whose cumulative probability exceeds p,
    so the candidate set adapts to how confident the model is.

    Args:
        logits: Next-token logits with shape [vocab_size]
        p: Cumulative probability threshold (0 < p <= 1)
        min_keep: Lower bound on the number of surviving tokens

    Returns:
        Filtered logits with only nucleus tokens possible
    """
    if not 0 < p <= 1:
        raise ValueError("p must be between 0 and 1")

    if p >= 1.0:
        return logits  # No filtering needed

    probs = F.softmax(logits, dim=-1)
    sorted_probs, sorted_indices = torch.sort(probs, descending=True)
    cumulative_probs = torch.cumsum(sorted_probs, dim=-1)

    # We keep tokens up to and including the first one that exceeds p
    sorted_to_remove = cumulative_probs > p
    sorted_to_remove[..., 1:] = sorted_to_remove[..., :-1].clone()
    sorted_to_remove[..., 0] = False

    to_remove = sorted_to_remove.scatter(-1, sorted_indices, sorted_to_remove)
    to_remove = _keep_top(to_remove, probs, min_keep)
    return logits.masked_fill(to_remove, NEG_INF)


def apply_top_a(
    logits: torch.Tensor, a1: float, a2: float, min_keep: int = 1
) -> torch.Tensor:
    """Remove tokens with probability below ``a1 * max_prob ** a2``."""
    if a1 == 0.0:
        return logits

    probs = F.softmax(logits, dim=-1)
    threshold = a1 * probs.max() ** a2
    to_remove = _keep_top(probs < threshold, probs, min_keep)
    return logits.masked_fill(to_remove, NEG_INF)


def apply_min_p(logits: torch.Tensor, p: float, min_keep: int = 1) -> torch.Tensor:
    """Remove tokens whose probability is below ``p`` times the top probability."""
    if p <= 0.0:
        return logits

    probs = F.softmax(logits, dim=-1)
    to_remove = _keep_top(probs < p * probs.max(), probs, min_keep)
    return logits.masked_fill(to_remove, NEG_INF)


def apply_temperature(logits: torch.Tensor, temperature: float) -> torch.Tensor:
    """
    Apply temperature scaling to logits.

    - temperature = 1.0: Use raw model probabilities (no change)
    - temperature < 1.0: Sharper distribution, the model is more confident
    - temperature > 1.0: Flatter distribution, more random choices

    Args:
        logits: Next-token logits with shape [vocab_size]
        temperature: Temperature scaling factor (> 0)

    Returns:
        Temperature-scaled logits
    """
    if temperature <= 0:
        raise ValueError("Temperature must be positive")

    return logits / temperature


def sample_from_logits(
    logits: torch.Tensor, generator: Optional[torch.Generator] = None
) -> int:
    """Draw one token id from the softmax of ``logits``."""
    probs = F.softmax(logits.float(), dim=-1)
    return torch.multinomial(probs, num_samples=1, generator=generator).item()


class SamplerStage(ABC):
    """
    One named step of a sampler chain.

    Stages are configured once at construction. ``active`` is False when the
    configuration turns the stage into a no-op, in which case the chain skips
    it.
    """

    name: str = ""
    terminal: bool = False

    @property
    def active(self) -> bool:
        return True

    @abstractmethod
    def __call__(self, logits: torch.Tensor, history: Sequence[int]) -> torch.Tensor:
        pass

    def describe(self) -> Dict[str, Any]:
        """Return the stage configuration as plain values."""
        return {
            key: value for key, value in vars(self).items() if not key.startswith("_")
        }

    def __repr__(self) -> str:
        options = ", ".join(f"{key}={value}" for key, value in self.describe().items())
        return f"{type(self).__name__}({options})"


class TerminalStage(SamplerStage):
    """A stage that selects the next token instead of reshaping the logits."""

    terminal = True

    @abstractmethod
    def select(
        self,
        logits: torch.Tensor,
        history: Sequence[int],
        generator: Optional[torch.Generator] = None,
    ) -> int:
        pass

    def __call__(self, logits: torch.Tensor, history: Sequence[int]) -> torch.Tensor:
        # Collapse the distribution onto the selected token
        token_id = self.select(logits, history)
        collapsed = torch.full_like(logits, NEG_INF)
        collapsed[token_id] = logits[token_id]
        return collapsed


class SampleRepetition(SamplerStage):
    name = "repetition"

    def __init__(self, penalty: float = 1.0, last_n: int = 64):
        if penalty <= 0:
            raise ValueError("Repetition penalty must be positive")
        self.penalty = penalty
        self.last_n = last_n

    @property
    def active(self) -> bool:
        return self.penalty != 1.0 and self.last_n > 0

    def __call__(self, logits, history):
        return apply_repetition_penalty(logits, history, self.penalty, self.last_n)


class SampleFreqPresence(SamplerStage):
    name = "freqpresence"

    def __init__(
        self,
        frequency_penalty: float = 0.0,
        presence_penalty: float = 0.0,
        last_n: int = 64,
    ):
        self.frequency_penalty = frequency_penalty
        self.presence_penalty = presence_penalty
        self.last_n = last_n

    @property
    def active(self) -> bool:
        return self.last_n > 0 and (
            self.frequency_penalty != 0.0 or self.presence_penalty != 0.0
        )

    def __call__(self, logits, history):
        return apply_freq_presence(
            logits,
            history,
            self.frequency_penalty,
            self.presence_penalty,
            self.last_n,
        )


class SampleSeqRepetition(SamplerStage):
    name = "seqrepetition"

    def __init__(
        self,
        flat_penalty: float = 0.0,
        stacking_penalty: float = 0.0,
        min_length: int = 0,
        last_n: int = 64,
    ):
        if min_length < 0:
            raise ValueError("min_length must not be negative")
        self.flat_penalty = flat_penalty
        self.stacking_penalty = stacking_penalty
        self.min_length = min_length
        self.last_n = last_n

    @property
    def active(self) -> bool:
        return (
            self.min_length > 0
            and self.last_n > 0
            and (self.flat_penalty != 0.0 or self.stacking_penalty != 0.0)
        )

    def __call__(self, logits, history):
        return apply_seq_repetition(
            logits,
            history,
            self.flat_penalty,
            self.stacking_penalty,
            self.min_length,
            self.last_n,
        )


class SampleTopK(SamplerStage):
    name = "topk"

    def __init__(self, k: int = 40, min_keep: int = 1):
        if k <= 0:
            raise ValueError("k must be positive")
        self.k = k
        self.min_keep = min_keep

    def __call__(self, logits, history):
        return apply_top_k(logits, self.k, self.min_keep)


class SampleTailFree(SamplerStage):
    name = "tailfree"

    def __init__(self, z: float = 1.0, min_keep: int = 1):
        if not 0 <= z <= 1:
            raise ValueError("z must be between 0 and 1")
        self.z = z
        self.min_keep = min_keep

    @property
    def active(self) -> bool:
        return self.z < 1.0

    def __call__(self, logits, history):
        return apply_tail_free(logits, self.z, self.min_keep)


class SampleLocallyTypical(SamplerStage):
    name = "locallytypical"

    def __init__(self, p: float = 1.0, min_keep: int = 1):
        if not 0 < p <= 1:
            raise ValueError("p must be between 0 and 1")
        self.p = p
        self.min_keep = min_keep

    @property
    def active(self) -> bool:
        return self.p < 1.0

    def __call__(self, logits, history):
        return apply_locally_typical(logits, self.p, self.min_keep)


class SampleTopP(SamplerStage):
    name = "topp"

    def __init__(self, p: float = 0.95, min_keep: int = 1):
        if not 0 < p <= 1:
            raise ValueError("p must be between 0 and 1")
        self.p = p
        self.min_keep = min_keep

    @property
    def active(self) -> bool:
        return self.p < 1.0

    def __call__(self, logits, history):
        return apply_top_p(logits, self.p, self.min_keep)


class SampleTopA(SamplerStage):
    name = "topa"

    def __init__(self, a1: float = 0.0, a2: float = 0.0, min_keep: int = 1):
        if a1 < 0:
            raise ValueError("a1 must not be negative")
        self.a1 = a1
        self.a2 = a2
        self.min_keep = min_keep

    @property
    def active(self) -> bool:
        return self.a1 > 0.0

    def __call__(self, logits, history):
        return apply_top_a(logits, self.a1, self.a2, self.min_keep)


class SampleMinP(SamplerStage):
    name = "minp"

    def __init__(self, p: float = 0.0, min_keep: int = 1):
        if not 0 <= p <= 1:
            raise ValueError("p must be between 0 and 1")
        self.p = p
        self.min_keep = min_keep

    @property
    def active(self) -> bool:
        return self.p > 0.0

    def __call__(self, logits, history):
        return apply_min_p(logits, self.p, self.min_keep)


class SampleTemperature(SamplerStage):
    name = "temperature"

    def __init__(self, temperature: float = 0.8):
        if temperature <= 0:
            raise ValueError("Temperature must be positive")
        self.temperature = temperature

    @property
    def active(self) -> bool:
        return self.temperature != 1.0

    def __call__(self, logits, history):
        return apply_temperature(logits, self.temperature)


class _Mirostat(TerminalStage):
    """
    Shared state for the mirostat controllers.

    ``mu`` is the maximum surprise (in bits) the controller currently allows.
    After every selection it moves by ``eta`` times the gap between the
    observed surprise and the target ``tau``, which steers the text towards a
    constant perplexity.
    """

    def __init__(self, tau: float = 5.0, eta: float = 0.1, enabled: bool = True):
        if tau <= 0:
            raise ValueError("tau must be positive")
        self.tau = tau
        self.eta = eta
        self.enabled = enabled
        self._mu = 2 * tau

    @property
    def active(self) -> bool:
        return self.enabled

    @property
    def mu(self) -> float:
        return self._mu

    def reset(self) -> None:
        """Forget the adapted surprise bound, e.g. before reusing the chain."""
        self._mu = 2 * self.tau

    def _update(self, probs: torch.Tensor, position: int) -> None:
        observed_surprise = -math.log2(probs[position].item())
        self._mu -= self.eta * (observed_surprise - self.tau)


class SampleMirostat1(_Mirostat):
    """
    Mirostat (version 1).

    Estimates the Zipf exponent of the distribution from the top ``m``
    candidates and derives the top-k cutoff that should produce the target
    surprise.
    """

    name = "mirostat1"

    def __init__(
        self, tau: float = 5.0, eta: float = 0.1, m: int = 100, enabled: bool = True
    ):
        super().__init__(tau=tau, eta=eta, enabled=enabled)
        if m < 2:
            raise ValueError("m must be at least 2")
        self.m = m

    def _estimate_k(self, sorted_probs: list, vocab_size: int) -> int:
        candidates = [p for p in sorted_probs[: self.m] if p > 0]
        if len(candidates) < 2:
            return 1

        sum_ti_bi = 0.0
        sum_ti_sq = 0.0
        for i in range(len(candidates) - 1):
            t_i = math.log((i + 2) / (i + 1))
            b_i = math.log(candidates[i] / candidates[i + 1])
            sum_ti_bi += t_i * b_i
            sum_ti_sq += t_i * t_i
        s_hat = sum_ti_bi / sum_ti_sq
        epsilon_hat = s_hat - 1
        if s_hat <= 0 or epsilon_hat == 0:
            return len(candidates)

        try:
            k = (
                (epsilon_hat * 2**self._mu) / (1 - vocab_size ** (-epsilon_hat))
            ) ** (1 / s_hat)
        except (OverflowError, ZeroDivisionError):
            return vocab_size
        if isinstance(k, complex) or math.isnan(k):
            return vocab_size
        return int(min(max(k, 1), vocab_size))

    def select(self, logits, history, generator=None):
        probs = F.softmax(logits.float(), dim=-1)
        sorted_probs, sorted_indices = torch.sort(probs, descending=True)
        vocab_size = int((sorted_probs > 0).sum().item())

        k = self._estimate_k(sorted_probs[: self.m].tolist(), max(vocab_size, 1))
        truncated = sorted_probs[:k]
        truncated = truncated / truncated.sum()

        position = torch.multinomial(truncated, num_samples=1, generator=generator).item()
        self._update(truncated, position)
        return sorted_indices[position].item()


class SampleMirostat2(_Mirostat):
    """
    Mirostat 2.0.

    Drops every candidate whose surprise exceeds ``mu`` and samples from the
    renormalised remainder.
    """

    name = "mirostat2"

    def select(self, logits, history, generator=None):
        probs = F.softmax(logits.float(), dim=-1)
        sorted_probs, sorted_indices = torch.sort(probs, descending=True)

        surprise = -torch.log2(sorted_probs)
        keep = int((surprise <= self._mu).sum().item())
        keep = max(keep, 1)

        truncated = sorted_probs[:keep]
        truncated = truncated / truncated.sum()

        position = torch.multinomial(truncated, num_samples=1, generator=generator).item()
        self._update(truncated, position)
        return sorted_indices[position].item()
