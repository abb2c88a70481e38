"""
GPT-2 reference driver for the sampler chain.

The inference engine is an external collaborator of the sampler chain: it
produces next-token logits and calls the chain once per step. This module is
a small engine built on HuggingFace's GPT2LMHeadModel so the chain can be run
end to end and so runs report the statistics that telemetry records.
"""

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

import torch
from transformers import GPT2Config, GPT2LMHeadModel

from samplechain.sampling.chain import SamplerChain
from samplechain.telemetry.inference_log import InferenceStats

logger = logging.getLogger(__name__)

# Called with each generated token id; returning False stops generation
TokenCallback = Callable[[int], Optional[bool]]


@dataclass
class GenerationResult:
    """Token ids of a finished run plus the engine statistics for it."""

    tokens: List[int]
    prompt_length: int
    stats: InferenceStats

    @property
    def generated_tokens(self) -> List[int]:
        return self.tokens[self.prompt_length :]


class GPT2Model:
    """
    A wrapper around HuggingFace's GPT2LMHeadModel.

    Loads the model and runs KV-cached autoregressive generation where every
    next token is picked by a SamplerChain.
    """

    def __init__(self, model_name: str = "gpt2", device: str = "cpu"):
        """
        Initialize the GPT-2 model.

        Args:
            model_name: HuggingFace model identifier or local model directory
            device: Device to load the model on ("cpu" or "cuda")
        """
        self.model_name = model_name
        self.device = device
        self.model: Optional[GPT2LMHeadModel] = None
        self.config: Optional[GPT2Config] = None

    def load_model(self) -> None:
        """
        Load the model and configuration.

        The model is set to evaluation mode to disable dropout.
        """
        logger.info(f"Loading GPT-2 model: {self.model_name}")

        self.config = GPT2Config.from_pretrained(self.model_name)
        logger.info(
            f"Model config: {self.config.n_layer} layers, {self.config.n_head} heads, {self.config.n_embd} embedding dim"
        )

        self.model = GPT2LMHeadModel.from_pretrained(self.model_name)
        self.model.to(self.device)
        self.model.eval()

        param_count = sum(p.numel() for p in self.model.parameters())
        logger.info(f"Model loaded with {param_count:,} parameters")

    def get_model_info(self) -> Dict[str, Any]:
        """
        Get information about the loaded model.

        Returns:
            Dictionary containing model metadata
        """
        if self.config is None:
            return {"error": "Model not loaded"}

        return {
            "model_name": self.model_name,
            "n_layers": self.config.n_layer,
            "n_heads": self.config.n_head,
            "n_embd": self.config.n_embd,
            "vocab_size": self.config.vocab_size,
            "device": self.device,
            "parameter_count": sum(p.numel() for p in self.model.parameters())
            if self.model
            else 0,
        }

    def forward(self, input_ids: torch.Tensor) -> torch.Tensor:
        """
        Run a single forward pass without a cache.

        Args:
            input_ids: Tensor of token IDs with shape (batch_size, sequence_length)

        Returns:
            Logits tensor with shape (batch_size, sequence_length, vocab_size)
        """
        if self.model is None:
            raise RuntimeError("Model not loaded. Call load_model() first.")

        with torch.no_grad():
            outputs = self.model(input_ids.to(self.device))
        return outputs.logits

    def _step(self, input_ids: torch.Tensor, past_key_values=None):
        with torch.no_grad():
            outputs = self.model(
                input_ids.to(self.device),
                past_key_values=past_key_values,
                use_cache=True,
            )
        return outputs.logits[0, -1, :], outputs.past_key_values

    def generate_with_chain(
        self,
        input_ids: torch.Tensor,
        chain: SamplerChain,
        max_tokens: int,
        generator: Optional[torch.Generator] = None,
        on_token: Optional[TokenCallback] = None,
    ) -> GenerationResult:
        """
        Generate up to ``max_tokens`` tokens, selecting each with ``chain``.

        The prompt is fed in one forward pass (timed as the feed-prompt
        phase); every following step processes only the newest token thanks
        to the KV cache (timed as the predict phase). Generation stops early
        on the end-of-sequence token or when ``on_token`` returns False.

        Args:
            input_ids: Prompt token ids with shape (1, sequence_length)
            chain: The sampler chain that picks each token
            max_tokens: Maximum number of NEW tokens to generate
            generator: Optional torch RNG for reproducible sampling
            on_token: Optional callback invoked with every generated token id

        Returns:
            GenerationResult with all token ids and the run statistics
        """
        if self.model is None:
            raise RuntimeError("Model not loaded. Call load_model() first.")

        sequence: List[int] = input_ids.reshape(-1).tolist()
        prompt_length = len(sequence)
        if prompt_length == 0:
            raise ValueError("Prompt must contain at least one token")

        eos_token_id = getattr(self.model.config, "eos_token_id", None)

        feed_start = time.perf_counter()
        next_token_logits, past_key_values = self._step(
            torch.tensor(sequence).unsqueeze(0)
        )
        feed_prompt_duration = time.perf_counter() - feed_start

        logger.info(
            f"Fed {prompt_length} prompt tokens in {feed_prompt_duration:.3f}s, "
            f"generating up to {max_tokens} tokens"
        )

        predict_start = time.perf_counter()
        for step in range(max_tokens):
            next_token_id = chain.sample(next_token_logits, sequence, generator)
            sequence.append(next_token_id)

            if on_token is not None and on_token(next_token_id) is False:
                logger.info(f"Generation halted by caller after {step + 1} tokens")
                break

            if next_token_id == eos_token_id:
                logger.info("Generated end-of-sequence token, stopping early.")
                break

            if step + 1 == max_tokens:
                break

            next_token_logits, past_key_values = self._step(
                torch.tensor([[next_token_id]]), past_key_values
            )
        predict_duration = time.perf_counter() - predict_start

        stats = InferenceStats(
            feed_prompt_duration=timedelta(seconds=feed_prompt_duration),
            prompt_tokens=prompt_length,
            predict_duration=timedelta(seconds=predict_duration),
            predict_tokens=len(sequence) - prompt_length,
        )
        return GenerationResult(
            tokens=sequence, prompt_length=prompt_length, stats=stats
        )
