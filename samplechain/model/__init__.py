from .gpt2 import GenerationResult, GPT2Model

__all__ = ["GenerationResult", "GPT2Model"]
