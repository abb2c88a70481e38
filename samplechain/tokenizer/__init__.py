from .gpt2_tokenizer import GPT2TokenizerWrapper, TokenizerSource, TokenizerSourceKind

__all__ = ["GPT2TokenizerWrapper", "TokenizerSource", "TokenizerSourceKind"]
