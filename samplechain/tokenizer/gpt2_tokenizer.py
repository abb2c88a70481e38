"""
Tokenizer loading for the reference driver.

A tokenizer can come from the model itself (embedded), from a local
HuggingFace ``tokenizer.json`` file or directory, or from a remote HuggingFace
repository. The path and repository options exclude each other and the
conflict is reported before anything is loaded.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

import torch
from transformers import AutoTokenizer, PreTrainedTokenizerFast

from samplechain.errors import ConflictingOptionsError

logger = logging.getLogger(__name__)


class TokenizerSourceKind(Enum):
    EMBEDDED = "embedded"
    FILE = "file"
    REMOTE = "remote"


@dataclass(frozen=True)
class TokenizerSource:
    """Where the tokenizer is loaded from."""

    kind: TokenizerSourceKind
    location: Optional[str] = None

    @classmethod
    def from_options(
        cls,
        tokenizer_path: Optional[Union[str, Path]] = None,
        tokenizer_repository: Optional[str] = None,
    ) -> "TokenizerSource":
        """
        Pick the source from the two mutually exclusive CLI options.

        Raises:
            ConflictingOptionsError: If both options are given
        """
        if tokenizer_path is not None and tokenizer_repository is not None:
            raise ConflictingOptionsError("--tokenizer-path", "--tokenizer-repository")
        if tokenizer_path is not None:
            return cls(TokenizerSourceKind.FILE, str(tokenizer_path))
        if tokenizer_repository is not None:
            return cls(TokenizerSourceKind.REMOTE, tokenizer_repository)
        return cls(TokenizerSourceKind.EMBEDDED)

    def describe(self, model_name: str) -> str:
        if self.kind is TokenizerSourceKind.EMBEDDED:
            return f"embedded ({model_name})"
        return f"{self.kind.value} ({self.location})"


class GPT2TokenizerWrapper:
    """
    A wrapper around a HuggingFace tokenizer.

    Converts between text and the token ids the model and sampler chain work
    with.
    """

    def __init__(
        self, model_name: str = "gpt2", source: Optional[TokenizerSource] = None
    ):
        """
        Initialize the tokenizer.

        Args:
            model_name: Model identifier or path, used for embedded tokenizers
            source: Where to load the tokenizer from (default: embedded)
        """
        self.model_name = model_name
        self.source = source or TokenizerSource(TokenizerSourceKind.EMBEDDED)
        self.tokenizer = self._load()

        # GPT-2 tokenizer doesn't have a pad token by default, so we set one
        if self.tokenizer.pad_token is None and self.tokenizer.eos_token is not None:
            self.tokenizer.pad_token = self.tokenizer.eos_token

        logger.info(
            f"Tokenizer loaded from {self.source.describe(model_name)}, "
            f"vocab size: {self.tokenizer.vocab_size}"
        )

    def _load(self):
        if self.source.kind is TokenizerSourceKind.EMBEDDED:
            return AutoTokenizer.from_pretrained(self.model_name)

        if self.source.kind is TokenizerSourceKind.FILE:
            path = Path(self.source.location)
            if path.is_file():
                return PreTrainedTokenizerFast(tokenizer_file=str(path))
            return AutoTokenizer.from_pretrained(str(path))

        return AutoTokenizer.from_pretrained(self.source.location)

    @property
    def eos_token_id(self) -> Optional[int]:
        return self.tokenizer.eos_token_id

    def encode(
        self, text: str, return_tensors: bool = True
    ) -> Union[torch.Tensor, List[int]]:
        """
        Convert text to token IDs.

        Args:
            text: Input text to tokenize
            return_tensors: If True, return PyTorch tensor; if False, return list

        Returns:
            Token IDs as tensor or list
        """
        token_ids = self.tokenizer.encode(text, add_special_tokens=True)

        if return_tensors:
            return torch.tensor(token_ids).unsqueeze(0)  # Add batch dimension
        return token_ids

    def decode(
        self,
        token_ids: Union[torch.Tensor, List[int]],
        skip_special_tokens: bool = True,
    ) -> str:
        """
        Convert token IDs back to text.

        Args:
            token_ids: Token IDs to decode (tensor or list)
            skip_special_tokens: Whether to skip special tokens in output

        Returns:
            Decoded text string
        """
        if isinstance(token_ids, torch.Tensor):
            if token_ids.dim() > 1:
                token_ids = token_ids.squeeze().tolist()
            else:
                token_ids = token_ids.tolist()

        return self.tokenizer.decode(token_ids, skip_special_tokens=skip_special_tokens)
