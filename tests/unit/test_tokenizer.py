"""
Tests for tokenizer source selection.

Loading real tokenizers needs network access, so only the option handling is
covered here plus one ``slow`` round trip.
"""

import pytest

from samplechain.errors import ConflictingOptionsError, SamplerChainError
from samplechain.tokenizer import (
    GPT2TokenizerWrapper,
    TokenizerSource,
    TokenizerSourceKind,
)


class TestTokenizerSource:
    def test_defaults_to_embedded(self):
        source = TokenizerSource.from_options()

        assert source.kind is TokenizerSourceKind.EMBEDDED
        assert source.describe("gpt2") == "embedded (gpt2)"

    def test_local_path(self, tmp_path):
        source = TokenizerSource.from_options(tokenizer_path=tmp_path / "tokenizer.json")

        assert source.kind is TokenizerSourceKind.FILE
        assert source.location.endswith("tokenizer.json")

    def test_remote_repository(self):
        source = TokenizerSource.from_options(tokenizer_repository="openai-community/gpt2")

        assert source.kind is TokenizerSourceKind.REMOTE
        assert source.describe("gpt2") == "remote (openai-community/gpt2)"

    def test_both_options_conflict(self):
        with pytest.raises(ConflictingOptionsError, match="Cannot specify both") as exc_info:
            TokenizerSource.from_options("tokenizer.json", "openai-community/gpt2")

        assert isinstance(exc_info.value, SamplerChainError)
        assert exc_info.value.first == "--tokenizer-path"
        assert exc_info.value.second == "--tokenizer-repository"


@pytest.mark.slow
def test_embedded_gpt2_round_trip():
    tokenizer = GPT2TokenizerWrapper("gpt2")

    token_ids = tokenizer.encode("Once upon a time", return_tensors=False)

    assert token_ids == [7454, 2402, 257, 640]
    assert tokenizer.decode(token_ids) == "Once upon a time"
    assert tokenizer.eos_token_id == 50256
