"""
Tests for the environment parameter resolver.

Every bad input (missing, unparsable, out of bounds) must fall back to the
documented default and log why; resolution itself never fails.
"""

import logging

import pytest
from pydantic import ValidationError

from samplechain.config import ParameterResolver, ResolvedParameters, resolve_parameters
from samplechain.config.parameters import (
    MAX_TOKENS_GENERATE_ENV,
    TEMPERATURE_ENV,
    TOP_K_ENV,
)


@pytest.fixture
def clean_env(monkeypatch):
    """Make sure none of the tunables leak in from the real environment."""
    for key in (TEMPERATURE_ENV, TOP_K_ENV, MAX_TOKENS_GENERATE_ENV):
        # setenv first so monkeypatch restores the original (unset) state
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


class TestDefaults:
    def test_empty_source_gives_defaults(self, caplog):
        with caplog.at_level(logging.INFO):
            params = resolve_parameters({})

        assert params == ResolvedParameters(
            temperature=0.8, top_k=40, max_tokens_generate=100
        )
        assert "Couldn't read temperature" in caplog.text
        assert "Couldn't read top_k" in caplog.text
        assert "Couldn't read max_tokens_generate" in caplog.text

    def test_parameters_are_frozen(self):
        params = ResolvedParameters()
        with pytest.raises(ValidationError):
            params.top_k = 50


class TestBounds:
    """Out of range values fall back individually."""

    def test_out_of_range_top_k_falls_back(self, caplog):
        source = {TEMPERATURE_ENV: "0.5", TOP_K_ENV: "99"}

        with caplog.at_level(logging.INFO):
            params = resolve_parameters(source)

        assert params.temperature == 0.5
        assert params.top_k == 40
        assert params.max_tokens_generate == 100
        assert "Bad parameter setting. top_k should be >= 20 and <= 80" in caplog.text

    @pytest.mark.parametrize(
        "key,raw,field,expected",
        [
            (TOP_K_ENV, "20", "top_k", 20),
            (TOP_K_ENV, "80", "top_k", 80),
            (TOP_K_ENV, "19", "top_k", 40),
            (TOP_K_ENV, "81", "top_k", 40),
            (TEMPERATURE_ENV, "1.0", "temperature", 1.0),
            (TEMPERATURE_ENV, "0.01", "temperature", 0.01),
            (TEMPERATURE_ENV, "0", "temperature", 0.8),
            (TEMPERATURE_ENV, "1.5", "temperature", 0.8),
            (MAX_TOKENS_GENERATE_ENV, "30", "max_tokens_generate", 30),
            (MAX_TOKENS_GENERATE_ENV, "10000", "max_tokens_generate", 10000),
            (MAX_TOKENS_GENERATE_ENV, "29", "max_tokens_generate", 100),
            (MAX_TOKENS_GENERATE_ENV, "10001", "max_tokens_generate", 100),
        ],
    )
    def test_bound_edges(self, key, raw, field, expected):
        params = resolve_parameters({key: raw})
        assert getattr(params, field) == expected


class TestParsing:
    def test_unparsable_value_falls_back(self, caplog):
        with caplog.at_level(logging.WARNING):
            params = resolve_parameters({TOP_K_ENV: "abc", TEMPERATURE_ENV: "hot"})

        assert params.top_k == 40
        assert params.temperature == 0.8
        assert f"Failed conversion of {TOP_K_ENV}='abc'" in caplog.text
        assert f"Failed conversion of {TEMPERATURE_ENV}='hot'" in caplog.text

    def test_fractional_top_k_is_rejected(self):
        assert resolve_parameters({TOP_K_ENV: "50.5"}).top_k == 40

    @pytest.mark.parametrize("raw", ["50.0", " 50 ", "5_0", "-50", "0x32", "５０"])
    def test_only_plain_integers_parse(self, raw, caplog):
        with caplog.at_level(logging.WARNING):
            params = resolve_parameters(
                {TOP_K_ENV: raw, MAX_TOKENS_GENERATE_ENV: raw}
            )

        assert params.top_k == 40
        assert params.max_tokens_generate == 100
        assert "Failed conversion" in caplog.text

    @pytest.mark.parametrize("raw", [" 0.5", "0_5", "0.5x", ""])
    def test_only_plain_decimals_parse(self, raw):
        assert resolve_parameters({TEMPERATURE_ENV: raw}).temperature == 0.8

    @pytest.mark.parametrize("raw,expected", [(".5", 0.5), ("5e-1", 0.5), ("0.25", 0.25)])
    def test_decimal_forms_accepted(self, raw, expected):
        assert resolve_parameters({TEMPERATURE_ENV: raw}).temperature == expected


class TestEnvironmentSources:
    """Reading from os.environ and .env files."""

    def test_reads_process_environment(self, clean_env):
        clean_env.setenv(TOP_K_ENV, "55")

        params = ParameterResolver(load_env_file=False).resolve()

        assert params.top_k == 55

    def test_loads_dotenv_file(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(f"{TOP_K_ENV}=25\n{TEMPERATURE_ENV}=0.4\n")

        params = ParameterResolver(dotenv_path=env_file).resolve()

        assert params.top_k == 25
        assert params.temperature == 0.4

    def test_process_environment_wins_over_dotenv(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(f"{TOP_K_ENV}=25\n")
        clean_env.setenv(TOP_K_ENV, "70")

        params = ParameterResolver(dotenv_path=env_file).resolve()

        assert params.top_k == 70
