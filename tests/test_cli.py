"""
Integration tests for the samplechain CLI.

These run the Typer app in-process and only exercise commands that do not
load model weights: parameter and chain inspection, telemetry summaries and
the option checks that abort ``infer`` before anything is loaded.
"""

from datetime import timedelta

import pytest
from typer.testing import CliRunner

import cli
from samplechain.config.parameters import (
    MAX_TOKENS_GENERATE_ENV,
    TEMPERATURE_ENV,
    TOP_K_ENV,
)
from samplechain.telemetry import InferenceLog, InferenceStats, append_inference_log

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_cli(monkeypatch, tmp_path):
    """Keep the CLI away from global logging config and stray .env files."""
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.chdir(tmp_path)
    for key in (TEMPERATURE_ENV, TOP_K_ENV, MAX_TOKENS_GENERATE_ENV):
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


def write_runs(path, count):
    stats = InferenceStats(
        feed_prompt_duration=timedelta(milliseconds=100),
        prompt_tokens=5,
        predict_duration=timedelta(seconds=2),
        predict_tokens=40,
    )
    for i in range(count):
        append_inference_log(
            path, InferenceLog.start(stats, f"prompt {i}", "response").model("gpt2").build()
        )


class TestInfo:
    def test_info(self):
        result = runner.invoke(cli.app, ["info"])

        assert result.exit_code == 0
        assert "samplechain" in result.output


class TestConfigCommands:
    """``config params`` and ``config chain``."""

    def test_params(self):
        result = runner.invoke(cli.app, ["config", "params"], env={TOP_K_ENV: "55"})

        assert result.exit_code == 0
        assert "55" in result.output

    def test_chain_with_overrides(self):
        result = runner.invoke(
            cli.app, ["config", "chain", "-s", "topk:k=50", "-s", "mirostat2:tau=4.0"]
        )

        assert result.exit_code == 0
        assert "stages active" in result.output

    def test_chain_unknown_slot(self):
        result = runner.invoke(cli.app, ["config", "chain", "-s", "bogus"])

        assert result.exit_code == 1
        assert "Unknown sampler slot" in result.output

    def test_chain_incompatible_mirostat(self):
        result = runner.invoke(
            cli.app, ["config", "chain", "-s", "mirostat1", "-s", "mirostat2"]
        )

        assert result.exit_code == 1
        assert "Cannot enable both" in result.output

    def test_chain_second_single_override(self):
        result = runner.invoke(
            cli.app, ["config", "chain", "-s", "topk:k=50", "-s", "topk:k=60"]
        )

        assert result.exit_code == 1
        assert "already occupied" in result.output


class TestGenerateOptionChecks:
    """``generate infer`` aborts on bad options before loading the model."""

    def test_conflicting_tokenizer_options(self):
        result = runner.invoke(
            cli.app,
            [
                "generate",
                "infer",
                "gpt2",
                "--tokenizer-path",
                "tokenizer.json",
                "--tokenizer-repository",
                "openai-community/gpt2",
            ],
        )

        assert result.exit_code == 1
        assert "Cannot specify both" in result.output

    def test_bad_sampler_override(self):
        result = runner.invoke(cli.app, ["generate", "infer", "gpt2", "-s", "topk:k=abc"])

        assert result.exit_code == 1
        assert "Invalid value for 'k'" in result.output


class TestMonitorLogs:
    """``monitor logs`` over a JSON Lines telemetry file."""

    def test_summarises_runs(self, tmp_path):
        path = tmp_path / "runs.jsonl"
        write_runs(path, 3)

        result = runner.invoke(cli.app, ["monitor", "logs", str(path), "--limit", "2"])

        assert result.exit_code == 0
        assert "Summary" in result.output
        assert "last 2 of 3" in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(cli.app, ["monitor", "logs", str(tmp_path / "nope.jsonl")])

        assert result.exit_code == 1
        assert "Log file not found" in result.output

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.jsonl"
        path.write_text("")

        result = runner.invoke(cli.app, ["monitor", "logs", str(path)])

        assert result.exit_code == 0
        assert "No runs recorded" in result.output
