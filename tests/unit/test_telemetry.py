"""
Tests for the inference log record, its builder and JSON Lines storage.
"""

import json
from datetime import datetime, timedelta

import pytest

from samplechain.config import ResolvedParameters
from samplechain.telemetry import (
    InferenceLog,
    InferenceStats,
    append_inference_log,
    read_inference_logs,
)

EXPECTED_FIELDS = {
    "timestamp",
    "model",
    "temperature",
    "top_k",
    "max_tokens_generate",
    "feed_prompt_duration",
    "prompt_tokens",
    "predict_duration",
    "predict_tokens",
    "prompt",
    "response",
}


@pytest.fixture
def stats():
    return InferenceStats(
        feed_prompt_duration=timedelta(milliseconds=250),
        prompt_tokens=8,
        predict_duration=timedelta(seconds=1, milliseconds=500),
        predict_tokens=30,
    )


class TestInferenceLogBuilder:
    def test_minimal_record_uses_zero_values(self, stats):
        record = InferenceLog.start(stats, "Once upon", " a time").build()

        assert record.model == ""
        assert record.temperature == 0.0
        assert record.top_k == 0
        assert record.max_tokens_generate == 0
        assert record.feed_prompt_duration == pytest.approx(0.25)
        assert record.predict_duration == pytest.approx(1.5)
        assert record.prompt_tokens == 8
        assert record.predict_tokens == 30
        assert record.prompt == "Once upon"
        assert record.response == " a time"

    def test_optional_fields_in_any_order(self, stats):
        params = ResolvedParameters(temperature=0.5, top_k=30, max_tokens_generate=64)

        first = InferenceLog.start(stats, "p", "r").model("gpt2").parameters(params)
        second = InferenceLog.start(stats, "p", "r").parameters(params).model("gpt2")

        for record in (first.build(), second.build()):
            assert record.model == "gpt2"
            assert record.temperature == 0.5
            assert record.top_k == 30
            assert record.max_tokens_generate == 64

    def test_timestamp_is_iso8601_utc(self, stats):
        record = InferenceLog.start(stats, "p", "r").build()

        parsed = datetime.fromisoformat(record.timestamp)
        assert parsed.utcoffset() == timedelta(0)


class TestSerialisation:
    def test_json_field_names(self, stats):
        record = InferenceLog.start(stats, "p", "r").model("models/gpt2").build()

        data = json.loads(record.to_json())

        assert set(data) == EXPECTED_FIELDS
        assert data["model"] == "models/gpt2"
        assert data["predict_duration"] == pytest.approx(1.5)

    def test_append_and_read_back(self, stats, tmp_path):
        path = tmp_path / "logs" / "runs.jsonl"
        params = ResolvedParameters()

        for prompt in ("first", "second"):
            record = (
                InferenceLog.start(stats, prompt, "response")
                .model("gpt2")
                .parameters(params)
                .build()
            )
            assert append_inference_log(path, record) == path

        records = read_inference_logs(path)

        assert [record.prompt for record in records] == ["first", "second"]
        assert records[0].top_k == 40
        assert len(path.read_text().splitlines()) == 2

    def test_malformed_lines_are_skipped(self, stats, tmp_path, caplog):
        path = tmp_path / "runs.jsonl"
        append_inference_log(path, InferenceLog.start(stats, "ok", "r").build())
        with path.open("a") as f:
            f.write("not json\n\n")
            f.write('{"prompt": "missing fields"}\n')

        records = read_inference_logs(path)

        assert len(records) == 1
        assert "Skipping malformed record on line 2" in caplog.text
        assert "line 4" in caplog.text
