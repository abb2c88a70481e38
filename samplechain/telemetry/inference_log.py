"""
Per-run telemetry for a completed generation.

The engine reports timing and token counts once a run finishes. Those go into
an ``InferenceLogBuilder`` together with the prompt and response; the model
identity and resolved parameters are attached afterwards in any order, and
``build()`` produces the immutable ``InferenceLog`` record. Missing optional
fields become "" or 0 instead of failing, since a partial record is still
useful for analysis.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from samplechain.config.parameters import ResolvedParameters

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InferenceStats:
    """Statistics reported by the inference engine after a run."""

    feed_prompt_duration: timedelta
    prompt_tokens: int
    predict_duration: timedelta
    predict_tokens: int


class InferenceLog(BaseModel):
    """One completed generation run, serialisable as a JSON record."""

    model_config = ConfigDict(frozen=True)

    timestamp: str = Field(..., description="ISO-8601 UTC time the record was started")
    model: str = Field(default="", description="Model path or identifier")
    temperature: float = 0.0
    top_k: int = 0
    max_tokens_generate: int = 0
    feed_prompt_duration: float = Field(..., description="Prompt feeding time in seconds")
    prompt_tokens: int
    predict_duration: float = Field(..., description="Generation time in seconds")
    predict_tokens: int
    prompt: str
    response: str

    @classmethod
    def start(
        cls, stats: InferenceStats, prompt: str, response: str
    ) -> "InferenceLogBuilder":
        """Begin a record from engine statistics and the run's text."""
        return InferenceLogBuilder(stats, prompt, response)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return self.model_dump_json(indent=indent)


class InferenceLogBuilder:
    """
    Accumulates an ``InferenceLog``.

    Example:
        record = (
            InferenceLog.start(stats, prompt, response)
            .model("models/gpt2")
            .parameters(params)
            .build()
        )
    """

    def __init__(self, stats: InferenceStats, prompt: str, response: str):
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.feed_prompt_duration = stats.feed_prompt_duration.total_seconds()
        self.prompt_tokens = stats.prompt_tokens
        self.predict_duration = stats.predict_duration.total_seconds()
        self.predict_tokens = stats.predict_tokens
        self.prompt = prompt
        self.response = response

        self.model_path: Optional[str] = None
        self.temperature: Optional[float] = None
        self.top_k: Optional[int] = None
        self.max_tokens_generate: Optional[int] = None

    def model(self, model_path: Union[str, Path]) -> "InferenceLogBuilder":
        self.model_path = str(model_path)
        return self

    def parameters(self, params: ResolvedParameters) -> "InferenceLogBuilder":
        self.temperature = params.temperature
        self.top_k = params.top_k
        self.max_tokens_generate = params.max_tokens_generate
        return self

    def build(self) -> InferenceLog:
        return InferenceLog(
            timestamp=self.timestamp,
            model=self.model_path or "",
            temperature=self.temperature or 0.0,
            top_k=self.top_k or 0,
            max_tokens_generate=self.max_tokens_generate or 0,
            feed_prompt_duration=self.feed_prompt_duration,
            prompt_tokens=self.prompt_tokens,
            predict_duration=self.predict_duration,
            predict_tokens=self.predict_tokens,
            prompt=self.prompt,
            response=self.response,
        )


def append_inference_log(path: Union[str, Path], record: InferenceLog) -> Path:
    """
    Append ``record`` as one line to a JSON Lines file.

    Parent directories are created as needed.

    Returns:
        The path written to
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(record.model_dump_json() + "\n")
    logger.info(f"Appended inference log for {record.model or 'unknown model'} to {path}")
    return path


def read_inference_logs(path: Union[str, Path]) -> List[InferenceLog]:
    """Load every record from a JSON Lines file written by ``append_inference_log``."""
    records = []
    with Path(path).open(encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(InferenceLog.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValueError) as e:
                logger.warning(f"Skipping malformed record on line {line_number}: {e}")
    return records
