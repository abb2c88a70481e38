"""
Run telemetry: engine statistics, the inference log record and its storage.
"""

from .inference_log import (
    InferenceLog,
    InferenceLogBuilder,
    InferenceStats,
    append_inference_log,
    read_inference_logs,
)

__all__ = [
    "InferenceLog",
    "InferenceLogBuilder",
    "InferenceStats",
    "append_inference_log",
    "read_inference_logs",
]
