"""
Generation tunables read from an environment-style key-value source.

Every tunable follows the same policy: a missing key, a value that does not
parse, or a value outside its bounds is replaced by the documented default.
The event is logged and resolution carries on; nothing here raises. The
result is an immutable ``ResolvedParameters`` that is threaded explicitly
through chain building and telemetry.
"""

import logging
import os
from pathlib import Path
from typing import Annotated, Any, Mapping, Optional, Union

from dotenv import find_dotenv, load_dotenv
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    ValidationError,
)
from pydantic.fields import FieldInfo

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.8
DEFAULT_TOP_K = 40
DEFAULT_MAX_TOKENS_GENERATE = 100

TEMPERATURE_ENV = "MODEL_PARAM_TEMPERATURE"
TOP_K_ENV = "MODEL_PARAM_TOP_K"
MAX_TOKENS_GENERATE_ENV = "MAXIMUM_TOKENS_GENERATE"


class ResolvedParameters(BaseModel):
    """
    Tunables for one generation run, always within bounds.

    Frozen so it can be shared read-only between threads and bound into
    stage factories.
    """

    model_config = ConfigDict(frozen=True)

    temperature: float = Field(
        default=DEFAULT_TEMPERATURE,
        gt=0.0,
        le=1.0,
        description="Temperature for sampling (> 0 and <= 1.0)",
    )
    top_k: int = Field(
        default=DEFAULT_TOP_K,
        ge=20,
        le=80,
        description="Top-k sampling: only consider k most likely tokens",
    )
    max_tokens_generate: int = Field(
        default=DEFAULT_MAX_TOKENS_GENERATE,
        ge=30,
        le=10000,
        description="Maximum tokens to generate",
    )


# Field name -> environment key
ENV_KEYS = {
    "temperature": TEMPERATURE_ENV,
    "top_k": TOP_K_ENV,
    "max_tokens_generate": MAX_TOKENS_GENERATE_ENV,
}

_BOUND_SYMBOLS = (("gt", ">"), ("ge", ">="), ("lt", "<"), ("le", "<="))

# Plain decimal text only: no surrounding whitespace, digit separators or
# fractional counts
_NUMBER_PATTERNS = {
    int: r"^[0-9]+$",
    float: r"^[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?$",
}


def describe_bounds(info: FieldInfo) -> str:
    """Render a field's numeric constraints, e.g. '>= 20 and <= 80'."""
    parts = []
    for constraint in info.metadata:
        for attr, symbol in _BOUND_SYMBOLS:
            bound = getattr(constraint, attr, None)
            if bound is not None:
                parts.append(f"{symbol} {bound}")
    return " and ".join(parts)


class ParameterResolver:
    """
    Resolve ``ResolvedParameters`` from a key-value source.

    Args:
        source: Mapping to read from. Defaults to ``os.environ`` after an
            optional ``.env`` file has been loaded into it (existing
            variables are never overridden).
        dotenv_path: Explicit ``.env`` location. When omitted the nearest
            ``.env`` above the current working directory is used, if any.
        load_env_file: Set to False to skip ``.env`` loading entirely.
    """

    def __init__(
        self,
        source: Optional[Mapping[str, str]] = None,
        dotenv_path: Optional[Union[str, Path]] = None,
        load_env_file: bool = True,
    ):
        if source is None:
            if load_env_file:
                env_path = dotenv_path or find_dotenv(usecwd=True)
                if env_path:
                    load_dotenv(env_path, override=False)
            source = os.environ
        self.source = source

    def resolve(self) -> ResolvedParameters:
        """Read every tunable, falling back to defaults for bad input."""
        values = {
            field: self._resolve_field(field, info)
            for field, info in ResolvedParameters.model_fields.items()
        }
        return ResolvedParameters(**values)

    def _resolve_field(self, field: str, info: FieldInfo) -> Any:
        key = ENV_KEYS[field]
        default = info.default

        raw = self.source.get(key)
        if raw is None:
            logger.info(
                f"Couldn't read {field} from env ({key}). Using default value {default}"
            )
            return default

        logger.info(f"Read {field} from env: {raw}")

        # Parse first, then check bounds, so the two failures log differently
        text = TypeAdapter(
            Annotated[str, StringConstraints(pattern=_NUMBER_PATTERNS[info.annotation])]
        )
        try:
            value = TypeAdapter(info.annotation).validate_python(
                text.validate_python(raw)
            )
        except ValidationError as e:
            logger.warning(
                f"Failed conversion of {key}={raw!r} to {info.annotation.__name__}: "
                f"{e.errors()[0]['msg']}. Using default {field}: {default}"
            )
            return default

        bounded = TypeAdapter(Annotated[(info.annotation, *info.metadata)])
        try:
            return bounded.validate_python(value)
        except ValidationError:
            logger.warning(
                f"Bad parameter setting. {field} should be {describe_bounds(info)}. "
                f"Using default {field}: {default}"
            )
            return default


def resolve_parameters(source: Optional[Mapping[str, str]] = None) -> ResolvedParameters:
    """Shortcut for ``ParameterResolver(source).resolve()``."""
    return ParameterResolver(source).resolve()
