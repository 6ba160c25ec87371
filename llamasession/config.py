"""
Configuration classes for llamasession.

This module provides the immutable session and sampling parameters passed to
:meth:`LlamaSession.initialize` and :meth:`LlamaSession.generate_response`.
Validation never raises: it returns a :class:`~llamasession.result.Result`
so it can run before any native resource is touched.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any

from .exceptions import ErrorCode
from .result import Error, Result, Success

# Loop bound used when SamplingParams.max_tokens <= 0
DEFAULT_MAX_TOKENS_CEILING = 4096

GREEDY_TEMPERATURE = 0.01


@dataclass(frozen=True)
class SamplingParams:
    """
    Token selection parameters.

    Args:
        temperature: Sampling temperature in [0, 2] (<= 0.01 means greedy)
        top_p: Nucleus sampling probability in [0, 1]
        top_k: Top-k sampling (0 = disabled)
        min_p: Min-p sampling in [0, 1] (0 = disabled)
        typical_p: Typical sampling (1.0 = disabled)
        repeat_penalty: Penalty for repeating tokens (1.0 = disabled)
        repeat_last_n: Number of recent tokens the penalty looks at
        frequency_penalty: OpenAI-style frequency penalty
        presence_penalty: OpenAI-style presence penalty
        max_tokens: Maximum tokens to generate (-1 = unlimited)

    Example:
        >>> sampling = SamplingParams(temperature=0.2, max_tokens=128)
        >>> sampling.validate().is_success
        True
    """

    temperature: float = 0.7
    top_p: float = 0.9
    top_k: int = 40
    min_p: float = 0.05
    typical_p: float = 1.0
    repeat_penalty: float = 1.1
    repeat_last_n: int = 64
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    max_tokens: int = -1

    @property
    def is_greedy(self) -> bool:
        return self.temperature <= GREEDY_TEMPERATURE

    @property
    def is_unlimited(self) -> bool:
        return self.max_tokens <= 0

    def validate(self) -> Result[None]:
        """Check value ranges; returns ``Error(INVALID_PARAMETERS)`` on the first violation."""
        if not (0.0 <= self.temperature <= 2.0):
            return _invalid(f"temperature must be between 0.0 and 2.0, got {self.temperature}")
        if not (0.0 <= self.top_p <= 1.0):
            return _invalid(f"top_p must be between 0.0 and 1.0, got {self.top_p}")
        if self.top_k < 0:
            return _invalid(f"top_k must be non-negative, got {self.top_k}")
        if not (0.0 <= self.min_p <= 1.0):
            return _invalid(f"min_p must be between 0.0 and 1.0, got {self.min_p}")
        if self.repeat_penalty < 0.0:
            return _invalid(f"repeat_penalty must be non-negative, got {self.repeat_penalty}")
        if self.repeat_last_n < 0:
            return _invalid(f"repeat_last_n must be non-negative, got {self.repeat_last_n}")
        return Success()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> SamplingParams:
        """Create from dictionary, ignoring unknown keys."""
        return cls(**{k: v for k, v in config_dict.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class SessionParams:
    """
    Configuration for a session: which model to load and how.

    Args:
        model_path: Path to the GGUF model file (required)
        mmproj_path: Path to the GGUF multimodal projector ("" = text only)
        context_size: Context length in tokens
        batch_size: Maximum batch size for prompt evaluation
        gpu_layers: Number of layers to offload to the GPU
        mmproj_use_gpu: Run the vision projector on the GPU
        threads: Number of CPU threads
        verbosity: 0 = errors only, 1 = warnings, 2 = debug output from llama.cpp
                (process-wide: the last initialized session wins)
        sampling: Default sampling parameters for every generation
        max_tokens_ceiling: Loop bound used when ``sampling.max_tokens`` is unlimited

    Example:
        >>> params = SessionParams(
        ...     model_path="./qwen2.5-0.5b-instruct-q4_k_m.gguf",
        ...     threads=8,
        ...     context_size=8192,
        ... )
        >>> session.initialize(params)
    """

    model_path: str
    mmproj_path: str = ""
    context_size: int = 4096
    batch_size: int = 4096
    gpu_layers: int = 0
    mmproj_use_gpu: bool = False
    threads: int = 6
    verbosity: int = 1
    sampling: SamplingParams = field(default_factory=SamplingParams)
    max_tokens_ceiling: int = DEFAULT_MAX_TOKENS_CEILING

    @property
    def has_projector(self) -> bool:
        return bool(self.mmproj_path)

    def validate(self) -> Result[None]:
        """
        Check the parameter invariants.

        File existence is not checked here; the session asks its engine.
        """
        if not self.model_path:
            return _invalid("Model path cannot be empty")
        if self.context_size <= 0:
            return _invalid(f"Context size must be positive, got {self.context_size}")
        if self.batch_size <= 0:
            return _invalid(f"Batch size must be positive, got {self.batch_size}")
        if self.threads <= 0:
            return _invalid(f"Thread count must be positive, got {self.threads}")
        if self.max_tokens_ceiling <= 0:
            return _invalid(f"max_tokens_ceiling must be positive, got {self.max_tokens_ceiling}")
        return self.sampling.validate()

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> SessionParams:
        """Create config from dictionary."""
        values = {k: v for k, v in config_dict.items() if k in cls.__dataclass_fields__}
        sampling = values.get("sampling")
        if isinstance(sampling, dict):
            values["sampling"] = SamplingParams.from_dict(sampling)
        return cls(**values)

    def save(self, path: str) -> None:
        """Save config to JSON file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> SessionParams:
        """Load config from JSON file."""
        with open(path) as f:
            return cls.from_dict(json.load(f))


def _invalid(message: str) -> Error:
    return Error(ErrorCode.INVALID_PARAMETERS, message)
