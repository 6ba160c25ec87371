"""
Read-only reports returned by a session: model, memory and generation stats.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .config import SamplingParams
from .state import GenerationState


@dataclass(frozen=True)
class ModelInfo:
    """
    Information about a loaded (or validated) model.

    Attributes:
        name: Model description reported by llama.cpp (e.g. "qwen2 1B Q4_K - Medium")
        architecture: ``general.architecture`` metadata value
        parameter_count: Number of model parameters
        context_size: Context length the model was trained with
        supports_vision: True when a multimodal projector is loaded
        capabilities: ``text_generation`` plus ``vision``/``multimodal`` when available
    """

    name: str
    architecture: str = ""
    parameter_count: int = 0
    context_size: int = 0
    supports_vision: bool = False
    capabilities: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MemoryInfo:
    """Memory usage of the session in megabytes."""

    model_memory_mb: int
    context_memory_mb: int
    total_memory_mb: int
    available_memory_mb: int


@dataclass(frozen=True)
class GenerationStats:
    """
    Statistics of the in-flight or last generation.

    Attributes:
        tokens_generated: Number of tokens emitted so far
        tokens_per_second: Throughput, 0 when no time has elapsed
        time_elapsed: Seconds since the generation started
        state: Generation state when the stats were taken
        sampling: Sampling parameters used by the generation
    """

    tokens_generated: int = 0
    tokens_per_second: float = 0.0
    time_elapsed: float = 0.0
    state: GenerationState = GenerationState.IDLE
    sampling: SamplingParams = field(default_factory=SamplingParams)

    @classmethod
    def measure(
        cls,
        tokens_generated: int,
        time_elapsed: float,
        state: GenerationState,
        sampling: SamplingParams,
    ) -> GenerationStats:
        """Build stats, computing throughput without dividing by zero."""
        time_elapsed = max(0.0, time_elapsed)
        rate = tokens_generated / time_elapsed if time_elapsed > 0 else 0.0
        return cls(
            tokens_generated=tokens_generated,
            tokens_per_second=max(0.0, rate),
            time_elapsed=time_elapsed,
            state=state,
            sampling=sampling,
        )
