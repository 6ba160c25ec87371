"""
Sampler chain construction.

The chain is described as a list of :class:`SamplerStage` values and handed
to the engine, which turns it into native sampler objects. Keeping the
description separate makes the ordering rules testable without llama.cpp.
"""

from __future__ import annotations

import warnings
from typing import NamedTuple

from .config import SamplingParams

# Seed value llama.cpp treats as "pick a random seed"
DEFAULT_SEED = 0xFFFFFFFF

PENALTIES = "penalties"
GREEDY = "greedy"
TOP_K = "top_k"
TYPICAL = "typical"
TOP_P = "top_p"
MIN_P = "min_p"
TEMPERATURE = "temp"
DIST = "dist"


class SamplerStage(NamedTuple):
    """One stage of a sampler chain, e.g. ``SamplerStage("top_k", (40,))``."""

    kind: str
    args: tuple = ()


def build_sampler_chain(sampling: SamplingParams, seed: int = DEFAULT_SEED) -> list[SamplerStage]:
    """
    Describe the sampler chain for ``sampling``.

    Order: repetition penalties (if ``repeat_penalty != 1``), then either a
    single greedy stage (temperature <= 0.01) or top-k, typical, top-p, min-p,
    temperature and a final stochastic draw, each included only when enabled.

    Example:
        >>> [s.kind for s in build_sampler_chain(SamplingParams(temperature=0.0))]
        ['penalties', 'greedy']
    """
    stages: list[SamplerStage] = []

    if sampling.repeat_penalty != 1.0:
        stages.append(
            SamplerStage(
                PENALTIES,
                (
                    sampling.repeat_last_n,
                    sampling.repeat_penalty,
                    sampling.frequency_penalty,
                    sampling.presence_penalty,
                ),
            )
        )
    elif sampling.frequency_penalty or sampling.presence_penalty:
        warnings.warn(
            "frequency_penalty and presence_penalty only apply when repeat_penalty != 1.0; "
            "they will be ignored.",
            UserWarning,
            stacklevel=2,
        )

    if sampling.is_greedy:
        stages.append(SamplerStage(GREEDY))
        return stages

    if sampling.top_k > 0:
        stages.append(SamplerStage(TOP_K, (sampling.top_k,)))
    if 0.0 < sampling.typical_p < 1.0:
        stages.append(SamplerStage(TYPICAL, (sampling.typical_p, 1)))
    if 0.0 < sampling.top_p < 1.0:
        stages.append(SamplerStage(TOP_P, (sampling.top_p, 1)))
    if sampling.min_p > 0.0:
        stages.append(SamplerStage(MIN_P, (sampling.min_p, 1)))

    stages.append(SamplerStage(TEMPERATURE, (sampling.temperature,)))
    stages.append(SamplerStage(DIST, (seed,)))
    return stages
