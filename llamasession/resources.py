"""
System memory inspection for sessions.

Used to fill :class:`~llamasession.info.MemoryInfo.available_memory_mb` and to
tell "the model does not fit in RAM" apart from other model load failures.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import psutil

logger = logging.getLogger(__name__)

_GB = 1024**3
_MB = 1024**2


@dataclass
class SystemResources:
    """
    System hardware information for memory-aware loading.

    Attributes:
        total_ram_gb: Total system RAM in gigabytes
        available_ram_gb: Currently available RAM in gigabytes
        cpu_cores: Number of CPU cores (physical)
        cpu_threads: Number of CPU threads (logical)
    """

    total_ram_gb: float
    available_ram_gb: float
    cpu_cores: int
    cpu_threads: int

    @property
    def available_ram_mb(self) -> int:
        return int(self.available_ram_gb * 1024)

    def __str__(self) -> str:
        return (
            f"SystemResources(RAM: {self.available_ram_gb:.1f}/{self.total_ram_gb:.1f} GB, "
            f"CPU: {self.cpu_cores} cores / {self.cpu_threads} threads)"
        )


def get_system_resources() -> SystemResources:
    """
    Detect available system resources.

    Example:
        >>> resources = get_system_resources()
        >>> print(f"Available RAM: {resources.available_ram_gb:.1f} GB")
        Available RAM: 12.5 GB
    """
    mem = psutil.virtual_memory()
    cpu_threads = psutil.cpu_count(logical=True) or 1
    cpu_cores = psutil.cpu_count(logical=False) or cpu_threads

    return SystemResources(
        total_ram_gb=mem.total / _GB,
        available_ram_gb=mem.available / _GB,
        cpu_cores=cpu_cores,
        cpu_threads=cpu_threads,
    )


def estimate_model_memory(
    file_size_bytes: int,
    safety_multiplier: float = 1.2,
) -> float:
    """
    Estimate runtime memory usage for a GGUF model.

    GGUF models require additional memory at runtime for the KV cache,
    computation buffers and metadata.

    Args:
        file_size_bytes: Size of the GGUF file in bytes
        safety_multiplier: Multiplier for safety margin (default 1.2 = 20% extra)

    Returns:
        Estimated memory usage in GB

    Example:
        >>> estimate_model_memory(4 * 1024**3)  # 4 GB file
        4.8
    """
    file_size_gb = file_size_bytes / _GB

    # Minimum overhead for small models
    min_overhead_gb = 0.5

    return max(file_size_gb * safety_multiplier, file_size_gb + min_overhead_gb)


def model_exceeds_memory(model_path: str) -> bool:
    """
    Return True if the model's estimated footprint is larger than the available RAM.

    Unknown sizes (unreadable paths) count as fitting.
    """
    try:
        file_size = os.path.getsize(model_path)
    except OSError:
        return False

    needed_gb = estimate_model_memory(file_size)
    available_gb = get_system_resources().available_ram_gb
    if needed_gb > available_gb:
        logger.warning(
            "Model %s needs ~%.1f GB but only %.1f GB RAM is available",
            model_path,
            needed_gb,
            available_gb,
        )
        return True
    return False


def bytes_to_mb(size: int) -> int:
    return int(size // _MB)
