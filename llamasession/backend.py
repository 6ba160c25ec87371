"""
Inference engine boundary.

:class:`InferenceEngine` lists every native operation a session needs. The
session never talks to llama.cpp directly; it drives an engine and owns the
objects the engine hands back. Failures are reported the way the native API
reports them: ``None`` for constructors that can fail, and
:class:`~llamasession.exceptions.LlamaSessionError` subclasses for calls that
return an error status.

The production engine is :class:`llamasession.native.LlamaCppEngine`;
:func:`get_engine` creates it lazily so that importing llamasession does not
load the native library.
"""

from __future__ import annotations

import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Callable, Optional

from .sampler import SamplerStage

NativeProgress = Callable[[float], None]


class InferenceEngine(ABC):
    """Operations of the native inference library used by a session."""

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    def path_exists(self, path: str) -> bool:
        """File existence check used during parameter validation."""
        return os.path.isfile(path)

    def set_verbosity(self, verbosity: int) -> None:
        """
        Adjust how much native log output is forwarded. Optional.

        Engines backed by a process-global logger apply this to every session.
        """

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @abstractmethod
    def load_model(
        self, path: str, gpu_layers: int = 0, progress: Optional[NativeProgress] = None
    ) -> Optional[Any]:
        """Load GGUF weights. ``progress`` receives 0..1 while loading."""

    @abstractmethod
    def init_context(
        self, model: Any, context_size: int, batch_size: int, threads: int
    ) -> Optional[Any]:
        """Create an inference context for ``model``."""

    @abstractmethod
    def load_projector(
        self, path: str, model: Any, use_gpu: bool, threads: int, verbosity: int = 1
    ) -> Optional[Any]:
        """Load a multimodal projector bound to ``model``."""

    @abstractmethod
    def init_batch(self, size: int) -> Any:
        """Allocate a reusable token batch of ``size`` slots."""

    @abstractmethod
    def create_sampler(self, stages: Sequence[SamplerStage]) -> Optional[Any]:
        """Build a native sampler chain from ``stages``."""

    # ------------------------------------------------------------------
    # Prompt processing
    # ------------------------------------------------------------------

    @abstractmethod
    def clear_memory(self, ctx: Any) -> None:
        """Drop every cached token of the context so a new prompt starts at position 0."""

    @abstractmethod
    def apply_chat_template(
        self, model: Any, messages: Sequence[tuple[str, str]], add_generation_prompt: bool = True
    ) -> str:
        """Render ``(role, content)`` pairs with the model's chat template."""

    @abstractmethod
    def tokenize(
        self, model: Any, text: str, add_special: bool = False, parse_special: bool = True
    ) -> list[int]:
        """Tokenize text with the model vocabulary."""

    @abstractmethod
    def image_marker(self) -> str:
        """Marker text the multimodal tokenizer replaces with an image."""

    @abstractmethod
    def create_bitmap(self, vision: Any, data: bytes) -> Optional[Any]:
        """Decode encoded image bytes into a native bitmap."""

    @abstractmethod
    def tokenize_multimodal(self, vision: Any, text: str, bitmaps: Sequence[Any]) -> Any:
        """Tokenize text containing image markers together with their bitmaps."""

    @abstractmethod
    def eval_chunks(
        self, vision: Any, ctx: Any, chunks: Any, n_past: int, batch_size: int
    ) -> int:
        """Evaluate multimodal chunks and return the new position."""

    @abstractmethod
    def decode(self, ctx: Any, tokens: Sequence[int], start_pos: int, batch: Any = None) -> None:
        """Evaluate ``tokens`` starting at ``start_pos``; logits are kept for the last one."""

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    @abstractmethod
    def sample(self, sampler: Any, ctx: Any) -> Optional[int]:
        """Sample and accept the next token, or ``None`` if the sampler produced nothing."""

    @abstractmethod
    def token_to_text(self, model: Any, token: int) -> str:
        """Render one token as text."""

    @abstractmethod
    def is_end_of_generation(self, model: Any, token: int) -> bool:
        """True for end-of-generation tokens."""

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @abstractmethod
    def model_description(self, model: Any) -> str: ...

    @abstractmethod
    def model_metadata(self, model: Any, key: str) -> Optional[str]: ...

    @abstractmethod
    def param_count(self, model: Any) -> int: ...

    @abstractmethod
    def trained_context_size(self, model: Any) -> int: ...

    @abstractmethod
    def model_size_bytes(self, model: Any) -> int: ...

    @abstractmethod
    def context_state_size_bytes(self, ctx: Any) -> int: ...

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    @abstractmethod
    def free_model(self, model: Any) -> None: ...

    @abstractmethod
    def free_context(self, ctx: Any) -> None: ...

    @abstractmethod
    def free_projector(self, vision: Any) -> None: ...

    @abstractmethod
    def free_batch(self, batch: Any) -> None: ...

    @abstractmethod
    def free_sampler(self, sampler: Any) -> None: ...

    @abstractmethod
    def free_bitmap(self, bitmap: Any) -> None: ...

    @abstractmethod
    def free_chunks(self, chunks: Any) -> None: ...


_ENGINE_INSTANCE: Optional[InferenceEngine] = None
_ENGINE_LOCK = threading.Lock()


def get_engine() -> InferenceEngine:
    """
    Get the llama.cpp engine instance (Singleton).

    Raises:
        ImportError: If llama-cpp-python is not installed
    """
    global _ENGINE_INSTANCE
    with _ENGINE_LOCK:
        if _ENGINE_INSTANCE is None:
            from .native import LlamaCppEngine

            _ENGINE_INSTANCE = LlamaCppEngine()
        return _ENGINE_INSTANCE
