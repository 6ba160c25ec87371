"""
llamasession - Stateful llama.cpp sessions for Python

llamasession wraps one llama.cpp model (optionally with a multimodal
projector) in a session with an explicit lifecycle, cooperative cancellation,
thread-safe callbacks and ``Result``-returning operations.

Quick Start:
    >>> from llamasession import LlamaSession, Message, SessionParams

    >>> session = LlamaSession()
    >>> session.initialize(SessionParams(model_path="./model.gguf")).unwrap()
    >>> result = session.generate_response([Message.user("Hello!")])
    >>> print(result.unwrap())

    # Streaming tokens
    >>> session.generate_response(
    ...     [Message.user("Tell me a story")],
    ...     token_callback=lambda t: print(t, end="", flush=True),
    ... )

    # Vision
    >>> params = SessionParams(model_path="./model.gguf", mmproj_path="./mmproj.gguf")
    >>> message = Message.user("Describe this image", images=[ImageData.from_file("cat.png")])

Features:
    - Multimodal (vision) prompts through llama.cpp's mtmd projector API
    - Cancellation from any thread, checked once per generated token
    - Progress and token callbacks isolated from generation failures
    - Every native resource freed exactly once, in reverse order
"""

from .backend import InferenceEngine, get_engine
from .callbacks import ProgressCallback, TokenCallback
from .cancellation import CancellationToken
from .config import SamplingParams, SessionParams
from .engine import LlamaSession, shutdown_executor
from .exceptions import (
    AlreadyInitializedError,
    ConfigurationError,
    ContextInitError,
    ErrorCode,
    EvaluationError,
    ImageProcessingError,
    LlamaSessionError,
    ModelLoadError,
    NotInitializedError,
    OutOfMemoryError,
    ProjectorError,
    RequestCancelledError,
    SamplingError,
    TokenizationError,
)
from .info import GenerationStats, MemoryInfo, ModelInfo
from .messages import ImageData, Message, MessageRole
from .resources import get_system_resources
from .result import Error, Result, Success
from .sampler import SamplerStage, build_sampler_chain
from .state import GenerationState

# Version info
__version__ = "0.1.0"
__author__ = "llamasession contributors"

__all__ = [
    # Main class
    "LlamaSession",
    "shutdown_executor",
    # Parameters
    "SessionParams",
    "SamplingParams",
    # Conversation
    "Message",
    "MessageRole",
    "ImageData",
    # Results and errors
    "Result",
    "Success",
    "Error",
    "ErrorCode",
    "LlamaSessionError",
    "ModelLoadError",
    "ProjectorError",
    "ContextInitError",
    "OutOfMemoryError",
    "TokenizationError",
    "EvaluationError",
    "SamplingError",
    "ImageProcessingError",
    "ConfigurationError",
    "NotInitializedError",
    "AlreadyInitializedError",
    "RequestCancelledError",
    # Reports
    "ModelInfo",
    "MemoryInfo",
    "GenerationStats",
    "GenerationState",
    # Control
    "CancellationToken",
    "ProgressCallback",
    "TokenCallback",
    # Engine
    "InferenceEngine",
    "get_engine",
    "SamplerStage",
    "build_sampler_chain",
    "get_system_resources",
    # Version
    "__version__",
]


def get_version() -> str:
    """Return the package version."""
    return __version__


def get_device_info() -> dict:
    """Get information about available compute devices."""
    import os
    import platform

    resources = get_system_resources()
    return {
        "platform": platform.system(),
        "architecture": platform.machine(),
        "cpu_count": os.cpu_count(),
        "available_ram_mb": resources.available_ram_mb,
        "python_version": platform.python_version(),
    }
