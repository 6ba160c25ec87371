"""
llamasession error taxonomy and exception hierarchy.

Every public operation of :class:`~llamasession.engine.LlamaSession` reports
failures as an :class:`ErrorCode` inside a :class:`~llamasession.result.Error`.
The exceptions below are raised at the native engine boundary and translated
back into codes by the controller, so they never escape a public call.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(Enum):
    """Closed set of failure kinds reported by a session."""

    MODEL_NOT_FOUND = 1
    MODEL_LOAD_FAILED = 2
    MODEL_INVALID = 3
    MMPROJ_NOT_FOUND = 4
    MMPROJ_LOAD_FAILED = 5
    MMPROJ_INVALID = 6
    CONTEXT_INIT_FAILED = 7
    INSUFFICIENT_MEMORY = 8
    TOKENIZATION_FAILED = 9
    EVALUATION_FAILED = 10
    SAMPLING_FAILED = 11
    IMAGE_PROCESSING_FAILED = 12
    INVALID_PARAMETERS = 13
    NOT_INITIALIZED = 14
    ALREADY_INITIALIZED = 15
    OPERATION_CANCELLED = 16
    UNKNOWN_ERROR = 99

    @property
    def description(self) -> str:
        """Short human-readable description of the code."""
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    ErrorCode.MODEL_NOT_FOUND: "Model file not found",
    ErrorCode.MODEL_LOAD_FAILED: "Failed to load model",
    ErrorCode.MODEL_INVALID: "Invalid model format",
    ErrorCode.MMPROJ_NOT_FOUND: "Multimodal projector file not found",
    ErrorCode.MMPROJ_LOAD_FAILED: "Failed to load multimodal projector",
    ErrorCode.MMPROJ_INVALID: "Invalid multimodal projector format",
    ErrorCode.CONTEXT_INIT_FAILED: "Failed to initialize context",
    ErrorCode.INSUFFICIENT_MEMORY: "Insufficient memory",
    ErrorCode.TOKENIZATION_FAILED: "Text tokenization failed",
    ErrorCode.EVALUATION_FAILED: "Model evaluation failed",
    ErrorCode.SAMPLING_FAILED: "Token sampling failed",
    ErrorCode.IMAGE_PROCESSING_FAILED: "Image processing failed",
    ErrorCode.INVALID_PARAMETERS: "Invalid parameters",
    ErrorCode.NOT_INITIALIZED: "Session not initialized",
    ErrorCode.ALREADY_INITIALIZED: "Session already initialized",
    ErrorCode.OPERATION_CANCELLED: "Operation was cancelled",
    ErrorCode.UNKNOWN_ERROR: "Unknown error",
}


class LlamaSessionError(Exception):
    """
    Base exception for all llamasession errors.

    Attributes:
        message: Human-readable error message
        code: The :class:`ErrorCode` this error reports as
    """

    default_code = ErrorCode.UNKNOWN_ERROR

    def __init__(self, message: str = "", code: ErrorCode | None = None):
        code = code or self.default_code
        message = message or code.description
        super().__init__(message)
        self.message = message
        self.code = code

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, code={self.code.name})"


class ModelLoadError(LlamaSessionError):
    """
    Failed to find, load or parse the language model.

    Raised when:
    - Model file not found
    - Invalid GGUF format
    - llama.cpp refused to load the weights
    """

    default_code = ErrorCode.MODEL_LOAD_FAILED


class ProjectorError(LlamaSessionError):
    """Failed to find, load or parse the multimodal projector."""

    default_code = ErrorCode.MMPROJ_LOAD_FAILED


class ContextInitError(LlamaSessionError):
    """The inference context could not be created for a loaded model."""

    default_code = ErrorCode.CONTEXT_INIT_FAILED


class OutOfMemoryError(LlamaSessionError):
    """
    Not enough memory for the requested model or context.

    Example:
        >>> try:
        ...     session.initialize(params).unwrap()
        ... except OutOfMemoryError:
        ...     # Use a smaller quantization or context
        ...     params = dataclasses.replace(params, context_size=2048)
    """

    default_code = ErrorCode.INSUFFICIENT_MEMORY


class TokenizationError(LlamaSessionError):
    """
    Failed to render or tokenize the prompt.

    Raised when:
    - The chat template cannot be applied
    - The prompt does not fit the tokenizer buffer
    - Multimodal tokenization failed
    """

    default_code = ErrorCode.TOKENIZATION_FAILED


class EvaluationError(LlamaSessionError):
    """The engine failed to decode a batch of tokens."""

    default_code = ErrorCode.EVALUATION_FAILED


class SamplingError(LlamaSessionError):
    """The sampler chain could not be built or produced no token."""

    default_code = ErrorCode.SAMPLING_FAILED


class ImageProcessingError(LlamaSessionError):
    """Image bytes were rejected or could not be turned into a bitmap."""

    default_code = ErrorCode.IMAGE_PROCESSING_FAILED


class ConfigurationError(LlamaSessionError):
    """
    Invalid configuration parameters.

    Raised when:
    - Sampling values are out of range (e.g. temperature > 2)
    - Context, batch or thread counts are not positive
    - A conversation is empty or needs a projector that is not loaded
    """

    default_code = ErrorCode.INVALID_PARAMETERS


class NotInitializedError(LlamaSessionError):
    """The session has no native handle."""

    default_code = ErrorCode.NOT_INITIALIZED


class AlreadyInitializedError(LlamaSessionError):
    """The session already owns a native handle."""

    default_code = ErrorCode.ALREADY_INITIALIZED


class RequestCancelledError(LlamaSessionError):
    """
    The operation observed a cancelled token and stopped early.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> session.generate_response(conversation, cancellation_token=token).unwrap()
        Traceback (most recent call last):
        ...
        RequestCancelledError: Operation was cancelled
    """

    default_code = ErrorCode.OPERATION_CANCELLED


ERROR_CODE_MAP: dict[ErrorCode, type[LlamaSessionError]] = {
    # Model errors
    ErrorCode.MODEL_NOT_FOUND: ModelLoadError,
    ErrorCode.MODEL_LOAD_FAILED: ModelLoadError,
    ErrorCode.MODEL_INVALID: ModelLoadError,
    # Projector errors
    ErrorCode.MMPROJ_NOT_FOUND: ProjectorError,
    ErrorCode.MMPROJ_LOAD_FAILED: ProjectorError,
    ErrorCode.MMPROJ_INVALID: ProjectorError,
    # Memory errors
    ErrorCode.CONTEXT_INIT_FAILED: ContextInitError,
    ErrorCode.INSUFFICIENT_MEMORY: OutOfMemoryError,
    # Request errors
    ErrorCode.TOKENIZATION_FAILED: TokenizationError,
    ErrorCode.EVALUATION_FAILED: EvaluationError,
    ErrorCode.SAMPLING_FAILED: SamplingError,
    ErrorCode.IMAGE_PROCESSING_FAILED: ImageProcessingError,
    ErrorCode.INVALID_PARAMETERS: ConfigurationError,
    ErrorCode.OPERATION_CANCELLED: RequestCancelledError,
    # Session errors
    ErrorCode.NOT_INITIALIZED: NotInitializedError,
    ErrorCode.ALREADY_INITIALIZED: AlreadyInitializedError,
    ErrorCode.UNKNOWN_ERROR: LlamaSessionError,
}


def map_error_code(code: ErrorCode, message: str = "") -> LlamaSessionError:
    """
    Map an error code to the matching exception instance.

    Args:
        code: The error code to translate
        message: Error message (defaults to the code description)

    Returns:
        Instance of the appropriate exception class

    Example:
        >>> exc = map_error_code(ErrorCode.INSUFFICIENT_MEMORY, "KV cache full")
        >>> isinstance(exc, OutOfMemoryError)
        True
    """
    exc_class = ERROR_CODE_MAP.get(code, LlamaSessionError)
    return exc_class(message, code=code)
