"""
llamasession Engine - Session controller.

This module provides the :class:`LlamaSession` class: one loaded model with
its context, an optional multimodal projector, and the generation loop that
drives them. Every public operation returns a
:class:`~llamasession.result.Result` instead of raising.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
import os
import threading
import time
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from functools import partial
from typing import Any, Optional

from .backend import InferenceEngine, get_engine
from .callbacks import ProgressBridge, ProgressCallback, TokenBridge, TokenCallback
from .cancellation import CancellationToken, is_cancelled
from .config import SamplingParams, SessionParams
from .exceptions import (
    ContextInitError,
    ErrorCode,
    ImageProcessingError,
    LlamaSessionError,
    ModelLoadError,
    OutOfMemoryError,
    ProjectorError,
    RequestCancelledError,
    SamplingError,
    TokenizationError,
)
from .handle import BATCH, CONTEXT, MODEL, SAMPLER, VISION, HandleManager, NativeHandle
from .info import GenerationStats, MemoryInfo, ModelInfo
from .messages import ImageData, Message, MessageLike, coerce_conversation, collect_images
from .resources import bytes_to_mb, get_system_resources, model_exceeds_memory
from .result import Error, Result, Success
from .sampler import build_sampler_chain
from .state import GenerationState, GenerationStateMachine

logger = logging.getLogger(__name__)

GGUF_MAGIC = b"GGUF"

_PNG_MAGIC = b"\x89PNG"
_JPEG_MAGIC = b"\xff\xd8"
_BMP_MAGIC = b"BM"
_MIN_IMAGE_SIZE = 8

# Dedicated pool for async generation; lazily created on first use
_INFERENCE_EXECUTOR: Optional[ThreadPoolExecutor] = None
_EXECUTOR_LOCK = threading.Lock()


def _get_inference_executor() -> ThreadPoolExecutor:
    """
    Get or create the inference thread pool executor (Singleton).

    A session runs one generation at a time, so the pool only needs to be as
    large as the number of sessions generating concurrently.
    """
    global _INFERENCE_EXECUTOR
    with _EXECUTOR_LOCK:
        if _INFERENCE_EXECUTOR is None:
            max_workers = min(32, (os.cpu_count() or 4) * 2)
            _INFERENCE_EXECUTOR = ThreadPoolExecutor(
                max_workers=max_workers,
                thread_name_prefix="llamasession-generate",
            )
        return _INFERENCE_EXECUTOR


def shutdown_executor() -> None:
    """
    Shut down the inference executor gracefully.

    Call this during application shutdown to ensure clean termination.
    """
    global _INFERENCE_EXECUTOR
    with _EXECUTOR_LOCK:
        executor, _INFERENCE_EXECUTOR = _INFERENCE_EXECUTOR, None
    if executor is not None:
        executor.shutdown(wait=True)


def _checkpoint(token: Optional[CancellationToken]) -> None:
    if is_cancelled(token):
        raise RequestCancelledError("Operation was cancelled")


class LlamaSession:
    """
    A llama.cpp model session with optional vision support.

    A session owns at most one loaded model. Calls are synchronous and must
    not overlap: a second ``generate_response`` while one is running returns
    ``Error(INVALID_PARAMETERS)``. Cancellation tokens may be cancelled from
    any thread.

    Args:
        engine: Inference engine to drive (default: the llama.cpp engine)

    Examples:
        Basic usage:

        >>> from llamasession import LlamaSession, Message, SessionParams
        >>> session = LlamaSession()
        >>> session.initialize(SessionParams(model_path="./model.gguf")).unwrap()
        >>> result = session.generate_response([Message.user("Hello!")])
        >>> print(result.unwrap())

        With context manager and streaming:

        >>> with LlamaSession() as session:
        ...     session.initialize(params)
        ...     session.generate_response(
        ...         [Message.user("Tell me a story")],
        ...         token_callback=lambda t: print(t, end="", flush=True),
        ...     )

        Async:

        >>> result = await session.generate_response_async([Message.user("Hi")])
    """

    def __init__(self, engine: Optional[InferenceEngine] = None):
        self._engine = engine
        self._handles = HandleManager()
        self._state = GenerationStateMachine()
        self._params: Optional[SessionParams] = None

        self._stats_lock = threading.Lock()
        self._stats = GenerationStats()
        self._generation_start = 0.0

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def engine(self) -> InferenceEngine:
        """The inference engine, created on first access."""
        if self._engine is None:
            self._engine = get_engine()
        return self._engine

    @property
    def params(self) -> Optional[SessionParams]:
        """Parameters of the last successful :meth:`initialize`."""
        return self._params

    @property
    def generation_state(self) -> GenerationState:
        return self._state.state

    @property
    def state_machine(self) -> GenerationStateMachine:
        return self._state

    @property
    def native_handle(self) -> int:
        """Opaque token identifying the live native handle (0 when not initialized)."""
        return self._handles.token

    def is_initialized(self) -> bool:
        return self._handles.is_live

    # =========================================================================
    # Initialization
    # =========================================================================

    def initialize(
        self,
        params: SessionParams,
        progress_callback: Optional[ProgressCallback] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> Result[None]:
        """
        Load the model (and projector) described by ``params``.

        Progress is reported at fixed checkpoints from 0.0 ("Initializing
        backend") to 1.0 ("Initialization complete"). On any failure every
        native resource acquired so far is freed before the error returns.

        Args:
            params: Session parameters
            progress_callback: Optional ``(progress, stage)`` callback
            cancellation_token: Optional token checked before each heavy load

        Returns:
            ``Success(None)``, or ``Error`` with ``ALREADY_INITIALIZED``,
            ``INVALID_PARAMETERS``, ``MODEL_NOT_FOUND``, ``MMPROJ_NOT_FOUND``,
            ``MODEL_LOAD_FAILED``, ``INSUFFICIENT_MEMORY``,
            ``CONTEXT_INIT_FAILED``, ``MMPROJ_LOAD_FAILED`` or
            ``OPERATION_CANCELLED``
        """
        if self._handles.is_live:
            return Error(
                ErrorCode.ALREADY_INITIALIZED,
                "Session is already initialized; call close() before initializing again",
            )

        validation = params.validate()
        if validation.is_error:
            return validation

        try:
            engine = self.engine
            if not engine.path_exists(params.model_path):
                return Error(ErrorCode.MODEL_NOT_FOUND, f"File not found: {params.model_path}")
            if params.has_projector and not engine.path_exists(params.mmproj_path):
                return Error(
                    ErrorCode.MMPROJ_NOT_FOUND,
                    f"Multimodal projector file not found: {params.mmproj_path}",
                )
        except Exception as e:
            logger.exception("Failed to prepare inference engine")
            return Error(ErrorCode.UNKNOWN_ERROR, str(e) or type(e).__name__)

        if not self._state.begin():
            return Error(ErrorCode.INVALID_PARAMETERS, "Generation already in progress")

        with ProgressBridge(progress_callback) as progress:
            try:
                self._load(params, progress, cancellation_token)
            except RequestCancelledError as e:
                logger.info("Initialization cancelled")
                return self._abort_initialize(GenerationState.CANCELLED, Error.from_exception(e))
            except LlamaSessionError as e:
                logger.error("Initialization failed: %s", e.message)
                return self._abort_initialize(GenerationState.ERROR, Error.from_exception(e))
            except Exception as e:
                logger.exception("Unexpected error during initialization")
                return self._abort_initialize(
                    GenerationState.ERROR,
                    Error(ErrorCode.UNKNOWN_ERROR, str(e) or type(e).__name__),
                )

            self._params = params
            with self._stats_lock:
                self._stats = GenerationStats()
            self._state.transition(GenerationState.IDLE)
            progress(1.0, "Initialization complete")

        logger.info("Session initialized with model %s", params.model_path)
        return Success()

    def _load(
        self,
        params: SessionParams,
        progress: ProgressBridge,
        token: Optional[CancellationToken],
    ) -> None:
        engine = self.engine
        _checkpoint(token)

        engine.set_verbosity(params.verbosity)
        progress(0.0, "Initializing backend")
        handle = self._handles.acquire()
        handle.attach(BATCH, engine.init_batch(1), engine.free_batch)

        _checkpoint(token)
        progress(0.1, "Loading model")
        load_hook = progress.scaled(0.1, 0.4, "Loading model") if progress.active else None
        model = engine.load_model(params.model_path, params.gpu_layers, load_hook)
        if model is None:
            if model_exceeds_memory(params.model_path):
                raise OutOfMemoryError(f"Not enough memory to load model: {params.model_path}")
            raise ModelLoadError(f"Failed to load model: {params.model_path}")
        handle.attach(MODEL, model, engine.free_model)

        progress(0.4, "Initializing context")
        ctx = engine.init_context(model, params.context_size, params.batch_size, params.threads)
        if ctx is None:
            raise ContextInitError("Failed to create llama context")
        handle.attach(CONTEXT, ctx, engine.free_context)
        progress(0.6, "Model loaded successfully")

        if params.has_projector:
            _checkpoint(token)
            progress(0.7, "Loading vision model")
            vision = engine.load_projector(
                params.mmproj_path,
                model,
                params.mmproj_use_gpu,
                params.threads,
                params.verbosity,
            )
            if vision is None:
                raise ProjectorError(f"Failed to load multimodal projector: {params.mmproj_path}")
            handle.attach(VISION, vision, engine.free_projector)
            progress(0.9, "Vision model loaded successfully")

    def _abort_initialize(self, state: GenerationState, error: Error) -> Error:
        self._handles.release()
        self._params = None
        self._state.transition(state)
        return error

    # =========================================================================
    # Generation
    # =========================================================================

    def generate_response(
        self,
        conversation: Iterable[MessageLike],
        sampling: Optional[SamplingParams] = None,
        token_callback: Optional[TokenCallback] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> Result[str]:
        """
        Generate the assistant reply to ``conversation``.

        Args:
            conversation: Messages (``Message`` objects or OpenAI-style dicts)
            sampling: Sampling override for this call (default: session sampling)
            token_callback: Called with each generated piece of text
            progress_callback: Called with ``(progress, stage)``
            cancellation_token: Checked before prompt evaluation and once per token

        Returns:
            ``Success(text)`` or an ``Error``. Mid-generation failures leave the
            session usable for the next call.

        Example:
            >>> result = session.generate_response(
            ...     [Message.system("Be brief."), Message.user("What is GGUF?")],
            ...     sampling=SamplingParams(temperature=0.0, max_tokens=64),
            ... )
            >>> if result.is_success:
            ...     print(result.value)
        """
        handle = self._handles.current
        if handle is None or handle.released or self._params is None:
            return Error(ErrorCode.NOT_INITIALIZED, "Session must be initialized before use")

        if not self._state.state.accepts_new_call:
            return Error(ErrorCode.INVALID_PARAMETERS, "Generation already in progress")

        try:
            messages = coerce_conversation(conversation)
        except (TypeError, ValueError) as e:
            return Error(ErrorCode.INVALID_PARAMETERS, str(e))
        if not messages:
            return Error(ErrorCode.INVALID_PARAMETERS, "Conversation cannot be empty")

        images = collect_images(messages)
        if images and not handle.has(VISION):
            return Error(
                ErrorCode.INVALID_PARAMETERS,
                "Images provided but multimodal projector not loaded",
            )
        for image in images:
            checked = self.validate_image_data(image.data)
            if checked.is_error:
                return checked

        sampling = sampling or self._params.sampling
        validation = sampling.validate()
        if validation.is_error:
            return validation

        if not self._state.begin():
            return Error(ErrorCode.INVALID_PARAMETERS, "Generation already in progress")

        with ProgressBridge(progress_callback) as progress, TokenBridge(token_callback) as on_token:
            try:
                text = self._generate(
                    handle, messages, images, sampling, on_token, progress, cancellation_token
                )
            except RequestCancelledError as e:
                logger.info("Generation cancelled after %d tokens", self._stats.tokens_generated)
                self._state.transition(GenerationState.CANCELLED)
                return Error.from_exception(e)
            except LlamaSessionError as e:
                logger.error("Generation failed: %s", e.message)
                self._state.transition(GenerationState.ERROR)
                return Error.from_exception(e)
            except Exception as e:
                logger.exception("Unexpected error during generation")
                self._state.transition(GenerationState.ERROR)
                return Error(ErrorCode.UNKNOWN_ERROR, str(e) or type(e).__name__)

        return Success(text)

    def _generate(
        self,
        handle: NativeHandle,
        messages: Sequence[Message],
        images: Sequence[ImageData],
        sampling: SamplingParams,
        on_token: TokenBridge,
        progress: ProgressBridge,
        token: Optional[CancellationToken],
    ) -> str:
        engine = self.engine
        model = handle.get(MODEL)
        ctx = handle.get(CONTEXT)

        self._start_stats(sampling)
        _checkpoint(token)

        sampler = engine.create_sampler(build_sampler_chain(sampling))
        if sampler is None:
            raise SamplingError("Failed to create sampler chain")
        handle.replace(SAMPLER, sampler, engine.free_sampler)

        engine.clear_memory(ctx)

        self._state.transition(GenerationState.TOKENIZING_PROMPT)
        prompt = engine.apply_chat_template(
            model, [(m.role.value, m.content) for m in messages], True
        )

        if images:
            n_past = self._evaluate_multimodal(handle, prompt, images, progress, token)
        else:
            n_past = self._evaluate_text(handle, prompt, progress, token)

        _checkpoint(token)
        self._state.transition(GenerationState.GENERATING)
        progress(0.6, "Generating response")

        max_tokens = sampling.max_tokens if sampling.max_tokens > 0 else self._params.max_tokens_ceiling
        batch = handle.get(BATCH)
        pieces: list[str] = []
        generated = 0

        while generated < max_tokens:
            _checkpoint(token)

            token_id = engine.sample(sampler, ctx)
            if token_id is None:
                raise SamplingError("Sampler returned null token")
            if engine.is_end_of_generation(model, token_id):
                break

            piece = engine.token_to_text(model, token_id)
            pieces.append(piece)
            on_token(piece)

            generated += 1
            self._update_stats(generated)

            engine.decode(ctx, [token_id], n_past, batch)
            n_past += 1

            if sampling.max_tokens > 0:
                progress(0.6 + 0.4 * generated / max_tokens, "Generating tokens")

        self._update_stats(generated)
        self._state.transition(GenerationState.FINISHED)
        progress(1.0, "Generation complete")
        logger.debug("Generated %d tokens", generated)
        return "".join(pieces)

    def _evaluate_text(
        self,
        handle: NativeHandle,
        prompt: str,
        progress: ProgressBridge,
        token: Optional[CancellationToken],
    ) -> int:
        engine = self.engine
        progress(0.2, "Tokenizing text prompt")
        tokens = engine.tokenize(handle.get(MODEL), prompt, False, True)
        if not tokens:
            raise TokenizationError("Prompt produced no tokens")

        _checkpoint(token)
        progress(0.4, "Evaluating text prompt")
        engine.decode(handle.get(CONTEXT), tokens, 0)
        return len(tokens)

    def _evaluate_multimodal(
        self,
        handle: NativeHandle,
        prompt: str,
        images: Sequence[ImageData],
        progress: ProgressBridge,
        token: Optional[CancellationToken],
    ) -> int:
        engine = self.engine
        vision = handle.get(VISION)

        self._state.transition(GenerationState.PROCESSING_IMAGES)
        progress(0.1, "Processing images")
        prompt = engine.image_marker() * len(images) + "\n" + prompt

        bitmaps: list[Any] = []
        chunks = None
        try:
            for index, image in enumerate(images):
                bitmap = engine.create_bitmap(vision, image.data)
                if bitmap is None:
                    raise ImageProcessingError(
                        f"Failed to create bitmap from image data (image {index})"
                    )
                bitmaps.append(bitmap)

            progress(0.3, "Tokenizing multimodal prompt")
            chunks = engine.tokenize_multimodal(vision, prompt, bitmaps)

            _checkpoint(token)
            progress(0.5, "Evaluating multimodal prompt")
            return engine.eval_chunks(
                vision, handle.get(CONTEXT), chunks, 0, self._params.batch_size
            )
        finally:
            if chunks is not None:
                engine.free_chunks(chunks)
            for bitmap in bitmaps:
                engine.free_bitmap(bitmap)

    async def generate_response_async(
        self,
        conversation: Iterable[MessageLike],
        sampling: Optional[SamplingParams] = None,
        token_callback: Optional[TokenCallback] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> Result[str]:
        """
        Asynchronously generate a reply.

        The generation runs on a worker thread so the event loop stays free.
        Callbacks are invoked on that worker thread; use
        ``loop.call_soon_threadsafe`` inside them to touch loop-bound objects.
        Cancelling the awaiting task does not stop the native loop; pass a
        :class:`CancellationToken` for that.

        Example:
            >>> result = await session.generate_response_async([Message.user("Hello!")])
            >>> print(result.unwrap())
        """
        loop = asyncio.get_running_loop()
        # Run in a copy of the caller's context so the callback bridges capture it
        call = partial(
            contextvars.copy_context().run,
            self.generate_response,
            list(conversation),
            sampling,
            token_callback,
            progress_callback,
            cancellation_token,
        )
        return await loop.run_in_executor(_get_inference_executor(), call)

    def chat(
        self,
        messages: list[dict[str, Any]],
        system_prompt: Optional[str] = None,
        sampling: Optional[SamplingParams] = None,
        **kwargs,
    ) -> Result[str]:
        """
        Chat-style interface compatible with OpenAI API format.

        Args:
            messages: List of message dicts with "role" and "content"
            system_prompt: Optional system prompt to prepend
            sampling: Optional sampling override
            **kwargs: Forwarded to :meth:`generate_response`

        Example:
            >>> response = session.chat([
            ...     {"role": "user", "content": "Hello!"}
            ... ])
            >>> print(response.unwrap())
        """
        conversation: list[MessageLike] = []
        if system_prompt:
            conversation.append(Message.system(system_prompt))
        conversation.extend(messages)
        return self.generate_response(conversation, sampling, **kwargs)

    def reset(self) -> Result[None]:
        """Forget all tokens evaluated so far. The model stays loaded."""
        handle = self._handles.current
        if handle is None or handle.released:
            return Error(ErrorCode.NOT_INITIALIZED, "Session must be initialized before use")
        if not self._state.state.accepts_new_call:
            return Error(ErrorCode.INVALID_PARAMETERS, "Generation already in progress")
        try:
            self.engine.clear_memory(handle.get(CONTEXT))
        except LlamaSessionError as e:
            return Error.from_exception(e)
        except Exception as e:
            logger.exception("Unexpected error while resetting context")
            return Error(ErrorCode.UNKNOWN_ERROR, str(e) or type(e).__name__)
        return Success()

    # =========================================================================
    # Statistics
    # =========================================================================

    def _start_stats(self, sampling: SamplingParams) -> None:
        with self._stats_lock:
            self._generation_start = time.perf_counter()
            self._stats = GenerationStats(state=self._state.state, sampling=sampling)

    def _update_stats(self, tokens_generated: int) -> None:
        with self._stats_lock:
            elapsed = time.perf_counter() - self._generation_start
            self._stats = GenerationStats.measure(
                tokens_generated, elapsed, self._state.state, self._stats.sampling
            )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_model_info(self) -> Result[ModelInfo]:
        """Describe the loaded model."""
        handle = self._handles.current
        if handle is None or handle.released:
            return Error(ErrorCode.NOT_INITIALIZED, "Session must be initialized before use")
        try:
            info = _describe_model(self.engine, handle.get(MODEL), handle.has(VISION))
        except Exception as e:
            logger.exception("Failed to read model info")
            return Error(ErrorCode.UNKNOWN_ERROR, str(e) or type(e).__name__)
        return Success(info)

    def get_memory_info(self) -> Result[MemoryInfo]:
        """Report model, context and available system memory in MB."""
        handle = self._handles.current
        if handle is None or handle.released:
            return Error(ErrorCode.NOT_INITIALIZED, "Session must be initialized before use")
        try:
            engine = self.engine
            model_mb = bytes_to_mb(engine.model_size_bytes(handle.get(MODEL)))
            context_mb = bytes_to_mb(engine.context_state_size_bytes(handle.get(CONTEXT)))
            available_mb = get_system_resources().available_ram_mb
        except Exception as e:
            logger.exception("Failed to read memory info")
            return Error(ErrorCode.UNKNOWN_ERROR, str(e) or type(e).__name__)
        return Success(
            MemoryInfo(
                model_memory_mb=model_mb,
                context_memory_mb=context_mb,
                total_memory_mb=model_mb + context_mb,
                available_memory_mb=available_mb,
            )
        )

    def get_generation_stats(self) -> Result[GenerationStats]:
        """Statistics of the running or most recent generation."""
        if not self._handles.is_live:
            return Error(ErrorCode.NOT_INITIALIZED, "Session must be initialized before use")
        with self._stats_lock:
            stats = self._stats
        # State comes from the state machine, not the snapshot
        return Success(replace(stats, state=self._state.state))

    # =========================================================================
    # Static validation
    # =========================================================================

    @staticmethod
    def validate_model(path: str, engine: Optional[InferenceEngine] = None) -> Result[ModelInfo]:
        """
        Check that ``path`` is a loadable model without touching any session.

        The model is loaded and freed again, so this is as slow as loading it.
        """
        try:
            engine = engine or get_engine()
            if not engine.path_exists(path):
                return Error(ErrorCode.MODEL_NOT_FOUND, f"File not found: {path}")
            model = engine.load_model(path, 0)
            if model is None:
                return Error(ErrorCode.MODEL_INVALID, "Invalid model format")
            try:
                return Success(_describe_model(engine, model, False))
            finally:
                engine.free_model(model)
        except LlamaSessionError as e:
            return Error.from_exception(e)
        except Exception as e:
            logger.exception("Unexpected error while validating %s", path)
            return Error(ErrorCode.UNKNOWN_ERROR, str(e) or type(e).__name__)

    @staticmethod
    def validate_mmproj(path: str) -> Result[None]:
        """Check that ``path`` exists and starts with the GGUF magic bytes."""
        if not os.path.isfile(path):
            return Error(ErrorCode.MMPROJ_NOT_FOUND, f"Multimodal projector file not found: {path}")
        try:
            with open(path, "rb") as f:
                header = f.read(len(GGUF_MAGIC))
        except OSError:
            return Error(ErrorCode.MMPROJ_INVALID, "Cannot open mmproj file")
        if header != GGUF_MAGIC:
            return Error(ErrorCode.MMPROJ_INVALID, "Invalid mmproj format - not a GGUF file")
        return Success()

    @staticmethod
    def validate_image_data(data: bytes) -> Result[bytes]:
        """
        Check that ``data`` looks like a PNG, JPEG or BMP image.

        Only the signature is checked; the bytes are returned unchanged.

        Example:
            >>> LlamaSession.validate_image_data(b"\\x89PNG\\r\\n\\x1a\\n...").is_success
            True
        """
        if not data:
            return Error(ErrorCode.IMAGE_PROCESSING_FAILED, "Image data is empty")
        if len(data) < _MIN_IMAGE_SIZE:
            return Error(ErrorCode.IMAGE_PROCESSING_FAILED, "Image data too small")
        if not data.startswith((_PNG_MAGIC, _JPEG_MAGIC, _BMP_MAGIC)):
            return Error(ErrorCode.IMAGE_PROCESSING_FAILED, "Unsupported image format")
        return Success(data)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Release the model and every native resource. Safe to call repeatedly."""
        released = self._handles.release()
        self._params = None
        self._state.transition(GenerationState.IDLE)
        if released:
            logger.info("Session closed")

    def __enter__(self) -> LlamaSession:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    def __del__(self) -> None:
        """Destructor to ensure cleanup."""
        # __init__ may have failed before the manager existed
        if getattr(self, "_handles", None) is not None:
            self.close()

    def __repr__(self) -> str:
        model = self._params.model_path if self._params else None
        status = "active" if self.is_initialized() else "closed"
        return f"LlamaSession(model={model!r}, status={status}, state={self.generation_state.name})"


def _describe_model(engine: InferenceEngine, model: Any, supports_vision: bool) -> ModelInfo:
    capabilities = ["text_generation"]
    if supports_vision:
        capabilities += ["vision", "multimodal"]
    return ModelInfo(
        name=engine.model_description(model) or "Unknown Model",
        architecture=engine.model_metadata(model, "general.architecture") or "",
        parameter_count=engine.param_count(model),
        context_size=engine.trained_context_size(model),
        supports_vision=supports_vision,
        capabilities=tuple(capabilities),
    )
