"""
llama.cpp inference engine.

Drives llama.cpp through the ctypes bindings shipped with ``llama-cpp-python``
(``pip install llamasession[native]``). Only the low-level C API is used; the
high-level ``llama_cpp.Llama`` wrapper keeps its own state and cannot share a
context with the multimodal helpers.

Thread model: ctypes releases the GIL for every call, so long native calls
(model load, decode) do not block other Python threads. The progress and log
callbacks may be invoked from llama.cpp worker threads.
"""

from __future__ import annotations

import ctypes
import logging
import threading
from collections.abc import Sequence
from typing import Any, Optional

import llama_cpp
import numpy as np

from .backend import InferenceEngine, NativeProgress
from .exceptions import (
    EvaluationError,
    ImageProcessingError,
    ProjectorError,
    SamplingError,
    TokenizationError,
)
from .sampler import (
    DIST,
    GREEDY,
    MIN_P,
    PENALTIES,
    TEMPERATURE,
    TOP_K,
    TOP_P,
    TYPICAL,
    SamplerStage,
)

logger = logging.getLogger(__name__)

# ggml_log_level values
GGML_LOG_LEVEL_DEBUG = 1
GGML_LOG_LEVEL_INFO = 2
GGML_LOG_LEVEL_WARN = 3
GGML_LOG_LEVEL_ERROR = 4
GGML_LOG_LEVEL_CONT = 5

_LOG_LEVELS = {
    GGML_LOG_LEVEL_DEBUG: logging.DEBUG,
    GGML_LOG_LEVEL_INFO: logging.INFO,
    GGML_LOG_LEVEL_WARN: logging.WARNING,
    GGML_LOG_LEVEL_ERROR: logging.ERROR,
}

# Minimum native level forwarded for each SessionParams.verbosity
_VERBOSITY_LEVELS = {
    0: GGML_LOG_LEVEL_ERROR,
    1: GGML_LOG_LEVEL_WARN,
    2: GGML_LOG_LEVEL_DEBUG,
}

_TEXT_BUFFER_SIZE = 256
_PIECE_BUFFER_SIZE = 64

_backend_lock = threading.Lock()
_backend_initialized = False

_min_log_level = GGML_LOG_LEVEL_WARN
_last_log_level = GGML_LOG_LEVEL_INFO


def _log_callback(level: int, text: bytes, user_data: Any) -> None:
    global _last_log_level
    # Continuation lines inherit the level of the line they continue
    if level == GGML_LOG_LEVEL_CONT:
        level = _last_log_level
    else:
        _last_log_level = level
    if level < _min_log_level or not text:
        return
    message = text.decode("utf-8", errors="replace").rstrip()
    if message:
        logger.log(_LOG_LEVELS.get(level, logging.INFO), message)


# Referenced from module scope so the C function pointer is never collected
_C_LOG_CALLBACK = llama_cpp.llama_log_callback(_log_callback)


def _init_backend() -> None:
    """Initialise the llama.cpp backend once per process."""
    global _backend_initialized
    with _backend_lock:
        if _backend_initialized:
            return
        llama_cpp.llama_log_set(_C_LOG_CALLBACK, ctypes.c_void_p(0))
        llama_cpp.llama_backend_init()
        _backend_initialized = True
        logger.debug("llama.cpp backend initialized")


def _mtmd():
    try:
        from llama_cpp import mtmd_cpp
    except (ImportError, OSError) as e:
        raise ProjectorError(f"Multimodal support is not available in llama-cpp-python: {e}") from e
    return mtmd_cpp


class _Batch:
    """A ``llama_batch`` together with the number of slots it was allocated with."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        self.struct = llama_cpp.llama_batch_init(capacity, 0, 1)

    def fill(self, tokens: Sequence[int], start_pos: int) -> None:
        batch = self.struct
        batch.n_tokens = len(tokens)
        for i, token in enumerate(tokens):
            batch.token[i] = token
            batch.pos[i] = start_pos + i
            batch.n_seq_id[i] = 1
            batch.seq_id[i][0] = 0
            batch.logits[i] = 0
        batch.logits[len(tokens) - 1] = 1

    def free(self) -> None:
        if self.struct is not None:
            llama_cpp.llama_batch_free(self.struct)
            self.struct = None


class LlamaCppEngine(InferenceEngine):
    """
    :class:`~llamasession.backend.InferenceEngine` over llama.cpp.

    Model, context, sampler and projector objects are the raw pointers
    returned by llama.cpp; the session owns them and hands them back here.
    """

    def __init__(self) -> None:
        _init_backend()
        # Keep C callbacks alive while a native call may still invoke them
        self._progress_refs: dict[int, Any] = {}
        self._lock = threading.Lock()

    def set_verbosity(self, verbosity: int) -> None:
        """
        Set the minimum native log level forwarded to ``logging``.

        llama.cpp has a single log callback per process, so this setting is
        process-wide: the session initialized last decides it for all sessions.
        """
        global _min_log_level
        _min_log_level = _VERBOSITY_LEVELS.get(verbosity, GGML_LOG_LEVEL_DEBUG)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_model(
        self, path: str, gpu_layers: int = 0, progress: Optional[NativeProgress] = None
    ) -> Optional[Any]:
        params = llama_cpp.llama_model_default_params()
        params.n_gpu_layers = gpu_layers

        c_progress = None
        if progress is not None:

            def on_progress(fraction: float, user_data: Any) -> bool:
                progress(fraction)
                return True

            c_progress = llama_cpp.llama_progress_callback(on_progress)
            params.progress_callback = c_progress
            with self._lock:
                self._progress_refs[id(c_progress)] = c_progress

        try:
            model = llama_cpp.llama_model_load_from_file(path.encode("utf-8"), params)
        finally:
            if c_progress is not None:
                with self._lock:
                    self._progress_refs.pop(id(c_progress), None)

        if not model:
            logger.error("llama.cpp failed to load model from %s", path)
            return None
        return model

    def init_context(
        self, model: Any, context_size: int, batch_size: int, threads: int
    ) -> Optional[Any]:
        params = llama_cpp.llama_context_default_params()
        params.n_ctx = context_size
        params.n_batch = batch_size
        params.n_threads = threads
        params.n_threads_batch = threads
        ctx = llama_cpp.llama_init_from_model(model, params)
        return ctx or None

    def load_projector(
        self, path: str, model: Any, use_gpu: bool, threads: int, verbosity: int = 1
    ) -> Optional[Any]:
        mtmd_cpp = _mtmd()
        params = mtmd_cpp.mtmd_context_params_default()
        params.use_gpu = use_gpu
        params.n_threads = threads
        params.verbosity = _VERBOSITY_LEVELS.get(verbosity, GGML_LOG_LEVEL_DEBUG)
        vision = mtmd_cpp.mtmd_init_from_file(path.encode("utf-8"), model, params)
        return vision or None

    def init_batch(self, size: int) -> _Batch:
        return _Batch(size)

    def create_sampler(self, stages: Sequence[SamplerStage]) -> Optional[Any]:
        chain = llama_cpp.llama_sampler_chain_init(llama_cpp.llama_sampler_chain_default_params())
        if not chain:
            return None
        for stage in stages:
            sampler = self._init_stage(stage)
            if not sampler:
                llama_cpp.llama_sampler_free(chain)
                raise SamplingError(f"Failed to create {stage.kind} sampler")
            # The chain takes ownership of the stage sampler
            llama_cpp.llama_sampler_chain_add(chain, sampler)
        return chain

    @staticmethod
    def _init_stage(stage: SamplerStage) -> Any:
        factories = {
            PENALTIES: llama_cpp.llama_sampler_init_penalties,
            GREEDY: llama_cpp.llama_sampler_init_greedy,
            TOP_K: llama_cpp.llama_sampler_init_top_k,
            TYPICAL: llama_cpp.llama_sampler_init_typical,
            TOP_P: llama_cpp.llama_sampler_init_top_p,
            MIN_P: llama_cpp.llama_sampler_init_min_p,
            TEMPERATURE: llama_cpp.llama_sampler_init_temp,
            DIST: llama_cpp.llama_sampler_init_dist,
        }
        try:
            factory = factories[stage.kind]
        except KeyError:
            raise SamplingError(f"Unknown sampler stage: {stage.kind}") from None
        return factory(*stage.args)

    # ------------------------------------------------------------------
    # Prompt processing
    # ------------------------------------------------------------------

    def clear_memory(self, ctx: Any) -> None:
        try:
            memory = llama_cpp.llama_get_memory(ctx)
            llama_cpp.llama_memory_seq_rm(memory, 0, -1, -1)
        except AttributeError:
            # Bindings that predate the llama_memory API
            llama_cpp.llama_kv_self_seq_rm(ctx, 0, -1, -1)

    def apply_chat_template(
        self, model: Any, messages: Sequence[tuple[str, str]], add_generation_prompt: bool = True
    ) -> str:
        template = llama_cpp.llama_model_chat_template(model, None)
        if not template:
            # llama.cpp substitutes its built-in default (chatml) for a null template
            logger.debug("Model has no embedded chat template; using the llama.cpp default")
            template = None

        encoded = [(role.encode("utf-8"), content.encode("utf-8")) for role, content in messages]
        chat = (llama_cpp.llama_chat_message * len(encoded))()
        for i, (role, content) in enumerate(encoded):
            chat[i].role = role
            chat[i].content = content

        size = max(_TEXT_BUFFER_SIZE, 2 * sum(len(r) + len(c) for r, c in encoded))
        for _ in range(2):
            buf = ctypes.create_string_buffer(size)
            length = llama_cpp.llama_chat_apply_template(
                template, chat, len(encoded), add_generation_prompt, buf, size
            )
            if length < 0:
                raise TokenizationError("Failed to apply chat template")
            if length <= size:
                return buf.raw[:length].decode("utf-8", errors="replace")
            size = length
        raise TokenizationError("Chat template output did not fit the buffer")

    def tokenize(
        self, model: Any, text: str, add_special: bool = False, parse_special: bool = True
    ) -> list[int]:
        vocab = llama_cpp.llama_model_get_vocab(model)
        data = text.encode("utf-8")
        capacity = len(data) + 2 * int(add_special) + 1
        for _ in range(2):
            tokens = np.zeros(capacity, dtype=np.int32)
            count = llama_cpp.llama_tokenize(
                vocab,
                data,
                len(data),
                tokens.ctypes.data_as(ctypes.POINTER(llama_cpp.llama_token)),
                capacity,
                add_special,
                parse_special,
            )
            if count >= 0:
                return tokens[:count].tolist()
            # A negative result is the required capacity
            capacity = -count
        raise TokenizationError("Failed to tokenize prompt")

    def image_marker(self) -> str:
        return _mtmd().mtmd_default_marker().decode("utf-8")

    def create_bitmap(self, vision: Any, data: bytes) -> Optional[Any]:
        buf = (ctypes.c_uint8 * len(data)).from_buffer_copy(data)
        bitmap = _mtmd().mtmd_helper_bitmap_init_from_buf(vision, buf, len(data))
        return bitmap or None

    def tokenize_multimodal(self, vision: Any, text: str, bitmaps: Sequence[Any]) -> Any:
        mtmd_cpp = _mtmd()
        chunks = mtmd_cpp.mtmd_input_chunks_init()
        if not chunks:
            raise TokenizationError("Failed to allocate multimodal input chunks")

        input_text = mtmd_cpp.mtmd_input_text()
        input_text.text = text.encode("utf-8")
        input_text.add_special = True
        input_text.parse_special = True

        bitmap_array = (ctypes.c_void_p * len(bitmaps))(*bitmaps)
        status = mtmd_cpp.mtmd_tokenize(
            vision, chunks, ctypes.byref(input_text), bitmap_array, len(bitmaps)
        )
        if status != 0:
            mtmd_cpp.mtmd_input_chunks_free(chunks)
            if status == 2:
                raise ImageProcessingError("Failed to preprocess images")
            raise TokenizationError(f"Failed to tokenize multimodal prompt (status {status})")
        return chunks

    def eval_chunks(
        self, vision: Any, ctx: Any, chunks: Any, n_past: int, batch_size: int
    ) -> int:
        mtmd_cpp = _mtmd()
        n_chunks = mtmd_cpp.mtmd_input_chunks_size(chunks)
        for index in range(n_chunks):
            chunk = mtmd_cpp.mtmd_input_chunks_get(chunks, index)
            new_n_past = llama_cpp.llama_pos(0)
            # Logits are only needed after the last chunk
            status = mtmd_cpp.mtmd_helper_eval_chunk_single(
                vision,
                ctx,
                chunk,
                n_past,
                0,
                batch_size,
                index == n_chunks - 1,
                ctypes.byref(new_n_past),
            )
            if status != 0:
                raise EvaluationError(
                    f"Failed to evaluate multimodal chunk {index} (status {status})"
                )
            n_past = new_n_past.value
        return n_past

    def decode(self, ctx: Any, tokens: Sequence[int], start_pos: int, batch: Any = None) -> None:
        if not tokens:
            raise EvaluationError("Nothing to decode")

        owned = batch is None or len(tokens) > batch.capacity
        if owned:
            batch = _Batch(len(tokens))
        try:
            batch.fill(tokens, start_pos)
            status = llama_cpp.llama_decode(ctx, batch.struct)
        finally:
            if owned:
                batch.free()
        if status != 0:
            raise EvaluationError(f"llama_decode failed with status {status}")

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def sample(self, sampler: Any, ctx: Any) -> Optional[int]:
        # llama_sampler_sample also accepts the token into the chain
        token = llama_cpp.llama_sampler_sample(sampler, ctx, -1)
        if token is None or token < 0:
            return None
        return int(token)

    def token_to_text(self, model: Any, token: int) -> str:
        vocab = llama_cpp.llama_model_get_vocab(model)
        size = _PIECE_BUFFER_SIZE
        for _ in range(2):
            buf = ctypes.create_string_buffer(size)
            length = llama_cpp.llama_token_to_piece(vocab, token, buf, size, 0, False)
            if length >= 0:
                return buf.raw[:length].decode("utf-8", errors="replace")
            size = -length
        raise TokenizationError(f"Failed to render token {token}")

    def is_end_of_generation(self, model: Any, token: int) -> bool:
        return bool(llama_cpp.llama_vocab_is_eog(llama_cpp.llama_model_get_vocab(model), token))

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def model_description(self, model: Any) -> str:
        buf = ctypes.create_string_buffer(_TEXT_BUFFER_SIZE)
        length = llama_cpp.llama_model_desc(model, buf, _TEXT_BUFFER_SIZE)
        if length <= 0:
            return ""
        return buf.value.decode("utf-8", errors="replace")

    def model_metadata(self, model: Any, key: str) -> Optional[str]:
        buf = ctypes.create_string_buffer(_TEXT_BUFFER_SIZE)
        length = llama_cpp.llama_model_meta_val_str(model, key.encode("utf-8"), buf, _TEXT_BUFFER_SIZE)
        if length < 0:
            return None
        return buf.value.decode("utf-8", errors="replace")

    def param_count(self, model: Any) -> int:
        return int(llama_cpp.llama_model_n_params(model))

    def trained_context_size(self, model: Any) -> int:
        return int(llama_cpp.llama_model_n_ctx_train(model))

    def model_size_bytes(self, model: Any) -> int:
        return int(llama_cpp.llama_model_size(model))

    def context_state_size_bytes(self, ctx: Any) -> int:
        return int(llama_cpp.llama_state_get_size(ctx))

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def free_model(self, model: Any) -> None:
        llama_cpp.llama_model_free(model)

    def free_context(self, ctx: Any) -> None:
        llama_cpp.llama_free(ctx)

    def free_projector(self, vision: Any) -> None:
        _mtmd().mtmd_free(vision)

    def free_batch(self, batch: Any) -> None:
        batch.free()

    def free_sampler(self, sampler: Any) -> None:
        llama_cpp.llama_sampler_free(sampler)

    def free_bitmap(self, bitmap: Any) -> None:
        _mtmd().mtmd_bitmap_free(bitmap)

    def free_chunks(self, chunks: Any) -> None:
        _mtmd().mtmd_input_chunks_free(chunks)

    def __repr__(self) -> str:
        return f"LlamaCppEngine(llama_cpp={getattr(llama_cpp, '__version__', 'unknown')})"
