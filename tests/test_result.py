"""
Tests for the Result type and the exception hierarchy.
"""

import pytest

from llamasession.exceptions import (
    ERROR_CODE_MAP,
    ErrorCode,
    LlamaSessionError,
    ModelLoadError,
    OutOfMemoryError,
    RequestCancelledError,
    TokenizationError,
    map_error_code,
)
from llamasession.result import Error, Success


class TestErrorCode:
    """Test the closed error taxonomy."""

    def test_every_code_has_a_description(self):
        for code in ErrorCode:
            assert code.description

    def test_description(self):
        assert ErrorCode.MODEL_NOT_FOUND.description == "Model file not found"

    def test_every_code_maps_to_an_exception(self):
        assert set(ERROR_CODE_MAP) == set(ErrorCode)


class TestSuccess:
    def test_unit_success(self):
        result = Success()

        assert result.is_success
        assert not result.is_error
        assert result.unwrap() is None

    def test_map(self):
        assert Success(2).map(lambda v: v * 21).unwrap() == 42

    def test_unwrap_or_returns_value(self):
        assert Success("text").unwrap_or("default") == "text"


class TestError:
    def test_message_defaults_to_description(self):
        error = Error(ErrorCode.NOT_INITIALIZED)

        assert error.message == ErrorCode.NOT_INITIALIZED.description

    def test_is_error(self):
        error = Error(ErrorCode.SAMPLING_FAILED, "Sampler returned null token")

        assert error.is_error
        assert not error.is_success
        assert error.unwrap_or("fallback") == "fallback"
        assert error.map(lambda v: v + 1) is error

    def test_str(self):
        assert str(Error(ErrorCode.INVALID_PARAMETERS, "bad")) == "INVALID_PARAMETERS: bad"

    def test_unwrap_raises_mapped_exception(self):
        with pytest.raises(OutOfMemoryError) as excinfo:
            Error(ErrorCode.INSUFFICIENT_MEMORY, "KV cache full").unwrap()

        assert excinfo.value.code is ErrorCode.INSUFFICIENT_MEMORY
        assert excinfo.value.message == "KV cache full"

    def test_from_exception(self):
        error = Error.from_exception(TokenizationError("Failed to apply chat template"))

        assert error.code is ErrorCode.TOKENIZATION_FAILED
        assert error.message == "Failed to apply chat template"


class TestExceptions:
    """Test exception defaults and mapping."""

    def test_default_codes(self):
        assert ModelLoadError().code is ErrorCode.MODEL_LOAD_FAILED
        assert RequestCancelledError().code is ErrorCode.OPERATION_CANCELLED
        assert LlamaSessionError().code is ErrorCode.UNKNOWN_ERROR

    def test_explicit_code_overrides_default(self):
        exc = ModelLoadError("nope", code=ErrorCode.MODEL_NOT_FOUND)

        assert exc.code is ErrorCode.MODEL_NOT_FOUND
        assert str(exc) == "nope"

    def test_map_error_code(self):
        exc = map_error_code(ErrorCode.MODEL_INVALID, "Invalid model format")

        assert isinstance(exc, ModelLoadError)
        assert isinstance(exc, LlamaSessionError)
        assert exc.code is ErrorCode.MODEL_INVALID

    def test_map_error_code_default_message(self):
        exc = map_error_code(ErrorCode.OPERATION_CANCELLED)

        assert exc.message == ErrorCode.OPERATION_CANCELLED.description
