"""
Shared fixtures.
"""

import pytest
from fakes import FakeEngine

from llamasession.config import SamplingParams, SessionParams
from llamasession.engine import LlamaSession


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def params():
    return SessionParams(model_path="model.gguf", sampling=SamplingParams(temperature=0.0))


@pytest.fixture
def vision_params():
    return SessionParams(
        model_path="model.gguf",
        mmproj_path="mmproj.gguf",
        sampling=SamplingParams(temperature=0.0),
    )


@pytest.fixture
def session(engine):
    session = LlamaSession(engine)
    yield session
    session.close()


@pytest.fixture
def ready_session(session, params):
    session.initialize(params).unwrap()
    return session
