"""Shared test fixtures for the Expedition Chat test suite."""

from __future__ import annotations

import os
from datetime import date
from unittest.mock import MagicMock

import pytest

from expedition_chat.background import BackgroundTaskRunner
from expedition_chat.config import Settings
from expedition_chat.memory import InMemoryClientStore
from expedition_chat.tools.backend import InMemoryTravelBackend
from expedition_chat.tools.registry import build_tool_registry


def pytest_configure(config):
    """Keep tests off AWS and CloudWatch regardless of the developer's shell."""
    os.environ.pop("AWS_EXECUTION_ENV", None)
    os.environ["METRICS_ENABLED"] = "false"


TODAY = date(2026, 3, 1)


@pytest.fixture
def settings() -> Settings:
    return Settings(deepseek_api_key="test-deepseek-key")


@pytest.fixture
def backend() -> InMemoryTravelBackend:
    return InMemoryTravelBackend.with_demo_data(today=TODAY)


@pytest.fixture
def registry(backend):
    return build_tool_registry(backend)


@pytest.fixture
def client_store() -> InMemoryClientStore:
    return InMemoryClientStore()


@pytest.fixture
def background():
    runner = BackgroundTaskRunner()
    yield runner
    runner.shutdown(wait=True)


@pytest.fixture
def scripted_llm():
    """Factory for a mock bound LLM that replays a list of AIMessages.

    Items may also be exceptions, which are raised on that call.
    """

    def _make(*responses):
        llm = MagicMock()
        llm.invoke.side_effect = list(responses)
        return llm

    return _make


