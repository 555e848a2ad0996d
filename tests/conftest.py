"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, automatic API test
skipping and small fakes for vendor SDK objects. Fixtures here are autouse
unless noted.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from contextlib import suppress
import logging
import os
from typing import Any

import pytest

from chatbridge.chat import StreamChunk

# =============================================================================
# Test Doubles
# =============================================================================


class FakeStream:
    """Async iterable over canned vendor events that records ``close()``."""

    def __init__(self, events: Iterable[Any], *, fail_after: int | None = None):
        self._events = list(events)
        self._fail_after = fail_after
        self.closed = False

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Any]:
        for i, event in enumerate(self._events):
            if self._fail_after is not None and i >= self._fail_after:
                raise RuntimeError("connection reset")
            yield event

    async def close(self) -> None:
        self.closed = True

    async def aclose(self) -> None:
        self.closed = True


class ChunkCollector:
    """Streamer test double that records every chunk it receives."""

    def __init__(self) -> None:
        self.chunks: list[StreamChunk] = []

    def __call__(self, chunk: StreamChunk) -> None:
        self.chunks.append(chunk)

    @property
    def text(self) -> str:
        return "".join(c.content for c in self.chunks)


@pytest.fixture
def collector() -> ChunkCollector:
    """Return a fresh chunk-recording streamer."""
    return ChunkCollector()


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================

_PROVIDER_ENV_PREFIXES = ("OPENAI_", "ANTHROPIC_", "GEMINI_", "GOOGLE_")


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_provider_env(request, monkeypatch):
    """Ensure a clean provider environment for each test.

    Clears OPENAI_*, ANTHROPIC_*, GEMINI_* and GOOGLE_* env vars to prevent
    test pollution.
    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in list(os.environ.keys()):
        if key.startswith(_PROVIDER_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)
