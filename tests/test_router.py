"""Routing, execution policy and the public ``generate`` entry point."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Any

import pytest

import chatbridge
from chatbridge.catalog import ModelCatalog
from chatbridge.chat import (
    FinishReason,
    Message,
    Request,
    Response,
    StreamChunk,
    Tool,
    Usage,
)
from chatbridge.errors import (
    ConfigurationError,
    InvalidSchemaError,
    UnknownModelError,
    UnsupportedProviderError,
)
from chatbridge.execute import execute_request
from chatbridge.options import Options
from chatbridge.providers import AnthropicProvider, GeminiProvider, OpenAIProvider
from chatbridge.providers._utils import emit
from chatbridge.providers.base import Provider
from chatbridge.router import dispatch, get_provider, resolve_model

pytestmark = pytest.mark.unit

CATALOG = ModelCatalog.from_entries(
    [
        {
            "model": "fake-model",
            "provider": "fake",
            "input_cost_per_token": 1e-06,
            "output_cost_per_token": 2e-06,
        },
        {"model": "acme/rocket-1", "provider": "acme"},
    ]
)


@dataclass
class RecordingProvider:
    """Provider double recording which entry point was used."""

    delay_s: float = 0.0
    close_error: Exception | None = None
    calls: list[str] = field(default_factory=list)
    closed: bool = False

    @property
    def name(self) -> str:
        return "fake"

    async def generate(self, request: Request) -> Response:
        self.calls.append("generate")
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        return Response(
            model="vendor-echo",
            finish_reason=FinishReason.STOP,
            messages=[Message.from_text("ai", "done")],
            usage=Usage(input_tokens=100, output_tokens=50, total_tokens=150),
        )

    async def generate_streaming(self, request: Request, streamer: Any) -> Response:
        self.calls.append("generate_streaming")
        await emit(streamer, StreamChunk("do"))
        await emit(streamer, StreamChunk("ne"))
        return Response(
            model=request.model,
            finish_reason=FinishReason.STOP,
            messages=[Message.from_text("ai", "done")],
        )

    async def aclose(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


def _request(**kwargs: Any) -> Request:
    return Request(
        model="fake-model", messages=[Message.from_text("human", "hi")], **kwargs
    )


def _registry(provider: RecordingProvider) -> dict[str, Any]:
    return {"fake": lambda _options: provider}


# =============================================================================
# Resolution
# =============================================================================


def test_resolve_model_unknown_raises() -> None:
    with pytest.raises(UnknownModelError):
        resolve_model("gpt-nonexistent", CATALOG)


def test_resolve_model_accepts_bare_name_of_namespaced_entry() -> None:
    assert resolve_model("rocket-1", CATALOG).provider == "acme"


def test_get_provider_unsupported_lists_available() -> None:
    with pytest.raises(UnsupportedProviderError) as excinfo:
        get_provider("acme", Options())

    assert "openai" in (excinfo.value.hint or "")


@pytest.mark.parametrize(
    ("name", "env_var", "cls"),
    [
        ("openai", "OPENAI_API_KEY", OpenAIProvider),
        ("anthropic", "ANTHROPIC_API_KEY", AnthropicProvider),
        ("gemini", "GEMINI_API_KEY", GeminiProvider),
    ],
)
def test_builtin_providers_resolve_keys_from_env(
    monkeypatch, name: str, env_var: str, cls: type
) -> None:
    monkeypatch.setenv(env_var, "env-key")

    provider = get_provider(name, Options(base_url="https://proxy.test/v1"))

    assert isinstance(provider, cls)
    assert isinstance(provider, Provider)
    assert provider.name == name
    assert provider.api_key == "env-key"
    assert provider.base_url == "https://proxy.test/v1"


def test_builtin_provider_without_key_fails_before_any_call() -> None:
    with pytest.raises(ConfigurationError):
        get_provider("openai", Options())


# =============================================================================
# Dispatch
# =============================================================================


@pytest.mark.asyncio
async def test_dispatch_unknown_model_fails_before_provider_construction() -> None:
    built: list[str] = []

    def factory(_options: Options) -> Any:
        built.append("fake")
        return RecordingProvider()

    with pytest.raises(UnknownModelError):
        await dispatch(
            Request(model="nope"),
            Options(model_catalog=CATALOG),
            providers={"fake": factory},
        )

    assert built == []


@pytest.mark.asyncio
async def test_dispatch_unsupported_provider() -> None:
    request = Request(model="rocket-1", messages=[Message.from_text("human", "hi")])

    with pytest.raises(UnsupportedProviderError):
        await dispatch(request, Options(model_catalog=CATALOG), providers={})


@pytest.mark.asyncio
async def test_dispatch_blocking_sets_model_cost_and_closes_provider() -> None:
    provider = RecordingProvider()

    response = await dispatch(
        _request(), Options(model_catalog=CATALOG), providers=_registry(provider)
    )

    assert provider.calls == ["generate"]
    assert provider.closed
    assert response.model == "fake-model"
    assert response.usage is not None
    assert response.usage.cost == pytest.approx(100 * 1e-06 + 50 * 2e-06)


@pytest.mark.asyncio
async def test_dispatch_streams_when_streamer_set_and_no_tools() -> None:
    provider = RecordingProvider()
    chunks: list[StreamChunk] = []

    response = await dispatch(
        _request(),
        Options(streamer=chunks.append, model_catalog=CATALOG),
        providers=_registry(provider),
    )

    assert provider.calls == ["generate_streaming"]
    assert "".join(c.content for c in chunks) == response.text == "done"
    assert response.usage is not None
    assert response.usage.cost == 0.0


@pytest.mark.asyncio
async def test_dispatch_never_streams_tool_requests() -> None:
    provider = RecordingProvider()
    chunks: list[StreamChunk] = []

    await dispatch(
        _request(tools=[Tool("lookup")]),
        Options(streamer=chunks.append, model_catalog=CATALOG),
        providers=_registry(provider),
    )

    assert provider.calls == ["generate"]
    assert chunks == []


@pytest.mark.asyncio
async def test_dispatch_rejects_invalid_tool_schema_before_calling_vendor() -> None:
    provider = RecordingProvider()

    with pytest.raises(InvalidSchemaError):
        await dispatch(
            _request(tools=[Tool("bad", input_schema={"type": 42})]),
            Options(model_catalog=CATALOG),
            providers=_registry(provider),
        )

    assert provider.calls == []
    assert provider.closed


@pytest.mark.asyncio
async def test_dispatch_timeout_propagates_and_closes_provider() -> None:
    provider = RecordingProvider(delay_s=1.0)

    with pytest.raises(asyncio.TimeoutError):
        await dispatch(
            _request(),
            Options(model_catalog=CATALOG, timeout_s=0.01),
            providers=_registry(provider),
        )

    assert provider.closed


@pytest.mark.asyncio
async def test_cleanup_failure_is_logged_not_raised(caplog) -> None:
    provider = RecordingProvider(close_error=RuntimeError("socket already closed"))

    with caplog.at_level(logging.WARNING, logger="chatbridge.router"):
        response = await dispatch(
            _request(), Options(model_catalog=CATALOG), providers=_registry(provider)
        )

    assert response.text == "done"
    assert "Provider cleanup failed" in caplog.text


@pytest.mark.asyncio
async def test_execute_request_fills_missing_usage() -> None:
    class _NoUsage(RecordingProvider):
        async def generate(self, request: Request) -> Response:
            return Response(model=request.model)

    response = await execute_request(
        _NoUsage(), _request(), Options(model_catalog=CATALOG)
    )

    assert response.usage == Usage()


# =============================================================================
# Public Entry Point
# =============================================================================


@pytest.mark.asyncio
async def test_generate_unknown_model_uses_default_catalog() -> None:
    with pytest.raises(UnknownModelError):
        await chatbridge.generate(Request(model="definitely-not-a-model"))


def test_public_api_exports() -> None:
    for name in chatbridge.__all__:
        assert hasattr(chatbridge, name), name
