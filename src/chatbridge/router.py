"""Provider routing: catalog resolution and dispatch to a vendor adapter."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
import logging
from typing import TYPE_CHECKING

from chatbridge.config import resolve_api_key
from chatbridge.errors import UnknownModelError, UnsupportedProviderError
from chatbridge.execute import execute_request
from chatbridge.options import Options

if TYPE_CHECKING:
    from chatbridge.catalog import ModelCatalog, ModelInfo
    from chatbridge.chat import Request, Response
    from chatbridge.providers.base import Provider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[Options], "Provider"]


def _openai(options: Options) -> Provider:
    from chatbridge.providers.openai import OpenAIProvider

    return OpenAIProvider(
        resolve_api_key("openai", options.api_key),
        base_url=options.base_url,
        use_search=options.use_search,
    )


def _anthropic(options: Options) -> Provider:
    from chatbridge.providers.anthropic import AnthropicProvider

    return AnthropicProvider(
        resolve_api_key("anthropic", options.api_key),
        base_url=options.base_url,
        use_search=options.use_search,
    )


def _gemini(options: Options) -> Provider:
    from chatbridge.providers.gemini import GeminiProvider

    return GeminiProvider(
        resolve_api_key("gemini", options.api_key),
        base_url=options.base_url,
        use_search=options.use_search,
    )


# Catalog provider name -> adapter factory.
_PROVIDERS: dict[str, ProviderFactory] = {
    "openai": _openai,
    "anthropic": _anthropic,
    "gemini": _gemini,
}


def resolve_model(model: str, catalog: ModelCatalog) -> ModelInfo:
    """Return the catalog entry for *model* or raise ``UnknownModelError``."""
    info = catalog.lookup(model)
    if info is None:
        raise UnknownModelError(
            f"Unknown model: {model!r}",
            hint="Use a model listed in the catalog or pass Options(model_catalog=...).",
        )
    return info


def get_provider(
    name: str,
    options: Options,
    providers: Mapping[str, ProviderFactory] | None = None,
) -> Provider:
    """Build the adapter registered for provider *name*."""
    registry = _PROVIDERS if providers is None else providers
    factory = registry.get(name)
    if factory is None:
        available = ", ".join(sorted(registry)) or "none"
        raise UnsupportedProviderError(
            f"No adapter for provider {name!r}",
            hint=f"Available providers: {available}.",
        )
    return factory(options)


async def dispatch(
    request: Request,
    options: Options | None = None,
    *,
    providers: Mapping[str, ProviderFactory] | None = None,
) -> Response:
    """Resolve ``request.model`` and run the request on the matching adapter.

    Raises:
        UnknownModelError: The model is not in the catalog.
        UnsupportedProviderError: The catalog names a provider with no adapter.
        asyncio.TimeoutError: ``options.timeout_s`` elapsed.
    """
    opts = options if options is not None else Options()
    info = resolve_model(request.model, opts.catalog)
    provider = get_provider(info.provider, opts, providers)
    logger.debug("Routing model=%s to provider=%s", request.model, info.provider)

    try:
        call = execute_request(provider, request, opts)
        if opts.timeout_s is not None:
            return await asyncio.wait_for(call, timeout=opts.timeout_s)
        return await call
    finally:
        aclose = getattr(provider, "aclose", None)
        if callable(aclose):
            try:
                await aclose()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                # Cleanup should never mask the primary failure.
                logger.warning("Provider cleanup failed: %s", exc)
