"""Chatbridge: one chat request shape for OpenAI, Anthropic and Gemini.

Public API:
    - generate(): Route a Request to its vendor and return a unified Response
    - Request, Message, ModelConfig, Tool: Provider-agnostic inputs
    - Response, Usage, FinishReason, StreamChunk: Unified outputs
    - Options: Per-call features (streaming, endpoint override, catalog, search)
"""

from __future__ import annotations

import logging

from chatbridge.catalog import ModelCatalog, ModelInfo, default_catalog
from chatbridge.chat import (
    FilePart,
    FinishReason,
    ImagePart,
    Message,
    ModelConfig,
    Request,
    Response,
    Role,
    StreamChunk,
    TextPart,
    Tool,
    ToolCall,
    ToolResponse,
    Usage,
)
from chatbridge.errors import (
    APIError,
    CatalogError,
    ChatbridgeError,
    ConfigurationError,
    InputError,
    InvalidSchemaError,
    ResolutionError,
    StreamError,
    UnknownModelError,
    UnsupportedProviderError,
)
from chatbridge.options import Options
from chatbridge.providers.base import Provider
from chatbridge.router import dispatch

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("chatbridge")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("chatbridge").addHandler(logging.NullHandler())


async def generate(request: Request, options: Options | None = None) -> Response:
    """Generate a response for *request* on the vendor that serves its model.

    Args:
        request: Model name, messages, generation config and optional tools.
        options: Optional streamer, endpoint override, catalog, search and key.

    Returns:
        Response with output messages, mapped finish reason and priced usage.

    Example:
        request = Request(
            model="gpt-4o-mini",
            messages=[Message.from_text("human", "Say hi")],
        )
        response = await generate(request)
        print(response.text)
    """
    return await dispatch(request, options)


__all__ = [
    "APIError",
    "CatalogError",
    "ChatbridgeError",
    "ConfigurationError",
    "FilePart",
    "FinishReason",
    "ImagePart",
    "InputError",
    "InvalidSchemaError",
    "Message",
    "ModelCatalog",
    "ModelConfig",
    "ModelInfo",
    "Options",
    "Provider",
    "Request",
    "ResolutionError",
    "Response",
    "Role",
    "StreamChunk",
    "StreamError",
    "TextPart",
    "Tool",
    "ToolCall",
    "ToolResponse",
    "UnknownModelError",
    "UnsupportedProviderError",
    "Usage",
    "default_catalog",
    "generate",
]
