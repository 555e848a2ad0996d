"""OpenAI Chat Completions provider."""

from __future__ import annotations

import asyncio
import mimetypes
from typing import TYPE_CHECKING, Any

from chatbridge import dataurl
from chatbridge.chat import (
    FinishReason,
    ImagePart,
    Message,
    Response,
    Role,
    TextPart,
    Usage,
)
from chatbridge.errors import APIError, MalformedDataURLError, NoValidContentError
from chatbridge.providers._errors import wrap_provider_error
from chatbridge.providers._utils import (
    StreamAccumulator,
    as_int,
    max_tokens_or_default,
)
from chatbridge.schema import schema_json

if TYPE_CHECKING:
    from collections.abc import AsyncIterable

    from chatbridge.chat import ContentPart, Request, Streamer, Tool

_ROLES: dict[Role, str] = {
    Role.SYSTEM: "system",
    Role.HUMAN: "user",
    Role.AI: "assistant",
    Role.TOOL: "user",
}

_FINISH_REASONS: dict[str, FinishReason] = {
    "stop": FinishReason.STOP,
    "length": FinishReason.MAX_TOKENS,
    "tool_calls": FinishReason.TOOL_USE,
    "function_call": FinishReason.TOOL_USE,
    "content_filter": FinishReason.SAFETY,
}


class OpenAIProvider:
    """OpenAI Chat Completions API provider."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        use_search: bool = False,
    ) -> None:
        """Initialize with an API key and optional endpoint override."""
        self.api_key = api_key
        self.base_url = base_url
        self.use_search = use_search
        self._client: Any = None

    @property
    def name(self) -> str:
        """Catalog provider name."""
        return "openai"

    def _get_client(self) -> Any:
        """Lazily initialize and return the OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise APIError(
                    "openai package not installed",
                    hint="pip install openai",
                ) from e
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    def _build_params(self, request: Request) -> dict[str, Any]:
        """Translate a unified request into ``chat.completions.create`` kwargs."""
        config = request.config
        params: dict[str, Any] = {
            "model": request.model,
            "messages": [_convert_message(m) for m in request.messages],
            "max_completion_tokens": max_tokens_or_default(config),
        }
        if config.temperature:
            params["temperature"] = config.temperature
        if config.top_p:
            params["top_p"] = config.top_p
        if config.presence_penalty:
            params["presence_penalty"] = config.presence_penalty
        if config.frequency_penalty:
            params["frequency_penalty"] = config.frequency_penalty
        if config.stop:
            params["stop"] = list(config.stop)

        if request.tools:
            params["tools"] = [_convert_tool(t) for t in request.tools]
            if request.must_call_tool:
                params["tool_choice"] = "required"

        if request.response_schema is not None:
            params["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": "response",
                    "schema": schema_json(request.response_schema),
                },
            }

        if self.use_search:
            params["web_search_options"] = {}

        return params

    async def generate(self, request: Request) -> Response:
        """Generate a response with a single chat completion call."""
        params = self._build_params(request)
        client = self._get_client()
        try:
            completion = await client.chat.completions.create(**params)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider="openai",
                phase="create",
                message="OpenAI chat completion failed",
            ) from e
        return _parse_completion(completion, model=request.model)

    async def generate_streaming(
        self, request: Request, streamer: Streamer
    ) -> Response:
        """Stream a chat completion, forwarding text deltas to *streamer*."""
        params = self._build_params(request)
        params["stream"] = True
        params["stream_options"] = {"include_usage": True}
        client = self._get_client()
        try:
            stream = await client.chat.completions.create(**params)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider="openai",
                phase="stream",
                message="OpenAI chat completion stream failed",
            ) from e

        try:
            return await aggregate_stream(stream, streamer, model=request.model)
        except asyncio.CancelledError:
            raise
        except APIError as e:
            raise wrap_provider_error(e, provider="openai", phase="stream")
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider="openai",
                phase="stream",
                message="OpenAI chat completion stream failed",
            ) from e
        finally:
            await stream.close()

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.close()


async def aggregate_stream(
    events: AsyncIterable[Any], streamer: Streamer, *, model: str
) -> Response:
    """Fold ``ChatCompletionChunk`` events into a single Response.

    Usage arrives once, on the final chunk (``include_usage``), with no choices.
    """
    acc = StreamAccumulator(streamer)
    async for chunk in events:
        usage = getattr(chunk, "usage", None)
        if usage is not None:
            acc.usage = _convert_usage(usage)

        choices = getattr(chunk, "choices", None) or []
        if not choices:
            continue
        delta = getattr(choices[0], "delta", None)
        content = getattr(delta, "content", None)
        if isinstance(content, str) and content:
            await acc.add_text(content)
    return acc.build(model)


def _convert_message(msg: Message) -> dict[str, Any]:
    """Convert a unified message into a Chat Completions message."""
    if msg.tool_response is not None:
        return {
            "role": "tool",
            "tool_call_id": msg.tool_response.id,
            "content": msg.tool_response.result,
        }

    if msg.tool_call is not None:
        return {
            "role": "assistant",
            "tool_calls": [
                {
                    "id": msg.tool_call.id,
                    "type": "function",
                    "function": {
                        "name": msg.tool_call.name,
                        "arguments": msg.tool_call.arguments,
                    },
                }
            ],
        }

    parts = [_convert_part(p) for p in msg.content]
    if not parts:
        raise NoValidContentError(
            f"Message with role {msg.role.value!r} has no content",
            hint="Add a text/image/file part, a tool call or a tool response.",
        )
    return {"role": _ROLES[msg.role], "content": parts}


def _convert_part(part: ContentPart) -> dict[str, Any]:
    """Convert a content part into a Chat Completions content part."""
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}

    if not dataurl.is_data_url(part.data_url):
        raise MalformedDataURLError(f"Invalid {part.type} data URL")

    if isinstance(part, ImagePart):
        return {
            "type": "image_url",
            "image_url": {"url": part.data_url, "detail": "auto"},
        }

    mime_type, _ = dataurl.split(part.data_url)
    extension = mimetypes.guess_extension(mime_type) or ""
    return {
        "type": "file",
        "file": {"filename": f"document{extension}", "file_data": part.data_url},
    }


def _convert_tool(tool: Tool) -> dict[str, Any]:
    """Convert a unified tool into a function tool definition."""
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": schema_json(tool.input_schema),
        },
    }


def _convert_usage(usage_raw: Any) -> Usage:
    """Map OpenAI ``CompletionUsage`` onto Usage."""
    usage = Usage(
        input_tokens=as_int(getattr(usage_raw, "prompt_tokens", 0)),
        output_tokens=as_int(getattr(usage_raw, "completion_tokens", 0)),
        total_tokens=as_int(getattr(usage_raw, "total_tokens", 0)),
    )
    out_details = getattr(usage_raw, "completion_tokens_details", None)
    if out_details is not None:
        usage.reasoning_tokens = as_int(getattr(out_details, "reasoning_tokens", 0))
    in_details = getattr(usage_raw, "prompt_tokens_details", None)
    if in_details is not None:
        usage.cached_tokens = as_int(getattr(in_details, "cached_tokens", 0))
    if not usage.total_tokens:
        usage.total_tokens = usage.input_tokens + usage.output_tokens
    return usage


def _convert_finish_reason(reason: Any) -> FinishReason:
    """Map an OpenAI finish_reason; anything unrecognised is ``unknown``."""
    if not isinstance(reason, str):
        return FinishReason.UNKNOWN
    return _FINISH_REASONS.get(reason.lower(), FinishReason.UNKNOWN)


def _parse_completion(completion: Any, *, model: str) -> Response:
    """Parse a ``ChatCompletion`` into a Response."""
    choices = getattr(completion, "choices", None) or []
    if not choices:
        raise APIError(
            "OpenAI returned no choices", provider="openai", phase="create"
        )
    choice = choices[0]
    message = getattr(choice, "message", None)

    messages: list[Message] = []
    content = getattr(message, "content", None)
    if isinstance(content, str) and content:
        messages.append(Message.from_text(Role.AI, content))
    for tc in getattr(message, "tool_calls", None) or []:
        function = tc.function
        messages.append(
            Message.from_tool_call(function.name, tc.id, function.arguments or "{}")
        )

    usage_raw = getattr(completion, "usage", None)
    return Response(
        model=model,
        finish_reason=_convert_finish_reason(getattr(choice, "finish_reason", None)),
        messages=messages,
        usage=_convert_usage(usage_raw) if usage_raw is not None else Usage(),
    )
