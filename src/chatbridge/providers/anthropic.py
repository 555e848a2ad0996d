"""Anthropic Messages API provider."""

from __future__ import annotations

import asyncio
import json
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
from chatbridge.errors import (
    APIError,
    MalformedDataURLError,
    NoValidContentError,
    UnsupportedContentError,
)
from chatbridge.providers._errors import wrap_provider_error
from chatbridge.providers._utils import (
    StreamAccumulator,
    as_int,
    max_tokens_or_default,
    parse_tool_arguments,
    system_text,
)
from chatbridge.schema import schema_json

if TYPE_CHECKING:
    from collections.abc import AsyncIterable

    from chatbridge.chat import ContentPart, Request, Streamer, Tool

_STRUCTURED_OUTPUT_PROMPT = """
Please respond with json in the following json_schema:

{schema}

Make sure to return an instance of the JSON, not the schema itself.
"""

_WEB_SEARCH_TOOL: dict[str, Any] = {
    "type": "web_search_20250305",
    "name": "web_search",
}

_FINISH_REASONS: dict[str, FinishReason] = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "max_tokens": FinishReason.MAX_TOKENS,
    "tool_use": FinishReason.TOOL_USE,
    "refusal": FinishReason.SAFETY,
}


class AnthropicProvider:
    """Anthropic Messages API provider."""

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
        return "anthropic"

    def _get_client(self) -> Any:
        """Lazily initialize and return the async Anthropic client."""
        if self._client is None:
            try:
                from anthropic import AsyncAnthropic
            except ImportError as e:
                raise APIError(
                    "anthropic package not installed",
                    hint="pip install anthropic",
                ) from e
            self._client = AsyncAnthropic(api_key=self.api_key, base_url=self.base_url)
        return self._client

    def _build_params(self, request: Request) -> dict[str, Any]:
        """Translate a unified request into ``messages.create`` kwargs."""
        messages: list[dict[str, Any]] = []
        if request.response_schema is not None:
            schema = json.dumps(schema_json(request.response_schema))
            _append_message(
                messages,
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "text",
                            "text": _STRUCTURED_OUTPUT_PROMPT.format(schema=schema),
                        }
                    ],
                },
            )
        for msg in request.messages:
            _append_message(messages, _convert_message(msg))

        config = request.config
        params: dict[str, Any] = {
            "model": request.model,
            "messages": messages,
            "max_tokens": max_tokens_or_default(config),
        }
        if config.temperature:
            params["temperature"] = config.temperature
        if config.top_p:
            params["top_p"] = config.top_p
        if config.stop:
            params["stop_sequences"] = list(config.stop)

        tools: list[dict[str, Any]] = [_convert_tool(t) for t in request.tools]
        if request.tools and request.must_call_tool:
            params["tool_choice"] = {"type": "any"}
        if self.use_search:
            tools.append(dict(_WEB_SEARCH_TOOL))
        if tools:
            params["tools"] = tools

        return params

    async def generate(self, request: Request) -> Response:
        """Generate a response using Anthropic's Messages API."""
        params = self._build_params(request)
        client = self._get_client()
        try:
            message = await client.messages.create(**params)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider="anthropic",
                phase="create",
                message="Anthropic message creation failed",
            ) from e
        return _parse_message(message, model=request.model)

    async def generate_streaming(
        self, request: Request, streamer: Streamer
    ) -> Response:
        """Stream a message, forwarding text deltas to *streamer*."""
        params = self._build_params(request)
        client = self._get_client()
        try:
            stream = await client.messages.create(**params, stream=True)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider="anthropic",
                phase="stream",
                message="Anthropic message stream failed",
            ) from e

        try:
            return await aggregate_stream(stream, streamer, model=request.model)
        except asyncio.CancelledError:
            raise
        except APIError as e:
            raise wrap_provider_error(e, provider="anthropic", phase="stream")
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider="anthropic",
                phase="stream",
                message="Anthropic message stream failed",
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
    """Fold raw Messages stream events into a single Response.

    ``message_start`` carries the input token count; ``message_delta`` carries
    the cumulative output token count, so the latest value wins.
    """
    acc = StreamAccumulator(streamer)
    async for event in events:
        event_type = getattr(event, "type", None)
        if event_type == "message_start":
            usage_raw = getattr(getattr(event, "message", None), "usage", None)
            if usage_raw is not None:
                acc.usage = _convert_usage(usage_raw)
        elif event_type == "content_block_delta":
            delta = getattr(event, "delta", None)
            if getattr(delta, "type", None) == "text_delta":
                await acc.add_text(getattr(delta, "text", "") or "")
        elif event_type == "message_delta":
            usage_raw = getattr(event, "usage", None)
            output_tokens = getattr(usage_raw, "output_tokens", None)
            if output_tokens is not None:
                acc.usage.output_tokens = as_int(output_tokens)
    acc.usage.total_tokens = acc.usage.input_tokens + acc.usage.output_tokens
    return acc.build(model)


def _convert_message(msg: Message) -> dict[str, Any]:
    """Convert a unified message into an Anthropic message param.

    Anthropic has no system turn inside ``messages``; system messages become a
    user turn prefixed with ``system: ``.
    """
    if msg.role is Role.SYSTEM:
        text = system_text(msg, vendor="Anthropic")
        return {
            "role": "user",
            "content": [{"type": "text", "text": f"system: {text}"}],
        }

    blocks: list[dict[str, Any]]
    if msg.tool_response is not None:
        blocks = [
            {
                "type": "tool_result",
                "tool_use_id": msg.tool_response.id,
                "content": msg.tool_response.result,
            }
        ]
    elif msg.tool_call is not None:
        blocks = [
            {
                "type": "tool_use",
                "id": msg.tool_call.id,
                "name": msg.tool_call.name,
                "input": parse_tool_arguments(msg.tool_call),
            }
        ]
    else:
        blocks = [_convert_part(p) for p in msg.content]

    if not blocks:
        raise NoValidContentError(
            f"Message with role {msg.role.value!r} has no valid content blocks",
            hint="Add a text/image/file part, a tool call or a tool response.",
        )

    if msg.role is Role.AI:
        return {"role": "assistant", "content": blocks}
    return {"role": "user", "content": blocks}


def _convert_part(part: ContentPart) -> dict[str, Any]:
    """Convert a content part into an Anthropic content block."""
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}

    if not dataurl.is_data_url(part.data_url):
        raise MalformedDataURLError(f"Invalid {part.type} data URL")
    mime_type, payload = dataurl.split(part.data_url)

    if isinstance(part, ImagePart):
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": mime_type, "data": payload},
        }

    if mime_type == "application/pdf":
        return {
            "type": "document",
            "source": {"type": "base64", "media_type": mime_type, "data": payload},
        }
    if mime_type.startswith("text/"):
        data, _ = dataurl.decode(part.data_url)
        return {
            "type": "document",
            "source": {
                "type": "text",
                "media_type": "text/plain",
                "data": data.decode("utf-8", errors="replace"),
            },
        }

    raise UnsupportedContentError(
        f"Unsupported file type for Anthropic provider: {mime_type}",
        hint="Anthropic accepts PDF and plain-text documents.",
    )


def _convert_tool(tool: Tool) -> dict[str, Any]:
    """Convert a unified tool into an Anthropic tool definition."""
    input_schema = dict(schema_json(tool.input_schema))
    input_schema.setdefault("type", "object")
    tool_def: dict[str, Any] = {"name": tool.name, "input_schema": input_schema}
    if tool.description:
        tool_def["description"] = tool.description
    return tool_def


def _append_message(messages: list[dict[str, Any]], msg: dict[str, Any]) -> None:
    """Append *msg*, merging into the previous message when roles match.

    Anthropic requires strict user/assistant alternation, and all tool results
    answering one assistant turn must arrive in a single user turn.
    """
    if messages and messages[-1]["role"] == msg["role"]:
        messages[-1]["content"] = messages[-1]["content"] + msg["content"]
    else:
        messages.append(msg)


def _convert_usage(usage_raw: Any) -> Usage:
    """Map Anthropic ``Usage`` onto Usage."""
    input_tokens = as_int(getattr(usage_raw, "input_tokens", 0))
    output_tokens = as_int(getattr(usage_raw, "output_tokens", 0))
    return Usage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cache_creation_tokens=as_int(
            getattr(usage_raw, "cache_creation_input_tokens", 0)
        ),
        cached_tokens=as_int(getattr(usage_raw, "cache_read_input_tokens", 0)),
        total_tokens=input_tokens + output_tokens,
    )


def _convert_finish_reason(stop_reason: Any) -> FinishReason:
    """Map an Anthropic stop_reason; anything unrecognised is ``unknown``."""
    if not isinstance(stop_reason, str):
        return FinishReason.UNKNOWN
    return _FINISH_REASONS.get(stop_reason.lower(), FinishReason.UNKNOWN)


def _parse_message(message: Any, *, model: str) -> Response:
    """Parse an Anthropic ``Message`` into a Response."""
    text_parts: list[str] = []
    tool_calls: list[Message] = []
    for block in getattr(message, "content", None) or []:
        block_type = getattr(block, "type", None)
        if block_type == "text":
            text_parts.append(getattr(block, "text", "") or "")
        elif block_type == "tool_use":
            tool_calls.append(
                Message.from_tool_call(
                    getattr(block, "name", ""),
                    getattr(block, "id", ""),
                    json.dumps(getattr(block, "input", None) or {}),
                )
            )

    messages: list[Message] = []
    text = "".join(text_parts)
    if text:
        messages.append(Message.from_text(Role.AI, text))
    messages.extend(tool_calls)

    usage_raw = getattr(message, "usage", None)
    return Response(
        model=model,
        finish_reason=_convert_finish_reason(getattr(message, "stop_reason", None)),
        messages=messages,
        usage=_convert_usage(usage_raw) if usage_raw is not None else Usage(),
    )
