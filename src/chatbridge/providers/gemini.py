"""Gemini provider implementation."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any
import uuid

from chatbridge import dataurl
from chatbridge.chat import (
    FinishReason,
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
    parse_tool_arguments,
    system_text,
)
from chatbridge.schema import schema_json

if TYPE_CHECKING:
    from collections.abc import AsyncIterable

    from chatbridge.chat import ContentPart, Request, Streamer

_ROLES: dict[Role, str] = {
    Role.HUMAN: "user",
    Role.AI: "model",
    Role.TOOL: "user",
}

_SAFETY_REASONS = frozenset(
    {
        "SAFETY",
        "IMAGE_SAFETY",
        "PROHIBITED_CONTENT",
        "RECITATION",
        "BLOCKLIST",
        "SPII",
    }
)


class GeminiProvider:
    """Google Gemini API provider."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        use_search: bool = False,
    ) -> None:
        """Create provider with an API key."""
        self.api_key = api_key
        self.base_url = base_url
        self.use_search = use_search
        self._client: Any = None

    @property
    def name(self) -> str:
        """Catalog provider name."""
        return "gemini"

    def _get_client(self) -> Any:
        """Lazy-initialize the Gemini client."""
        if self._client is None:
            try:
                from google import genai
                from google.genai import types
            except ImportError as e:
                raise APIError(
                    "google-genai package not installed",
                    hint="pip install google-genai",
                ) from e

            http_options = (
                types.HttpOptions(base_url=self.base_url) if self.base_url else None
            )
            self._client = genai.Client(api_key=self.api_key, http_options=http_options)
        return self._client

    def _build_request(self, request: Request) -> tuple[list[Any], Any]:
        """Translate a unified request into ``(contents, config)``."""
        from google.genai import types

        system_texts: list[str] = []
        contents: list[Any] = []
        for msg in request.messages:
            if msg.role is Role.SYSTEM:
                system_texts.append(system_text(msg, vendor="Gemini"))
                continue
            contents.append(_convert_message(msg))

        config = request.config
        config_kwargs: dict[str, Any] = {
            "max_output_tokens": max_tokens_or_default(config),
        }
        if system_texts:
            config_kwargs["system_instruction"] = "\n".join(system_texts)
        if config.temperature:
            config_kwargs["temperature"] = config.temperature
        if config.top_p:
            config_kwargs["top_p"] = config.top_p
        if config.presence_penalty:
            config_kwargs["presence_penalty"] = config.presence_penalty
        if config.frequency_penalty:
            config_kwargs["frequency_penalty"] = config.frequency_penalty
        if config.stop:
            config_kwargs["stop_sequences"] = list(config.stop)

        if request.response_schema is not None:
            config_kwargs["response_mime_type"] = "application/json"
            config_kwargs["response_json_schema"] = schema_json(
                request.response_schema
            )

        tools: list[Any] = []
        if request.tools:
            tools.append(
                types.Tool(
                    function_declarations=[
                        types.FunctionDeclaration(
                            name=t.name,
                            description=t.description,
                            parameters_json_schema=schema_json(t.input_schema),
                        )
                        for t in request.tools
                    ]
                )
            )
            if request.must_call_tool:
                config_kwargs["tool_config"] = types.ToolConfig(
                    function_calling_config=types.FunctionCallingConfig(mode="ANY")
                )
        if self.use_search:
            tools.append(types.Tool(google_search=types.GoogleSearch()))
        if tools:
            config_kwargs["tools"] = tools

        return contents, types.GenerateContentConfig(**config_kwargs)

    async def generate(self, request: Request) -> Response:
        """Generate content from the Gemini model."""
        contents, config = self._build_request(request)
        client = self._get_client()
        try:
            response = await client.aio.models.generate_content(
                model=request.model,
                contents=contents,
                config=config,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider="gemini",
                phase="create",
                message="Gemini generate failed",
            ) from e

        if not response:
            raise APIError(
                "Gemini returned an empty response.", provider="gemini", phase="create"
            )
        return _parse_response(response, model=request.model)

    async def generate_streaming(
        self, request: Request, streamer: Streamer
    ) -> Response:
        """Stream content, forwarding text deltas to *streamer*."""
        contents, config = self._build_request(request)
        client = self._get_client()
        try:
            stream = await client.aio.models.generate_content_stream(
                model=request.model,
                contents=contents,
                config=config,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider="gemini",
                phase="stream",
                message="Gemini stream failed",
            ) from e

        try:
            return await aggregate_stream(stream, streamer, model=request.model)
        except asyncio.CancelledError:
            raise
        except APIError as e:
            raise wrap_provider_error(e, provider="gemini", phase="stream")
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider="gemini",
                phase="stream",
                message="Gemini stream failed",
            ) from e
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        aclose = getattr(getattr(client, "aio", None), "aclose", None)
        if aclose is not None:
            await aclose()


async def aggregate_stream(
    events: AsyncIterable[Any], streamer: Streamer, *, model: str
) -> Response:
    """Fold ``GenerateContentResponse`` chunks into a single Response.

    Each chunk's ``usage_metadata`` is cumulative, so later reports replace
    earlier ones field by field.
    """
    acc = StreamAccumulator(streamer)
    async for chunk in events:
        usage_raw = getattr(chunk, "usage_metadata", None)
        if usage_raw is not None:
            _update_usage(acc.usage, usage_raw)
        for part in _candidate_parts(chunk):
            if getattr(part, "thought", False):
                continue
            text = getattr(part, "text", None)
            if isinstance(text, str) and text:
                await acc.add_text(text)
    return acc.build(model)


def _convert_message(msg: Message) -> Any:
    """Convert a non-system unified message into a ``types.Content``."""
    from google.genai import types

    parts: list[Any]
    if msg.tool_response is not None:
        parts = [
            types.Part.from_function_response(
                name=msg.tool_response.name,
                response={
                    "name": msg.tool_response.name,
                    "content": msg.tool_response.result,
                },
            )
        ]
    elif msg.tool_call is not None:
        parts = [
            types.Part.from_function_call(
                name=msg.tool_call.name,
                args=parse_tool_arguments(msg.tool_call),
            )
        ]
    else:
        parts = [_convert_part(p) for p in msg.content]

    if not parts:
        raise NoValidContentError(
            f"Message with role {msg.role.value!r} has no content",
            hint="Add a text/image/file part, a tool call or a tool response.",
        )
    return types.Content(role=_ROLES[msg.role], parts=parts)


def _convert_part(part: ContentPart) -> Any:
    """Convert a content part into a ``types.Part``; media is sent inline."""
    from google.genai import types

    if isinstance(part, TextPart):
        return types.Part.from_text(text=part.text)
    if not dataurl.is_data_url(part.data_url):
        raise MalformedDataURLError(f"Invalid {part.type} data URL")
    data, mime_type = dataurl.decode(part.data_url)
    return types.Part.from_bytes(data=data, mime_type=mime_type)


def _candidate_parts(response: Any) -> list[Any]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    return list(getattr(content, "parts", None) or [])


def _update_usage(usage: Usage, usage_raw: Any) -> None:
    """Copy the counts Gemini reported; absent fields keep their value."""
    fields = (
        ("input_tokens", "prompt_token_count"),
        ("output_tokens", "candidates_token_count"),
        ("total_tokens", "total_token_count"),
        ("reasoning_tokens", "thoughts_token_count"),
        ("cached_tokens", "cached_content_token_count"),
    )
    for ours, theirs in fields:
        value = getattr(usage_raw, theirs, None)
        if value is not None:
            setattr(usage, ours, as_int(value))


def _convert_finish_reason(reason: Any, *, has_tool_calls: bool) -> FinishReason:
    """Map a Gemini finish reason; function calls always mean ``tool_use``."""
    if has_tool_calls:
        return FinishReason.TOOL_USE
    name = getattr(reason, "name", reason)
    if not isinstance(name, str):
        return FinishReason.UNKNOWN
    name = name.upper()
    if name == "STOP":
        return FinishReason.STOP
    if name == "MAX_TOKENS":
        return FinishReason.MAX_TOKENS
    if name in _SAFETY_REASONS:
        return FinishReason.SAFETY
    if name == "MALFORMED_FUNCTION_CALL":
        return FinishReason.ERROR
    return FinishReason.UNKNOWN


def _parse_response(response: Any, *, model: str) -> Response:
    """Parse a ``GenerateContentResponse`` into a Response."""
    text_parts: list[str] = []
    tool_calls: list[Message] = []
    for part in _candidate_parts(response):
        if getattr(part, "thought", False):
            continue
        function_call = getattr(part, "function_call", None)
        if function_call is not None:
            call_id = getattr(function_call, "id", None) or (
                f"call_{uuid.uuid4().hex[:8]}"
            )
            tool_calls.append(
                Message.from_tool_call(
                    str(function_call.name),
                    str(call_id),
                    json.dumps(getattr(function_call, "args", None) or {}),
                )
            )
            continue
        text = getattr(part, "text", None)
        if isinstance(text, str) and text:
            text_parts.append(text)

    messages: list[Message] = []
    text = "".join(text_parts)
    if text:
        messages.append(Message.from_text(Role.AI, text))
    messages.extend(tool_calls)

    candidates = getattr(response, "candidates", None) or []
    reason = getattr(candidates[0], "finish_reason", None) if candidates else None

    usage = Usage()
    usage_raw = getattr(response, "usage_metadata", None)
    if usage_raw is not None:
        _update_usage(usage, usage_raw)
    if not usage.total_tokens:
        usage.total_tokens = usage.input_tokens + usage.output_tokens

    return Response(
        model=model,
        finish_reason=_convert_finish_reason(reason, has_tool_calls=bool(tool_calls)),
        messages=messages,
        usage=usage,
    )
