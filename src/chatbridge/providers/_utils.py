"""Shared utilities for provider implementations."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import inspect
import json
from typing import TYPE_CHECKING, Any

from chatbridge.chat import (
    FinishReason,
    Message,
    Response,
    Role,
    StreamChunk,
    TextPart,
    Usage,
)
from chatbridge.errors import (
    InvalidToolArgumentsError,
    NoValidContentError,
    StreamError,
    UnsupportedContentError,
)

if TYPE_CHECKING:
    from chatbridge.chat import ModelConfig, Streamer, ToolCall

#: Used when the request leaves max_tokens unset; Anthropic requires a value.
DEFAULT_MAX_TOKENS = 2048


def max_tokens_or_default(config: ModelConfig) -> int:
    """Return the configured max tokens, or the default when unset."""
    return config.max_tokens if config.max_tokens > 0 else DEFAULT_MAX_TOKENS


def parse_tool_arguments(call: ToolCall) -> dict[str, Any]:
    """Decode a tool call's JSON arguments for vendors that want an object."""
    if not call.arguments.strip():
        return {}
    try:
        args = json.loads(call.arguments)
    except json.JSONDecodeError as e:
        raise InvalidToolArgumentsError(
            f"Tool call {call.name!r} arguments are not valid JSON: {e}"
        ) from e
    if not isinstance(args, dict):
        raise InvalidToolArgumentsError(
            f"Tool call {call.name!r} arguments must be a JSON object"
        )
    return args


def system_text(msg: Message, *, vendor: str) -> str:
    """Return the text of a system message for vendors that take text only."""
    if not msg.content:
        raise NoValidContentError(
            "System message has no content parts",
            hint="Add a text part to the system message.",
        )
    for part in msg.content:
        if not isinstance(part, TextPart):
            raise UnsupportedContentError(
                f"{vendor} system messages accept text only, got a {part.type} part",
                hint="Move images and files into a human message.",
            )
    return msg.text


def as_int(value: Any) -> int:
    """Coerce an SDK token count (possibly None) to int."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return 0


async def emit(streamer: Streamer, chunk: StreamChunk) -> None:
    """Deliver *chunk* to the caller's streamer, awaiting it if needed."""
    try:
        result = streamer(chunk)
        if inspect.isawaitable(result):
            await result
    except asyncio.CancelledError:
        raise
    except Exception as e:
        raise StreamError(f"Streamer callback failed: {e}", phase="stream") from e


@dataclass
class StreamAccumulator:
    """Collects streamed text deltas and usage into a single Response."""

    streamer: Streamer
    usage: Usage = field(default_factory=Usage)
    _deltas: list[str] = field(default_factory=list)

    async def add_text(self, delta: str) -> None:
        """Record a text delta and forward it to the streamer."""
        if not delta:
            return
        self._deltas.append(delta)
        await emit(self.streamer, StreamChunk(content=delta))

    @property
    def text(self) -> str:
        """All text received so far."""
        return "".join(self._deltas)

    def build(self, model: str) -> Response:
        """Return the aggregated Response.

        Streams always finish with ``stop``; length and safety stops are not
        distinguished on this path.
        """
        usage = self.usage
        if not usage.total_tokens:
            usage.total_tokens = usage.input_tokens + usage.output_tokens
        return Response(
            model=model,
            finish_reason=FinishReason.STOP,
            messages=[Message.from_text(Role.AI, self.text)],
            usage=usage,
        )
