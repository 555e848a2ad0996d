"""Vendor-neutral chat model: requests, messages, tools, responses and usage."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
import json
from typing import TYPE_CHECKING, Any, ClassVar, Literal

from chatbridge import dataurl
from chatbridge.errors import (
    InvalidMessageError,
    UnknownRoleError,
    UnsupportedContentError,
)

if TYPE_CHECKING:
    from pathlib import Path

    from chatbridge.schema import SchemaInput


class Role(str, Enum):
    """Who authored a message."""

    SYSTEM = "system"
    HUMAN = "human"
    AI = "ai"
    TOOL = "tool"

    @classmethod
    def parse(cls, value: Role | str) -> Role:
        """Coerce a string into a Role, rejecting unknown values."""
        if isinstance(value, Role):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownRoleError(
                f"Unknown message role: {value!r}",
                hint="Use one of: system, human, ai, tool.",
            ) from None


class FinishReason(str, Enum):
    """Why generation stopped."""

    STOP = "stop"
    MAX_TOKENS = "max_tokens"
    TOOL_USE = "tool_use"
    SAFETY = "safety"
    ERROR = "error"
    UNKNOWN = "unknown"


# --- Content parts ---


@dataclass(frozen=True)
class TextPart:
    """Plain text content."""

    type: ClassVar[Literal["text"]] = "text"
    text: str


@dataclass(frozen=True)
class ImagePart:
    """An image carried inline as a data URL."""

    type: ClassVar[Literal["image"]] = "image"
    data_url: str


@dataclass(frozen=True)
class FilePart:
    """A document (e.g. PDF) carried inline as a data URL."""

    type: ClassVar[Literal["file"]] = "file"
    data_url: str


ContentPart = TextPart | ImagePart | FilePart


# --- Tools ---


@dataclass(frozen=True)
class Tool:
    """A function the model may call."""

    name: str
    description: str = ""
    #: JSON Schema dict or pydantic model class describing the arguments.
    input_schema: SchemaInput = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    #: Arguments serialized as a JSON string.
    arguments: str


@dataclass(frozen=True)
class ToolResponse:
    """The caller's result for a ToolCall with the same ``id``."""

    id: str
    name: str
    result: str


# --- Messages ---


@dataclass(frozen=True)
class Message:
    """A single conversational turn.

    A message is exactly one of plain content, a tool call (role ``ai``) or a
    tool response (role ``tool``).
    """

    role: Role
    content: list[ContentPart] = field(default_factory=list)
    tool_call: ToolCall | None = None
    tool_response: ToolResponse | None = None

    def __post_init__(self) -> None:
        """Coerce the role and enforce the one-of invariant."""
        object.__setattr__(self, "role", Role.parse(self.role))

        if self.tool_call is not None and self.tool_response is not None:
            raise InvalidMessageError(
                "A message cannot carry both a tool call and a tool response"
            )
        if self.tool_call is not None:
            if self.role is not Role.AI:
                raise InvalidMessageError(
                    f"Tool calls belong to role 'ai', got {self.role.value!r}"
                )
            if self.content:
                raise InvalidMessageError(
                    "A tool-call message carries no content parts",
                    hint="Send the text and the tool call as separate messages.",
                )
        if self.tool_response is not None:
            if self.role is not Role.TOOL:
                raise InvalidMessageError(
                    f"Tool responses belong to role 'tool', got {self.role.value!r}"
                )
            if self.content:
                raise InvalidMessageError(
                    "A tool-response message carries its result, not content parts"
                )

    @classmethod
    def from_text(cls, role: Role | str, text: str) -> Message:
        """Create a single-text-part message."""
        return cls(role=role, content=[TextPart(text)])

    @classmethod
    def from_image_file(
        cls, role: Role | str, path: str | Path, text: str = ""
    ) -> Message:
        """Create a message with an image read from *path*, optionally preceded by text."""
        url, mime_type = dataurl.encode_from_path(path)
        if not mime_type.startswith("image/"):
            raise UnsupportedContentError(f"Not an image: {mime_type}")
        content: list[ContentPart] = []
        if text:
            content.append(TextPart(text))
        content.append(ImagePart(url))
        return cls(role=role, content=content)

    @classmethod
    def from_tool_call(cls, name: str, call_id: str, arguments: str) -> Message:
        """Create an AI tool-call message; *arguments* is a JSON string."""
        return cls(
            role=Role.AI, tool_call=ToolCall(id=call_id, name=name, arguments=arguments)
        )

    @classmethod
    def from_tool_response(cls, name: str, call_id: str, result: str) -> Message:
        """Create a tool-response message answering the call *call_id*."""
        return cls(
            role=Role.TOOL,
            tool_response=ToolResponse(id=call_id, name=name, result=result),
        )

    @property
    def is_tool_call(self) -> bool:
        """Whether this message is a tool call."""
        return self.tool_call is not None

    @property
    def is_tool_response(self) -> bool:
        """Whether this message is a tool response."""
        return self.tool_response is not None

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(p.text for p in self.content if isinstance(p, TextPart))

    def __str__(self) -> str:
        """Render as ``ROLE: text`` plus a tool-call line when present."""
        lines: list[str] = []
        if self.text:
            lines.append(f"{self.role.value.upper()}: {self.text}")
        if self.tool_call is not None:
            tc = self.tool_call
            lines.append(
                f"tool_calls: [CallID: {tc.id}, Name: {tc.name}, Arguments: {tc.arguments}]"
            )
        if self.tool_response is not None:
            tr = self.tool_response
            lines.append(
                f"tool_response: [CallID: {tr.id}, Name: {tr.name}, Result: {tr.result}]"
            )
        return "\n".join(lines)


# --- Request / response ---


@dataclass(frozen=True)
class ModelConfig:
    """Generation settings. Zero values mean "unset, use the vendor default"."""

    max_tokens: int = 0
    temperature: float = 0.0
    top_p: float = 0.0
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0
    stop: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Request:
    """A provider-agnostic chat request."""

    model: str
    messages: list[Message] = field(default_factory=list)
    config: ModelConfig = field(default_factory=ModelConfig)
    metadata: dict[str, str] = field(default_factory=dict)
    tools: list[Tool] = field(default_factory=list)
    must_call_tool: bool = False
    #: JSON Schema dict or pydantic model class constraining the output.
    response_schema: SchemaInput | None = None


@dataclass
class Usage:
    """Token counts for one call and the derived cost in USD."""

    input_tokens: int = 0
    output_tokens: int = 0
    reasoning_tokens: int = 0
    cache_creation_tokens: int = 0
    cached_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0


@dataclass
class Response:
    """A unified response."""

    model: str
    finish_reason: FinishReason = FinishReason.UNKNOWN
    messages: list[Message] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)
    usage: Usage | None = None

    def tool_calls(self) -> list[Message]:
        """Return the AI messages that carry a tool call."""
        return [m for m in self.messages if m.role is Role.AI and m.is_tool_call]

    @property
    def text(self) -> str:
        """Concatenated text of all output messages."""
        return "".join(m.text for m in self.messages)


# --- Streaming ---


@dataclass(frozen=True)
class StreamChunk:
    """One incremental piece of streamed output.

    ``type`` is ``"text"`` for content deltas; consumers ignore types they do
    not recognise.
    """

    content: str
    type: str = "text"

    def to_json(self) -> str:
        """Return the ``{"type", "content"}`` wire shape."""
        return json.dumps({"type": self.type, "content": self.content})

    def to_dict(self) -> dict[str, Any]:
        """Return the wire shape as a dict."""
        return {"type": self.type, "content": self.content}


#: Callback invoked once per chunk; may be a plain function or a coroutine function.
Streamer = Callable[[StreamChunk], Awaitable[None] | None]
