"""Unified chat model: messages, responses and stream chunks."""

from __future__ import annotations

import json

import pytest

from chatbridge.chat import (
    FinishReason,
    ImagePart,
    Message,
    Response,
    Role,
    StreamChunk,
    TextPart,
    ToolCall,
    ToolResponse,
)
from chatbridge.errors import (
    InvalidMessageError,
    UnknownExtensionError,
    UnknownRoleError,
    UnsupportedContentError,
)

pytestmark = pytest.mark.unit


def test_from_text_builds_single_text_part() -> None:
    msg = Message.from_text("human", "hello")

    assert msg.role is Role.HUMAN
    assert msg.content == [TextPart("hello")]
    assert msg.text == "hello"
    assert not msg.is_tool_call
    assert not msg.is_tool_response


def test_unknown_role_string_is_rejected() -> None:
    with pytest.raises(UnknownRoleError):
        Message.from_text("assistant", "hi")


def test_from_image_file_prepends_text(tmp_path) -> None:
    path = tmp_path / "cat.jpg"
    path.write_bytes(b"\xff\xd8\xff")

    msg = Message.from_image_file(Role.HUMAN, path, text="What is this?")

    assert isinstance(msg.content[0], TextPart)
    assert isinstance(msg.content[1], ImagePart)
    assert msg.content[1].data_url.startswith("data:image/jpeg;base64,")


def test_from_image_file_rejects_non_images(tmp_path) -> None:
    path = tmp_path / "notes.txt"
    path.write_text("hi")

    with pytest.raises(UnsupportedContentError):
        Message.from_image_file(Role.HUMAN, path)


def test_from_image_file_rejects_unknown_extension(tmp_path) -> None:
    path = tmp_path / "image.zzunknown"
    path.write_bytes(b"x")

    with pytest.raises(UnknownExtensionError):
        Message.from_image_file(Role.HUMAN, path)


def test_tool_call_and_response_constructors() -> None:
    call = Message.from_tool_call("get_weather", "call_1", '{"city": "Paris"}')
    reply = Message.from_tool_response("get_weather", "call_1", "sunny")

    assert call.role is Role.AI
    assert call.tool_call == ToolCall("call_1", "get_weather", '{"city": "Paris"}')
    assert call.is_tool_call
    assert reply.role is Role.TOOL
    assert reply.tool_response == ToolResponse("call_1", "get_weather", "sunny")
    assert reply.is_tool_response


@pytest.mark.parametrize(
    "kwargs",
    [
        {"role": Role.HUMAN, "tool_call": ToolCall("1", "f", "{}")},
        {"role": Role.AI, "tool_response": ToolResponse("1", "f", "ok")},
        {
            "role": Role.AI,
            "content": [TextPart("x")],
            "tool_call": ToolCall("1", "f", "{}"),
        },
        {
            "role": Role.TOOL,
            "content": [TextPart("x")],
            "tool_response": ToolResponse("1", "f", "ok"),
        },
    ],
)
def test_message_enforces_one_of_invariant(kwargs) -> None:
    with pytest.raises(InvalidMessageError):
        Message(**kwargs)


def test_message_str_renders_role_and_tool_call() -> None:
    assert str(Message.from_text("ai", "hi")) == "AI: hi"
    rendered = str(Message.from_tool_call("f", "c1", "{}"))
    assert "CallID: c1" in rendered
    assert "Name: f" in rendered


def test_response_tool_calls_and_text() -> None:
    response = Response(
        model="m",
        finish_reason=FinishReason.TOOL_USE,
        messages=[
            Message.from_text("ai", "Let me check. "),
            Message.from_tool_call("f", "c1", "{}"),
            Message.from_tool_call("g", "c2", "{}"),
        ],
    )

    assert [m.tool_call.name for m in response.tool_calls()] == ["f", "g"]
    assert response.text == "Let me check. "


def test_stream_chunk_wire_shape() -> None:
    chunk = StreamChunk(content="Hel")

    assert json.loads(chunk.to_json()) == {"type": "text", "content": "Hel"}
    assert chunk.to_dict() == {"type": "text", "content": "Hel"}


def test_finish_reason_values_are_stable_strings() -> None:
    assert [r.value for r in FinishReason] == [
        "stop",
        "max_tokens",
        "tool_use",
        "safety",
        "error",
        "unknown",
    ]
