"""Canonical <-> Anthropic Messages API conversion.

The canonical model is shaped after the Messages API, so most of the mapping
is structural. What differs: thought signatures are not part of Anthropic's
``tool_use`` schema, and JSON tool results must be sent as text.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, assert_never

from chatbridge.errors import MalformedResponseError
from chatbridge.models import (
    ChatResult,
    TextBlock,
    ToolCall,
    ToolResultBlock,
    ToolUseBlock,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from chatbridge.models import ChatRequest, ContentBlock, Message, ToolSpec


def convert_block(block: ContentBlock) -> dict[str, Any]:
    """Map one canonical block to an Anthropic content block."""
    match block:
        case TextBlock():
            return {"type": "text", "text": block.text}
        case ToolUseBlock():
            return {
                "type": "tool_use",
                "id": block.id,
                "name": block.name,
                "input": block.input,
            }
        case ToolResultBlock():
            content = block.content
            return {
                "type": "tool_result",
                "tool_use_id": block.tool_use_id,
                "content": content if isinstance(content, str) else json.dumps(content),
            }
        case _:
            assert_never(block)


def convert_messages(messages: Iterable[Message]) -> list[dict[str, Any]]:
    """Map canonical turns to Anthropic ``messages``, preserving order."""
    out: list[dict[str, Any]] = []
    for message in messages:
        if isinstance(message.content, str):
            _append_message(out, {"role": message.role, "content": message.content})
            continue
        blocks = [convert_block(b) for b in message.content]
        if blocks:
            _append_message(out, {"role": message.role, "content": blocks})
    return out


def convert_system(request: ChatRequest) -> str | list[dict[str, Any]] | None:
    """Return the ``system`` parameter, or None when there is no prompt."""
    if isinstance(request.system, str):
        return request.system or None
    blocks = [{"type": "text", "text": b.text} for b in request.system]
    return blocks or None


def convert_tools(tools: Iterable[ToolSpec]) -> list[dict[str, Any]]:
    return [
        {
            "name": t.name,
            "description": t.description,
            "input_schema": t.input_schema,
        }
        for t in tools
    ]


def build_params(
    request: ChatRequest,
    *,
    model: str,
    max_tokens: int,
    temperature: float,
) -> dict[str, Any]:
    """Build ``messages.create`` keyword arguments for *request*."""
    params: dict[str, Any] = {
        "model": model,
        "max_tokens": max_tokens,
        "temperature": temperature,
        "messages": convert_messages(request.messages),
    }
    system = convert_system(request)
    if system is not None:
        params["system"] = system
    tools = convert_tools(request.tools)
    if tools:
        params["tools"] = tools
    return params


def parse_response(response: Any) -> ChatResult:
    """Normalize an Anthropic ``Message`` into a ``ChatResult``."""
    text_parts: list[str] = []
    tool_calls: list[ToolCall] = []

    for block in getattr(response, "content", None) or []:
        block_type = getattr(block, "type", None)
        if block_type == "text":
            text_parts.append(getattr(block, "text", "") or "")
        elif block_type == "tool_use":
            tool_input = getattr(block, "input", None)
            if tool_input is None:
                tool_input = {}
            if not isinstance(tool_input, dict):
                raise MalformedResponseError(
                    f"Anthropic tool_use input is not an object: {tool_input!r}"
                )
            tool_calls.append(
                ToolCall(
                    id=str(getattr(block, "id", "")),
                    name=str(getattr(block, "name", "")),
                    input=tool_input,
                )
            )

    return ChatResult.build("\n".join(text_parts), tool_calls)


def _append_message(messages: list[dict[str, Any]], msg: dict[str, Any]) -> None:
    """Append *msg*, merging into the previous message when roles match.

    Anthropic requires strict user/assistant alternation. When consecutive
    turns share a role their content blocks are merged into one message.
    """
    if messages and messages[-1]["role"] == msg["role"]:
        prev = messages[-1]
        prev_content = prev["content"]
        new_content = msg["content"]
        if isinstance(prev_content, str):
            prev_content = [{"type": "text", "text": prev_content}]
        if isinstance(new_content, str):
            new_content = [{"type": "text", "text": new_content}]
        prev["content"] = prev_content + new_content
    else:
        messages.append(msg)
