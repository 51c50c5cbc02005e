"""Canonical <-> OpenAI Chat Completions conversion.

Shared by every backend that speaks the OpenAI dialect (OpenAI, Groq and
Google's OpenAI-compatible endpoint). Tool results become ``tool``-role
messages keyed by ``tool_call_id``; tool calls ride on the assistant message.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, assert_never

from chatbridge.catalog import is_reasoning_model
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

    from chatbridge.models import ChatRequest, Message, ToolSpec


def _tool_output(content: str | dict[str, Any]) -> str:
    return content if isinstance(content, str) else json.dumps(content)


def _convert_user(message: Message) -> list[dict[str, Any]]:
    if isinstance(message.content, str):
        return [{"role": "user", "content": message.content}]

    tool_messages: list[dict[str, Any]] = []
    texts: list[str] = []
    for block in message.content:
        match block:
            case ToolResultBlock():
                tool_messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": block.tool_use_id,
                        "content": _tool_output(block.content),
                    }
                )
            case TextBlock():
                texts.append(block.text)
            case ToolUseBlock():
                # Not valid in user turns.
                continue
            case _:
                assert_never(block)

    # Tool outputs must directly follow the assistant turn that issued them.
    out = tool_messages
    if texts or not tool_messages:
        out.append({"role": "user", "content": "\n".join(texts)})
    return out


def _convert_assistant(message: Message) -> dict[str, Any] | None:
    if isinstance(message.content, str):
        return {"role": "assistant", "content": message.content}

    texts: list[str] = []
    tool_calls: list[dict[str, Any]] = []
    for block in message.content:
        match block:
            case TextBlock():
                texts.append(block.text)
            case ToolUseBlock():
                tool_calls.append(
                    {
                        "id": block.id,
                        "type": "function",
                        "function": {
                            "name": block.name,
                            "arguments": json.dumps(block.input),
                        },
                    }
                )
            case ToolResultBlock():
                continue
            case _:
                assert_never(block)

    if not texts and not tool_calls:
        return None
    out: dict[str, Any] = {"role": "assistant", "content": "\n".join(texts) or None}
    if tool_calls:
        out["tool_calls"] = tool_calls
    return out


def convert_messages(request: ChatRequest, *, model: str) -> list[dict[str, Any]]:
    """Map the system prompt and turns to Chat Completions ``messages``.

    Reasoning models reject a system message, so the prompt is left out for
    them.
    """
    out: list[dict[str, Any]] = []
    system = request.system_text()
    if system and not is_reasoning_model(model):
        out.append({"role": "system", "content": system})

    for message in request.messages:
        if message.role == "user":
            out.extend(_convert_user(message))
        else:
            converted = _convert_assistant(message)
            if converted is not None:
                out.append(converted)
    return out


def convert_tools(tools: Iterable[ToolSpec]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.input_schema,
            },
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
    """Build ``chat.completions.create`` keyword arguments for *request*."""
    params: dict[str, Any] = {
        "model": model,
        "messages": convert_messages(request, model=model),
    }
    if is_reasoning_model(model):
        params["max_completion_tokens"] = max_tokens
    else:
        params["max_tokens"] = max_tokens
        params["temperature"] = temperature
    tools = convert_tools(request.tools)
    if tools:
        params["tools"] = tools
    return params


def _parse_arguments(raw: Any, *, name: str) -> dict[str, Any]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(
            f"Tool call {name!r} has malformed JSON arguments: {raw!r}"
        ) from e
    if not isinstance(parsed, dict):
        raise MalformedResponseError(
            f"Tool call {name!r} arguments are not a JSON object: {raw!r}"
        )
    return parsed


def parse_response(response: Any) -> ChatResult:
    """Normalize a ``ChatCompletion`` into a ``ChatResult``."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        raise MalformedResponseError("Chat completion returned no choices")
    message = getattr(choices[0], "message", None)

    text = getattr(message, "content", None) or ""
    tool_calls: list[ToolCall] = []
    for tc in getattr(message, "tool_calls", None) or []:
        function = getattr(tc, "function", None)
        name = str(getattr(function, "name", ""))
        tool_calls.append(
            ToolCall(
                id=str(getattr(tc, "id", "")),
                name=name,
                input=_parse_arguments(getattr(function, "arguments", None), name=name),
            )
        )

    return ChatResult.build(text, tool_calls)
