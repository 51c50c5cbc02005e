"""Canonical <-> Google GenAI (native Gemini API) conversion.

Gemini differs structurally from the other dialects:

- assistant turns use the ``model`` role;
- tool calls and results are ``function_call`` / ``function_response`` parts,
  and results are matched to calls by function *name* (and by id when
  Gemini issued one);
- calls usually carry no id, so ids are synthesized on the way in;
- thinking models attach an opaque ``thought_signature`` to call parts that
  must be replayed unchanged on the next request.
"""

from __future__ import annotations

import base64
import logging
import time
from typing import TYPE_CHECKING, Any, assert_never

from google.genai import types

from chatbridge.models import (
    ChatResult,
    TextBlock,
    ToolCall,
    ToolResultBlock,
    ToolUseBlock,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from chatbridge.models import ChatRequest, Message, ThoughtSignature, ToolSpec

logger = logging.getLogger(__name__)

SYNTHETIC_ID_PREFIX = "toolu_google_"


def _native_id(tool_use_id: str) -> str | None:
    """Return *tool_use_id* when Gemini issued it, None when it was synthesized."""
    if tool_use_id.startswith(SYNTHETIC_ID_PREFIX):
        return None
    return tool_use_id


def _signature_bytes(signature: ThoughtSignature | None) -> bytes | None:
    """Signatures arrive as bytes from the SDK or base64 text from dicts."""
    if signature is None or isinstance(signature, bytes):
        return signature
    return base64.b64decode(signature)


def _function_response_part(
    block: ToolResultBlock, names_by_id: dict[str, str]
) -> types.Part:
    name = names_by_id.get(block.tool_use_id)
    if name is None:
        # Unreachable when results follow their calls; keep the request valid.
        logger.debug(
            "No prior tool_use with id %r; using the id as function name",
            block.tool_use_id,
        )
        name = block.tool_use_id
    if isinstance(block.content, str):
        response: dict[str, Any] = {"result": block.content}
    else:
        response = dict(block.content)
    return types.Part(
        function_response=types.FunctionResponse(
            id=_native_id(block.tool_use_id), name=name, response=response
        )
    )


def _function_call_part(block: ToolUseBlock) -> types.Part:
    return types.Part(
        function_call=types.FunctionCall(
            id=_native_id(block.id), name=block.name, args=block.input
        ),
        thought_signature=_signature_bytes(block.thought_signature),
    )


def _convert_user(message: Message, names_by_id: dict[str, str]) -> types.Content:
    if isinstance(message.content, str):
        return types.Content(
            role="user", parts=[types.Part.from_text(text=message.content)]
        )

    parts: list[types.Part] = []
    texts: list[str] = []
    for block in message.content:
        match block:
            case ToolResultBlock():
                parts.append(_function_response_part(block, names_by_id))
            case TextBlock():
                texts.append(block.text)
            case ToolUseBlock():
                continue
            case _:
                assert_never(block)

    if texts or not parts:
        parts.append(types.Part.from_text(text="\n".join(texts)))
    return types.Content(role="user", parts=parts)


def _convert_assistant(
    message: Message, names_by_id: dict[str, str]
) -> types.Content | None:
    parts: list[types.Part] = []
    for block in message.blocks:
        match block:
            case TextBlock():
                if block.text:
                    parts.append(types.Part.from_text(text=block.text))
            case ToolUseBlock():
                names_by_id[block.id] = block.name
                parts.append(_function_call_part(block))
            case ToolResultBlock():
                continue
            case _:
                assert_never(block)
    if not parts:
        return None
    return types.Content(role="model", parts=parts)


def convert_messages(messages: Iterable[Message]) -> list[types.Content]:
    """Map canonical turns to Gemini ``contents``.

    Tool result names are resolved through the ids of tool calls seen in
    earlier assistant turns of the same conversation.
    """
    names_by_id: dict[str, str] = {}
    contents: list[types.Content] = []
    for message in messages:
        if message.role == "user":
            content = _convert_user(message, names_by_id)
        else:
            content = _convert_assistant(message, names_by_id)
        if content is not None:
            contents.append(content)
    return contents


def convert_tools(tools: Iterable[ToolSpec]) -> list[types.Tool]:
    declarations = [
        types.FunctionDeclaration(
            name=t.name,
            description=t.description,
            parameters_json_schema=t.input_schema,
        )
        for t in tools
    ]
    if not declarations:
        return []
    return [types.Tool(function_declarations=declarations)]


def build_params(
    request: ChatRequest,
    *,
    model: str,
    max_tokens: int,
    temperature: float,
) -> dict[str, Any]:
    """Build ``models.generate_content`` keyword arguments for *request*."""
    config_kwargs: dict[str, Any] = {
        "temperature": temperature,
        "max_output_tokens": max_tokens,
    }
    system = request.system_text()
    if system:
        config_kwargs["system_instruction"] = system
    tools = convert_tools(request.tools)
    if tools:
        config_kwargs["tools"] = tools

    return {
        "model": model,
        "contents": convert_messages(request.messages),
        "config": types.GenerateContentConfig(**config_kwargs),
    }


def parse_response(response: Any, *, now_ms: int | None = None) -> ChatResult:
    """Normalize a ``GenerateContentResponse`` into a ``ChatResult``.

    Reads the first candidate's parts directly so thought signatures survive.
    Calls without a native id get ``toolu_google_<epoch-ms>_<index>``.
    """
    candidates = getattr(response, "candidates", None) or []
    content = getattr(candidates[0], "content", None) if candidates else None
    parts = getattr(content, "parts", None) or []

    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    texts: list[str] = []
    tool_calls: list[ToolCall] = []
    for part in parts:
        function_call = getattr(part, "function_call", None)
        if function_call is not None:
            index = len(tool_calls)
            call_id = getattr(function_call, "id", None)
            tool_calls.append(
                ToolCall(
                    id=call_id or f"{SYNTHETIC_ID_PREFIX}{stamp}_{index}",
                    name=str(function_call.name),
                    input=dict(function_call.args or {}),
                    thought_signature=getattr(part, "thought_signature", None),
                )
            )
            continue
        if getattr(part, "thought", None):
            continue
        text = getattr(part, "text", None)
        if text:
            texts.append(text)

    return ChatResult.build("\n".join(texts), tool_calls)
