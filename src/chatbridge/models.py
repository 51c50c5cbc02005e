"""Canonical chat model shared by every provider.

The dict shapes produced by ``to_dict`` and accepted by ``from_dict`` are the
interchange format exchanged with the agent loop; backend wire formats are
derived from these types and never leak back out.
"""

from __future__ import annotations

import base64
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

from chatbridge.errors import InvalidRequestError

Role = Literal["user", "assistant"]
StopReason = Literal["end_turn", "tool_use"]
ThoughtSignature: TypeAlias = bytes | str


def signature_to_text(signature: ThoughtSignature) -> str:
    """Render a thought signature for the dict interchange (base64 for bytes)."""
    if isinstance(signature, bytes):
        return base64.b64encode(signature).decode("ascii")
    return signature


@dataclass(frozen=True)
class TextBlock:
    """Plain text content."""

    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ToolUseBlock:
    """A tool invocation issued by the assistant.

    ``id`` is the join key for the matching ``ToolResultBlock``.
    ``thought_signature`` is an opaque token some thinking models attach to a
    call; it is carried verbatim and replayed with the same call.
    """

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    thought_signature: ThoughtSignature | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": "tool_use",
            "id": self.id,
            "name": self.name,
            "input": self.input,
        }
        if self.thought_signature is not None:
            out["thought_signature"] = signature_to_text(self.thought_signature)
        return out


@dataclass(frozen=True)
class ToolResultBlock:
    """The output of a tool call, sent back inside a user message."""

    tool_use_id: str
    content: str | dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": self.content,
        }


ContentBlock: TypeAlias = TextBlock | ToolUseBlock | ToolResultBlock


def content_block_from_dict(data: Mapping[str, Any]) -> ContentBlock:
    """Build a content block from its interchange dict."""
    block_type = data.get("type")
    if block_type == "text":
        return TextBlock(text=str(data.get("text", "")))
    if block_type == "tool_use":
        signature = data.get("thought_signature", data.get("thoughtSignature"))
        return ToolUseBlock(
            id=str(data["id"]),
            name=str(data["name"]),
            input=dict(data.get("input") or {}),
            thought_signature=signature,
        )
    if block_type == "tool_result":
        content = data.get("content", "")
        if isinstance(content, Mapping):
            content = dict(content)
        elif not isinstance(content, str):
            raise InvalidRequestError(
                "tool_result content must be a string or a JSON object",
                hint=f"Got {type(content).__name__} for {data.get('tool_use_id')!r}.",
            )
        return ToolResultBlock(tool_use_id=str(data["tool_use_id"]), content=content)
    raise InvalidRequestError(f"Unknown content block type: {block_type!r}")


@dataclass(frozen=True)
class Message:
    """One conversation turn."""

    role: Role
    content: str | tuple[ContentBlock, ...]

    def __post_init__(self) -> None:
        if self.role not in ("user", "assistant"):
            raise InvalidRequestError(
                f"Unsupported message role: {self.role!r}",
                hint="Messages carry role 'user' or 'assistant'.",
            )
        if isinstance(self.content, str):
            return
        if isinstance(self.content, list):
            object.__setattr__(self, "content", tuple(self.content))
        for block in self.content:
            if isinstance(block, ToolResultBlock) and self.role != "user":
                raise InvalidRequestError(
                    "tool_result blocks are only valid in user messages"
                )
            if isinstance(block, ToolUseBlock) and self.role != "assistant":
                raise InvalidRequestError(
                    "tool_use blocks are only valid in assistant messages"
                )

    @property
    def blocks(self) -> tuple[ContentBlock, ...]:
        """Content as blocks, with string content promoted to one text block."""
        if isinstance(self.content, str):
            return (TextBlock(self.content),)
        return self.content

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Message:
        content = data.get("content", "")
        if not isinstance(content, str):
            content = tuple(content_block_from_dict(b) for b in content)
        return cls(role=data["role"], content=content)

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [b.to_dict() for b in self.content]}


@dataclass(frozen=True)
class ToolSpec:
    """A tool the model may call, described by a JSON Schema."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ToolSpec:
        return cls(
            name=str(data["name"]),
            description=str(data.get("description") or ""),
            input_schema=dict(
                data.get("input_schema") or {"type": "object", "properties": {}}
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


@dataclass(frozen=True)
class ChatRequest:
    """A complete request: system prompt, ordered turns and available tools."""

    system: str | tuple[TextBlock, ...] = ""
    messages: tuple[Message, ...] = ()
    tools: tuple[ToolSpec, ...] = ()

    def __post_init__(self) -> None:
        for name in ("system", "messages", "tools"):
            value = getattr(self, name)
            if isinstance(value, list):
                object.__setattr__(self, name, tuple(value))
        seen: set[str] = set()
        for tool in self.tools:
            if tool.name in seen:
                raise InvalidRequestError(f"Duplicate tool name: {tool.name!r}")
            seen.add(tool.name)

    def system_text(self) -> str:
        """The system prompt flattened to a single string."""
        if isinstance(self.system, str):
            return self.system
        return "\n".join(block.text for block in self.system)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChatRequest:
        system = data.get("system") or ""
        if not isinstance(system, str):
            system = tuple(TextBlock(text=str(b.get("text", ""))) for b in system)
        return cls(
            system=system,
            messages=tuple(Message.from_dict(m) for m in data.get("messages") or ()),
            tools=tuple(ToolSpec.from_dict(t) for t in data.get("tools") or ()),
        )


@dataclass(frozen=True)
class ToolCall:
    """A tool call requested by the model."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    thought_signature: ThoughtSignature | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "name": self.name, "input": self.input}
        if self.thought_signature is not None:
            out["thought_signature"] = signature_to_text(self.thought_signature)
        return out


@dataclass(frozen=True)
class ChatResult:
    """Normalized output of every provider's ``chat`` call.

    Use ``ChatResult.build`` so ``stop_reason`` and ``raw_content`` stay
    consistent with ``text`` and ``tool_calls``.
    """

    stop_reason: StopReason
    text: str
    tool_calls: tuple[ToolCall, ...]
    raw_content: tuple[ContentBlock, ...]

    @classmethod
    def build(
        cls, text: str, tool_calls: list[ToolCall] | tuple[ToolCall, ...]
    ) -> ChatResult:
        raw: list[ContentBlock] = []
        if text:
            raw.append(TextBlock(text))
        for call in tool_calls:
            raw.append(
                ToolUseBlock(
                    id=call.id,
                    name=call.name,
                    input=call.input,
                    thought_signature=call.thought_signature,
                )
            )
        return cls(
            stop_reason="tool_use" if tool_calls else "end_turn",
            text=text,
            tool_calls=tuple(tool_calls),
            raw_content=tuple(raw),
        )

    def as_message(self) -> Message:
        """The assistant turn to append to the next request."""
        return Message(role="assistant", content=self.raw_content)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stopReason": self.stop_reason,
            "text": self.text,
            "toolCalls": [c.to_dict() for c in self.tool_calls],
            "rawContent": [b.to_dict() for b in self.raw_content],
        }
