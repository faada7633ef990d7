"""Shared data types for prompts, engines, and step records."""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel

type Message = dict[str, Any]
type Aspect = Literal["messages", "tools", "systems", "variables"]

ASPECTS: tuple[Aspect, ...] = ("messages", "tools", "systems", "variables")


def to_jsonable(value: Any) -> Any:
    """Convert models, dataclasses and containers to plain JSON-compatible values.

    Objects with no JSON form fall back to ``str(value)``.
    """
    if isinstance(value, Enum):
        return to_jsonable(value.value)
    if value is None or isinstance(value, str | int | float | bool):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(dataclasses.asdict(value))
    if isinstance(value, Mapping):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [to_jsonable(item) for item in value]
    return str(value)


@dataclass(frozen=True)
class ToolCall:
    """One tool invocation requested by the model."""

    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)

    def to_message_part(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": json.dumps(self.args, ensure_ascii=False)},
        }


@dataclass(frozen=True)
class ToolSpec:
    """Tool metadata advertised to the model for one step."""

    name: str
    description: str
    parameters: dict[str, Any]

    def schema(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {"name": self.name, "description": self.description, "parameters": self.parameters},
        }


@dataclass(frozen=True)
class StepRequest:
    """Configuration handed to the model engine for one step."""

    system: str | None
    messages: list[Message]
    tools: list[ToolSpec]
    active_tools: list[str]
    step_number: int
    max_tokens: int | None = None

    def prompt_messages(self) -> list[Message]:
        """Messages as the model sees them, system prompt first."""
        if self.system is None:
            return list(self.messages)
        return [{"role": "system", "content": self.system}, *self.messages]


@dataclass(frozen=True)
class StepResponse:
    """What the model engine produced for one step."""

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str = "stop"

    def content(self) -> list[dict[str, Any]]:
        parts: list[dict[str, Any]] = []
        if self.text:
            parts.append({"type": "text", "text": self.text})
        for call in self.tool_calls:
            parts.append({"type": "tool-call", "id": call.id, "name": call.name, "args": call.args})
        return parts


@dataclass(frozen=True)
class LastToolInfo:
    """The most recent tool invocation seen by the step loop."""

    name: str
    args: dict[str, Any]
    output: Any


@dataclass
class RawStep:
    """Uncompressed record of one model call."""

    prompt: list[Message]
    content: list[dict[str, Any]]
    finish_reason: str
    active_tools: list[str]
    state: dict[str, Any] = field(default_factory=dict)
    tool_results: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "input": {"prompt": self.prompt},
            "output": {"content": self.content, "finish_reason": self.finish_reason},
            "active_tools": self.active_tools,
        }
