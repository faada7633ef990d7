"""Deterministic engine for tests and offline examples."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from reprise.types import StepRequest, StepResponse, ToolCall

type ScriptItem = str | ToolCall | dict[str, Any]


def text(value: str) -> dict[str, Any]:
    return {"type": "text", "text": value}


def tool_call(name: str, args: dict[str, Any] | None = None, *, id: str | None = None) -> dict[str, Any]:
    return {"type": "tool-call", "name": name, "args": args or {}, "id": id}


class ScriptedEngine:
    """Replays a script of text and tool-call items.

    Each ``generate`` call consumes items up to and including the next tool
    call, so ``["Let me check", tool_call("lookup"), "Done"]`` answers the first
    step with text plus one tool call and the second step with ``"Done"``.
    Every request is kept in ``requests`` for inspection.
    """

    def __init__(self, script: Iterable[ScriptItem]) -> None:
        self._items = [self._normalize(item) for item in script]
        self._cursor = 0
        self._call_counter = 0
        self.requests: list[StepRequest] = []

    def _normalize(self, item: ScriptItem) -> dict[str, Any]:
        if isinstance(item, str):
            return text(item)
        if isinstance(item, ToolCall):
            return {"type": "tool-call", "name": item.name, "args": item.args, "id": item.id}
        if item.get("type") not in ("text", "tool-call"):
            raise ValueError(f"Unsupported script item: {item!r}")
        return item

    @property
    def exhausted(self) -> bool:
        return self._cursor >= len(self._items)

    async def generate(self, request: StepRequest) -> StepResponse:
        self.requests.append(request)
        chunks: list[str] = []
        calls: list[ToolCall] = []
        while not self.exhausted:
            item = self._items[self._cursor]
            self._cursor += 1
            if item["type"] == "text":
                chunks.append(item["text"])
                continue
            self._call_counter += 1
            call_id = item.get("id") or f"call_{self._call_counter}"
            calls.append(ToolCall(id=call_id, name=item["name"], args=item["args"]))
            break
        return StepResponse(text="".join(chunks), tool_calls=calls, finish_reason="tool-calls" if calls else "stop")
