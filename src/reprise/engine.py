"""Model engines: the boundary between a prompt step and an LLM provider."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Protocol, runtime_checkable

from loguru import logger
from republic import LLM, Tool

from reprise.config import Settings, get_settings, validate_model_name
from reprise.errors import PromptError
from reprise.types import StepRequest, StepResponse, ToolCall


@runtime_checkable
class ModelEngine(Protocol):
    async def generate(self, request: StepRequest) -> StepResponse: ...


def _not_dispatched(**_: Any) -> Any:
    raise PromptError("Tools are dispatched by the step loop, not by the model client")


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("engine.tool_call.bad_arguments raw={!r}", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


class RepublicEngine:
    """Engine backed by a republic ``LLM`` client using OpenAI-style responses."""

    def __init__(self, model: str, settings: Settings | None = None, *, llm: Any | None = None) -> None:
        self._settings = settings or get_settings()
        self.model = validate_model_name(model)
        self._llm = llm or LLM(
            model=self.model,
            api_key=self._settings.api_key,
            api_base=self._settings.api_base,
        )

    def _tools(self, request: StepRequest) -> list[Tool]:
        return [
            Tool(
                name=spec.name,
                description=spec.description,
                parameters=spec.parameters,
                handler=_not_dispatched,
            )
            for spec in request.tools
        ]

    async def generate(self, request: StepRequest) -> StepResponse:
        max_tokens = request.max_tokens if request.max_tokens is not None else self._settings.max_tokens
        response = await asyncio.to_thread(
            self._llm.chat.raw,
            messages=request.prompt_messages(),
            tools=self._tools(request),
            max_tokens=max_tokens,
        )
        tool_calls = self._extract_tool_calls(response)
        return StepResponse(
            text=self._extract_text(response),
            tool_calls=tool_calls,
            finish_reason=self._extract_finish_reason(response, tool_calls),
        )

    def _message(self, response: Any) -> Any:
        choices = getattr(response, "choices", None)
        if not choices:
            return None
        return getattr(choices[0], "message", None)

    def _extract_text(self, response: Any) -> str:
        if isinstance(response, str):
            return response
        message = self._message(response)
        if message is None:
            return ""
        return getattr(message, "content", "") or ""

    def _extract_tool_calls(self, response: Any) -> list[ToolCall]:
        message = self._message(response)
        if message is None:
            return []
        calls: list[ToolCall] = []
        for idx, tool_call in enumerate(getattr(message, "tool_calls", None) or []):
            function = getattr(tool_call, "function", None)
            if function is None:
                continue
            call_id = getattr(tool_call, "id", None) or f"call_{idx}"
            calls.append(
                ToolCall(
                    id=call_id,
                    name=getattr(function, "name", ""),
                    args=_parse_arguments(getattr(function, "arguments", "")),
                )
            )
        return calls

    def _extract_finish_reason(self, response: Any, tool_calls: list[ToolCall]) -> str:
        choices = getattr(response, "choices", None)
        reason = getattr(choices[0], "finish_reason", None) if choices else None
        if reason in (None, "tool_calls"):
            return "tool-calls" if tool_calls else "stop"
        return str(reason)


def resolve_engine(model: ModelEngine | str | None, settings: Settings | None = None) -> ModelEngine:
    """Return ``model`` when it is already an engine, else build a republic engine for it."""
    resolved = settings or get_settings()
    if model is None:
        return RepublicEngine(resolved.require_model(), resolved)
    if isinstance(model, str):
        return RepublicEngine(model, resolved)
    if isinstance(model, ModelEngine):
        return model
    raise PromptError(f"Unsupported model value: {model!r}")
