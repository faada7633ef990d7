from types import SimpleNamespace
from typing import Any

import pytest

from reprise.config import Settings
from reprise.engine import RepublicEngine, resolve_engine
from reprise.errors import InvalidModelFormatError, ModelNotConfiguredError
from reprise.testing import ScriptedEngine, tool_call
from reprise.types import StepRequest, ToolSpec


class FakeChat:
    def __init__(self, response: Any) -> None:
        self.response = response
        self.calls: list[dict[str, Any]] = []

    def raw(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        return self.response


def _response(content: str | None, tool_calls: list[Any] | None = None, finish_reason: str = "stop") -> Any:
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason=finish_reason)])


def _request(**overrides: Any) -> StepRequest:
    values: dict[str, Any] = {
        "system": "<role>\nX\n</role>",
        "messages": [{"role": "user", "content": "hi"}],
        "tools": [ToolSpec("search", "Search", {"type": "object", "properties": {}})],
        "active_tools": ["search"],
        "step_number": 0,
        "max_tokens": 128,
    }
    values.update(overrides)
    return StepRequest(**values)


@pytest.mark.asyncio
async def test_republic_engine_sends_system_first_and_parses_text(settings: Settings) -> None:
    chat = FakeChat(_response("hello"))
    engine = RepublicEngine("openai:test-model", settings, llm=SimpleNamespace(chat=chat))

    response = await engine.generate(_request())

    assert response.text == "hello"
    assert response.tool_calls == []
    assert response.finish_reason == "stop"
    sent = chat.calls[0]
    assert sent["messages"][0] == {"role": "system", "content": "<role>\nX\n</role>"}
    assert sent["max_tokens"] == 128
    assert [tool.name for tool in sent["tools"]] == ["search"]


@pytest.mark.asyncio
async def test_republic_engine_parses_tool_calls(settings: Settings) -> None:
    call = SimpleNamespace(id="call_9", function=SimpleNamespace(name="search", arguments='{"query": "cats"}'))
    broken = SimpleNamespace(id=None, function=SimpleNamespace(name="search", arguments="{not json"))
    chat = FakeChat(_response(None, [call, broken], finish_reason="tool_calls"))
    engine = RepublicEngine("openai:test-model", settings, llm=SimpleNamespace(chat=chat))

    response = await engine.generate(_request())

    assert response.text == ""
    assert response.finish_reason == "tool-calls"
    assert [(c.id, c.name, c.args) for c in response.tool_calls] == [
        ("call_9", "search", {"query": "cats"}),
        ("call_1", "search", {}),
    ]


def test_republic_engine_rejects_bad_model_format(settings: Settings) -> None:
    with pytest.raises(InvalidModelFormatError):
        RepublicEngine("gpt-4o", settings, llm=object())


def test_resolve_engine_passes_engines_through(settings: Settings) -> None:
    engine = ScriptedEngine([])
    assert resolve_engine(engine, settings) is engine


def test_resolve_engine_requires_a_model() -> None:
    with pytest.raises(ModelNotConfiguredError):
        resolve_engine(None, Settings(_env_file=None))


@pytest.mark.asyncio
async def test_scripted_engine_consumes_up_to_each_tool_call() -> None:
    engine = ScriptedEngine(["Let me ", "check", tool_call("lookup", {"id": 1}), "Done"])

    first = await engine.generate(_request())
    second = await engine.generate(_request())
    third = await engine.generate(_request())

    assert (first.text, first.finish_reason) == ("Let me check", "tool-calls")
    assert first.tool_calls[0].name == "lookup"
    assert first.tool_calls[0].args == {"id": 1}
    assert (second.text, second.finish_reason, second.tool_calls) == ("Done", "stop", [])
    assert third.text == ""
    assert len(engine.requests) == 3


def test_scripted_engine_rejects_unknown_items() -> None:
    with pytest.raises(ValueError):
        ScriptedEngine([{"type": "image"}])
