from typing import Any

import pytest
from pydantic import BaseModel

from reprise.agents import AgentResult
from reprise.definitions import DefinitionKind
from reprise.errors import DefinitionError
from reprise.tools.callbacks import ToolOptions
from reprise.tools.composite import (
    CompositeDispatcher,
    SubAgentDefinition,
    build_composite_model,
    build_enhanced_description,
    sub_agent,
    sub_tool,
)


class PathInput(BaseModel):
    path: str


class WriteInput(BaseModel):
    path: str
    content: str


def _file_tools(files: dict[str, str]) -> list[Any]:
    def write(args: WriteInput) -> str:
        files[args.path] = args.content
        return f"wrote {args.path}"

    def read(args: PathInput) -> str:
        if args.path not in files:
            raise FileNotFoundError(f"no such file: {args.path}")
        return files[args.path]

    return [
        sub_tool("write", "Write to file", WriteInput, write),
        sub_tool("read", "Read a file", PathInput, read),
    ]


@pytest.mark.asyncio
async def test_batch_runs_in_order() -> None:
    files: dict[str, str] = {}
    dispatcher = CompositeDispatcher("file", _file_tools(files))

    results = await dispatcher.dispatch({
        "calls": [
            {"name": "write", "args": {"path": "a.txt", "content": "hello"}},
            {"name": "read", "args": {"path": "a.txt"}},
        ]
    })

    assert [item.to_dict() for item in results] == [
        {"name": "write", "result": "wrote a.txt"},
        {"name": "read", "result": "hello"},
    ]


@pytest.mark.asyncio
async def test_failures_are_isolated_per_item() -> None:
    dispatcher = CompositeDispatcher("file", _file_tools({"b.txt": "bee"}))

    results = await dispatcher.dispatch({
        "calls": [
            {"name": "read", "args": {"path": "missing.txt"}},
            {"name": "delete", "args": {"path": "b.txt"}},
            {"name": "read", "args": {}},
            {"name": "read", "args": {"path": "b.txt"}},
        ]
    })

    assert [item.ok for item in results] == [False, False, False, True]
    assert results[0].error == "no such file: missing.txt"
    assert results[1].error == "Unknown sub-tool: delete"
    assert "invalid arguments" in (results[2].error or "")
    assert results[3].result == "bee"


@pytest.mark.asyncio
async def test_sub_tool_callbacks_apply() -> None:
    def explode(args: PathInput) -> str:
        raise RuntimeError("disk full")

    subs = [
        sub_tool("cached", "Cached read", PathInput, explode, ToolOptions(before_call=lambda args: "from cache")),
        sub_tool("safe", "Safe read", PathInput, explode, ToolOptions(on_error=lambda args, error: "fallback")),
    ]
    results = await CompositeDispatcher("ops", subs).dispatch({
        "calls": [{"name": "cached", "args": {"path": "x"}}, {"name": "safe", "args": {"path": "x"}}]
    })

    assert [item.to_dict() for item in results] == [
        {"name": "cached", "result": "from cache"},
        {"name": "safe", "result": "fallback"},
    ]


@pytest.mark.asyncio
async def test_error_is_logged(monkeypatch: pytest.MonkeyPatch) -> None:
    logs: list[str] = []

    def _capture(message: str, *args: object) -> None:
        logs.append(message)

    monkeypatch.setattr("reprise.tools.composite.logger.error", _capture)
    dispatcher = CompositeDispatcher("file", _file_tools({}))
    await dispatcher.dispatch({"calls": [{"name": "read", "args": {"path": "nope"}}]})

    assert logs == ["composite.call.error owner={} name={} error={}"]


@pytest.mark.asyncio
async def test_sub_agents_carry_their_steps() -> None:
    async def run_agent(sub: SubAgentDefinition, args: BaseModel) -> AgentResult:
        if sub.name == "broken":
            raise RuntimeError("agent crashed")
        return AgentResult(response=f"{sub.name} on {args.path}", steps=[{"output": {"content": []}}])

    subs = [
        sub_agent("reviewer", "Reviews a file", PathInput, lambda args, child: None),
        sub_agent("broken", "Always fails", PathInput, lambda args, child: None),
    ]
    dispatcher = CompositeDispatcher("team", subs, kind=DefinitionKind.AGENT, run_agent=run_agent)
    results = await dispatcher.dispatch({
        "calls": [{"name": "reviewer", "args": {"path": "a.py"}}, {"name": "broken", "args": {"path": "b.py"}}]
    })

    assert results[0].to_dict() == {
        "name": "reviewer",
        "response": "reviewer on a.py",
        "steps": [{"output": {"content": []}}],
    }
    assert results[0].to_dict(include_steps=False) == {"name": "reviewer", "response": "reviewer on a.py"}
    assert results[1].to_dict() == {"name": "broken", "error": "agent crashed"}


def test_empty_or_duplicate_subs_are_rejected() -> None:
    with pytest.raises(DefinitionError):
        CompositeDispatcher("file", [])

    duplicate = [sub_tool("read", "a", PathInput, print), sub_tool("read", "b", PathInput, print)]
    with pytest.raises(DefinitionError):
        CompositeDispatcher("file", duplicate)


def test_schema_is_tagged_union_over_sub_names() -> None:
    model = build_composite_model("file", _file_tools({}), "sub-tool")
    schema = model.model_json_schema()

    items = schema["properties"]["calls"]["items"]
    assert items["discriminator"]["propertyName"] == "name"
    assert sorted(items["discriminator"]["mapping"]) == ["read", "write"]

    valid = model.model_validate({"calls": [{"name": "read", "args": {"path": "a"}}]})
    assert valid.calls[0].args.path == "a"


def test_enhanced_description_lists_sub_items() -> None:
    text = build_enhanced_description("File operations", _file_tools({}), "sub-tools")
    assert text == "File operations\n\nAvailable sub-tools:\n  - write: Write to file\n  - read: Read a file"
