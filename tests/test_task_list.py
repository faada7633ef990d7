import pytest

from reprise.config import Settings
from reprise.plugins import PluginManager
from reprise.plugins.task_list import Task, render_task_list
from reprise.prompt import Prompt
from reprise.runner import run_prompt
from reprise.testing import ScriptedEngine, tool_call

TASKS = [{"id": "1", "name": "Research"}, {"id": "2", "name": "Write"}]


def describe(prompt: Prompt) -> None:
    prompt.declare_task_list(TASKS)
    prompt.ask("Work through the tasks")


@pytest.mark.asyncio
async def test_task_list_tools_update_state_and_system(settings: Settings) -> None:
    engine = ScriptedEngine([
        tool_call("start_task", {"task_id": "1"}),
        tool_call("complete_task", {"task_id": "1"}),
        tool_call("fail_task", {"task_id": "2", "reason": "no time"}),
        tool_call("complete_task", {"task_id": "9"}),
        "All done",
    ])

    result = await run_prompt(describe, model=engine, settings=settings)

    tasks = result.prompt.state.get("task_list")
    assert [(task.id, task.status) for task in tasks] == [("1", "completed"), ("2", "failed")]
    assert tasks[1].note == "no time"
    assert engine.requests[0].active_tools == ["start_task", "complete_task", "fail_task"]
    assert "### Pending (2)" in (engine.requests[0].system or "")
    assert "### In Progress (1)\n  - [1] Research" in (engine.requests[1].system or "")
    assert result.steps[0].tool_results[0]["output"] == {
        "success": True,
        "task_id": "1",
        "message": 'Started task: "Research"',
    }
    assert result.steps[3].tool_results[0]["output"]["success"] is False
    assert result.text == "All done"


@pytest.mark.asyncio
async def test_completed_task_cannot_restart(settings: Settings) -> None:
    engine = ScriptedEngine([
        tool_call("complete_task", {"task_id": "1"}),
        tool_call("start_task", {"task_id": "1"}),
        "ok",
    ])

    result = await run_prompt(describe, model=engine, settings=settings)

    assert result.steps[1].tool_results[0]["output"]["message"] == 'Task "Research" is already completed'


def test_method_needs_plugin_manager(settings: Settings) -> None:
    prompt = Prompt(settings=settings)
    with pytest.raises(AttributeError):
        prompt.declare_task_list(TASKS)

    with_plugins = Prompt(settings=settings, plugin_manager=PluginManager())
    tasks, _ = with_plugins.declare_task_list(TASKS)
    assert [task.name for task in tasks] == ["Research", "Write"]


def test_render_task_list_groups_by_status() -> None:
    text = render_task_list([Task(id="1", name="A", status="completed"), Task(id="2", name="B")])
    assert "### Completed (1)\n  - [1] A" in text
    assert "### Pending (1)\n  - [2] B" in text
    assert "### In Progress (0)\n  (none)" in text
