"""Built-in task list plugin.

Adds ``prompt.declare_task_list(tasks)``: persistent task state, tools to move
tasks through their lifecycle, and a ``task_list`` system section showing the
current status on every step.

Example:
    async def main(prompt):
        prompt.declare_task_list([
            {"id": "1", "name": "Research the topic"},
            {"id": "2", "name": "Write implementation"},
        ])
        prompt.ask("Complete the tasks. Use start_task and complete_task.")
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field

from reprise.plugins import hookimpl

if TYPE_CHECKING:
    from reprise.prompt import Prompt

TASK_LIST_STATE = "task_list"
TASK_LIST_SECTION = "task_list"

type TaskStatus = Literal["pending", "in_progress", "completed", "failed"]


class Task(BaseModel):
    id: str
    name: str
    status: TaskStatus = "pending"
    note: str | None = None


class TaskIdInput(BaseModel):
    task_id: str = Field(description="The ID of the task")


class FailTaskInput(TaskIdInput):
    reason: str = Field(description="Why the task could not be completed")


class TaskResult(BaseModel):
    success: bool
    task_id: str
    message: str


def render_task_list(tasks: list[Task]) -> str:
    def section(title: str, status: TaskStatus) -> str:
        selected = [task for task in tasks if task.status == status]
        lines = "\n".join(f"  - [{task.id}] {task.name}" for task in selected) or "  (none)"
        return f"### {title} ({len(selected)})\n{lines}"

    return "\n\n".join([
        "## Current Task Status",
        section("In Progress", "in_progress"),
        section("Pending", "pending"),
        section("Completed", "completed"),
        section("Failed", "failed"),
        'Use "start_task" to begin a pending task and "complete_task" when finished.',
    ])


def _transition(
    tasks: list[Task],
    task_id: str,
    status: TaskStatus,
    note: str | None = None,
) -> tuple[list[Task] | None, TaskResult]:
    task = next((item for item in tasks if item.id == task_id), None)
    if task is None:
        return None, TaskResult(success=False, task_id=task_id, message=f'Task with ID "{task_id}" not found')
    if task.status == status:
        return None, TaskResult(success=True, task_id=task_id, message=f'Task "{task.name}" is already {status}')
    if task.status in ("completed", "failed"):
        return None, TaskResult(success=False, task_id=task_id, message=f'Task "{task.name}" is already {task.status}')
    changed = task.model_copy(update={"status": status, "note": note})
    updated = [changed if item.id == task_id else item for item in tasks]
    verb = {"in_progress": "Started", "completed": "Completed", "failed": "Failed"}.get(status, "Updated")
    return updated, TaskResult(success=True, task_id=task_id, message=f'{verb} task: "{task.name}"')


def declare_task_list(
    prompt: Prompt,
    tasks: Iterable[Task | dict[str, Any]] = (),
) -> tuple[list[Task], Callable[[Any], None]]:
    initial = [task if isinstance(task, Task) else Task.model_validate(task) for task in tasks]
    current, set_tasks = prompt.declare_state(TASK_LIST_STATE, initial)

    def move(task_id: str, status: TaskStatus, note: str | None = None) -> TaskResult:
        updated, result = _transition(prompt.state.get(TASK_LIST_STATE) or [], task_id, status, note)
        if updated is not None:
            set_tasks(updated)
        return result

    prompt.declare_tool(
        "start_task",
        "Mark a task as started/in-progress. Call this before beginning work on a task.",
        TaskIdInput,
        lambda args: move(args.task_id, "in_progress"),
    )
    prompt.declare_tool(
        "complete_task",
        "Mark a task as completed. Call this when you have finished work on a task.",
        TaskIdInput,
        lambda args: move(args.task_id, "completed"),
    )
    prompt.declare_tool(
        "fail_task",
        "Mark a task as failed when it cannot be completed.",
        FailTaskInput,
        lambda args: move(args.task_id, "failed", args.reason),
    )
    prompt.declare_system(TASK_LIST_SECTION, render_task_list(current))
    return current, set_tasks


@hookimpl
def prompt_methods(prompt: Prompt) -> dict[str, Callable[..., Any]]:
    return {"declare_task_list": lambda tasks=(): declare_task_list(prompt, tasks)}
