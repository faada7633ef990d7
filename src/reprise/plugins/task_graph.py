"""Built-in task graph plugin.

Adds ``prompt.declare_task_graph(tasks)``: a dependency-aware set of tasks kept
in state, tools to (re)generate the graph, list ready tasks and update task
status, and a ``task_graph`` system section summarising progress.

Completing a task unblocks downstream tasks whose dependencies are all
completed, and its ``output_result`` is appended to their ``input_context``.

Example:
    async def main(prompt):
        prompt.declare_task_graph([
            {"id": "research", "title": "Research", "description": "Collect sources", "unblocks": ["write"]},
            {"id": "write", "title": "Write", "description": "Write the report"},
        ])
        prompt.ask("Work through the graph. Use get_unblocked_tasks to find ready tasks.")
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, Literal

from loguru import logger
from pydantic import BaseModel, Field

from reprise.plugins import hookimpl
from reprise.tools.registry import EmptyInput

if TYPE_CHECKING:
    from reprise.prompt import Prompt

TASK_GRAPH_STATE = "task_graph"
TASK_GRAPH_SECTION = "task_graph"

type NodeStatus = Literal["pending", "in_progress", "completed", "failed"]


class TaskSpec(BaseModel):
    id: str = Field(description="Unique task identifier")
    title: str = Field(description="Concise task name")
    description: str = Field(default="", description="Detailed execution instructions")
    dependencies: list[str] = Field(default_factory=list, description="IDs of upstream tasks that must complete first")
    unblocks: list[str] = Field(default_factory=list, description="IDs of downstream tasks this task unblocks")
    required_capabilities: list[str] = Field(
        default_factory=list, description='Capabilities needed, e.g. ["web-search"]'
    )
    assigned_subagent: str | None = Field(default=None, description="Sub-agent to handle this task")
    input_context: str | None = Field(default=None, description="Context from upstream tasks")


class TaskNode(TaskSpec):
    status: NodeStatus = "pending"
    output_result: str | None = None


class GenerateGraphInput(BaseModel):
    tasks: list[TaskSpec]


class UpdateStatusInput(BaseModel):
    task_id: str = Field(description="The ID of the task to update")
    status: Literal["in_progress", "completed", "failed"] = Field(description="New status for the task")
    output_result: str | None = Field(default=None, description="Summary or artifact produced on completion")


class GraphResult(BaseModel):
    success: bool
    message: str
    task_id: str | None = None
    task: TaskNode | None = None
    tasks: list[TaskNode] | None = None
    newly_unblocked: list[TaskNode] | None = None


def detect_cycles(tasks: list[TaskNode]) -> list[str]:
    """IDs of tasks that sit on or behind a dependency cycle (Kahn's algorithm)."""
    ids = {task.id for task in tasks}
    in_degree = {task.id: 0 for task in tasks}
    downstream: dict[str, list[str]] = {task.id: [] for task in tasks}
    for task in tasks:
        for dep in task.dependencies:
            if dep in ids:
                downstream[dep].append(task.id)
                in_degree[task.id] += 1

    queue = deque(task_id for task_id, degree in in_degree.items() if degree == 0)
    ordered: set[str] = set()
    while queue:
        node = queue.popleft()
        ordered.add(node)
        for neighbor in downstream[node]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)
    return [task.id for task in tasks if task.id not in ordered]


def validate_task_graph(tasks: list[TaskNode]) -> list[str]:
    errors: list[str] = []
    seen: set[str] = set()
    for task in tasks:
        if task.id in seen:
            errors.append(f'Duplicate task ID: "{task.id}"')
        seen.add(task.id)

    for task in tasks:
        for dep in task.dependencies:
            if dep not in seen:
                errors.append(f'Task "{task.id}" depends on unknown task "{dep}"')
        for item in task.unblocks:
            if item not in seen:
                errors.append(f'Task "{task.id}" unblocks unknown task "{item}"')

    cycle = detect_cycles(tasks)
    if cycle:
        errors.append(f"Circular dependency detected involving tasks: {', '.join(cycle)}")
    return errors


def normalize_task_graph(tasks: list[TaskNode]) -> list[TaskNode]:
    """Make ``dependencies`` and ``unblocks`` mirror each other."""
    copies = [task.model_copy(deep=True) for task in tasks]
    nodes: dict[str, TaskNode] = {}
    for task in copies:
        nodes.setdefault(task.id, task)
    for task in copies:
        for dep in task.dependencies:
            upstream = nodes.get(dep)
            if upstream is not None and task.id not in upstream.unblocks:
                upstream.unblocks.append(task.id)
        for item in task.unblocks:
            downstream = nodes.get(item)
            if downstream is not None and task.id not in downstream.dependencies:
                downstream.dependencies.append(task.id)
    return copies


def unblocked_tasks(tasks: list[TaskNode]) -> list[TaskNode]:
    """Pending tasks whose dependencies are all completed."""
    completed = {task.id for task in tasks if task.status == "completed"}
    return [task for task in tasks if task.status == "pending" and all(dep in completed for dep in task.dependencies)]


def render_task_graph(tasks: list[TaskNode]) -> str:
    def line(task: TaskNode) -> str:
        deps = f" (depends on: {', '.join(task.dependencies)})" if task.dependencies else ""
        caps = f" [{', '.join(task.required_capabilities)}]" if task.required_capabilities else ""
        agent = f" -> {task.assigned_subagent}" if task.assigned_subagent else ""
        return f"  - [{task.id}] {task.title}{deps}{caps}{agent}"

    def section(title: str, nodes: list[TaskNode]) -> str:
        return f"### {title} ({len(nodes)})\n" + ("\n".join(line(node) for node in nodes) or "  (none)")

    ready = unblocked_tasks(tasks)
    ready_ids = {task.id for task in ready}
    parts = ["## Task Graph Status", section("In Progress", [t for t in tasks if t.status == "in_progress"])]
    if ready:
        parts.append(section("Ready to Start", ready))
    parts.append(section("Blocked / Pending", [t for t in tasks if t.status == "pending" and t.id not in ready_ids]))
    parts.append(section("Completed", [t for t in tasks if t.status == "completed"]))
    failed = [t for t in tasks if t.status == "failed"]
    if failed:
        parts.append(section("Failed", failed))
    parts.append('Use "get_unblocked_tasks" to find ready tasks and "update_task_status" to record progress.')
    return "\n\n".join(parts)


def _with_context(task: TaskNode, note: str) -> TaskNode:
    context = f"{task.input_context}\n\n{note}" if task.input_context else note
    return task.model_copy(update={"input_context": context})


def _update_status(tasks: list[TaskNode], args: UpdateStatusInput) -> tuple[list[TaskNode] | None, GraphResult]:
    task = next((item for item in tasks if item.id == args.task_id), None)
    if task is None:
        available = ", ".join(item.id for item in tasks)
        return None, GraphResult(
            success=False,
            task_id=args.task_id,
            message=f'Task "{args.task_id}" not found. Available IDs: {available}',
        )
    if task.status == "completed" and args.status != "completed":
        return None, GraphResult(
            success=False,
            task_id=task.id,
            task=task,
            message=f'Task "{task.title}" is already completed and cannot be changed to "{args.status}".',
        )
    if args.status == "in_progress":
        if task.status == "in_progress":
            return None, GraphResult(
                success=True, task_id=task.id, task=task, message=f'Task "{task.title}" is already in progress.'
            )
        completed = {item.id for item in tasks if item.status == "completed"}
        unmet = [dep for dep in task.dependencies if dep not in completed]
        if unmet:
            return None, GraphResult(
                success=False,
                task_id=task.id,
                task=task,
                message=f'Cannot start task "{task.title}". Unmet dependencies: {", ".join(unmet)}',
            )

    changes: dict[str, Any] = {"status": args.status}
    if args.output_result is not None:
        changes["output_result"] = args.output_result
    updated_task = task.model_copy(update=changes)
    updated = [updated_task if item.id == task.id else item for item in tasks]

    newly_unblocked: list[TaskNode] = []
    if args.status == "completed":
        completed = {item.id for item in updated if item.status == "completed"}
        newly_unblocked = [
            item
            for item in updated
            if item.status == "pending"
            and item.id in task.unblocks
            and all(dep in completed for dep in item.dependencies)
        ]
        if args.output_result:
            ready_ids = {item.id for item in newly_unblocked}
            note = f"[From {task.title}]: {args.output_result}"
            updated = [_with_context(item, note) if item.id in ready_ids else item for item in updated]

    if args.status == "completed" and newly_unblocked:
        titles = ", ".join(item.title for item in newly_unblocked)
        message = f'Task "{task.title}" completed. Newly unblocked: {titles}.'
    elif args.status == "completed":
        message = f'Task "{task.title}" completed.'
    elif args.status == "failed":
        message = f'Task "{task.title}" marked as failed.'
    else:
        message = f'Task "{task.title}" is now in progress.'
    return updated, GraphResult(
        success=True,
        task_id=task.id,
        task=updated_task,
        message=message,
        newly_unblocked=newly_unblocked or None,
    )


def declare_task_graph(
    prompt: Prompt,
    tasks: Iterable[TaskNode | dict[str, Any]] = (),
) -> tuple[list[TaskNode], Callable[[Any], None]]:
    initial = [task if isinstance(task, TaskNode) else TaskNode.model_validate(task) for task in tasks]
    if initial:
        initial = normalize_task_graph(initial)
        errors = validate_task_graph(initial)
        if errors:
            logger.warning("task_graph.invalid errors={}", "; ".join(errors))
    current, set_graph = prompt.declare_state(TASK_GRAPH_STATE, initial)

    def graph() -> list[TaskNode]:
        return prompt.state.get(TASK_GRAPH_STATE) or []

    def generate(args: GenerateGraphInput) -> GraphResult:
        nodes = normalize_task_graph([TaskNode(**spec.model_dump()) for spec in args.tasks])
        errors = validate_task_graph(nodes)
        if errors:
            return GraphResult(success=False, message=f"Invalid task graph: {'; '.join(errors)}")
        set_graph(nodes)
        ready = unblocked_tasks(nodes)
        return GraphResult(
            success=True,
            message=f"Task graph created with {len(nodes)} tasks. {len(ready)} task(s) are immediately ready.",
            tasks=nodes,
        )

    def ready(args: EmptyInput) -> GraphResult:
        nodes = graph()
        found = unblocked_tasks(nodes)
        if found:
            return GraphResult(success=True, message=f"{len(found)} task(s) are ready for execution.", tasks=found)
        in_progress = sum(1 for task in nodes if task.status == "in_progress")
        pending = sum(1 for task in nodes if task.status == "pending")
        if in_progress:
            message = f"No tasks are unblocked. {in_progress} task(s) are in progress."
        elif pending:
            message = f"No tasks are unblocked. {pending} task(s) are pending with unmet dependencies."
        else:
            message = "All tasks have been completed or failed. No tasks remaining."
        return GraphResult(success=True, message=message, tasks=[])

    def update(args: UpdateStatusInput) -> GraphResult:
        updated, result = _update_status(graph(), args)
        if updated is not None:
            set_graph(updated)
        return result

    prompt.declare_tool(
        "generate_task_graph",
        "Create or replace the task graph from a list of task nodes. "
        "Dependencies and unblocks are mirrored, and the graph is checked for cycles and unknown IDs.",
        GenerateGraphInput,
        generate,
    )
    prompt.declare_tool(
        "get_unblocked_tasks",
        "List pending tasks whose upstream dependencies are all completed. Use this to pick the next task.",
        EmptyInput,
        ready,
    )
    prompt.declare_tool(
        "update_task_status",
        'Update a task\'s status: "in_progress" to start it, "completed" when done (attach output_result), '
        'or "failed". Completing a task unblocks downstream tasks whose dependencies are met.',
        UpdateStatusInput,
        update,
    )
    if current:
        prompt.declare_system(TASK_GRAPH_SECTION, render_task_graph(current))
    return current, set_graph


@hookimpl
def prompt_methods(prompt: Prompt) -> dict[str, Callable[..., Any]]:
    return {"declare_task_graph": lambda tasks=(): declare_task_graph(prompt, tasks)}
