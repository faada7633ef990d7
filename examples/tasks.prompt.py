"""Task list plugin plus a composite file tool backed by an in-memory store.

Run with: reprise run examples/tasks.prompt.py
"""

from pydantic import BaseModel, Field

from reprise import sub_tool

CONFIG = {"model": "openai:gpt-4o-mini", "max_steps": 12}

FILES: dict[str, str] = {}


class WriteInput(BaseModel):
    path: str = Field(description="File path")
    content: str = Field(description="Text to write")


class ReadInput(BaseModel):
    path: str = Field(description="File path")


def write_file(args: WriteInput) -> str:
    FILES[args.path] = args.content
    return f"wrote {len(args.content)} characters to {args.path}"


def read_file(args: ReadInput) -> str:
    return FILES[args.path]


def main(prompt):
    prompt.declare_task_list([
        {"id": "1", "name": "Write a haiku about rain to rain.txt"},
        {"id": "2", "name": "Read rain.txt back and count its syllables"},
    ])
    prompt.declare_tool(
        "file",
        "In-memory file operations",
        [
            sub_tool("write", "Write text to a file", WriteInput, write_file),
            sub_tool("read", "Read a file", ReadInput, read_file),
        ],
    )

    def nudge_when_idle(ctx, modify):
        if ctx.last_tool is None and ctx.step_number > 0:
            modify("messages", [*ctx.messages, {"role": "user", "content": "Start the first pending task."}])

    prompt.declare_effect(nudge_when_idle, [prompt.state_ref("task_list")])
    prompt.ask("Work through the task list. Update task status as you go.")
