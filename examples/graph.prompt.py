"""Task graph plugin with a prepare hook that trims tools once the graph is done.

Run with: reprise run examples/graph.prompt.py
"""

CONFIG = {"model": "openai:gpt-4o-mini", "max_steps": 15}


def main(prompt):
    graph, _ = prompt.declare_task_graph([
        {"id": "outline", "title": "Outline", "description": "List three sections for a post on tide pools"},
        {"id": "draft", "title": "Draft", "description": "Write one paragraph per section", "dependencies": ["outline"]},
        {"id": "title", "title": "Title", "description": "Pick a title for the draft", "dependencies": ["draft"]},
    ])

    def finish_when_done(ctx):
        if graph and all(task.status in ("completed", "failed") for task in graph):
            return {"active_tools": [], "variables": {"note": "Every task is finished. Reply with the final post."}}
        return None

    prompt.declare_hook(finish_when_done)
    prompt.ask("Work through the task graph, then reply with the finished post.")
