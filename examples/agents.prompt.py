"""A composite agent with structured responses.

Run with: reprise run examples/agents.prompt.py --model openai:gpt-4o-mini
"""

from pydantic import BaseModel

from reprise import AgentOptions, sub_agent


class TopicInput(BaseModel):
    topic: str


class Summary(BaseModel):
    headline: str
    points: list[str]


def research(args, child):
    child.ask(f"List three key facts about {args.topic}.")


def critique(args, child):
    child.ask(f"Name the most common misconception about {args.topic}.")


def main(prompt):
    prompt.declare_system("role", "You coordinate specialists and write a short report.")
    prompt.declare_agent(
        "specialists",
        "Delegate work to specialists",
        [
            sub_agent("researcher", "Collects facts", TopicInput, research, AgentOptions(response_model=Summary)),
            sub_agent("critic", "Finds misconceptions", TopicInput, critique, AgentOptions(system="Be blunt.")),
        ],
    )
    prompt.ask("Write a short report about honeybees using your specialists.")
