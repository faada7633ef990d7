"""Minimal prompt: one system section, one variable, one question.

Run with: reprise run examples/hello.prompt.py --model openai:gpt-4o-mini
"""


def main(prompt):
    prompt.declare_system("role", "You are a friendly assistant. Answer in one sentence.")
    name = prompt.declare_variable("name", "Alice")
    prompt.ask(f"Greet {name.value} and tell them one fun fact about octopuses.")
