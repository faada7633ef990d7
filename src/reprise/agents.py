"""Agents: tools whose executor configures and runs a nested prompt."""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import BaseModel, ValidationError

from reprise.tools.callbacks import maybe_await

if TYPE_CHECKING:
    from reprise.engine import ModelEngine
    from reprise.prompt import Prompt

RESPONSE_FORMAT_SECTION = "response_format"
INSTRUCTIONS_SECTION = "instructions"
_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

type AgentExecute = Callable[[Any, Prompt], Any]


@dataclass(frozen=True)
class AgentOptions:
    """Per-agent overrides for the nested prompt.

    ``model`` is an engine or a ``provider:model`` string; the parent engine is
    shared when it is unset.
    """

    model: ModelEngine | str | None = None
    system: str | None = None
    response_model: type[BaseModel] | None = None
    max_steps: int | None = None


@dataclass
class AgentResult:
    """Final response of a nested run plus its step log."""

    response: Any
    steps: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None

    def model_view(self) -> Any:
        """What the calling model sees: the response, never the nested steps."""
        if self.error is None:
            return self.response
        return {"response": self.response, "error": self.error}


def response_instruction(response_model: type[BaseModel]) -> str:
    schema = json.dumps(response_model.model_json_schema(), indent=2, ensure_ascii=False)
    return (
        "Respond with a single JSON object that matches this JSON schema. "
        "Do not add any text outside the JSON object.\n"
        f"{schema}"
    )


def parse_response(text: str, response_model: type[BaseModel]) -> tuple[Any, str | None]:
    """Validate a JSON answer; on failure return the raw text and the reason."""
    candidate = text.strip()
    match = _FENCE_PATTERN.match(candidate)
    if match:
        candidate = match.group(1)
    try:
        parsed = response_model.model_validate_json(candidate)
    except ValidationError as exc:
        return text, f"response validation failed: {exc}"
    return parsed.model_dump(mode="json"), None


async def run_agent(
    parent: Prompt,
    name: str,
    execute: AgentExecute,
    args: Any,
    options: AgentOptions | None = None,
) -> AgentResult:
    """Run ``execute(args, child)`` as the describing function of a nested prompt."""
    from reprise.engine import resolve_engine
    from reprise.prompt import Prompt
    from reprise.runner import StepLoop

    opts = options or AgentOptions()
    engine = parent.engine if opts.model is None else resolve_engine(opts.model, parent.settings)

    async def describe(child: Prompt) -> None:
        if opts.system:
            child.declare_system(INSTRUCTIONS_SECTION, opts.system)
        if opts.response_model is not None:
            child.declare_system(RESPONSE_FORMAT_SECTION, response_instruction(opts.response_model))
        await maybe_await(execute(args, child))

    child = Prompt(
        describe,
        engine=engine,
        settings=parent.settings,
        plugin_manager=parent.plugin_manager,
        max_steps=opts.max_steps or parent.max_steps,
    )
    logger.info("agent.run.start name={} max_steps={}", name, child.max_steps)
    result = await StepLoop(child).run()
    steps = [step.to_dict() for step in result.steps]

    if opts.response_model is None:
        logger.info("agent.run.end name={} steps={}", name, len(steps))
        return AgentResult(response=result.text, steps=steps)

    response, error = parse_response(result.text, opts.response_model)
    if error is not None:
        logger.warning("agent.response.invalid name={} model={}", name, opts.response_model.__name__)
    logger.info("agent.run.end name={} steps={} structured={}", name, len(steps), error is None)
    return AgentResult(response=response, steps=steps, error=error)
