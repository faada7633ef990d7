"""Step loop: drives a prompt against a model engine and dispatches tool calls."""

from __future__ import annotations

import json
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from reprise.agents import AgentResult
from reprise.config import Settings, get_settings
from reprise.engine import ModelEngine, resolve_engine
from reprise.errors import PromptError
from reprise.history import CompressedHistory, StepHistoryCompressor
from reprise.plugins import PluginManager
from reprise.prompt import DescribeFunction, Prompt
from reprise.tools.composite import SubCallResult
from reprise.types import LastToolInfo, Message, RawStep, StepResponse, ToolCall, to_jsonable

_CURRENT_RUN: ContextVar[str] = ContextVar("reprise_run", default="-")


def current_run() -> str:
    """Id of the run executing in this context, ``-`` outside of one."""
    return _CURRENT_RUN.get()


def split_agent_steps(output: Any) -> tuple[Any, Any]:
    """Separate what the model sees from nested agent step logs."""
    if isinstance(output, AgentResult):
        return to_jsonable(output.model_view()), output.steps
    if isinstance(output, list) and output and all(isinstance(item, SubCallResult) for item in output):
        steps = [
            {"index": index, "name": item.name, "steps": item.steps}
            for index, item in enumerate(output)
            if item.steps is not None
        ]
        return [to_jsonable(item.to_dict(include_steps=False)) for item in output], steps or None
    return to_jsonable(output), None


def render_tool_content(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


@dataclass
class RunResult:
    text: str
    prompt: Prompt
    steps: list[RawStep] = field(default_factory=list)

    def history(self) -> CompressedHistory:
        return StepHistoryCompressor().compress(self.steps)


class StepLoop:
    """Runs prepare-step, model call, and tool dispatch until the model stops."""

    def __init__(self, prompt: Prompt, *, max_steps: int | None = None) -> None:
        if prompt.engine is None:
            raise PromptError("Prompt has no model engine")
        self.prompt = prompt
        self.engine: ModelEngine = prompt.engine
        self.max_steps = max_steps or prompt.max_steps

    async def run(self) -> RunResult:
        run_id = uuid.uuid4().hex[:8]
        token = _CURRENT_RUN.set(run_id)
        try:
            return await self._run()
        finally:
            _CURRENT_RUN.reset(token)

    async def _run(self) -> RunResult:
        prompt = self.prompt
        text = ""
        for step_number in range(self.max_steps):
            request = await prompt.prepare_step(step_number)
            logger.info(
                "prompt.step.start step={} messages={} tools={}",
                step_number,
                len(request.messages),
                len(request.active_tools),
            )
            response = await self.engine.generate(request)
            raw = RawStep(
                prompt=request.prompt_messages(),
                content=response.content(),
                finish_reason=response.finish_reason,
                active_tools=request.active_tools,
                state=prompt.state.snapshot(),
            )
            prompt.steps.append(raw)
            prompt.messages.append(self._assistant_message(response))
            text = response.text
            logger.info(
                "prompt.step.end step={} finish_reason={} tool_calls={}",
                step_number,
                response.finish_reason,
                len(response.tool_calls),
            )
            if not response.tool_calls:
                break
            for call in response.tool_calls:
                await self._dispatch(call, request.active_tools, raw)
        else:
            logger.warning("prompt.max_steps reached max_steps={}", self.max_steps)
        return RunResult(text=text, prompt=prompt, steps=list(prompt.steps))

    def _assistant_message(self, response: StepResponse) -> Message:
        message: Message = {"role": "assistant", "content": response.text}
        if response.tool_calls:
            message["tool_calls"] = [call.to_message_part() for call in response.tool_calls]
        return message

    async def _dispatch(self, call: ToolCall, active_tools: list[str], raw: RawStep) -> None:
        prompt = self.prompt
        if call.name not in active_tools or not prompt.tools.has(call.name):
            logger.warning("tool.call.unknown name={}", call.name)
            output: Any = {"error": f"Unknown tool: {call.name}"}
            agent_steps = None
        else:
            outcome = await prompt.tools.execute(call.name, kwargs=call.args)
            output, agent_steps = split_agent_steps(outcome.output)

        prompt.messages.append({"role": "tool", "tool_call_id": call.id, "content": render_tool_content(output)})
        prompt.last_tool = LastToolInfo(name=call.name, args=call.args, output=output)
        processed: dict[str, Any] = {"tool_call_id": call.id, "name": call.name, "output": output}
        if agent_steps is not None:
            processed["agent_steps"] = agent_steps
        raw.tool_results.append(processed)


async def run_prompt(
    describe: DescribeFunction,
    *,
    model: ModelEngine | str | None = None,
    settings: Settings | None = None,
    max_steps: int | None = None,
    plugin_manager: PluginManager | None = None,
) -> RunResult:
    """Run ``describe`` as a stateful prompt to completion.

    Args:
        describe: Called with the prompt before every step.
        model: An engine or a ``provider:model`` string; defaults to settings.
        settings: Settings to use instead of the environment.
        max_steps: Overrides ``settings.max_steps``.
        plugin_manager: Plugins contributing prompt methods; the built-ins by default.

    Returns:
        The final text, the prompt, and its raw step log.
    """
    resolved = settings or get_settings()
    engine = resolve_engine(model, resolved)
    prompt = Prompt(
        describe,
        engine=engine,
        settings=resolved,
        plugin_manager=plugin_manager or PluginManager(),
        max_steps=max_steps,
    )
    return await StepLoop(prompt).run()
