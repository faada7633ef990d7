"""before_call / on_success / on_error protocol shared by tools and sub-tools."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger
from pydantic import BaseModel, ValidationError

type ToolCallback = Callable[..., Any | Awaitable[Any]]


@dataclass(frozen=True)
class ToolOptions:
    """Optional hooks around one tool's execution.

    Any hook that returns a value other than ``None`` replaces the output at that
    point: ``before_call`` skips the executor entirely, ``on_success`` rewrites a
    successful output and ``on_error`` recovers from a failure.
    """

    before_call: ToolCallback | None = None
    on_success: ToolCallback | None = None
    on_error: ToolCallback | None = None
    response_model: type[BaseModel] | None = None


@dataclass(frozen=True)
class CallOutcome:
    output: Any
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def format_output(output: Any, options: ToolOptions | None) -> Any:
    """Validate ``output`` against the response model when one is configured."""
    if options is None or options.response_model is None:
        return output
    if isinstance(output, options.response_model):
        return output.model_dump(mode="json")
    if isinstance(output, str):
        return output
    try:
        return options.response_model.model_validate(output).model_dump(mode="json")
    except ValidationError as exc:
        logger.warning("tool.response.invalid model={} errors={}", options.response_model.__name__, exc.error_count())
        return {"error": f"response validation failed: {exc}", "output": output}


async def execute_with_callbacks(
    execute: Callable[[Any], Any],
    args: Any,
    options: ToolOptions | None = None,
) -> CallOutcome:
    """Run ``execute(args)`` wrapped in the optional callback hooks."""
    hooks = options or ToolOptions()
    try:
        if hooks.before_call is not None:
            early = await maybe_await(hooks.before_call(args))
            if early is not None:
                return CallOutcome(format_output(early, options))

        output = await maybe_await(execute(args))

        if hooks.on_success is not None:
            replaced = await maybe_await(hooks.on_success(args, output))
            if replaced is not None:
                output = replaced
        return CallOutcome(format_output(output, options))
    except Exception as exc:
        message = str(exc) or exc.__class__.__name__
        error_output: Any = {"error": message}
        if hooks.on_error is not None:
            recovered = await maybe_await(hooks.on_error(args, error_output))
            if recovered is not None:
                return CallOutcome(format_output(recovered, options))
        return CallOutcome(error_output, error=message)
