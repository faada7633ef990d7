"""Live tool collection for one prompt."""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Iterator, MutableMapping
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from pydantic import BaseModel, ValidationError

from reprise.definitions import DefinitionKind
from reprise.tools.callbacks import CallOutcome, ToolOptions, execute_with_callbacks
from reprise.types import ToolSpec


class EmptyInput(BaseModel):
    """Empty input payload."""


_CLOSERS = {'"': '"', "{": "}", "[": "]"}


def preview_argument(value: Any, width: int = 30) -> str:
    """One-line JSON rendering of an argument, cut to ``width`` with its bracket kept closed."""
    try:
        rendered = json.dumps(value, ensure_ascii=False)
    except TypeError:
        rendered = repr(value)
    if len(rendered) <= width:
        return rendered
    closer = _CLOSERS.get(rendered[0], "")
    return rendered[: max(width - 3 - len(closer), 1)] + "..." + closer


@dataclass(frozen=True)
class ToolDefinition:
    """Tool or agent metadata and runtime handle."""

    name: str
    description: str
    input_model: type[BaseModel]
    execute: Callable[[Any], Any]
    kind: DefinitionKind = DefinitionKind.TOOL
    options: ToolOptions | None = None
    parameters: dict[str, Any] = field(default_factory=dict)

    def spec(self) -> ToolSpec:
        parameters = self.parameters or self.input_model.model_json_schema()
        return ToolSpec(name=self.name, description=self.description, parameters=parameters)

    def validate(self, args: dict[str, Any]) -> BaseModel:
        return self.input_model.model_validate(args)


class ToolRegistry(MutableMapping[str, ToolDefinition]):
    """Declaration-ordered tools and agents, keyed by name."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, definition: ToolDefinition) -> None:
        self._tools[definition.name] = definition

    def has(self, name: str) -> bool:
        return name in self._tools

    def descriptors(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    def specs(self, active: list[str] | None = None) -> list[ToolSpec]:
        if active is None:
            return [definition.spec() for definition in self._tools.values()]
        return [definition.spec() for name, definition in self._tools.items() if name in active]

    def __getitem__(self, name: str) -> ToolDefinition:
        return self._tools[name]

    def __setitem__(self, name: str, definition: ToolDefinition) -> None:
        self._tools[name] = definition

    def __delitem__(self, name: str) -> None:
        del self._tools[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(self, name: str, *, kwargs: dict[str, Any]) -> CallOutcome:
        definition = self._tools.get(name)
        if definition is None:
            raise KeyError(name)

        rendered = ", ".join(f"{key}={preview_argument(value)}" for key, value in kwargs.items())
        logger.info("tool.call.start name={} args={{ {} }}", name, rendered)
        start = time.monotonic()
        try:
            try:
                args = definition.validate(kwargs)
            except ValidationError as exc:
                logger.warning("tool.call.invalid name={} errors={}", name, exc.error_count())
                return CallOutcome({"error": f"invalid arguments: {exc}"}, error=str(exc))
            outcome = await execute_with_callbacks(definition.execute, args, definition.options)
            if outcome.error is not None:
                logger.error("tool.call.error name={} error={}", name, outcome.error)
            return outcome
        finally:
            duration = time.monotonic() - start
            logger.info("tool.call.end name={} duration={:.3f}ms", name, duration * 1000)
