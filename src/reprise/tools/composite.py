"""Composite tools and agents: one advertised capability, a batch of named sub-calls."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Annotated, Any, Literal, Union

from loguru import logger
from pydantic import BaseModel, Field, ValidationError, create_model

from reprise.definitions import DefinitionKind
from reprise.errors import DefinitionError
from reprise.tools.callbacks import ToolOptions, execute_with_callbacks

if TYPE_CHECKING:
    from reprise.agents import AgentOptions, AgentResult


@dataclass(frozen=True)
class SubToolDefinition:
    name: str
    description: str
    input_model: type[BaseModel]
    execute: Callable[[Any], Any]
    options: ToolOptions | None = None


@dataclass(frozen=True)
class SubAgentDefinition:
    name: str
    description: str
    input_model: type[BaseModel]
    execute: Callable[..., Any]
    options: AgentOptions | None = None


type SubDefinition = SubToolDefinition | SubAgentDefinition


def sub_tool(
    name: str,
    description: str,
    input_model: type[BaseModel],
    execute: Callable[[Any], Any],
    options: ToolOptions | None = None,
) -> SubToolDefinition:
    """Describe one sub-tool of a composite tool.

    Example:
        prompt.declare_tool("file", "File operations", [
            sub_tool("write", "Write to file", WriteInput, write_file),
            sub_tool("read", "Read a file", ReadInput, read_file),
        ])
    """
    return SubToolDefinition(name, description, input_model, execute, options)


def sub_agent(
    name: str,
    description: str,
    input_model: type[BaseModel],
    execute: Callable[..., Any],
    options: AgentOptions | None = None,
) -> SubAgentDefinition:
    """Describe one sub-agent of a composite agent."""
    return SubAgentDefinition(name, description, input_model, execute, options)


class CompositeCall(BaseModel):
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class CompositeBatch(BaseModel):
    """Lenient view of a batch: per-item arguments are validated during dispatch."""

    calls: list[CompositeCall] = Field(default_factory=list)


@dataclass
class SubCallResult:
    name: str
    kind: DefinitionKind = DefinitionKind.TOOL
    result: Any = None
    response: Any = None
    error: str | None = None
    steps: list[dict[str, Any]] | None = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self, *, include_steps: bool = True) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name}
        if self.kind is DefinitionKind.AGENT:
            if self.error is None or self.response is not None:
                payload["response"] = self.response
            if include_steps and self.steps is not None:
                payload["steps"] = self.steps
        elif self.error is None:
            payload["result"] = self.result
        if self.error is not None:
            payload["error"] = self.error
        return payload


def check_sub_definitions(owner: str, subs: Sequence[SubDefinition]) -> None:
    if not subs:
        raise DefinitionError(f"Composite '{owner}' needs at least one sub-definition")
    seen: set[str] = set()
    for sub in subs:
        if sub.name in seen:
            raise DefinitionError(f"Composite '{owner}' declares '{sub.name}' more than once")
        seen.add(sub.name)


def build_composite_model(owner: str, subs: Sequence[SubDefinition], label: str) -> type[BaseModel]:
    """Build the advertised ``{"calls": [{"name", "args"}, ...]}`` schema as a tagged union."""
    call_models: list[type[BaseModel]] = []
    for sub in subs:
        call_models.append(
            create_model(
                f"{owner}_{sub.name}_call",
                name=(Literal[sub.name], Field(description=f'Call the "{sub.name}" {label}')),  # type: ignore[valid-type]
                args=(sub.input_model, Field(description=sub.description)),
            )
        )
    if len(call_models) == 1:
        item_type: Any = call_models[0]
    else:
        item_type = Annotated[Union[tuple(call_models)], Field(discriminator="name")]  # noqa: UP007
    return create_model(
        f"{owner}_batch",
        calls=(list[item_type], Field(description=f"Array of {label} calls to execute")),  # type: ignore[valid-type]
    )


def build_enhanced_description(description: str, subs: Sequence[SubDefinition], item_type: str) -> str:
    docs = "\n".join(f"  - {sub.name}: {sub.description}" for sub in subs)
    return f"{description}\n\nAvailable {item_type}:\n{docs}"


type AgentRunner = Callable[[SubAgentDefinition, BaseModel], Awaitable[AgentResult]]


class CompositeDispatcher:
    """Runs a batch of sub-calls in order, isolating each item's failure."""

    def __init__(
        self,
        owner: str,
        subs: Sequence[SubDefinition],
        *,
        kind: DefinitionKind = DefinitionKind.TOOL,
        run_agent: AgentRunner | None = None,
    ) -> None:
        check_sub_definitions(owner, subs)
        if kind is DefinitionKind.AGENT and run_agent is None:
            raise DefinitionError(f"Composite agent '{owner}' needs an agent runner")
        self.owner = owner
        self.kind = kind
        self._subs = {sub.name: sub for sub in subs}
        self._run_agent = run_agent

    @property
    def names(self) -> list[str]:
        return list(self._subs)

    async def dispatch(self, batch: CompositeBatch | dict[str, Any]) -> list[SubCallResult]:
        if not isinstance(batch, CompositeBatch):
            batch = CompositeBatch.model_validate(batch)
        results: list[SubCallResult] = []
        for index, call in enumerate(batch.calls):
            sub = self._subs.get(call.name)
            if sub is None:
                label = "sub-agent" if self.kind is DefinitionKind.AGENT else "sub-tool"
                logger.warning("composite.call.unknown owner={} index={} name={}", self.owner, index, call.name)
                results.append(SubCallResult(call.name, kind=self.kind, error=f"Unknown {label}: {call.name}"))
                continue
            logger.info("composite.call.start owner={} index={} name={}", self.owner, index, call.name)
            try:
                results.append(await self._run_item(sub, call.args))
            except Exception as exc:
                logger.exception("composite.call.error owner={} index={} name={}", self.owner, index, call.name)
                results.append(SubCallResult(call.name, kind=self.kind, error=str(exc) or exc.__class__.__name__))
        return results

    async def _run_item(self, sub: SubDefinition, raw_args: dict[str, Any]) -> SubCallResult:
        try:
            args = sub.input_model.model_validate(raw_args)
        except ValidationError as exc:
            return SubCallResult(sub.name, kind=self.kind, error=f"invalid arguments: {exc}")

        if isinstance(sub, SubAgentDefinition):
            assert self._run_agent is not None
            agent_result = await self._run_agent(sub, args)
            return SubCallResult(
                sub.name,
                kind=DefinitionKind.AGENT,
                response=agent_result.response,
                error=agent_result.error,
                steps=agent_result.steps,
            )

        outcome = await execute_with_callbacks(sub.execute, args, sub.options)
        if outcome.ok:
            return SubCallResult(sub.name, result=outcome.output)
        logger.error("composite.call.error owner={} name={} error={}", self.owner, sub.name, outcome.error)
        return SubCallResult(sub.name, error=outcome.error)
