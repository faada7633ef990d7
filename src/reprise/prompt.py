"""Prompt: declarations, re-execution, and per-step configuration."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

import yaml
from loguru import logger
from pydantic import BaseModel

from reprise.agents import AgentExecute, AgentOptions, run_agent
from reprise.config import Settings, get_settings
from reprise.context import DefinitionView, PromptContext, SystemEntry, VariableEntry, VariableType
from reprise.definitions import DefinitionHandle, DefinitionKind, DefinitionTracker, Reminder
from reprise.effects import Effect, EffectCallback, EffectsManager, HookResult, PrepareHook, StepModifications
from reprise.errors import DefinitionError, PromptError
from reprise.state import Setter, StateRef, StateStore
from reprise.tools.callbacks import ToolOptions, maybe_await
from reprise.tools.composite import (
    CompositeBatch,
    CompositeDispatcher,
    SubAgentDefinition,
    SubToolDefinition,
    build_composite_model,
    build_enhanced_description,
)
from reprise.tools.registry import ToolDefinition, ToolRegistry
from reprise.types import Aspect, LastToolInfo, Message, StepRequest, to_jsonable

if TYPE_CHECKING:
    from reprise.engine import ModelEngine
    from reprise.plugins import PluginManager, PromptMethod
    from reprise.types import RawStep

type DescribeFunction = Callable[[Prompt], Awaitable[None] | None]


def _item_name(item: Any) -> str:
    if isinstance(item, str):
        return item
    if isinstance(item, Mapping):
        return str(item["name"])
    name = getattr(item, "name", None)
    if not isinstance(name, str):
        raise DefinitionError(f"Step modification item has no name: {item!r}")
    return name


def _item_value(item: Any) -> tuple[bool, Any]:
    if isinstance(item, Mapping):
        return ("value" in item, item.get("value"))
    if isinstance(item, SystemEntry | VariableEntry):
        return True, item.value
    return False, None


def _variable_entry(name: str, value: Any, declared: Any = None) -> VariableEntry:
    if declared in ("string", "data"):
        return VariableEntry(name, declared, value)
    type_: VariableType = "string" if isinstance(value, str) else "data"
    return VariableEntry(name, type_, value)


def render_variable(entry: VariableEntry) -> str:
    if entry.type == "data":
        return yaml.safe_dump(to_jsonable(entry.value), sort_keys=False, allow_unicode=True).rstrip()
    return str(entry.value)


class Prompt:
    """One conversation: live definitions, state, effects, and message history.

    The describing function is invoked with the prompt on the first step and
    again before every later step. Definitions it does not re-declare are
    removed, state survives, and effects decide what the next step sees.
    """

    def __init__(
        self,
        describe: DescribeFunction | None = None,
        *,
        engine: ModelEngine | None = None,
        settings: Settings | None = None,
        plugin_manager: PluginManager | None = None,
        max_steps: int | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.engine = engine
        self.max_steps = max_steps or self.settings.max_steps
        self.plugin_manager = plugin_manager
        self._describe = describe

        self.state = StateStore()
        self.tracker = DefinitionTracker()
        self.effects = EffectsManager()
        self.variables: dict[str, VariableEntry] = {}
        self.systems: dict[str, SystemEntry] = {}
        self.tools = ToolRegistry()
        self.messages: list[Message] = []
        self.steps: list[RawStep] = []
        self.last_tool: LastToolInfo | None = None

        self._described_once = False
        self._describing = False
        self._reminders: list[Reminder] = []
        self._disabled: dict[str, set[str]] = {"variables": set(), "systems": set(), "tools": set()}
        self._modifications = StepModifications()
        self._active: dict[str, list[str] | None] = {"variables": None, "systems": None, "tools": None}
        self._plugin_methods: dict[str, PromptMethod] | None = None
        self._hooks: list[PrepareHook] = []
        self._system_override: str | None = None

    # Plugins

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        methods = self.__dict__.get("_plugin_methods")
        if methods is None and self.__dict__.get("plugin_manager") is not None:
            methods = self.__dict__["plugin_manager"].prompt_methods(self)
            self.__dict__["_plugin_methods"] = methods
        if methods and name in methods:
            return methods[name]
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    # Declarations

    def _handle(self, kind: DefinitionKind, name: str) -> DefinitionHandle:
        self.tracker.mark(kind, name)
        return DefinitionHandle(kind, name, self)

    def declare_variable(self, name: str, text: str) -> DefinitionHandle:
        return self._declare_variable(DefinitionKind.VARIABLE, name, "string", text)

    def declare_data(self, name: str, value: Any) -> DefinitionHandle:
        return self._declare_variable(DefinitionKind.DATA, name, "data", value)

    def _declare_variable(self, kind: DefinitionKind, name: str, type_: VariableType, value: Any) -> DefinitionHandle:
        self.variables[name] = VariableEntry(name, type_, value)
        return self._handle(kind, name)

    def declare_system(self, name: str, text: str) -> DefinitionHandle:
        self.systems[name] = SystemEntry(name, text)
        return self._handle(DefinitionKind.SYSTEM, name)

    def declare_tool(
        self,
        name: str,
        description: str,
        input_model: type[BaseModel] | Sequence[SubToolDefinition],
        execute: Callable[[Any], Any] | None = None,
        options: ToolOptions | None = None,
    ) -> DefinitionHandle:
        """Declare a tool, or a composite tool when given a list of ``sub_tool(...)``."""
        if isinstance(input_model, Sequence):
            subs = list(input_model)
            if not all(isinstance(sub, SubToolDefinition) for sub in subs):
                raise DefinitionError(f"Composite tool '{name}' accepts only sub_tool(...) items")
            dispatcher = CompositeDispatcher(name, subs)
            self.tools.register(
                ToolDefinition(
                    name=name,
                    description=build_enhanced_description(description, subs, "sub-tools"),
                    input_model=CompositeBatch,
                    execute=dispatcher.dispatch,
                    parameters=build_composite_model(name, subs, "sub-tool").model_json_schema(),
                )
            )
            return self._handle(DefinitionKind.TOOL, name)

        if execute is None:
            raise DefinitionError(f"Tool '{name}' needs an executor")
        self.tools.register(ToolDefinition(name, description, input_model, execute, options=options))
        return self._handle(DefinitionKind.TOOL, name)

    def declare_agent(
        self,
        name: str,
        description: str,
        input_model: type[BaseModel] | Sequence[SubAgentDefinition],
        execute: AgentExecute | None = None,
        options: AgentOptions | None = None,
    ) -> DefinitionHandle:
        """Declare an agent, or a composite agent when given a list of ``sub_agent(...)``.

        The executor receives the validated arguments and a fresh child prompt to
        configure; the child then runs to completion with its own state.
        """
        if isinstance(input_model, Sequence):
            subs = list(input_model)
            if not all(isinstance(sub, SubAgentDefinition) for sub in subs):
                raise DefinitionError(f"Composite agent '{name}' accepts only sub_agent(...) items")

            async def run_sub(sub: SubAgentDefinition, args: BaseModel) -> Any:
                return await run_agent(self, sub.name, sub.execute, args, sub.options)

            dispatcher = CompositeDispatcher(name, subs, kind=DefinitionKind.AGENT, run_agent=run_sub)
            self.tools.register(
                ToolDefinition(
                    name=name,
                    description=build_enhanced_description(description, subs, "sub-agents"),
                    input_model=CompositeBatch,
                    execute=dispatcher.dispatch,
                    kind=DefinitionKind.AGENT,
                    parameters=build_composite_model(name, subs, "agent").model_json_schema(),
                )
            )
            return self._handle(DefinitionKind.AGENT, name)

        if execute is None:
            raise DefinitionError(f"Agent '{name}' needs an executor")
        agent_execute = execute

        async def run_single(args: BaseModel) -> Any:
            return await run_agent(self, name, agent_execute, args, options)

        self.tools.register(ToolDefinition(name, description, input_model, run_single, kind=DefinitionKind.AGENT))
        return self._handle(DefinitionKind.AGENT, name)

    def declare_effect(self, callback: EffectCallback, dependencies: Sequence[Any] | None = None) -> Effect:
        return self.effects.register(callback, dependencies)

    def declare_hook(self, hook: PrepareHook) -> None:
        """Run ``hook(context)`` on every step after effects; its ``HookResult`` overrides that step."""
        self._hooks.append(hook)

    def declare_state[T](self, key: str, initial: T) -> tuple[T, Setter[T]]:
        return self.state.create_accessor(key, initial)

    def state_ref(self, key: str) -> StateRef[Any]:
        return self.state.ref(key)

    def declare_message(self, role: str, content: Any) -> None:
        """Append a message. User messages are only added on the first describe pass."""
        if role == "user" and self._described_once:
            return
        self.messages.append({"role": role, "content": content})

    def ask(self, text: str) -> None:
        self.declare_message("user", text)

    # Handle actions

    def remind(self, kind: DefinitionKind, name: str) -> None:
        reminder = Reminder(kind, name)
        if reminder not in self._reminders:
            self._reminders.append(reminder)

    def disable(self, kind: DefinitionKind, name: str) -> None:
        self._disabled[kind.namespace].add(name)

    # Step preparation

    async def _invoke_describe(self) -> None:
        if self._describe is None:
            return
        if self._describing:
            raise PromptError("Describing function re-entered while it is running")
        self._describing = True
        try:
            await maybe_await(self._describe(self))
        finally:
            self._describing = False
        self._described_once = True

    def _modify(self, aspect: Aspect, items: Sequence[Any]) -> None:
        self._modifications.add(aspect, items)

    def context(self, step_number: int) -> PromptContext:
        return PromptContext(
            messages=list(self.messages),
            tools=DefinitionView(self.tools.descriptors()),
            systems=DefinitionView(list(self.systems.values())),
            variables=DefinitionView(list(self.variables.values())),
            last_tool=self.last_tool,
            step_number=step_number,
        )

    def _begin_step(self) -> None:
        self._reminders = []
        for names in self._disabled.values():
            names.clear()
        self._modifications = StepModifications()
        self._active = {"variables": None, "systems": None, "tools": None}
        self._system_override = None

    async def _run_hooks(self, step_number: int) -> None:
        for hook in self._hooks:
            returned = await maybe_await(hook(self.context(step_number)))
            if returned is None:
                continue
            result = returned if isinstance(returned, HookResult) else HookResult.model_validate(returned)
            if result.variables:
                for name, value in result.variables.items():
                    if isinstance(value, Mapping) and "value" in value:
                        self.variables[name] = _variable_entry(name, value["value"], value.get("type"))
                    else:
                        self.variables[name] = _variable_entry(name, value)
            if result.active_tools is not None:
                self._modify("tools", result.active_tools)
            if result.active_systems is not None:
                self._modify("systems", result.active_systems)
            if result.active_variables is not None:
                self._modify("variables", result.active_variables)
            if result.messages is not None:
                self._modify("messages", result.messages)
            if result.system is not None:
                self._system_override = result.system
            logger.debug("prompt.hook step={} overrides={}", step_number, sorted(result.model_fields_set))

    def _apply_modifications(self) -> None:
        mods = self._modifications
        for item in mods.systems:
            has_value, value = _item_value(item)
            if has_value:
                name = _item_name(item)
                self.systems[name] = SystemEntry(name, str(value))
        for item in mods.variables:
            has_value, value = _item_value(item)
            if has_value:
                name = _item_name(item)
                declared = item.get("type") if isinstance(item, Mapping) else getattr(item, "type", None)
                self.variables[name] = _variable_entry(name, value, declared)

        live: dict[str, list[str]] = {
            "variables": list(self.variables),
            "systems": list(self.systems),
            "tools": self.tools.names(),
        }
        for aspect in ("variables", "systems", "tools"):
            if mods.is_touched(aspect):
                wanted = {_item_name(item) for item in getattr(mods, aspect)}
                self._active[aspect] = [name for name in live[aspect] if name in wanted]
            else:
                disabled = self._disabled[aspect]
                self._active[aspect] = [name for name in live[aspect] if name not in disabled]

    def active_names(self, aspect: str) -> list[str]:
        active = self._active.get(aspect)
        if active is not None:
            return list(active)
        if aspect == "tools":
            return self.tools.names()
        return list(getattr(self, aspect))

    def render_system(self) -> str | None:
        """Active system sections then, if any, the ``<variables>`` block."""
        if self._system_override is not None:
            return self._system_override
        parts = [f"<{name}>\n{self.systems[name].value}\n</{name}>" for name in self.active_names("systems")]
        entries = [
            f"<{name}>\n{render_variable(self.variables[name])}\n</{name}>" for name in self.active_names("variables")
        ]
        if entries:
            parts.append("<variables>\n" + "\n".join(entries) + "\n</variables>")
        if not parts:
            return None
        return "\n".join(parts)

    def step_messages(self) -> list[Message]:
        if self._modifications.is_touched("messages"):
            messages = list(self._modifications.messages)
        else:
            messages = list(self.messages)
        if self._reminders:
            messages.append({"role": "assistant", "content": "\n".join(item.render() for item in self._reminders)})
        return messages

    async def prepare_step(self, step_number: int) -> StepRequest:
        """Run the describe phase for one step and return what the engine should see."""
        self._begin_step()
        if step_number == 0 and not self._described_once:
            self.tracker.reset()
            await self._invoke_describe()
        elif step_number > 0:
            self.tracker.reset()
            self.effects.clear_effects()
            self._hooks = []
            await self._invoke_describe()
            removed = self.tracker.reconcile(self.variables, self.systems, self.tools)
            if removed:
                logger.info("prompt.reconcile step={} removed={}", step_number, removed)

        self.effects.process(self.context(step_number), self._modify)
        await self._run_hooks(step_number)
        self._apply_modifications()

        active_tools = self.active_names("tools")
        request = StepRequest(
            system=self.render_system(),
            messages=self.step_messages(),
            tools=self.tools.specs(active_tools),
            active_tools=active_tools,
            step_number=step_number,
            max_tokens=self.settings.max_tokens,
        )
        logger.debug(
            "prompt.step.prepared step={} systems={} variables={} tools={} reminders={}",
            step_number,
            self.active_names("systems"),
            self.active_names("variables"),
            active_tools,
            len(self._reminders),
        )
        return request

    def discard(self) -> None:
        """Forget state, definitions, messages, prepare hooks and effect dependency memory."""
        self.effects.reset()
        self._hooks = []
        self.state.clear()
        self.tracker.reset()
        self.variables.clear()
        self.systems.clear()
        self.tools.clear()
        self.messages.clear()


def is_describing_function(obj: Any) -> bool:
    if not callable(obj):
        return False
    try:
        signature = inspect.signature(obj)
    except (TypeError, ValueError):
        return False
    return len(signature.parameters) >= 1
