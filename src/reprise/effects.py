"""Dependency-gated effects and the per-step modification accumulator."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from loguru import logger
from pydantic import BaseModel, ConfigDict

from reprise.context import PromptContext
from reprise.types import ASPECTS, Aspect

type StepModifier = Callable[[Aspect, Sequence[Any]], None]
type EffectCallback = Callable[[PromptContext, StepModifier], None]
type HookReturn = HookResult | dict[str, Any] | None
type PrepareHook = Callable[[PromptContext], HookReturn | Awaitable[HookReturn]]

_VALUE_TYPES = (str, int, float, complex, bool, bytes, tuple, frozenset, type(None))


@runtime_checkable
class Boxed(Protocol):
    """A value that can report its current contents, such as a ``StateRef``."""

    def current(self) -> Any: ...


def resolve_dependency(value: Any) -> Any:
    """Unwrap a boxed dependency when its current value is something other than itself."""
    if isinstance(value, Boxed):
        resolved = value.current()
        if resolved is not value:
            return resolved
    return value


def same_dependency(previous: Any, current: Any) -> bool:
    """Strict equality: identity, or value equality for immutable scalars of one type."""
    if previous is current:
        return True
    if type(previous) is not type(current):
        return False
    if isinstance(previous, _VALUE_TYPES):
        return bool(previous == current)
    return False


@dataclass
class Effect:
    id: int
    callback: EffectCallback
    dependencies: Sequence[Any] | None = None


@dataclass
class StepModifications:
    """Items requested by effects for the step being prepared."""

    messages: list[Any] = field(default_factory=list)
    tools: list[Any] = field(default_factory=list)
    systems: list[Any] = field(default_factory=list)
    variables: list[Any] = field(default_factory=list)
    touched: set[Aspect] = field(default_factory=set)

    def add(self, aspect: Aspect, items: Sequence[Any]) -> None:
        if aspect not in ASPECTS:
            raise ValueError(f"Unknown step aspect: {aspect!r}")
        getattr(self, aspect).extend(items)
        self.touched.add(aspect)

    def is_touched(self, aspect: Aspect) -> bool:
        return aspect in self.touched


class HookResult(BaseModel):
    """Overrides a prepare hook returns for the step being prepared.

    ``active_*`` lists narrow the step the same way a step modification does.
    ``variables`` entries are merged into the live variables without narrowing;
    a value may be given directly or as ``{"type": ..., "value": ...}``.
    ``system`` replaces the rendered system prompt for this step only.
    """

    model_config = ConfigDict(extra="forbid")

    system: str | None = None
    active_tools: list[str] | None = None
    active_systems: list[str] | None = None
    active_variables: list[str] | None = None
    variables: dict[str, Any] | None = None
    messages: list[dict[str, Any]] | None = None


class EffectsManager:
    """Registers effects for one pass and decides which of them run."""

    def __init__(
        self,
        *,
        resolve: Callable[[Any], Any] = resolve_dependency,
        equals: Callable[[Any, Any], bool] = same_dependency,
    ) -> None:
        self._effects: list[Effect] = []
        self._previous: dict[int, list[Any]] = {}
        self._registration_order = 0
        self._resolve = resolve
        self._equals = equals

    def register(self, callback: EffectCallback, dependencies: Sequence[Any] | None = None) -> Effect:
        effect = Effect(id=self._registration_order, callback=callback, dependencies=dependencies)
        self._registration_order += 1
        self._effects.append(effect)
        return effect

    def effects(self) -> list[Effect]:
        return list(self._effects)

    def should_run(self, effect: Effect) -> bool:
        if effect.id not in self._previous:
            return True
        if effect.dependencies is None:
            return True
        previous = self._previous[effect.id]
        current = [self._resolve(value) for value in effect.dependencies]
        if len(previous) != len(current):
            return True
        return not all(self._equals(old, new) for old, new in zip(previous, current, strict=True))

    def process(self, context: PromptContext, modify: StepModifier) -> list[int]:
        """Run due effects in registration order and return the ids that ran."""
        ran: list[int] = []
        for effect in self._effects:
            if not self.should_run(effect):
                continue
            # Stored before running: writes made by the callback count as a change on the next pass.
            self._previous[effect.id] = [self._resolve(value) for value in effect.dependencies or ()]
            effect.callback(context, modify)
            ran.append(effect.id)
        self._registration_order = 0
        logger.debug("effects.process step={} registered={} ran={}", context.step_number, len(self._effects), ran)
        return ran

    def clear_effects(self) -> None:
        """Forget registered callbacks but keep dependency memory for the next pass."""
        self._effects = []
        self._registration_order = 0

    def reset(self) -> None:
        """Forget callbacks and dependency memory."""
        self._effects = []
        self._previous.clear()
        self._registration_order = 0
