from typing import Any

import pytest

from reprise.context import DefinitionView, PromptContext
from reprise.effects import EffectsManager, StepModifications, same_dependency
from reprise.state import StateStore


def _context(step: int = 0) -> PromptContext:
    return PromptContext(
        messages=[],
        tools=DefinitionView([]),
        systems=DefinitionView([]),
        variables=DefinitionView([]),
        last_tool=None,
        step_number=step,
    )


def _noop(_aspect: Any, _items: Any) -> None:
    return None


def test_effect_without_dependencies_runs_every_pass() -> None:
    manager = EffectsManager()
    calls: list[int] = []

    for step in range(3):
        manager.clear_effects()
        manager.register(lambda ctx, modify: calls.append(ctx.step_number))
        manager.process(_context(step), _noop)

    assert calls == [0, 1, 2]


def test_effect_runs_only_when_dependencies_change() -> None:
    manager = EffectsManager()
    calls: list[str] = []

    for value in ["a", "a", "b", "b"]:
        manager.clear_effects()
        manager.register(lambda ctx, modify, value=value: calls.append(value), [value])
        manager.process(_context(), _noop)

    assert calls == ["a", "b"]


def test_dependency_length_change_triggers_run() -> None:
    manager = EffectsManager()
    ran: list[list[int]] = []

    manager.register(lambda ctx, modify: ran.append([1]), [1])
    manager.process(_context(), _noop)
    manager.clear_effects()
    manager.register(lambda ctx, modify: ran.append([1, 2]), [1, 2])
    manager.process(_context(), _noop)

    assert ran == [[1], [1, 2]]


def test_mutable_dependencies_compare_by_identity() -> None:
    manager = EffectsManager()
    items = [1]
    calls: list[int] = []

    for deps in (items, items, [1]):
        manager.clear_effects()
        manager.register(lambda ctx, modify: calls.append(1), [deps])
        manager.process(_context(), _noop)

    assert len(calls) == 2


def test_boxed_dependency_is_unwrapped() -> None:
    store = StateStore()
    store.set("count", 0)
    ref = store.ref("count")
    manager = EffectsManager()
    seen: list[int] = []

    def effect(ctx: PromptContext, modify: Any) -> None:
        seen.append(ref.current())

    for bump in (False, False, True):
        if bump:
            store.set("count", 1)
        manager.clear_effects()
        manager.register(effect, [ref])
        manager.process(_context(), _noop)

    assert seen == [0, 1]


def test_ids_follow_registration_order_each_pass() -> None:
    manager = EffectsManager()
    first = manager.register(lambda ctx, modify: None)
    second = manager.register(lambda ctx, modify: None)
    assert (first.id, second.id) == (0, 1)

    assert manager.process(_context(), _noop) == [0, 1]
    manager.clear_effects()
    assert manager.register(lambda ctx, modify: None).id == 0


def test_reset_forgets_dependency_memory() -> None:
    manager = EffectsManager()
    calls: list[int] = []

    manager.register(lambda ctx, modify: calls.append(1), ["x"])
    manager.process(_context(), _noop)
    manager.reset()
    manager.register(lambda ctx, modify: calls.append(1), ["x"])
    manager.process(_context(), _noop)

    assert calls == [1, 1]


def test_effect_errors_propagate() -> None:
    manager = EffectsManager()

    def broken(ctx: PromptContext, modify: Any) -> None:
        raise RuntimeError("boom")

    manager.register(broken)
    with pytest.raises(RuntimeError, match="boom"):
        manager.process(_context(), _noop)


def test_step_modifications_track_touched_aspects() -> None:
    mods = StepModifications()
    mods.add("tools", ["search"])
    assert mods.is_touched("tools")
    assert not mods.is_touched("systems")
    assert mods.tools == ["search"]

    with pytest.raises(ValueError):
        mods.add("colors", ["red"])  # type: ignore[arg-type]


def test_same_dependency_rules() -> None:
    assert same_dependency("a", "a")
    assert same_dependency((1, 2), (1, 2))
    assert not same_dependency(1, 1.0)
    assert not same_dependency({"a": 1}, {"a": 1})
