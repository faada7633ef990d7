from typing import Any

import pytest

from reprise.config import Settings
from reprise.errors import PluginError
from reprise.plugins import PluginManager, hookimpl
from reprise.prompt import Prompt


class GreetingPlugin:
    @hookimpl
    def prompt_methods(self, prompt: Prompt) -> dict[str, Any]:
        def declare_greeting(name: str) -> Any:
            return prompt.declare_system("greeting", f"Greet {name} warmly")

        return {"declare_greeting": declare_greeting}


class HideTaskListWrapper:
    @hookimpl(wrapper=True)
    def prompt_methods(self, prompt: Prompt) -> Any:
        contributed = yield
        return [methods for methods in contributed if "declare_task_list" not in methods]


class ShadowingPlugin:
    @hookimpl
    def prompt_methods(self, prompt: Prompt) -> dict[str, Any]:
        return {"ask": lambda text: None}


@pytest.mark.asyncio
async def test_plugin_methods_are_available_on_prompt(settings: Settings) -> None:
    manager = PluginManager()
    manager.register(GreetingPlugin(), name="greeting")

    prompt = Prompt(lambda p: p.declare_greeting("Ada"), settings=settings, plugin_manager=manager)
    step0 = await prompt.prepare_step(0)

    assert step0.system == "<greeting>\nGreet Ada warmly\n</greeting>"
    assert "greeting" in manager.plugin_names()
    assert "builtin:task_list" in manager.plugin_names()
    assert "builtin:task_graph" in manager.plugin_names()


def test_duplicate_methods_are_rejected(settings: Settings) -> None:
    manager = PluginManager()
    manager.register(GreetingPlugin(), name="first")
    manager.register(GreetingPlugin(), name="second")

    prompt = Prompt(settings=settings, plugin_manager=manager)
    with pytest.raises(PluginError, match="declare_greeting"):
        prompt.declare_greeting("Ada")


def test_builtin_names_cannot_be_shadowed(settings: Settings) -> None:
    manager = PluginManager(builtins=False)
    manager.register(ShadowingPlugin(), name="shadow")

    with pytest.raises(PluginError):
        manager.prompt_methods(Prompt(settings=settings))


def test_registering_twice_raises() -> None:
    manager = PluginManager(builtins=False)
    plugin = GreetingPlugin()
    manager.register(plugin, name="greeting")
    with pytest.raises(PluginError):
        manager.register(plugin, name="greeting")


def test_hook_wrappers_see_contributed_methods(settings: Settings) -> None:
    manager = PluginManager()
    manager.register(HideTaskListWrapper(), name="hide")

    methods = manager.prompt_methods(Prompt(settings=settings))

    assert "declare_task_graph" in methods
    assert "declare_task_list" not in methods


def test_load_entrypoints_uses_the_reprise_group(monkeypatch: pytest.MonkeyPatch) -> None:
    manager = PluginManager(builtins=False)
    groups: list[str] = []

    def fake_load(group: str, name: str | None = None) -> int:
        groups.append(group)
        return 2

    monkeypatch.setattr(manager._pm, "load_setuptools_entrypoints", fake_load)

    assert manager.load_entrypoints() == 2
    assert groups == ["reprise"]
