"""Pluggy hook namespace and the plugin manager used by prompts."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pluggy
from loguru import logger

from reprise.errors import PluginError

if TYPE_CHECKING:
    from reprise.prompt import Prompt

REPRISE_HOOK_NAMESPACE = "reprise"
hookspec = pluggy.HookspecMarker(REPRISE_HOOK_NAMESPACE)
hookimpl = pluggy.HookimplMarker(REPRISE_HOOK_NAMESPACE)

type PromptMethod = Callable[..., Any]


class RepriseHookSpecs:
    """Hook contract for prompt extensions."""

    @hookspec
    def prompt_methods(self, prompt: Prompt) -> dict[str, PromptMethod] | None:
        """Return extra declaration methods bound to ``prompt``, keyed by attribute name."""


class PluginManager:
    """Registers plugins and collects the prompt methods they contribute."""

    def __init__(self, *, builtins: bool = True) -> None:
        self._pm = pluggy.PluginManager(REPRISE_HOOK_NAMESPACE)
        self._pm.add_hookspecs(RepriseHookSpecs)
        if builtins:
            from reprise.plugins import task_graph, task_list

            self.register(task_list, name="builtin:task_list")
            self.register(task_graph, name="builtin:task_graph")

    def register(self, plugin: Any, *, name: str | None = None) -> None:
        plugin_name = name or getattr(plugin, "__name__", None) or plugin.__class__.__name__
        try:
            self._pm.register(plugin, name=plugin_name)
        except ValueError as exc:
            raise PluginError(str(exc), plugin_name) from exc
        logger.debug("plugin.register name={}", plugin_name)

    def load_entrypoints(self) -> int:
        """Register plugins advertised under the ``reprise`` entry point group."""
        try:
            count = self._pm.load_setuptools_entrypoints(REPRISE_HOOK_NAMESPACE)
        except ValueError as exc:
            raise PluginError(f"Failed to load entry point plugins: {exc}") from exc
        logger.debug("plugin.entrypoints loaded={}", count)
        return count

    def plugin_names(self) -> list[str]:
        return [name for name, _ in self._pm.list_name_plugin()]

    def prompt_methods(self, prompt: Prompt) -> dict[str, PromptMethod]:
        methods: dict[str, PromptMethod] = {}
        for contributed in self._pm.hook.prompt_methods(prompt=prompt):
            for method_name, method in contributed.items():
                if method_name in methods:
                    raise PluginError(f"Prompt method '{method_name}' is provided by more than one plugin")
                if hasattr(type(prompt), method_name):
                    raise PluginError(f"Prompt method '{method_name}' shadows a built-in")
                methods[method_name] = method
        return methods
