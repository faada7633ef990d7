"""Definition kinds, per-pass tracking, and the handles returned to describing functions."""

from __future__ import annotations

from collections.abc import MutableMapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol


class DefinitionKind(StrEnum):
    VARIABLE = "variable"
    DATA = "data"
    SYSTEM = "system"
    TOOL = "tool"
    AGENT = "agent"

    @property
    def namespace(self) -> str:
        """Live collection the definition belongs to; kinds sharing one share names."""
        if self in (DefinitionKind.VARIABLE, DefinitionKind.DATA):
            return "variables"
        if self is DefinitionKind.SYSTEM:
            return "systems"
        return "tools"

    @property
    def label(self) -> str:
        return {
            DefinitionKind.VARIABLE: "variable",
            DefinitionKind.DATA: "data variable",
            DefinitionKind.SYSTEM: "system section",
            DefinitionKind.TOOL: "tool",
            DefinitionKind.AGENT: "agent",
        }[self]


@dataclass(frozen=True)
class Reminder:
    kind: DefinitionKind
    name: str

    def render(self) -> str:
        return f"Reminder: keep the {self.kind.label} <{self.name}> in mind."


class HandleOwner(Protocol):
    def remind(self, kind: DefinitionKind, name: str) -> None: ...

    def disable(self, kind: DefinitionKind, name: str) -> None: ...


@dataclass(frozen=True, eq=False)
class DefinitionHandle:
    """Lightweight handle for one declared definition.

    ``value`` is the placeholder token to interpolate into prompt text. Handles
    are resolved by name whenever ``remind`` or ``disable`` runs, so a handle
    captured on an earlier pass still targets the live definition.
    """

    kind: DefinitionKind
    name: str
    _owner: HandleOwner = field(repr=False)

    @property
    def value(self) -> str:
        return f"<{self.name}>"

    def remind(self) -> None:
        self._owner.remind(self.kind, self.name)

    def disable(self) -> None:
        self._owner.disable(self.kind, self.name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DefinitionHandle):
            return NotImplemented
        return (self.kind.namespace, self.name) == (other.kind.namespace, other.name)

    def __hash__(self) -> int:
        return hash((self.kind.namespace, self.name))


class DefinitionTracker:
    """Records which definitions were declared during the current pass."""

    def __init__(self) -> None:
        self._seen: set[tuple[DefinitionKind, str]] = set()

    def mark(self, kind: DefinitionKind, name: str) -> None:
        self._seen.add((kind, name))

    def is_seen(self, kind: DefinitionKind, name: str) -> bool:
        return (kind, name) in self._seen

    def reset(self) -> None:
        self._seen.clear()

    def reconcile(
        self,
        variables: MutableMapping[str, Any],
        systems: MutableMapping[str, Any],
        tools: MutableMapping[str, Any],
    ) -> list[str]:
        """Delete entries not declared in the current pass and return their keys."""
        removed: list[str] = []
        for name in list(variables):
            if not self.is_seen(DefinitionKind.VARIABLE, name) and not self.is_seen(DefinitionKind.DATA, name):
                del variables[name]
                removed.append(f"variables:{name}")
        for name in list(systems):
            if not self.is_seen(DefinitionKind.SYSTEM, name):
                del systems[name]
                removed.append(f"systems:{name}")
        for name in list(tools):
            if not self.is_seen(DefinitionKind.TOOL, name) and not self.is_seen(DefinitionKind.AGENT, name):
                del tools[name]
                removed.append(f"tools:{name}")
        return removed
