"""Read-only context handed to effects."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from reprise.types import LastToolInfo, Message

VariableType = Literal["string", "data"]


class Named(Protocol):
    @property
    def name(self) -> str: ...


@dataclass(frozen=True)
class SystemEntry:
    name: str
    value: str


@dataclass(frozen=True)
class VariableEntry:
    name: str
    type: VariableType
    value: Any


class DefinitionView[T: Named]:
    """Snapshot of one live collection, in declaration order."""

    def __init__(self, items: Sequence[T]) -> None:
        self._items = tuple(items)

    def has(self, name: str) -> bool:
        return any(item.name == name for item in self._items)

    def get(self, name: str) -> T | None:
        for item in self._items:
            if item.name == name:
                return item
        return None

    def names(self) -> list[str]:
        return [item.name for item in self._items]

    def filter(self, predicate: Callable[[T], bool]) -> list[T]:
        return [item for item in self._items if predicate(item)]

    def map[U](self, func: Callable[[T], U]) -> list[U]:
        return [func(item) for item in self._items]

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)


@dataclass(frozen=True)
class PromptContext:
    """What an effect can see about the step being prepared."""

    messages: list[Message]
    tools: DefinitionView[Any]
    systems: DefinitionView[SystemEntry]
    variables: DefinitionView[VariableEntry]
    last_tool: LastToolInfo | None
    step_number: int
