"""Conversation state that survives re-execution of the describing function."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, cast

type Setter[T] = Callable[[T | Callable[[T], T]], None]


class StateRef[T]:
    """Boxed, always-current view of one state entry.

    Effects compare dependencies through ``current()``, so passing a ref as a
    dependency tracks the live value rather than the value captured at declaration.
    """

    def __init__(self, store: StateStore, key: str) -> None:
        self._store = store
        self.key = key

    def current(self) -> T:
        return cast(T, self._store.get(self.key))

    def __repr__(self) -> str:
        return f"StateRef({self.key!r}={self.current()!r})"


class StateStore:
    """Key/value persistence owned by one prompt."""

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        return self._entries.get(key)

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = value

    def has(self, key: str) -> bool:
        return key in self._entries

    def snapshot(self) -> dict[str, Any]:
        return dict(self._entries)

    def ref(self, key: str) -> StateRef[Any]:
        return StateRef(self, key)

    def create_accessor[T](self, key: str, initial: T) -> tuple[T, Setter[T]]:
        """Return ``(current_value, setter)`` for ``key``.

        ``initial`` is only stored when the key is absent; later passes keep the
        stored value. The setter accepts a new value or an updater ``fn(prev) -> new``.
        """
        if not self.has(key):
            self.set(key, initial)

        def setter(value: T | Callable[[T], T]) -> None:
            if callable(value):
                value = value(cast(T, self.get(key)))
            self.set(key, value)

        return cast(T, self.get(key)), setter

    def clear(self) -> None:
        self._entries.clear()
