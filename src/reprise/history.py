"""Deduplicated, delta-addressable step history."""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from reprise.types import Message, RawStep


def message_key(message: Message) -> str:
    """Canonical key grouping messages that may be structurally equal.

    Different messages can share a key (a tuple and a list, or two objects with
    the same ``str``), so pool lookups confirm equality within a key.
    """
    return json.dumps(message, sort_keys=True, ensure_ascii=False, default=str)


@dataclass(frozen=True)
class CompressedStep:
    step_index: int
    message_refs: tuple[int, ...]
    delta_start: int
    state: dict[str, Any] = field(default_factory=dict)
    output: dict[str, Any] = field(default_factory=dict)
    active_tools: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class HistoryStats:
    step_count: int
    unique_messages: int
    total_uncompressed_messages: int
    savings_ratio: float


class CompressedHistory:
    """Shared message pool plus per-step references into it."""

    def __init__(self, message_pool: list[Message], steps: list[CompressedStep]) -> None:
        self.message_pool = message_pool
        self.steps = steps

    def _step(self, index: int) -> CompressedStep:
        if index < 0 or index >= len(self.steps):
            raise IndexError(f"Step index {index} out of range (0..{len(self.steps) - 1})")
        return self.steps[index]

    def get_step(self, index: int) -> dict[str, Any]:
        """Rebuild the uncompressed record of one step."""
        step = self._step(index)
        return {
            "input": {"prompt": [copy.deepcopy(self.message_pool[ref]) for ref in step.message_refs]},
            "output": copy.deepcopy(step.output),
            "active_tools": list(step.active_tools),
        }

    def get_delta_messages(self, index: int) -> list[Message]:
        step = self._step(index)
        return [copy.deepcopy(self.message_pool[ref]) for ref in step.message_refs[step.delta_start :]]

    def get_state(self, index: int) -> dict[str, Any]:
        return dict(self._step(index).state)

    def get_stats(self) -> HistoryStats:
        total = sum(len(step.message_refs) for step in self.steps)
        unique = len(self.message_pool)
        ratio = 1 - unique / total if total else 0.0
        return HistoryStats(
            step_count=len(self.steps),
            unique_messages=unique,
            total_uncompressed_messages=total,
            savings_ratio=ratio,
        )

    def __len__(self) -> int:
        return len(self.steps)


class StepHistoryCompressor:
    """Builds a ``CompressedHistory`` from raw step records."""

    def compress(self, raw_steps: Sequence[RawStep | Mapping[str, Any]]) -> CompressedHistory:
        pool: list[Message] = []
        indices_by_key: dict[str, list[int]] = {}
        steps: list[CompressedStep] = []
        previous: tuple[int, ...] = ()

        for step_index, raw in enumerate(raw_steps):
            record = raw.to_dict() if isinstance(raw, RawStep) else raw
            state = raw.state if isinstance(raw, RawStep) else dict(raw.get("state") or {})

            refs: list[int] = []
            for message in record.get("input", {}).get("prompt", []):
                candidates = indices_by_key.setdefault(message_key(message), [])
                ref = next((index for index in candidates if _same_message(pool[index], message)), None)
                if ref is None:
                    ref = len(pool)
                    candidates.append(ref)
                    pool.append(copy.deepcopy(message))
                refs.append(ref)

            current = tuple(refs)
            steps.append(
                CompressedStep(
                    step_index=step_index,
                    message_refs=current,
                    delta_start=_delta_start(previous, current) if step_index else 0,
                    state=dict(state),
                    output=copy.deepcopy(dict(record.get("output") or {})),
                    active_tools=list(record.get("active_tools") or []),
                )
            )
            previous = current

        return CompressedHistory(pool, steps)


def _same_message(stored: Any, message: Any) -> bool:
    if type(stored) is not type(message):
        return False
    if isinstance(stored, Mapping):
        return stored.keys() == message.keys() and all(_same_message(stored[key], message[key]) for key in stored)
    if isinstance(stored, list | tuple):
        return len(stored) == len(message) and all(_same_message(a, b) for a, b in zip(stored, message, strict=True))
    return bool(stored == message)


def _delta_start(previous: Sequence[int], current: Sequence[int]) -> int:
    for position, (old, new) in enumerate(zip(previous, current, strict=False)):
        if old != new:
            return position
    return min(len(previous), len(current))
