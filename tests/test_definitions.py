from reprise.definitions import DefinitionHandle, DefinitionKind, DefinitionTracker, Reminder


class RecordingOwner:
    def __init__(self) -> None:
        self.calls: list[tuple[str, DefinitionKind, str]] = []

    def remind(self, kind: DefinitionKind, name: str) -> None:
        self.calls.append(("remind", kind, name))

    def disable(self, kind: DefinitionKind, name: str) -> None:
        self.calls.append(("disable", kind, name))


def test_reconcile_removes_unseen_entries() -> None:
    tracker = DefinitionTracker()
    variables = {"name": 1, "stale": 2}
    systems = {"role": "x", "old": "y"}
    tools = {"search": object(), "gone": object()}

    tracker.mark(DefinitionKind.VARIABLE, "name")
    tracker.mark(DefinitionKind.SYSTEM, "role")
    tracker.mark(DefinitionKind.TOOL, "search")
    removed = tracker.reconcile(variables, systems, tools)

    assert list(variables) == ["name"]
    assert list(systems) == ["role"]
    assert list(tools) == ["search"]
    assert removed == ["variables:stale", "systems:old", "tools:gone"]


def test_shared_namespaces_keep_entries() -> None:
    tracker = DefinitionTracker()
    variables = {"config": {"a": 1}}
    tools = {"researcher": object()}

    tracker.mark(DefinitionKind.DATA, "config")
    tracker.mark(DefinitionKind.AGENT, "researcher")
    assert tracker.reconcile(variables, {}, tools) == []
    assert "config" in variables
    assert "researcher" in tools


def test_reset_clears_marks() -> None:
    tracker = DefinitionTracker()
    tracker.mark(DefinitionKind.TOOL, "search")
    assert tracker.is_seen(DefinitionKind.TOOL, "search")

    tracker.reset()
    assert not tracker.is_seen(DefinitionKind.TOOL, "search")


def test_handle_value_and_actions() -> None:
    owner = RecordingOwner()
    handle = DefinitionHandle(DefinitionKind.SYSTEM, "role", owner)

    assert handle.value == "<role>"
    handle.remind()
    handle.disable()
    assert owner.calls == [
        ("remind", DefinitionKind.SYSTEM, "role"),
        ("disable", DefinitionKind.SYSTEM, "role"),
    ]


def test_handles_compare_by_namespace_and_name() -> None:
    owner = RecordingOwner()
    assert DefinitionHandle(DefinitionKind.VARIABLE, "x", owner) == DefinitionHandle(DefinitionKind.DATA, "x", owner)
    assert DefinitionHandle(DefinitionKind.TOOL, "x", owner) != DefinitionHandle(DefinitionKind.SYSTEM, "x", owner)


def test_reminder_mentions_label_and_name() -> None:
    text = Reminder(DefinitionKind.DATA, "config").render()
    assert "Reminder" in text
    assert "<config>" in text
    assert "data variable" in text
