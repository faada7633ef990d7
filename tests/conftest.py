from __future__ import annotations

import pytest

from reprise.config import Settings


@pytest.fixture(autouse=True)
def _clean_reprise_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "REPRISE_MODEL",
        "REPRISE_API_KEY",
        "REPRISE_API_BASE",
        "REPRISE_MAX_STEPS",
        "REPRISE_MAX_TOKENS",
        "REPRISE_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings() -> Settings:
    return Settings(model="openai:test-model", max_steps=10, _env_file=None)
