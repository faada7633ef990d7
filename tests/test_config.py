import pytest

from reprise.config import Settings, get_settings, validate_model_name
from reprise.errors import InvalidModelFormatError, ModelNotConfiguredError


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPRISE_MODEL", "openai:gpt-4o-mini")
    monkeypatch.setenv("REPRISE_MAX_STEPS", "7")

    settings = Settings(_env_file=None)
    assert settings.model == "openai:gpt-4o-mini"
    assert settings.max_steps == 7
    assert settings.max_tokens == 4096


def test_get_settings_ignores_none_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPRISE_MODEL", "openai:from-env")

    assert get_settings(model=None).model == "openai:from-env"
    assert get_settings(model="anthropic:override").model == "anthropic:override"


def test_require_model() -> None:
    with pytest.raises(ModelNotConfiguredError):
        Settings(_env_file=None).require_model()
    assert Settings(model=" openai:gpt-4o ", _env_file=None).require_model() == "openai:gpt-4o"


@pytest.mark.parametrize("value", ["gpt-4o", ":gpt-4o", "openai:"])
def test_invalid_model_names(value: str) -> None:
    with pytest.raises(InvalidModelFormatError):
        validate_model_name(value)
