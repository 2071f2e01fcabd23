"""Settings validation tests."""

import pytest
from pydantic import ValidationError

from shortlink.config import Settings, get_settings


def test_defaults() -> None:
    settings = Settings()
    assert settings.SHORT_CODE_LENGTH == 8
    assert settings.SHORT_CODE_MAX_ATTEMPTS == 10
    assert settings.DEFAULT_EXPIRY_HOURS == 0
    assert settings.LIST_DEFAULT_LIMIT == 50
    assert settings.LIST_MAX_LIMIT == 100


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SHORT_CODE_LENGTH", "12")
    monkeypatch.setenv("CACHE_ENABLED", "false")
    settings = Settings()
    assert settings.SHORT_CODE_LENGTH == 12
    assert settings.CACHE_ENABLED is False


@pytest.mark.parametrize(
    "overrides",
    [
        {"SHORT_CODE_LENGTH": 0},
        {"SHORT_CODE_LENGTH": 17},
        {"SHORT_CODE_MAX_ATTEMPTS": 0},
        {"CACHE_TTL_SECONDS": 0},
        {"CACHE_TIMEOUT_SECONDS": 0},
        {"DEFAULT_EXPIRY_HOURS": -1},
        {"CUSTOM_CODE_MIN_LENGTH": 10, "CUSTOM_CODE_MAX_LENGTH": 5},
        {"LIST_DEFAULT_LIMIT": 200, "LIST_MAX_LIMIT": 100},
    ],
)
def test_out_of_range_values_rejected(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_settings_are_frozen() -> None:
    settings = Settings()
    with pytest.raises(ValidationError):
        settings.SHORT_CODE_LENGTH = 4


def test_get_settings_is_cached() -> None:
    assert get_settings() is get_settings()
