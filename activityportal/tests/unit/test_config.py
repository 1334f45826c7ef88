from __future__ import annotations

import pytest

from activityportal.core.config import Settings, get_settings


def test_source_limit_overrides_keep_positive_ints() -> None:
    settings = Settings(federation_source_limits_json='{"vendors": 200, "tasks": "25", "users": 0, "orgs": "many"}')

    assert settings.source_limit_overrides() == {"vendors": 200, "tasks": 25}


def test_malformed_source_limits_are_ignored() -> None:
    assert Settings(federation_source_limits_json="not json").source_limit_overrides() == {}
    assert Settings(federation_source_limits_json="[1, 2]").source_limit_overrides() == {}


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JOURNEY_DEFAULT_WINDOW_DAYS", "30")
    monkeypatch.setenv("DATABASE_NAIVE_TIMESTAMPS", "false")

    settings = get_settings()

    assert settings.journey_default_window_days == 30
    assert settings.database_naive_timestamps is False
    assert get_settings() is settings
