from __future__ import annotations

import pytest

from activityportal.core.config import get_settings


@pytest.fixture(autouse=True)
def reset_settings_cache() -> None:
    # Settings are cached per process; clear around each test so env overrides apply.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
