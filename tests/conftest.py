from __future__ import annotations

import os

import pytest

from usage_monitor.core.config.settings import get_settings


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    for name in list(os.environ):
        if name.startswith("USAGE_MONITOR_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("USAGE_MONITOR_HOME_DIR", str(tmp_path / "monitor-home"))
    monkeypatch.setenv("USAGE_MONITOR_NOTIFICATIONS_ENABLED", "false")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()
