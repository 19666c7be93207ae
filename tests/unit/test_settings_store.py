from __future__ import annotations

import json

import pytest

from usage_monitor.modules.settings.schemas import MarkerKind, PersistedSettings
from usage_monitor.modules.settings.store import InMemorySettingsStore, JsonFileSettingsStore

pytestmark = pytest.mark.unit


def test_json_store_defaults_without_file(tmp_path):
    store = JsonFileSettingsStore(tmp_path / "settings.json", default_refresh_interval_seconds=120)

    assert store.get_refresh_interval_seconds() == 120
    assert store.get_selected_organization_id() is None
    assert store.get_remember_session_key() is False
    assert store.get_notify_on_usage_reset() is False
    assert store.get_notified_period_id(MarkerKind.SESSION_RESET, "org-1") is None


def test_json_store_persists_across_instances(tmp_path):
    path = tmp_path / "nested" / "settings.json"
    store = JsonFileSettingsStore(path)
    store.set_refresh_interval_seconds(90)
    store.set_selected_organization_id("org-1")
    store.set_remember_session_key(True)
    store.set_notify_on_usage_reset(True)
    store.set_notified_period_id(MarkerKind.WEEKLY_NEAR_LIMIT, "org-1", "2026-01-08T00:00:00.000Z")

    reopened = JsonFileSettingsStore(path)

    assert reopened.get_refresh_interval_seconds() == 90
    assert reopened.get_selected_organization_id() == "org-1"
    assert reopened.get_remember_session_key() is True
    assert reopened.get_notify_on_usage_reset() is True
    assert reopened.get_notified_period_id(MarkerKind.WEEKLY_NEAR_LIMIT, "org-1") == "2026-01-08T00:00:00.000Z"
    assert reopened.get_notified_period_id(MarkerKind.SESSION_NEAR_LIMIT, "org-1") is None
    assert json.loads(path.read_text(encoding="utf-8"))["selected_organization_id"] == "org-1"


def test_json_store_recovers_from_corrupt_file(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileSettingsStore(path)

    assert store.get_refresh_interval_seconds() == 60

    store.set_selected_organization_id("org-2")
    assert JsonFileSettingsStore(path).get_selected_organization_id() == "org-2"


def test_json_store_normalizes_loaded_values(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps(
            {
                "refresh_interval_seconds": 3,
                "selected_organization_id": "   ",
                "session_reset_notified": {"org-1": "2026-01-01T05:00:00.000Z", "": "x", "org-2": 7},
            }
        ),
        encoding="utf-8",
    )
    store = JsonFileSettingsStore(path)

    assert store.get_refresh_interval_seconds() == 10
    assert store.get_selected_organization_id() is None
    assert store.get_notified_period_id(MarkerKind.SESSION_RESET, "org-1") == "2026-01-01T05:00:00.000Z"
    assert store.get_notified_period_id(MarkerKind.SESSION_RESET, "org-2") is None


def test_refresh_interval_below_minimum_is_rejected():
    store = InMemorySettingsStore()

    with pytest.raises(ValueError):
        store.set_refresh_interval_seconds(5)
    assert store.get_refresh_interval_seconds() == 60


def test_blank_marker_values_are_ignored():
    store = InMemorySettingsStore()

    store.set_notified_period_id(MarkerKind.SESSION_NEAR_LIMIT, " ", "2026-01-01T05:00:00.000Z")
    store.set_notified_period_id(MarkerKind.SESSION_NEAR_LIMIT, "org-1", "  ")

    assert store.get_notified_period_id(MarkerKind.SESSION_NEAR_LIMIT, "org-1") is None
    assert store.get_notified_period_id(MarkerKind.SESSION_NEAR_LIMIT, " ") is None


def test_in_memory_store_does_not_share_initial_model():
    initial = PersistedSettings(selected_organization_id="org-1")
    store = InMemorySettingsStore(initial)

    store.set_selected_organization_id(None)

    assert initial.selected_organization_id == "org-1"
    assert store.get_selected_organization_id() is None
