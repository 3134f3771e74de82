from __future__ import annotations

import json
from pathlib import Path

from idle_engine.app.services.settings_store import SettingsStore


def test_settings_store_read_write(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    store = SettingsStore(path)
    loaded = store.load()
    assert loaded["engine"]["max_offline_hours"] == 24.0
    assert loaded["runtime"]["autosave_seconds"] == 30.0

    loaded["engine"]["max_offline_hours"] = 12.0
    loaded["runtime"]["show_welcome_back"] = False
    store.save(loaded)

    reloaded = store.load_model()
    assert reloaded.engine.max_offline_hours == 12.0
    assert reloaded.runtime.show_welcome_back is False
    assert reloaded.engine.max_offline_ticks == 12 * 36_000


def test_unknown_keys_are_dropped_and_bad_values_reset(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps({"engine": {"max_hp": 250, "legacy_flag": True}, "video": {"fullscreen": True}}),
        encoding="utf-8",
    )
    loaded = SettingsStore(path).load()
    assert loaded["engine"]["max_hp"] == 250
    assert "legacy_flag" not in loaded["engine"]
    assert "video" not in loaded

    path.write_text(json.dumps({"runtime": {"save_slots": 99}}), encoding="utf-8")
    assert SettingsStore(path).load()["runtime"]["save_slots"] == 3


def test_corrupt_settings_fall_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")
    loaded = SettingsStore(path).load()
    assert loaded["runtime"]["update_interval_ms"] == 100
    assert json.loads(path.read_text(encoding="utf-8")) == loaded
