from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from idle_engine.core.persistence import write_json_atomic
from idle_engine.core.settings import AppSettings, default_settings, merge_settings

logger = logging.getLogger(__name__)


def _merge_defaults(data: dict[str, Any]) -> dict[str, Any]:
    """Keep known keys from ``data``; anything unknown or invalid falls back to defaults."""
    merged = default_settings()
    for section, section_values in data.items():
        if section not in merged or not isinstance(section_values, dict):
            continue
        for key, value in section_values.items():
            if key in merged[section]:
                merged[section][key] = value
    try:
        return merge_settings(merged)
    except ValueError as exc:
        logger.warning("Settings file has invalid values, using defaults: %s", exc)
        return default_settings()


class SettingsStore:
    def __init__(self, settings_path: Path) -> None:
        self.settings_path = settings_path

    def load(self) -> dict[str, Any]:
        if not self.settings_path.exists():
            settings = default_settings()
            self.save(settings)
            return settings
        try:
            payload = json.loads(self.settings_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        settings = _merge_defaults(payload)
        self.save(settings)
        return settings

    def load_model(self) -> AppSettings:
        return AppSettings.model_validate(self.load())

    def save(self, settings: dict[str, Any]) -> None:
        write_json_atomic(self.settings_path, settings)
