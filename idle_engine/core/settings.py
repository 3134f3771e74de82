from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .ticks import TICKS_PER_HOUR, round_half_up, seconds_to_ticks


class EngineSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    max_offline_hours: float = Field(default=24.0, gt=0)
    mastery_pool_fraction: float = Field(default=0.25, ge=0, le=1)
    skill_level_cap: int = Field(default=99, ge=1, le=120)
    mastery_level_cap: int = Field(default=99, ge=1, le=120)
    base_inventory_capacity: int = Field(default=2000, ge=0)
    stun_seconds: float = Field(default=3.0, ge=0)
    max_hp: int = Field(default=100, ge=1)
    hp_regen_seconds: float = Field(default=10.0, gt=0)
    death_penalty: bool = True
    township_update_seconds: float = Field(default=300.0, gt=0)

    @property
    def max_offline_ticks(self) -> int:
        return int(self.max_offline_hours * TICKS_PER_HOUR)

    @property
    def stun_ticks(self) -> int:
        return seconds_to_ticks(self.stun_seconds)

    @property
    def hp_regen_ticks(self) -> int:
        return max(1, seconds_to_ticks(self.hp_regen_seconds))

    @property
    def hp_regen_amount(self) -> int:
        return max(1, round_half_up(self.max_hp * 0.01))

    @property
    def township_update_ticks(self) -> int:
        return max(1, seconds_to_ticks(self.township_update_seconds))


class RuntimeSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    update_interval_ms: int = Field(default=100, ge=10, le=5000)
    autosave_seconds: float = Field(default=30.0, gt=0)
    save_slots: int = Field(default=3, ge=3, le=5)
    show_welcome_back: bool = True


class AppSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    engine: EngineSettings = Field(default_factory=EngineSettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)

    def as_dict(self) -> dict[str, Any]:
        return json.loads(self.model_dump_json())


def merge_settings(payload: dict[str, Any] | None) -> dict[str, Any]:
    if not isinstance(payload, dict):
        payload = {}
    return AppSettings.model_validate(payload).as_dict()


def default_settings() -> dict[str, Any]:
    return AppSettings().as_dict()
