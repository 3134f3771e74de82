from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from .models import SAVE_VERSION, SaveData
from .settings import EngineSettings

if TYPE_CHECKING:
    from .loader import ContentBundle

DEFAULT_SLOT_COUNT = 3
MIN_SLOT_COUNT = 3
MAX_SLOT_COUNT = 5

logger = logging.getLogger(__name__)


def normalize_slot_count(slot_count: int) -> int:
    return max(MIN_SLOT_COUNT, min(MAX_SLOT_COUNT, int(slot_count)))


@dataclass(slots=True)
class SlotSummary:
    slot: int
    occupied: bool
    slot_name: str
    total_level: int = 0
    active_action: str | None = None
    seed_preview: str = "-"
    last_played: str | None = None


def _coerce_dict(value: Any, default: dict[str, Any] | None = None) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {} if default is None else dict(default)


def _migrate_v0_to_v1(payload: dict[str, Any]) -> dict[str, Any]:
    if "state" not in payload:
        payload = {"state": {key: value for key, value in payload.items() if key != "save_version"}}
    payload["save_version"] = 1
    return payload


def _migrate_v1_to_v2(payload: dict[str, Any]) -> dict[str, Any]:
    state = _coerce_dict(payload.get("state"))

    legacy_action = state.pop("active_action", None)
    if isinstance(legacy_action, dict) and legacy_action.get("actionId"):
        total = max(1, int(legacy_action.get("totalTicks", 1) or 1))
        remaining = max(0, min(total, int(legacy_action.get("remainingTicks", total) or 0)))
        state["active_run"] = {
            "action_id": legacy_action["actionId"],
            "progress_ticks": total - remaining,
            "total_ticks": total,
        }

    pools = _coerce_dict(state.pop("mastery_pools", None))
    skill_states = _coerce_dict(state.get("skill_states"))
    for skill, pool_xp in pools.items():
        entry = _coerce_dict(skill_states.get(skill))
        entry["mastery_pool_xp"] = int(pool_xp or 0)
        skill_states[skill] = entry
    state["skill_states"] = skill_states

    payload["state"] = state
    payload["save_version"] = 2
    return payload


MIGRATION_STEPS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    0: _migrate_v0_to_v1,
    1: _migrate_v1_to_v2,
}


def migrate_save(payload: Any) -> dict[str, Any]:
    state = _coerce_dict(payload)

    version_raw = state.get("save_version")
    try:
        version = int(version_raw) if version_raw is not None else 0
    except (TypeError, ValueError):
        version = 0
    if version < 0:
        version = 0
    if version > SAVE_VERSION:
        logger.warning("Save version %s is newer than %s; loading what this build understands.", version, SAVE_VERSION)
        version = SAVE_VERSION
    if "state" not in state:
        version = 0

    while version < SAVE_VERSION:
        step = MIGRATION_STEPS.get(version)
        if step is None:
            raise ValueError(f"No migration step defined from version {version}.")
        state = step(state)
        version = int(state.get("save_version", version + 1))
    state["save_version"] = SAVE_VERSION
    return state


class SlotStorage:
    def __init__(
        self,
        saves_dir: Path,
        content: "ContentBundle",
        slot_count: int = DEFAULT_SLOT_COUNT,
        settings: EngineSettings | None = None,
    ) -> None:
        self.saves_dir = saves_dir
        self.content = content
        self.settings = settings or EngineSettings()
        self.slot_count = normalize_slot_count(slot_count)
        self.slot_ids = tuple(range(1, self.slot_count + 1))
        self.meta_path = self.saves_dir / "meta.json"
        self.saves_dir.mkdir(parents=True, exist_ok=True)
        if not self.meta_path.exists():
            self._write_meta({"last_slot": None, "slot_count": self.slot_count, "slots": {}})

    def _slot_path(self, slot: int) -> Path:
        return self.saves_dir / f"slot{slot}.json"

    def _default_slot_meta(self, slot: int) -> dict[str, Any]:
        return {
            "slot_name": f"Slot {slot}",
            "last_played": None,
            "total_level": 0,
            "active_action": None,
            "seed_preview": "-",
        }

    def _read_meta(self) -> dict[str, Any]:
        if not self.meta_path.exists():
            return {"last_slot": None, "slot_count": self.slot_count, "slots": {}}
        try:
            payload = json.loads(self.meta_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        payload.setdefault("last_slot", None)
        payload["slot_count"] = normalize_slot_count(payload.get("slot_count", self.slot_count))
        payload.setdefault("slots", {})
        return payload

    def _write_meta(self, payload: dict[str, Any]) -> None:
        from .persistence import write_json_atomic

        write_json_atomic(self.meta_path, payload)

    def slot_exists(self, slot: int) -> bool:
        return self._slot_path(slot).exists()

    def load_slot(self, slot: int, seed: int | str | None = None) -> SaveData:
        from .persistence import load_save_data

        if not self.slot_exists(slot):
            return self.create_new_game(slot, seed=seed)
        data = load_save_data(self._slot_path(slot), self.content)
        self._touch_meta_slot(slot, save_data=data)
        return data

    def save_slot(self, slot: int, save_data: SaveData, now: int | None = None) -> None:
        from .persistence import save_save_data

        save_save_data(save_data, self._slot_path(slot), now=now)
        self._touch_meta_slot(slot, save_data=save_data)

    def create_new_game(self, slot: int, seed: int | str | None = None, now: int | None = None) -> SaveData:
        from .persistence import create_default_save_data

        data = create_default_save_data(seed=seed, now=now)
        self.save_slot(slot, data, now=now)
        return data

    def delete_slot(self, slot: int) -> None:
        self._slot_path(slot).unlink(missing_ok=True)
        meta = self._read_meta()
        meta.get("slots", {}).pop(str(slot), None)
        if meta.get("last_slot") == slot:
            meta["last_slot"] = None
        self._write_meta(meta)

    def rename_slot(self, slot: int, name: str) -> None:
        clean = name.strip()
        if not clean:
            raise ValueError("Slot name cannot be empty.")
        meta = self._read_meta()
        entry = meta.setdefault("slots", {}).setdefault(str(slot), self._default_slot_meta(slot))
        entry["slot_name"] = clean[:32]
        self._write_meta(meta)

    def last_slot(self) -> int | None:
        value = self._read_meta().get("last_slot")
        if isinstance(value, int) and value in self.slot_ids:
            return value
        return None

    def _summarize(self, save_data: SaveData) -> dict[str, Any]:
        from .progression import total_level

        state = save_data.state
        return {
            "total_level": total_level(state, self.content, self.settings),
            "active_action": state.active_run.action_id if state.active_run else None,
            "seed_preview": str(state.seed),
        }

    def _touch_meta_slot(self, slot: int, save_data: SaveData | None = None) -> None:
        meta = self._read_meta()
        entry = meta.setdefault("slots", {}).setdefault(str(slot), self._default_slot_meta(slot))
        entry["last_played"] = datetime.now(timezone.utc).isoformat()
        if save_data is not None:
            entry.update(self._summarize(save_data))
        meta["last_slot"] = slot
        self._write_meta(meta)

    def list_slots(self) -> list[SlotSummary]:
        from .persistence import load_save_data

        summaries: list[SlotSummary] = []
        slots_meta = _coerce_dict(self._read_meta().get("slots"))
        for slot in self.slot_ids:
            slot_meta = _coerce_dict(slots_meta.get(str(slot)), default=self._default_slot_meta(slot))
            slot_name = str(slot_meta.get("slot_name", f"Slot {slot}"))
            if not self.slot_exists(slot):
                summaries.append(SlotSummary(slot=slot, occupied=False, slot_name=slot_name, last_played=slot_meta.get("last_played")))
                continue
            try:
                summary = self._summarize(load_save_data(self._slot_path(slot), self.content))
            except (OSError, ValueError) as exc:
                logger.warning("Slot %s could not be read: %s", slot, exc)
                summaries.append(SlotSummary(slot=slot, occupied=False, slot_name=slot_name, last_played=slot_meta.get("last_played")))
                continue
            summaries.append(
                SlotSummary(
                    slot=slot,
                    occupied=True,
                    slot_name=slot_name,
                    total_level=summary["total_level"],
                    active_action=summary["active_action"],
                    seed_preview=summary["seed_preview"],
                    last_played=slot_meta.get("last_played"),
                )
            )
        return summaries
