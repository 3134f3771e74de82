from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path

from .loader import ContentBundle
from .models import SAVE_VERSION, EngineState, SaveData
from .save_system import migrate_save
from .settings import EngineSettings

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def inventory_used(state: EngineState) -> int:
    return sum(max(0, int(qty)) for qty in state.inventory.values())


def inventory_capacity(state: EngineState, content: ContentBundle, settings: EngineSettings) -> int:
    bonus = 0
    for upgrade_id, count in state.upgrades.items():
        upgrade = content.upgrade_by_id.get(upgrade_id)
        if upgrade:
            bonus += upgrade.capacity_bonus * count
    return settings.base_inventory_capacity + bonus


def store_item(state: EngineState, item_id: str, qty: int, capacity: int | None = None) -> tuple[int, int]:
    """Add up to ``qty`` units; returns (stored, dropped). ``None`` capacity means unbounded."""
    if qty <= 0:
        return 0, 0
    stored = qty
    if capacity is not None:
        stored = max(0, min(qty, capacity - inventory_used(state)))
    if stored > 0:
        state.inventory[item_id] = int(state.inventory.get(item_id, 0)) + stored
    return stored, qty - stored


def take_item(state: EngineState, item_id: str, qty: int = 1) -> bool:
    if qty <= 0:
        return True
    current = int(state.inventory.get(item_id, 0))
    if current < qty:
        return False
    remaining = current - qty
    if remaining <= 0:
        state.inventory.pop(item_id, None)
    else:
        state.inventory[item_id] = remaining
    return True


def add_currency(state: EngineState, currency: str, amount: int) -> None:
    if amount <= 0:
        return
    state.currencies[currency] = int(state.currencies.get(currency, 0)) + amount


def missing_costs(
    state: EngineState,
    items: dict[str, int] | None = None,
    currencies: dict[str, int] | None = None,
) -> dict[str, int]:
    missing: dict[str, int] = {}
    for item_id, qty in (items or {}).items():
        have = int(state.inventory.get(item_id, 0))
        if have < qty:
            missing[item_id] = qty - have
    for currency, amount in (currencies or {}).items():
        have = int(state.currencies.get(currency, 0))
        if have < amount:
            missing[currency] = amount - have
    return missing


def pay_costs(
    state: EngineState,
    items: dict[str, int] | None = None,
    currencies: dict[str, int] | None = None,
) -> None:
    """Deduct costs that ``missing_costs`` already cleared."""
    for item_id, qty in (items or {}).items():
        if not take_item(state, item_id, qty):
            raise ValueError(f"Cannot pay {qty}x '{item_id}'.")
    for currency, amount in (currencies or {}).items():
        have = int(state.currencies.get(currency, 0))
        if have < amount:
            raise ValueError(f"Cannot pay {amount} {currency}.")
        state.currencies[currency] = have - amount


def prune_unknown_content(state: EngineState, content: ContentBundle) -> list[str]:
    """Drop references to ids this build does not know so newer saves still load."""
    removed: list[str] = []

    def _drop(kind: str, key: object) -> None:
        removed.append(f"{kind}:{key}")
        logger.warning("Dropping unknown %s '%s' from save.", kind, key)

    for action_id in [key for key in state.action_states if key not in content.action_by_id]:
        state.action_states.pop(action_id)
        _drop("action", action_id)
    for skill in [key for key in state.skill_states if key not in content.skill_actions]:
        state.skill_states.pop(skill)
        _drop("skill", skill)
    for item_id in [key for key in state.inventory if key not in content.item_by_id]:
        state.inventory.pop(item_id)
        _drop("item", item_id)
    for slot in [key for key, item_id in state.equipment.items() if item_id not in content.item_by_id]:
        _drop("equipment", state.equipment.pop(slot))
    for upgrade_id in [key for key in state.upgrades if key not in content.upgrade_by_id]:
        state.upgrades.pop(upgrade_id)
        _drop("upgrade", upgrade_id)
    for slot, slot_state in sorted(state.agility.items()):
        obstacle = content.obstacle_by_id.get(slot_state.obstacle_id or "")
        if slot_state.obstacle_id and (obstacle is None or obstacle.slot != slot):
            _drop("obstacle", slot_state.obstacle_id)
            slot_state.obstacle_id = None
    for biome_id, biome in list(state.township.buildings.items()):
        for building_id in [key for key in biome if content.building(biome_id, key) is None]:
            biome.pop(building_id)
            _drop("building", f"{biome_id}/{building_id}")
        if not biome:
            state.township.buildings.pop(biome_id)
    if state.active_run and state.active_run.action_id not in content.action_by_id:
        _drop("active run", state.active_run.action_id)
        state.active_run = None
    if state.bonfire and state.bonfire.action_id not in content.action_by_id:
        _drop("bonfire", state.bonfire.action_id)
        state.bonfire = None
    return removed


def create_default_save_data(seed: int | str | None = None, now: int | None = None) -> SaveData:
    from .engine import create_initial_state

    return SaveData(save_version=SAVE_VERSION, state=create_initial_state(seed=seed, now_ms=now))


def load_save_data(save_path: Path | str, content: ContentBundle, seed: int | str | None = None) -> SaveData:
    path = Path(save_path)
    if not path.exists():
        return create_default_save_data(seed=seed)
    data = json.loads(path.read_text(encoding="utf-8"))
    hydrated = SaveData.model_validate(migrate_save(data))
    hydrated.save_version = SAVE_VERSION
    prune_unknown_content(hydrated.state, content)
    return hydrated


def write_json_atomic(path: Path, payload: object) -> None:
    """Readers only ever see the previous file or the complete new one."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


def save_save_data(save: SaveData, save_path: Path | str, now: int | None = None) -> None:
    save.save_version = SAVE_VERSION
    save.last_saved_at = max(save.last_saved_at, now if now is not None else now_ms())
    write_json_atomic(Path(save_path), save.model_dump(mode="json"))
