from __future__ import annotations

import logging

from .changes import ChangeSet
from .loader import ContentBundle
from .models import BonfireState, EngineState, FiremakingAction, TownshipBuilding, TownshipBuildingState
from .outcomes import _increment_counter, roll
from .persistence import inventory_capacity, store_item
from .rng import DeterministicRNG
from .settings import EngineSettings
from .ticks import round_half_up, seconds_to_ticks

TOWNSHIP_DECAY_CHANCE = 0.25
TOWNSHIP_DECAY_STEP = 1.0
TOWNSHIP_MIN_EFFICIENCY = 20.0
TOWNSHIP_MAX_EFFICIENCY = 100.0

logger = logging.getLogger(__name__)


def next_background_boundary(state: EngineState) -> int | None:
    candidates: list[int] = []
    if state.bonfire and state.bonfire.ticks_remaining > 0:
        candidates.append(state.bonfire.ticks_remaining)
    if state.township.built() and state.township.ticks_until_update > 0:
        candidates.append(state.township.ticks_until_update)
    if state.health.lost_hp > 0 and state.health.regen_ticks_remaining > 0:
        candidates.append(state.health.regen_ticks_remaining)
    return min(candidates) if candidates else None


def light_bonfire(state: EngineState, action: FiremakingAction) -> BonfireState:
    ticks = max(1, seconds_to_ticks(action.bonfire_seconds or 0))
    state.bonfire = BonfireState(action_id=action.id, ticks_remaining=ticks, total_ticks=ticks, xp_bonus=action.bonfire_xp_bonus)
    return state.bonfire


def township_repair_cost(building: TownshipBuilding, building_state: TownshipBuildingState) -> dict[str, int]:
    missing = max(0.0, TOWNSHIP_MAX_EFFICIENCY - building_state.efficiency)
    costs: dict[str, int] = {}
    for currency, per_percent in sorted(building.repair_costs.items()):
        _increment_counter(costs, currency, round_half_up(per_percent * missing * building_state.count))
    return costs


def township_update(
    state: EngineState,
    content: ContentBundle,
    rng: DeterministicRNG,
    settings: EngineSettings,
    changes: ChangeSet,
) -> None:
    capacity = inventory_capacity(state, content, settings)
    gained: dict[str, int] = {}
    dropped: dict[str, int] = {}
    built = state.township.built()
    for biome_id, building_id, building_state in built:
        building = content.building(biome_id, building_id)
        if building is None:
            continue
        for item_id, qty in sorted(building.production.items()):
            amount = round_half_up(qty * building_state.count * building_state.efficiency / 100.0)
            stored, lost = store_item(state, item_id, amount, capacity)
            _increment_counter(gained, item_id, stored)
            _increment_counter(dropped, item_id, lost)
    for _biome_id, _building_id, building_state in built:
        if roll(rng, TOWNSHIP_DECAY_CHANCE):
            building_state.efficiency = max(TOWNSHIP_MIN_EFFICIENCY, building_state.efficiency - TOWNSHIP_DECAY_STEP)
    changes.record_items(gained, dropped)
    logger.debug("Township update produced %s (dropped %s).", gained, dropped)


def ensure_township_schedule(state: EngineState, settings: EngineSettings) -> None:
    if state.township.built() and state.township.ticks_until_update <= 0:
        state.township.ticks_until_update = settings.township_update_ticks


def ensure_health_regen(state: EngineState, settings: EngineSettings) -> None:
    health = state.health
    if health.lost_hp <= 0:
        health.regen_ticks_remaining = 0
    elif health.regen_ticks_remaining <= 0:
        health.regen_ticks_remaining = settings.hp_regen_ticks


def regenerate_health(state: EngineState, ticks: int, settings: EngineSettings) -> None:
    health = state.health
    if health.lost_hp <= 0 or health.regen_ticks_remaining <= 0:
        return
    health.regen_ticks_remaining = max(0, health.regen_ticks_remaining - ticks)
    if health.regen_ticks_remaining == 0:
        health.lost_hp = max(0, health.lost_hp - settings.hp_regen_amount)
        ensure_health_regen(state, settings)


def advance_background(
    state: EngineState,
    content: ContentBundle,
    ticks: int,
    rng: DeterministicRNG,
    settings: EngineSettings,
    changes: ChangeSet,
) -> None:
    """Advance passive runs by ``ticks``; callers never step past a boundary."""
    bonfire = state.bonfire
    if bonfire:
        bonfire.ticks_remaining = max(0, bonfire.ticks_remaining - ticks)
        if bonfire.ticks_remaining == 0:
            state.bonfire = None

    regenerate_health(state, ticks, settings)

    township = state.township
    if not township.built() or township.ticks_until_update <= 0:
        return
    township.ticks_until_update = max(0, township.ticks_until_update - ticks)
    if township.ticks_until_update == 0:
        township_update(state, content, rng, settings, changes)
        township.ticks_until_update = settings.township_update_ticks
