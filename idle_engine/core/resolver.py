from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .loader import ContentBundle
from .modifiers import ModifierView
from .models import ActionBase, EngineState, ThievingAction
from .outcomes import _increment_counter, roll, roll_action_items, thieving_success_chance
from .persistence import add_currency, inventory_capacity, missing_costs, pay_costs, store_item
from .progression import LevelChange, grant_mastery_xp, grant_skill_xp, mastery_level, mastery_xp_per_action, skill_level
from .results import Failure
from .rng import DeterministicRNG
from .settings import EngineSettings
from .ticks import MS_PER_TICK, round_half_up

logger = logging.getLogger(__name__)

THIEVING_BASE_STEALTH = 40


@dataclass(slots=True)
class CompletionResult:
    """Everything one completion would change, computed without touching state."""

    action_id: str
    duration_ticks: int
    success: bool = True
    xp: int = 0
    mastery_xp: int = 0
    items: dict[str, int] = field(default_factory=dict)
    currency_gained: dict[str, int] = field(default_factory=dict)
    damage: int = 0


@dataclass(frozen=True, slots=True)
class CompletionEvent:
    action_id: str
    skill: str
    tick: int
    success: bool
    duration_ticks: int
    xp: int
    mastery_xp: int
    pool_xp: int
    items_gained: dict[str, int]
    items_dropped: dict[str, int]
    items_consumed: dict[str, int]
    currency_gained: dict[str, int]
    currency_spent: dict[str, int]
    skill_level: LevelChange
    mastery_level: LevelChange
    damage: int = 0
    died: bool = False


def _adjusted_ticks(base_ms: float, modifiers: ModifierView) -> int:
    return max(1, round_half_up(modifiers.apply("interval", base_ms) / MS_PER_TICK))


def resolve_duration_ticks(action: ActionBase, modifiers: ModifierView, rng: DeterministicRNG) -> int:
    """Ticks for one run. Fixed durations never draw from the RNG."""
    if not action.is_variable:
        return _adjusted_ticks(action.base_min_ms, modifiers)
    low = _adjusted_ticks(action.base_min_ms, modifiers)
    high = _adjusted_ticks(action.base_max_ms, modifiers)
    return rng.next_between(min(low, high), max(low, high))


def resolve_skill_xp(action: ActionBase, modifiers: ModifierView) -> int:
    return max(0, round_half_up(modifiers.apply("skillXP", action.xp)))


def doubling_chance(modifiers: ModifierView) -> float:
    return max(0.0, min(1.0, modifiers.apply("doublingChance", 0.0)))


def thieving_stealth(state: EngineState, action: ThievingAction, modifiers: ModifierView, settings: EngineSettings) -> float:
    return (
        THIEVING_BASE_STEALTH
        + skill_level(state, action.skill, settings)
        + mastery_level(state, action.id, settings)
        + modifiers.apply("stealth", 0.0)
    )


def _scaled_currency(modifiers: ModifierView, currency: str, amount: int) -> int:
    return max(0, round_half_up(modifiers.apply("currencyGain", amount, currency=currency)))


def resolve_completion(
    action: ActionBase,
    modifiers: ModifierView,
    rng: DeterministicRNG,
    state: EngineState,
    content: ContentBundle,
    settings: EngineSettings,
    duration_ticks: int,
) -> CompletionResult | Failure:
    missing = missing_costs(state, action.inputs, action.currency_costs)
    if missing:
        return Failure.insufficient(missing)

    result = CompletionResult(action_id=action.id, duration_ticks=duration_ticks)

    if isinstance(action, ThievingAction):
        chance = thieving_success_chance(thieving_stealth(state, action, modifiers, settings), action.perception)
        if not roll(rng, chance):
            result.success = False
            result.damage = rng.next_between(1, action.max_hit)
            return result
        if action.max_gold > 0:
            gold = _scaled_currency(modifiers, action.gold_currency, rng.next_between(1, action.max_gold))
            _increment_counter(result.currency_gained, action.gold_currency, gold)

    for currency, amount in sorted(action.currency_outputs.items()):
        _increment_counter(result.currency_gained, currency, _scaled_currency(modifiers, currency, amount))

    result.items = roll_action_items(rng, action, content, doubling_chance(modifiers))
    result.xp = resolve_skill_xp(action, modifiers)
    result.mastery_xp = mastery_xp_per_action(
        state,
        content,
        action,
        action.mean_seconds,
        settings,
        adjust=modifiers.get("masteryXP").apply,
    )
    return result


def apply_completion(
    state: EngineState,
    action: ActionBase,
    result: CompletionResult,
    content: ContentBundle,
    settings: EngineSettings,
) -> CompletionEvent:
    """Commit a resolved completion. Yields beyond capacity are dropped, not refused."""
    pay_costs(state, action.inputs, action.currency_costs)

    items_gained: dict[str, int] = {}
    items_dropped: dict[str, int] = {}
    capacity = inventory_capacity(state, content, settings)
    for item_id, qty in sorted(result.items.items()):
        stored, dropped = store_item(state, item_id, qty, capacity)
        _increment_counter(items_gained, item_id, stored)
        _increment_counter(items_dropped, item_id, dropped)
    if items_dropped:
        logger.debug("Inventory full during %s; dropped %s.", action.id, items_dropped)

    for currency, amount in sorted(result.currency_gained.items()):
        add_currency(state, currency, amount)

    skill_change = grant_skill_xp(state, action.skill, result.xp, settings)
    mastery = grant_mastery_xp(state, action, result.mastery_xp, content, settings)

    action_state = state.action_state(action.id)
    action_state.completions += 1
    action_state.cumulative_ticks += result.duration_ticks

    died = False
    if result.damage > 0:
        state.health.lost_hp += result.damage
        if state.health.lost_hp >= settings.max_hp:
            died = True
            state.health.lost_hp = 0

    return CompletionEvent(
        action_id=action.id,
        skill=action.skill,
        tick=state.tick,
        success=result.success,
        duration_ticks=result.duration_ticks,
        xp=result.xp,
        mastery_xp=mastery.mastery_xp,
        pool_xp=mastery.pool_xp,
        items_gained=items_gained,
        items_dropped=items_dropped,
        items_consumed=dict(action.inputs),
        currency_gained=dict(result.currency_gained),
        currency_spent=dict(action.currency_costs),
        skill_level=skill_change,
        mastery_level=mastery.level_change,
        damage=result.damage,
        died=died,
    )
