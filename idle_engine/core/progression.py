from __future__ import annotations

import math
from bisect import bisect_right
from dataclasses import dataclass
from typing import Callable

from .loader import ContentBundle
from .models import ActionBase, EngineState, MasteryPoolBonus
from .results import InvalidGrant
from .settings import EngineSettings
from .ticks import round_half_up

MAX_TABLE_LEVEL = 120
MASTERY_POOL_XP_PER_ACTION = 500_000
MASTERY_REFERENCE_LEVEL = 99


def _build_xp_table(max_level: int = MAX_TABLE_LEVEL) -> tuple[int, ...]:
    table = [0]
    points = 0
    for level in range(1, max_level):
        points += math.floor(level + 300 * 2 ** (level / 7))
        table.append(points // 4)
    return tuple(table)


XP_TABLE = _build_xp_table()


def xp_for_level(level: int) -> int:
    """Total XP needed to reach ``level`` (level 1 needs 0)."""
    index = max(1, min(MAX_TABLE_LEVEL, int(level))) - 1
    return XP_TABLE[index]


def level_for_xp(xp: int | float, cap: int = 99) -> int:
    cap = max(1, min(MAX_TABLE_LEVEL, int(cap)))
    return max(1, bisect_right(XP_TABLE, xp, 0, cap))


@dataclass(frozen=True, slots=True)
class LevelChange:
    start: int
    end: int

    @property
    def gained(self) -> int:
        return self.end - self.start

    def merge(self, other: "LevelChange") -> "LevelChange":
        return LevelChange(start=min(self.start, other.start), end=max(self.end, other.end))


@dataclass(frozen=True, slots=True)
class MasteryGrant:
    level_change: LevelChange
    mastery_xp: int
    pool_xp: int


def _checked_amount(amount: int | float, what: str) -> int:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise InvalidGrant(f"{what} grant must be numeric, got {amount!r}.")
    if not math.isfinite(amount) or amount < 0:
        raise InvalidGrant(f"{what} grant must be a finite non-negative number, got {amount!r}.")
    return round_half_up(amount)


def skill_level(state: EngineState, skill: str, settings: EngineSettings) -> int:
    skill_state = state.skill_states.get(skill)
    return level_for_xp(skill_state.xp if skill_state else 0, settings.skill_level_cap)


def mastery_level(state: EngineState, action_id: str, settings: EngineSettings) -> int:
    action_state = state.action_states.get(action_id)
    return level_for_xp(action_state.mastery_xp if action_state else 0, settings.mastery_level_cap)


def total_level(state: EngineState, content: ContentBundle, settings: EngineSettings) -> int:
    return sum(skill_level(state, skill, settings) for skill in content.skills)


def grant_skill_xp(state: EngineState, skill: str, amount: int | float, settings: EngineSettings) -> LevelChange:
    value = _checked_amount(amount, "Skill XP")
    before = skill_level(state, skill, settings)
    state.skill_state(skill).xp += value
    return LevelChange(start=before, end=skill_level(state, skill, settings))


def mastery_pool_max(content: ContentBundle, skill: str) -> int:
    return MASTERY_POOL_XP_PER_ACTION * len(content.actions_for_skill(skill))


def mastery_pool_percent(state: EngineState, content: ContentBundle, skill: str) -> float:
    maximum = mastery_pool_max(content, skill)
    if maximum <= 0:
        return 0.0
    skill_state = state.skill_states.get(skill)
    pool_xp = skill_state.mastery_pool_xp if skill_state else 0
    return min(100.0, pool_xp / maximum * 100.0)


def active_pool_bonuses(state: EngineState, content: ContentBundle, skill: str) -> list[MasteryPoolBonus]:
    percent = mastery_pool_percent(state, content, skill)
    return [bonus for bonus in content.pool_bonuses_by_skill.get(skill, []) if percent >= bonus.percent]


def grant_mastery_xp(
    state: EngineState,
    action: ActionBase,
    amount: int | float,
    content: ContentBundle,
    settings: EngineSettings,
) -> MasteryGrant:
    """Grant action mastery and mirror a fraction of it into the skill's pool."""
    value = _checked_amount(amount, "Mastery XP")
    before = mastery_level(state, action.id, settings)
    state.action_state(action.id).mastery_xp += value

    pool_xp = 0
    if value > 0 and settings.mastery_pool_fraction > 0:
        pool_xp = max(1, math.floor(settings.mastery_pool_fraction * value))
        skill_state = state.skill_state(action.skill)
        room = max(0, mastery_pool_max(content, action.skill) - skill_state.mastery_pool_xp)
        pool_xp = min(pool_xp, room)
        skill_state.mastery_pool_xp += pool_xp

    after = mastery_level(state, action.id, settings)
    return MasteryGrant(level_change=LevelChange(start=before, end=after), mastery_xp=value, pool_xp=pool_xp)


def total_mastery_level(state: EngineState, content: ContentBundle, skill: str, settings: EngineSettings) -> int:
    return sum(mastery_level(state, action.id, settings) for action in content.actions_for_skill(skill))


def unlocked_action_count(state: EngineState, content: ContentBundle, skill: str, settings: EngineSettings) -> int:
    level = skill_level(state, skill, settings)
    return sum(1 for action in content.actions_for_skill(skill) if action.unlock_level <= level)


def mastery_xp_per_action(
    state: EngineState,
    content: ContentBundle,
    action: ActionBase,
    action_seconds: float,
    settings: EngineSettings,
    adjust: Callable[[float], float] | None = None,
) -> int:
    """Mastery XP for one completion; ``adjust`` folds in masteryXP modifiers."""
    actions_in_skill = len(content.actions_for_skill(action.skill))
    if actions_in_skill <= 0:
        return 0
    unlocked = unlocked_action_count(state, content, action.skill, settings)
    mastery_portion = unlocked * (
        total_mastery_level(state, content, action.skill, settings) / (actions_in_skill * MASTERY_REFERENCE_LEVEL)
    )
    item_portion = mastery_level(state, action.id, settings) * (actions_in_skill / 10)
    raw = (mastery_portion + item_portion) * action_seconds * 0.5
    if adjust is not None:
        raw = adjust(raw)
    return max(1, math.floor(raw))
