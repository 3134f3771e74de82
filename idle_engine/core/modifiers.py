from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

from .loader import ContentBundle
from .models import ActionBase, EngineState, ModifierEntry, ModifierScope
from .progression import active_pool_bonuses


@dataclass(frozen=True, slots=True)
class ResolvedValue:
    percent: float = 0.0
    flat: float = 0.0
    multiplier: float = 1.0

    @property
    def is_identity(self) -> bool:
        return self.percent == 0.0 and self.flat == 0.0 and self.multiplier == 1.0

    def apply(self, base: float) -> float:
        return (base + self.flat) * (1.0 + self.percent) * self.multiplier


IDENTITY = ResolvedValue()


def action_scope(action: ActionBase, currency: str | None = None) -> ModifierScope:
    return ModifierScope(skill=action.skill, category=action.category, action=action.id, currency=currency)


def resolve(scope: ModifierScope, stat: str, sources: Iterable[ModifierEntry]) -> ResolvedValue:
    """Fold every entry for ``stat`` that applies to ``scope``.

    Sums are exact (fsum) and factors are multiplied in sorted order, so the
    result does not depend on the order sources were collected in.
    """
    matching = [entry for entry in sources if entry.stat == stat and entry.scope.covers(scope)]
    if not matching:
        return IDENTITY
    percent = math.fsum(entry.value for entry in matching if entry.kind == "percent")
    flat = math.fsum(entry.value for entry in matching if entry.kind == "flat")
    multiplier = 1.0
    for factor in sorted(entry.value for entry in matching if entry.kind == "multiplier"):
        multiplier *= factor
    return ResolvedValue(percent=percent, flat=flat, multiplier=multiplier)


@dataclass(frozen=True, slots=True)
class ModifierView:
    """Sources bound to one action scope, as handed to the resolver."""

    scope: ModifierScope
    sources: tuple[ModifierEntry, ...]

    def get(self, stat: str, currency: str | None = None) -> ResolvedValue:
        scope = self.scope if currency is None else self.scope.model_copy(update={"currency": currency})
        return resolve(scope, stat, self.sources)

    def apply(self, stat: str, base: float, currency: str | None = None) -> float:
        return self.get(stat, currency).apply(base)


def _scoped_to_skill(entry: ModifierEntry, skill: str) -> ModifierEntry:
    if entry.scope.skill is not None:
        return entry
    return entry.model_copy(update={"scope": entry.scope.model_copy(update={"skill": skill})})


def collect_sources(state: EngineState, content: ContentBundle) -> list[ModifierEntry]:
    sources: list[ModifierEntry] = []

    for _slot, item_id in sorted(state.equipment.items()):
        item = content.item_by_id.get(item_id)
        if item:
            sources.extend(item.modifiers)

    for upgrade_id, count in sorted(state.upgrades.items()):
        upgrade = content.upgrade_by_id.get(upgrade_id)
        if upgrade:
            for _ in range(count):
                sources.extend(upgrade.modifiers)

    for _slot, slot_state in sorted(state.agility.items()):
        obstacle = content.obstacle_by_id.get(slot_state.obstacle_id or "")
        if obstacle:
            sources.extend(obstacle.modifiers)

    for biome_id, building_id, building_state in state.township.built():
        building = content.building(biome_id, building_id)
        if building:
            for _ in range(building_state.count):
                sources.extend(building.modifiers)

    for skill in content.skills:
        for bonus in active_pool_bonuses(state, content, skill):
            sources.extend(_scoped_to_skill(entry, skill) for entry in bonus.modifiers)

    bonfire = state.bonfire
    if bonfire and bonfire.ticks_remaining > 0 and bonfire.xp_bonus > 0:
        lit_by = content.action_by_id.get(bonfire.action_id)
        if lit_by:
            sources.append(
                ModifierEntry(stat="skillXP", value=bonfire.xp_bonus, kind="percent", scope=ModifierScope(skill=lit_by.skill))
            )
    return sources


def modifiers_for_action(state: EngineState, content: ContentBundle, action: ActionBase) -> ModifierView:
    return ModifierView(scope=action_scope(action), sources=tuple(collect_sources(state, content)))
