from __future__ import annotations

from dataclasses import dataclass, field

from .outcomes import _increment_counter
from .progression import LevelChange
from .resolver import CompletionEvent


def _merge_counts(target: dict[str, int], source: dict[str, int]) -> None:
    for key, qty in source.items():
        _increment_counter(target, key, qty)


def _merge_levels(target: dict[str, LevelChange], key: str, change: LevelChange) -> None:
    current = target.get(key)
    target[key] = change if current is None else current.merge(change)


@dataclass(slots=True)
class ChangeSet:
    """Running totals of what ticks did to a state, foreground and background."""

    skill_xp: dict[str, int] = field(default_factory=dict)
    items_gained: dict[str, int] = field(default_factory=dict)
    items_consumed: dict[str, int] = field(default_factory=dict)
    items_dropped: dict[str, int] = field(default_factory=dict)
    items_lost_on_death: dict[str, int] = field(default_factory=dict)
    currency_gained: dict[str, int] = field(default_factory=dict)
    currency_spent: dict[str, int] = field(default_factory=dict)
    skill_levels: dict[str, LevelChange] = field(default_factory=dict)
    mastery_levels: dict[str, LevelChange] = field(default_factory=dict)
    completions: dict[str, int] = field(default_factory=dict)
    failures: dict[str, int] = field(default_factory=dict)
    damage_taken: int = 0
    deaths: int = 0

    @property
    def is_empty(self) -> bool:
        return not any(
            (
                self.skill_xp,
                self.items_gained,
                self.items_consumed,
                self.items_dropped,
                self.items_lost_on_death,
                self.currency_gained,
                self.currency_spent,
                self.completions,
                self.failures,
                self.damage_taken,
                self.deaths,
            )
        )

    def record_event(self, event: CompletionEvent) -> None:
        _increment_counter(self.skill_xp, event.skill, event.xp)
        _merge_counts(self.items_gained, event.items_gained)
        _merge_counts(self.items_consumed, event.items_consumed)
        _merge_counts(self.items_dropped, event.items_dropped)
        _merge_counts(self.currency_gained, event.currency_gained)
        _merge_counts(self.currency_spent, event.currency_spent)
        _merge_levels(self.skill_levels, event.skill, event.skill_level)
        _merge_levels(self.mastery_levels, event.action_id, event.mastery_level)
        _increment_counter(self.completions if event.success else self.failures, event.action_id, 1)
        self.damage_taken += event.damage
        if event.died:
            self.deaths += 1

    def record_items(self, gained: dict[str, int], dropped: dict[str, int]) -> None:
        _merge_counts(self.items_gained, gained)
        _merge_counts(self.items_dropped, dropped)

    def record_death_loss(self, item_id: str) -> None:
        _increment_counter(self.items_lost_on_death, item_id, 1)

    def merge(self, other: "ChangeSet") -> None:
        _merge_counts(self.skill_xp, other.skill_xp)
        _merge_counts(self.items_gained, other.items_gained)
        _merge_counts(self.items_consumed, other.items_consumed)
        _merge_counts(self.items_dropped, other.items_dropped)
        _merge_counts(self.items_lost_on_death, other.items_lost_on_death)
        _merge_counts(self.currency_gained, other.currency_gained)
        _merge_counts(self.currency_spent, other.currency_spent)
        for skill, change in other.skill_levels.items():
            _merge_levels(self.skill_levels, skill, change)
        for action_id, change in other.mastery_levels.items():
            _merge_levels(self.mastery_levels, action_id, change)
        _merge_counts(self.completions, other.completions)
        _merge_counts(self.failures, other.failures)
        self.damage_taken += other.damage_taken
        self.deaths += other.deaths
