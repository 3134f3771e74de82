from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

from .loader import ContentBundle
from .models import ActionBase, DropTablePick
from .rng import DeterministicRNG

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class WeightedOption(Generic[T]):
    value: T
    weight: float


def roll(rng: DeterministicRNG, probability: float) -> bool:
    """Bernoulli trial. Certain outcomes do not consume a draw."""
    if probability <= 0:
        return False
    if probability >= 1:
        return True
    return rng.next_float() < probability


def pick_weighted(rng: DeterministicRNG, options: Sequence[WeightedOption[T]]) -> T | None:
    """Pick one option in proportion to its weight, or None when every weight is zero."""
    valid = [option for option in options if option.weight > 0]
    total = math.fsum(option.weight for option in valid)
    if total <= 0:
        return None
    cursor = rng.next_float() * total
    for option in valid:
        if cursor < option.weight:
            return option.value
        cursor -= option.weight
    return valid[-1].value


def _increment_counter(counter: dict[str, int], key: str, qty: int) -> None:
    if qty <= 0:
        return
    counter[key] = counter.get(key, 0) + qty


def roll_drop_table(rng: DeterministicRNG, table_id: str, content: ContentBundle) -> tuple[str, int] | None:
    table = content.drop_table_by_id[table_id]
    if not roll(rng, table.rate):
        return None
    pick: DropTablePick | None = pick_weighted(
        rng, [WeightedOption(value=entry, weight=entry.weight) for entry in table.picks]
    )
    if pick is None:
        return None
    return pick.item_id, rng.next_between(pick.min_qty, pick.upper_qty)


def roll_action_items(
    rng: DeterministicRNG,
    action: ActionBase,
    content: ContentBundle,
    doubling_chance: float = 0.0,
) -> dict[str, int]:
    """Guaranteed outputs, independent drops, then one pick per triggered table.

    Every produced stack then gets its own doubling roll.
    """
    produced: dict[str, int] = {}
    for item_id, qty in sorted(action.outputs.items()):
        _increment_counter(produced, item_id, qty)
    for drop in action.drops:
        if roll(rng, drop.rate):
            _increment_counter(produced, drop.item_id, drop.count)
    for table_id in action.drop_tables:
        picked = roll_drop_table(rng, table_id, content)
        if picked is not None:
            _increment_counter(produced, picked[0], picked[1])
    if doubling_chance > 0:
        for item_id in sorted(produced):
            if roll(rng, doubling_chance):
                produced[item_id] *= 2
    return produced


def expected_action_items(action: ActionBase, content: ContentBundle, doubling_chance: float = 0.0) -> dict[str, float]:
    """Mean items per completion, used for per-hour predictions."""
    expected: dict[str, float] = {}
    for item_id, qty in action.outputs.items():
        expected[item_id] = expected.get(item_id, 0.0) + qty
    for drop in action.drops:
        expected[drop.item_id] = expected.get(drop.item_id, 0.0) + drop.rate * drop.count
    for table_id in action.drop_tables:
        table = content.drop_table_by_id[table_id]
        total = math.fsum(pick.weight for pick in table.picks if pick.weight > 0)
        if total <= 0:
            continue
        for pick in table.picks:
            if pick.weight <= 0:
                continue
            mean_qty = (pick.min_qty + pick.upper_qty) / 2
            expected[pick.item_id] = expected.get(pick.item_id, 0.0) + table.rate * (pick.weight / total) * mean_qty
    factor = 1.0 + max(0.0, min(1.0, doubling_chance))
    return {item_id: qty * factor for item_id, qty in expected.items()}


def thieving_success_chance(stealth: float, perception: float) -> float:
    return max(0.0, min(1.0, (100.0 + stealth) / (100.0 + perception)))
