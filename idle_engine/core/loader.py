from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, TypeVar

from pydantic import TypeAdapter, ValidationError

from .models import (
    ActionDefinition,
    AgilityObstacle,
    DropTable,
    FiremakingAction,
    Item,
    MasteryPoolBonus,
    ModifierEntry,
    ShopUpgrade,
    TownshipBuilding,
)

T = TypeVar("T")

DEFAULT_CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"
KNOWN_STATS = frozenset({"interval", "skillXP", "masteryXP", "doublingChance", "currencyGain", "stealth"})

logger = logging.getLogger(__name__)


class ContentValidationError(ValueError):
    def __init__(self, message: str, details: list[str] | None = None) -> None:
        self.details = details or []
        suffix = "\n".join(self.details)
        super().__init__(f"{message}\n{suffix}" if suffix else message)


@dataclass(slots=True)
class ContentBundle:
    items: list[Item]
    actions: list[ActionDefinition]
    drop_tables: list[DropTable]
    upgrades: list[ShopUpgrade]
    obstacles: list[AgilityObstacle]
    buildings: list[TownshipBuilding]
    pool_bonuses: list[MasteryPoolBonus]
    item_by_id: dict[str, Item]
    action_by_id: dict[str, ActionDefinition]
    drop_table_by_id: dict[str, DropTable]
    upgrade_by_id: dict[str, ShopUpgrade]
    obstacle_by_id: dict[str, AgilityObstacle]
    building_by_key: dict[tuple[str, str], TownshipBuilding]
    skill_actions: dict[str, list[ActionDefinition]]
    pool_bonuses_by_skill: dict[str, list[MasteryPoolBonus]]

    @property
    def skills(self) -> list[str]:
        return sorted(self.skill_actions)

    def actions_for_skill(self, skill: str) -> list[ActionDefinition]:
        return list(self.skill_actions.get(skill, []))

    def building(self, biome_id: str, building_id: str) -> TownshipBuilding | None:
        return self.building_by_key.get((biome_id, building_id))


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ContentValidationError(f"Missing content file: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ContentValidationError(f"Invalid JSON in {path.name}: {exc.msg} at line {exc.lineno}") from exc


def _load_typed_list(path: Path, item_type: Any) -> list[Any]:
    data = _load_json(path)
    adapter = TypeAdapter(list[item_type])  # type: ignore[valid-type]
    try:
        return adapter.validate_python(data)
    except ValidationError as exc:
        errors = []
        for issue in exc.errors():
            issue_path = ".".join(str(part) for part in issue.get("loc", [])) or "(root)"
            errors.append(f"{path.name}:{issue_path}: {issue.get('msg', 'validation error')}")
        raise ContentValidationError(f"Schema validation failed for {path.name}.", errors) from exc


def _load_optional_typed_list(path: Path, item_type: Any) -> list[Any]:
    if not path.exists():
        return []
    return _load_typed_list(path, item_type)


def _assert_unique_ids(kind: str, values: Iterable[Any]) -> None:
    seen: set[str] = set()
    for entry in values:
        if entry.id in seen:
            raise ContentValidationError(f"Duplicate {kind} id '{entry.id}'.")
        seen.add(entry.id)


def _check_items(problems: list[str], owner: str, field: str, item_ids: Iterable[str], known: set[str]) -> None:
    for item_id in item_ids:
        if item_id not in known:
            problems.append(f"{owner} {field} references missing item '{item_id}'.")


def _check_modifiers(problems: list[str], owner: str, modifiers: list[ModifierEntry], skills: set[str]) -> None:
    for idx, entry in enumerate(modifiers):
        if entry.stat not in KNOWN_STATS:
            logger.debug("%s modifiers[%d] uses unrecognized stat '%s'; it will be ignored.", owner, idx, entry.stat)
        if entry.scope.skill is not None and entry.scope.skill not in skills:
            problems.append(f"{owner} modifiers[{idx}] scopes missing skill '{entry.scope.skill}'.")


def _validate_references(bundle: ContentBundle) -> None:
    problems: list[str] = []
    item_ids = set(bundle.item_by_id)
    skills = set(bundle.skill_actions)

    for item in bundle.items:
        _check_modifiers(problems, f"item '{item.id}'", item.modifiers, skills)

    for table in bundle.drop_tables:
        _check_items(problems, f"drop table '{table.id}'", "picks", (pick.item_id for pick in table.picks), item_ids)

    for action in bundle.actions:
        owner = f"action '{action.id}'"
        _check_items(problems, owner, "inputs", action.inputs, item_ids)
        _check_items(problems, owner, "outputs", action.outputs, item_ids)
        _check_items(problems, owner, "drops", (drop.item_id for drop in action.drops), item_ids)
        for table_id in action.drop_tables:
            if table_id not in bundle.drop_table_by_id:
                problems.append(f"{owner} dropTables references missing drop table '{table_id}'.")
        if isinstance(action, FiremakingAction):
            _check_items(problems, owner, "bonfireCost", action.bonfire_cost, item_ids)

    for upgrade in bundle.upgrades:
        owner = f"upgrade '{upgrade.id}'"
        _check_items(problems, owner, "itemCosts", upgrade.item_costs, item_ids)
        _check_modifiers(problems, owner, upgrade.modifiers, skills)
        for skill in upgrade.requires:
            if skill not in skills:
                problems.append(f"{owner} requires missing skill '{skill}'.")

    for obstacle in bundle.obstacles:
        owner = f"obstacle '{obstacle.id}'"
        _check_items(problems, owner, "itemCosts", obstacle.item_costs, item_ids)
        _check_modifiers(problems, owner, obstacle.modifiers, skills)

    for building in bundle.buildings:
        owner = f"building '{building.biome_id}/{building.id}'"
        _check_items(problems, owner, "itemCosts", building.item_costs, item_ids)
        _check_items(problems, owner, "production", building.production, item_ids)
        _check_modifiers(problems, owner, building.modifiers, skills)

    for bonus in bundle.pool_bonuses:
        owner = f"mastery pool bonus '{bonus.skill}@{bonus.percent:g}%'"
        if bonus.skill not in skills:
            problems.append(f"{owner} references missing skill '{bonus.skill}'.")
        _check_modifiers(problems, owner, bonus.modifiers, skills)

    if problems:
        raise ContentValidationError("Content reference validation failed.", problems)


def build_content(
    items: list[Item],
    actions: list[ActionDefinition],
    drop_tables: list[DropTable] | None = None,
    upgrades: list[ShopUpgrade] | None = None,
    obstacles: list[AgilityObstacle] | None = None,
    buildings: list[TownshipBuilding] | None = None,
    pool_bonuses: list[MasteryPoolBonus] | None = None,
) -> ContentBundle:
    drop_tables = drop_tables or []
    upgrades = upgrades or []
    obstacles = obstacles or []
    buildings = buildings or []
    pool_bonuses = sorted(pool_bonuses or [], key=lambda bonus: (bonus.skill, bonus.percent))

    _assert_unique_ids("item", items)
    _assert_unique_ids("action", actions)
    _assert_unique_ids("drop table", drop_tables)
    _assert_unique_ids("upgrade", upgrades)
    _assert_unique_ids("obstacle", obstacles)

    building_by_key: dict[tuple[str, str], TownshipBuilding] = {}
    for building in buildings:
        key = (building.biome_id, building.id)
        if key in building_by_key:
            raise ContentValidationError(f"Duplicate building id '{building.id}' in biome '{building.biome_id}'.")
        building_by_key[key] = building

    skill_actions: dict[str, list[ActionDefinition]] = {}
    for action in actions:
        skill_actions.setdefault(action.skill, []).append(action)

    pool_bonuses_by_skill: dict[str, list[MasteryPoolBonus]] = {}
    for bonus in pool_bonuses:
        pool_bonuses_by_skill.setdefault(bonus.skill, []).append(bonus)

    bundle = ContentBundle(
        items=items,
        actions=actions,
        drop_tables=drop_tables,
        upgrades=upgrades,
        obstacles=obstacles,
        buildings=buildings,
        pool_bonuses=pool_bonuses,
        item_by_id={item.id: item for item in items},
        action_by_id={action.id: action for action in actions},
        drop_table_by_id={table.id: table for table in drop_tables},
        upgrade_by_id={upgrade.id: upgrade for upgrade in upgrades},
        obstacle_by_id={obstacle.id: obstacle for obstacle in obstacles},
        building_by_key=building_by_key,
        skill_actions=skill_actions,
        pool_bonuses_by_skill=pool_bonuses_by_skill,
    )
    _validate_references(bundle)
    return bundle


def load_content(content_dir: Path | str = DEFAULT_CONTENT_DIR) -> ContentBundle:
    base_path = Path(content_dir)
    return build_content(
        items=_load_typed_list(base_path / "items.json", Item),
        actions=_load_typed_list(base_path / "actions.json", ActionDefinition),
        drop_tables=_load_optional_typed_list(base_path / "drop_tables.json", DropTable),
        upgrades=_load_optional_typed_list(base_path / "upgrades.json", ShopUpgrade),
        obstacles=_load_optional_typed_list(base_path / "obstacles.json", AgilityObstacle),
        buildings=_load_optional_typed_list(base_path / "township.json", TownshipBuilding),
        pool_bonuses=_load_optional_typed_list(base_path / "mastery_pool_bonuses.json", MasteryPoolBonus),
    )
