from __future__ import annotations

import logging
from typing import Annotated, Literal, Union

from pydantic import Field

from .background import light_bonfire, township_repair_cost
from .loader import ContentBundle
from .models import AgilitySlotState, EngineState, FiremakingAction, StrictModel, TownshipBuildingState
from .persistence import missing_costs, pay_costs
from .progression import skill_level
from .results import Failure, IntentResult
from .rng import DeterministicRNG
from .scheduler import current_phase, start_action, stop_action, switch_action
from .settings import EngineSettings
from .ticks import round_half_up

AGILITY_SKILL = "agility"
OBSTACLE_DISCOUNT_PER_PURCHASE = 0.04
OBSTACLE_MAX_DISCOUNTED_PURCHASES = 10

logger = logging.getLogger(__name__)


class StartAction(StrictModel):
    type: Literal["start_action"] = "start_action"
    action_id: str = Field(alias="actionId", min_length=1)


class StopAction(StrictModel):
    type: Literal["stop_action"] = "stop_action"


class SwitchAction(StrictModel):
    type: Literal["switch_action"] = "switch_action"
    action_id: str = Field(alias="actionId", min_length=1)


class BuildObstacle(StrictModel):
    type: Literal["build_obstacle"] = "build_obstacle"
    slot: int = Field(ge=0)
    obstacle_id: str = Field(alias="obstacleId", min_length=1)


class PurchaseUpgrade(StrictModel):
    type: Literal["purchase_upgrade"] = "purchase_upgrade"
    upgrade_id: str = Field(alias="upgradeId", min_length=1)


class RepairBuilding(StrictModel):
    type: Literal["repair_building"] = "repair_building"
    biome_id: str = Field(alias="biomeId", min_length=1)
    building_id: str = Field(alias="buildingId", min_length=1)


class HealWithResource(StrictModel):
    type: Literal["heal_with_resource"] = "heal_with_resource"
    item_id: str = Field(alias="itemId", min_length=1)
    amount: int = Field(default=1, ge=1)


class LightBonfire(StrictModel):
    type: Literal["light_bonfire"] = "light_bonfire"
    action_id: str = Field(alias="actionId", min_length=1)


class BuildTownshipBuilding(StrictModel):
    type: Literal["build_township_building"] = "build_township_building"
    biome_id: str = Field(alias="biomeId", min_length=1)
    building_id: str = Field(alias="buildingId", min_length=1)


Intent = Annotated[
    Union[
        StartAction,
        StopAction,
        SwitchAction,
        BuildObstacle,
        PurchaseUpgrade,
        RepairBuilding,
        HealWithResource,
        LightBonfire,
        BuildTownshipBuilding,
    ],
    Field(discriminator="type"),
]


def _check_costs(state: EngineState, items: dict[str, int], currencies: dict[str, int]) -> Failure | None:
    missing = missing_costs(state, items, currencies)
    return Failure.insufficient(missing) if missing else None


def obstacle_cost_multiplier(purchase_count: int) -> float:
    discounted = min(OBSTACLE_MAX_DISCOUNTED_PURCHASES, max(0, purchase_count))
    return 1.0 - OBSTACLE_DISCOUNT_PER_PURCHASE * discounted


def obstacle_costs(
    currency_costs: dict[str, int], item_costs: dict[str, int], purchase_count: int
) -> tuple[dict[str, int], dict[str, int]]:
    multiplier = obstacle_cost_multiplier(purchase_count)
    return (
        {key: round_half_up(qty * multiplier) for key, qty in currency_costs.items()},
        {key: round_half_up(qty * multiplier) for key, qty in item_costs.items()},
    )


def build_obstacle(state: EngineState, content: ContentBundle, intent: BuildObstacle, settings: EngineSettings) -> IntentResult:
    obstacle = content.obstacle_by_id.get(intent.obstacle_id)
    if obstacle is None:
        return IntentResult.fail(Failure.unknown("obstacle", intent.obstacle_id))
    if obstacle.slot != intent.slot:
        return IntentResult.fail(Failure.locked(f"{obstacle.name} belongs in slot {obstacle.slot}.", slot=intent.slot))
    level = skill_level(state, AGILITY_SKILL, settings)
    if level < obstacle.unlock_level:
        return IntentResult.fail(
            Failure.locked(f"{obstacle.name} requires agility level {obstacle.unlock_level}.", required=obstacle.unlock_level)
        )

    slot_state = state.agility.get(intent.slot)
    if slot_state and slot_state.obstacle_id == obstacle.id:
        return IntentResult.success("Obstacle already built.")
    purchase_count = slot_state.purchase_count if slot_state else 0
    currencies, items = obstacle_costs(obstacle.currency_costs, obstacle.item_costs, purchase_count)
    failure = _check_costs(state, items, currencies)
    if failure:
        return IntentResult.fail(failure)

    pay_costs(state, items, currencies)
    if slot_state is None:
        slot_state = state.agility.setdefault(intent.slot, AgilitySlotState())
    slot_state.obstacle_id = obstacle.id
    slot_state.purchase_count += 1
    return IntentResult.success(f"Built {obstacle.name}.")


def purchase_upgrade(state: EngineState, content: ContentBundle, intent: PurchaseUpgrade, settings: EngineSettings) -> IntentResult:
    upgrade = content.upgrade_by_id.get(intent.upgrade_id)
    if upgrade is None:
        return IntentResult.fail(Failure.unknown("upgrade", intent.upgrade_id))
    owned = int(state.upgrades.get(upgrade.id, 0))
    if upgrade.max_purchases is not None and owned >= upgrade.max_purchases:
        return IntentResult.fail(Failure.locked(f"{upgrade.name} is already maxed.", owned=owned))
    for skill, required in sorted(upgrade.requires.items()):
        level = skill_level(state, skill, settings)
        if level < required:
            return IntentResult.fail(Failure.locked(f"{upgrade.name} requires {skill} level {required}.", required=required))
    failure = _check_costs(state, upgrade.item_costs, upgrade.currency_costs)
    if failure:
        return IntentResult.fail(failure)

    pay_costs(state, upgrade.item_costs, upgrade.currency_costs)
    state.upgrades[upgrade.id] = owned + 1
    return IntentResult.success(f"Purchased {upgrade.name}.")


def build_township_building(
    state: EngineState, content: ContentBundle, intent: BuildTownshipBuilding, settings: EngineSettings
) -> IntentResult:
    building = content.building(intent.biome_id, intent.building_id)
    if building is None:
        return IntentResult.fail(Failure.unknown("building", f"{intent.biome_id}/{intent.building_id}"))
    failure = _check_costs(state, building.item_costs, building.currency_costs)
    if failure:
        return IntentResult.fail(failure)

    pay_costs(state, building.item_costs, building.currency_costs)
    biome = state.township.buildings.setdefault(building.biome_id, {})
    building_state = biome.setdefault(building.id, TownshipBuildingState())
    building_state.count += 1
    if state.township.ticks_until_update <= 0:
        state.township.ticks_until_update = settings.township_update_ticks
    return IntentResult.success(f"Built {building.name}.")


def repair_building(state: EngineState, content: ContentBundle, intent: RepairBuilding) -> IntentResult:
    building = content.building(intent.biome_id, intent.building_id)
    building_state = state.township.buildings.get(intent.biome_id, {}).get(intent.building_id)
    if building is None or building_state is None or building_state.count <= 0:
        return IntentResult.fail(Failure.unknown("building", f"{intent.biome_id}/{intent.building_id}"))
    costs = township_repair_cost(building, building_state)
    failure = _check_costs(state, {}, costs)
    if failure:
        return IntentResult.fail(failure)

    pay_costs(state, {}, costs)
    building_state.efficiency = 100.0
    return IntentResult.success(f"Repaired {building.name}.")


def heal_with_resource(state: EngineState, content: ContentBundle, intent: HealWithResource) -> IntentResult:
    item = content.item_by_id.get(intent.item_id)
    if item is None:
        return IntentResult.fail(Failure.unknown("item", intent.item_id))
    if not item.heals_for:
        return IntentResult.fail(Failure.locked(f"{item.name} cannot be eaten.", item=item.id))
    failure = _check_costs(state, {item.id: intent.amount}, {})
    if failure:
        return IntentResult.fail(failure)

    eaten = 0
    while eaten < intent.amount and state.health.lost_hp > 0:
        pay_costs(state, {item.id: 1}, {})
        state.health.lost_hp = max(0, state.health.lost_hp - item.heals_for)
        eaten += 1
    return IntentResult.success(f"Ate {eaten}x {item.name}.")


def light_bonfire_intent(state: EngineState, content: ContentBundle, intent: LightBonfire, settings: EngineSettings) -> IntentResult:
    action = content.action_by_id.get(intent.action_id)
    if action is None:
        return IntentResult.fail(Failure.unknown("action", intent.action_id))
    if not isinstance(action, FiremakingAction) or action.bonfire_seconds is None:
        return IntentResult.fail(Failure.locked(f"{action.name} cannot be used as a bonfire."))
    if skill_level(state, action.skill, settings) < action.unlock_level:
        return IntentResult.fail(Failure.locked(f"{action.name} requires {action.skill} level {action.unlock_level}."))
    if state.bonfire and state.bonfire.ticks_remaining > 0:
        return IntentResult.fail(Failure.locked("A bonfire is already burning."))
    failure = _check_costs(state, action.bonfire_cost, {})
    if failure:
        return IntentResult.fail(failure)

    pay_costs(state, action.bonfire_cost, {})
    light_bonfire(state, action)
    return IntentResult.success(f"Lit a {action.name} bonfire.")


def dispatch(
    state: EngineState,
    content: ContentBundle,
    intent: Intent,
    rng: DeterministicRNG,
    settings: EngineSettings,
) -> IntentResult:
    """Apply one player command. A failed intent leaves state untouched."""
    if isinstance(intent, StartAction):
        result = start_action(state, content, intent.action_id, rng, settings)
    elif isinstance(intent, StopAction):
        result = stop_action(state)
    elif isinstance(intent, SwitchAction):
        result = switch_action(state, content, intent.action_id, rng, settings)
    elif isinstance(intent, BuildObstacle):
        result = build_obstacle(state, content, intent, settings)
    elif isinstance(intent, PurchaseUpgrade):
        result = purchase_upgrade(state, content, intent, settings)
    elif isinstance(intent, RepairBuilding):
        result = repair_building(state, content, intent)
    elif isinstance(intent, HealWithResource):
        result = heal_with_resource(state, content, intent)
    elif isinstance(intent, LightBonfire):
        result = light_bonfire_intent(state, content, intent, settings)
    elif isinstance(intent, BuildTownshipBuilding):
        result = build_township_building(state, content, intent, settings)
    else:
        raise ValueError(f"Unsupported intent: {intent!r}")

    if result.ok:
        logger.debug("Intent %s ok (%s) phase=%s", intent.type, result.message, current_phase(state))
    else:
        logger.debug("Intent %s refused: %s", intent.type, result.message)
    return result
