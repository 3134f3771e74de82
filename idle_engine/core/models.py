from __future__ import annotations

import math
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ModifierKind = Literal["percent", "flat", "multiplier"]
ActionKind = Literal["skill", "thieving", "firemaking"]

SAVE_VERSION = 2
SCOPE_FIELDS = ("skill", "category", "action", "currency")
EQUIPMENT_SLOTS = ("head", "face", "neck", "body", "hands", "legs", "feet", "ring", "weapon", "shield", "cape")


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class StateModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _validate_positive_counts(values: dict[str, int], label: str) -> dict[str, int]:
    for key, qty in values.items():
        if qty <= 0:
            raise ValueError(f"{label} quantity for '{key}' must be positive.")
    return values


def _validate_non_negative_counts(values: dict[str, int], label: str) -> dict[str, int]:
    for key, qty in values.items():
        if qty < 0:
            raise ValueError(f"{label} quantity for '{key}' cannot be negative.")
    return values


class ModifierScope(StrictModel):
    skill: str | None = None
    category: str | None = None
    action: str | None = None
    currency: str | None = None

    def covers(self, query: "ModifierScope") -> bool:
        for name in SCOPE_FIELDS:
            wanted = getattr(self, name)
            if wanted is not None and wanted != getattr(query, name):
                return False
        return True


class ModifierEntry(StrictModel):
    stat: str = Field(min_length=1)
    value: float
    kind: ModifierKind = "percent"
    scope: ModifierScope = Field(default_factory=ModifierScope)

    @field_validator("value")
    @classmethod
    def validate_value(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("Modifier value must be finite.")
        return value

    @model_validator(mode="after")
    def validate_multiplier(self) -> "ModifierEntry":
        if self.kind == "multiplier" and self.value < 0:
            raise ValueError("Multiplier modifiers cannot be negative.")
        return self


class Item(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    category: str = "misc"
    heals_for: int | None = Field(default=None, alias="healsFor", ge=1)
    modifiers: list[ModifierEntry] = Field(default_factory=list)


class Drop(StrictModel):
    item_id: str = Field(alias="itemId", min_length=1)
    count: int = Field(default=1, ge=1)
    rate: float = Field(default=1.0, ge=0, le=1)


class DropTablePick(StrictModel):
    item_id: str = Field(alias="itemId", min_length=1)
    weight: float = Field(ge=0)
    min_qty: int = Field(default=1, alias="min", ge=1)
    max_qty: int | None = Field(default=None, alias="max", ge=1)

    @model_validator(mode="after")
    def validate_min_max(self) -> "DropTablePick":
        if self.max_qty is not None and self.max_qty < self.min_qty:
            raise ValueError("DropTablePick.max must be greater than or equal to min.")
        return self

    @property
    def upper_qty(self) -> int:
        return self.max_qty if self.max_qty is not None else self.min_qty


class DropTable(StrictModel):
    id: str = Field(min_length=1)
    rate: float = Field(default=1.0, ge=0, le=1)
    picks: list[DropTablePick] = Field(min_length=1)


class ActionBase(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    skill: str = Field(min_length=1)
    category: str | None = None
    unlock_level: int = Field(default=1, alias="unlockLevel", ge=1)
    xp: float = Field(ge=0)
    duration_seconds: float | None = Field(default=None, alias="durationSeconds", gt=0)
    min_duration_seconds: float | None = Field(default=None, alias="minDurationSeconds", gt=0)
    max_duration_seconds: float | None = Field(default=None, alias="maxDurationSeconds", gt=0)
    inputs: dict[str, int] = Field(default_factory=dict)
    outputs: dict[str, int] = Field(default_factory=dict)
    currency_costs: dict[str, int] = Field(default_factory=dict, alias="currencyCosts")
    currency_outputs: dict[str, int] = Field(default_factory=dict, alias="currencyOutputs")
    drops: list[Drop] = Field(default_factory=list)
    drop_tables: list[str] = Field(default_factory=list, alias="dropTables")

    @field_validator("inputs", "outputs", "currency_costs", "currency_outputs")
    @classmethod
    def validate_counts(cls, values: dict[str, int]) -> dict[str, int]:
        return _validate_positive_counts(values, "Action")

    @model_validator(mode="after")
    def validate_duration(self) -> "ActionBase":
        has_fixed = self.duration_seconds is not None
        has_min = self.min_duration_seconds is not None
        has_max = self.max_duration_seconds is not None
        if has_fixed and (has_min or has_max):
            raise ValueError(f"Action '{self.id}' must use either durationSeconds or min/max bounds, not both.")
        if not has_fixed:
            if not (has_min and has_max):
                raise ValueError(f"Action '{self.id}' requires durationSeconds or both min/max bounds.")
            if self.max_duration_seconds < self.min_duration_seconds:  # type: ignore[operator]
                raise ValueError(f"Action '{self.id}' max duration must be >= min duration.")
        return self

    @property
    def is_variable(self) -> bool:
        return self.duration_seconds is None and self.min_duration_seconds != self.max_duration_seconds

    @property
    def base_min_ms(self) -> float:
        seconds = self.duration_seconds if self.duration_seconds is not None else self.min_duration_seconds
        return float(seconds) * 1000.0  # type: ignore[arg-type]

    @property
    def base_max_ms(self) -> float:
        seconds = self.duration_seconds if self.duration_seconds is not None else self.max_duration_seconds
        return float(seconds) * 1000.0  # type: ignore[arg-type]

    @property
    def mean_seconds(self) -> float:
        return (self.base_min_ms + self.base_max_ms) / 2000.0


class SkillAction(ActionBase):
    kind: Literal["skill"] = "skill"


class ThievingAction(ActionBase):
    kind: Literal["thieving"] = "thieving"
    perception: int = Field(ge=0)
    max_gold: int = Field(default=0, alias="maxGold", ge=0)
    max_hit: int = Field(default=1, alias="maxHit", ge=1)
    gold_currency: str = Field(default="gp", alias="goldCurrency", min_length=1)


class FiremakingAction(ActionBase):
    kind: Literal["firemaking"] = "firemaking"
    bonfire_seconds: float | None = Field(default=None, alias="bonfireSeconds", gt=0)
    bonfire_xp_bonus: float = Field(default=0.0, alias="bonfireXpBonus", ge=0)
    bonfire_cost: dict[str, int] = Field(default_factory=dict, alias="bonfireCost")

    @field_validator("bonfire_cost")
    @classmethod
    def validate_bonfire_cost(cls, values: dict[str, int]) -> dict[str, int]:
        return _validate_positive_counts(values, "Bonfire cost")


ActionDefinition = Annotated[Union[SkillAction, ThievingAction, FiremakingAction], Field(discriminator="kind")]


class ShopUpgrade(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    currency_costs: dict[str, int] = Field(default_factory=dict, alias="currencyCosts")
    item_costs: dict[str, int] = Field(default_factory=dict, alias="itemCosts")
    max_purchases: int | None = Field(default=1, alias="maxPurchases", ge=1)
    requires: dict[str, int] = Field(default_factory=dict)
    modifiers: list[ModifierEntry] = Field(default_factory=list)
    capacity_bonus: int = Field(default=0, alias="capacityBonus", ge=0)


class AgilityObstacle(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    slot: int = Field(ge=0)
    unlock_level: int = Field(default=1, alias="unlockLevel", ge=1)
    currency_costs: dict[str, int] = Field(default_factory=dict, alias="currencyCosts")
    item_costs: dict[str, int] = Field(default_factory=dict, alias="itemCosts")
    modifiers: list[ModifierEntry] = Field(default_factory=list)


class TownshipBuilding(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    biome_id: str = Field(alias="biomeId", min_length=1)
    currency_costs: dict[str, int] = Field(default_factory=dict, alias="currencyCosts")
    item_costs: dict[str, int] = Field(default_factory=dict, alias="itemCosts")
    production: dict[str, int] = Field(default_factory=dict)
    repair_costs: dict[str, float] = Field(default_factory=dict, alias="repairCosts")
    modifiers: list[ModifierEntry] = Field(default_factory=list)


class MasteryPoolBonus(StrictModel):
    skill: str = Field(min_length=1)
    percent: float = Field(gt=0, le=100)
    modifiers: list[ModifierEntry] = Field(default_factory=list)


class ActionState(StateModel):
    mastery_xp: int = Field(default=0, ge=0)
    completions: int = Field(default=0, ge=0)
    cumulative_ticks: int = Field(default=0, ge=0)


class SkillState(StateModel):
    xp: int = Field(default=0, ge=0)
    mastery_pool_xp: int = Field(default=0, ge=0)


class ActiveRun(StateModel):
    action_id: str = Field(min_length=1)
    started_at: int = Field(default=0, ge=0)
    progress_ticks: int = Field(default=0, ge=0)
    total_ticks: int = Field(ge=1)

    @model_validator(mode="after")
    def validate_progress(self) -> "ActiveRun":
        if self.progress_ticks > self.total_ticks:
            raise ValueError("ActiveRun progress cannot exceed total ticks.")
        return self

    @property
    def remaining_ticks(self) -> int:
        return self.total_ticks - self.progress_ticks


class StunState(StateModel):
    ticks_remaining: int = Field(ge=0)


class BonfireState(StateModel):
    action_id: str = Field(min_length=1)
    ticks_remaining: int = Field(ge=0)
    total_ticks: int = Field(ge=1)
    xp_bonus: float = Field(default=0.0, ge=0)


class HealthState(StateModel):
    lost_hp: int = Field(default=0, ge=0)
    regen_ticks_remaining: int = Field(default=0, ge=0)


class AgilitySlotState(StateModel):
    obstacle_id: str | None = None
    purchase_count: int = Field(default=0, ge=0)


class TownshipBuildingState(StateModel):
    count: int = Field(default=0, ge=0)
    efficiency: float = Field(default=100.0, ge=0, le=100)


class TownshipState(StateModel):
    buildings: dict[str, dict[str, TownshipBuildingState]] = Field(default_factory=dict)
    ticks_until_update: int = Field(default=0, ge=0)

    def built(self) -> list[tuple[str, str, TownshipBuildingState]]:
        return [
            (biome_id, building_id, building)
            for biome_id, biome in sorted(self.buildings.items())
            for building_id, building in sorted(biome.items())
            if building.count > 0
        ]


class EngineState(StateModel):
    seed: int | str
    rng_state: int = Field(gt=0)
    rng_calls: int = Field(default=0, ge=0)
    tick: int = Field(default=0, ge=0)
    updated_at: int = Field(default=0, ge=0)
    inventory: dict[str, int] = Field(default_factory=dict)
    currencies: dict[str, int] = Field(default_factory=dict)
    equipment: dict[str, str] = Field(default_factory=dict)
    action_states: dict[str, ActionState] = Field(default_factory=dict)
    skill_states: dict[str, SkillState] = Field(default_factory=dict)
    active_run: ActiveRun | None = None
    stun: StunState | None = None
    bonfire: BonfireState | None = None
    health: HealthState = Field(default_factory=HealthState)
    agility: dict[int, AgilitySlotState] = Field(default_factory=dict)
    township: TownshipState = Field(default_factory=TownshipState)
    upgrades: dict[str, int] = Field(default_factory=dict)

    @field_validator("inventory")
    @classmethod
    def validate_inventory(cls, inventory: dict[str, int]) -> dict[str, int]:
        return _validate_non_negative_counts(inventory, "Inventory")

    @field_validator("currencies")
    @classmethod
    def validate_currencies(cls, currencies: dict[str, int]) -> dict[str, int]:
        return _validate_non_negative_counts(currencies, "Currency")

    @field_validator("upgrades")
    @classmethod
    def validate_upgrades(cls, upgrades: dict[str, int]) -> dict[str, int]:
        return _validate_non_negative_counts(upgrades, "Upgrade")

    def action_state(self, action_id: str) -> ActionState:
        return self.action_states.setdefault(action_id, ActionState())

    def skill_state(self, skill: str) -> SkillState:
        return self.skill_states.setdefault(skill, SkillState())


class SaveData(StateModel):
    save_version: int = Field(default=SAVE_VERSION, ge=1)
    last_saved_at: int = Field(default=0, ge=0)
    state: EngineState
