"""Core deterministic idle-action engine."""

from .engine import (
    advance_with_state_rng,
    create_initial_state,
    dispatch_with_state_rng,
    resume,
    run_simulation,
    update_to,
)
from .intents import (
    BuildObstacle,
    BuildTownshipBuilding,
    HealWithResource,
    LightBonfire,
    PurchaseUpgrade,
    RepairBuilding,
    StartAction,
    StopAction,
    SwitchAction,
)
from .loader import ContentBundle, ContentValidationError, load_content
from .models import EngineState, SaveData
from .persistence import create_default_save_data, load_save_data, save_save_data, store_item, take_item
from .reconciler import TimeAwayReport, reconcile
from .results import Failure, IntentResult, InvalidGrant
from .scheduler import AdvanceResult, current_phase
from .settings import EngineSettings

__all__ = [
    "AdvanceResult",
    "BuildObstacle",
    "BuildTownshipBuilding",
    "ContentBundle",
    "ContentValidationError",
    "EngineSettings",
    "EngineState",
    "Failure",
    "HealWithResource",
    "IntentResult",
    "InvalidGrant",
    "LightBonfire",
    "PurchaseUpgrade",
    "RepairBuilding",
    "SaveData",
    "StartAction",
    "StopAction",
    "SwitchAction",
    "TimeAwayReport",
    "advance_with_state_rng",
    "create_default_save_data",
    "create_initial_state",
    "current_phase",
    "dispatch_with_state_rng",
    "load_content",
    "load_save_data",
    "reconcile",
    "resume",
    "run_simulation",
    "save_save_data",
    "store_item",
    "take_item",
    "update_to",
]
