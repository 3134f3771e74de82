from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import TypeAdapter

from idle_engine.core.engine import advance_with_state_rng, create_initial_state, dispatch_with_state_rng, run_simulation
from idle_engine.core.intents import StartAction, StopAction, SwitchAction
from idle_engine.core.loader import build_content, load_content
from idle_engine.core.models import EQUIPMENT_SLOTS, ActionDefinition, Item, TownshipBuildingState
from idle_engine.core.results import InvalidGrant
from idle_engine.core.scheduler import current_phase
from idle_engine.core.settings import EngineSettings
from idle_engine.core.ticks import TICKS_PER_SECOND

CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"
OAK = "woodcutting:oak_tree"


def _started(action_id: str, content, seed: int = 1, **inventory: int):
    state = create_initial_state(seed, now_ms=0, inventory=inventory)
    result = dispatch_with_state_rng(state, content, StartAction(action_id=action_id))
    assert result.ok, result.message
    return state


def _thieving_content():
    items = [
        Item.model_validate(
            {"id": "cursed_mask", "name": "Cursed Mask", "modifiers": [{"stat": "stealth", "value": -1000, "kind": "flat"}]}
        )
    ]
    actions = [
        {
            "kind": "thieving",
            "id": "thieving:guard",
            "name": "Guard",
            "skill": "thieving",
            "xp": 5,
            "durationSeconds": 3.0,
            "perception": 50,
            "maxHit": 1,
        }
    ]
    return build_content(items=items, actions=TypeAdapter(list[ActionDefinition]).validate_python(actions))


def test_oak_tree_completes_once_per_thirty_ticks() -> None:
    content = load_content(CONTENT_DIR)
    state = _started(OAK, content)

    result = advance_with_state_rng(state, content, 30)
    assert len(result.events) == 1
    assert result.events[0].xp == 14
    assert state.inventory == {"oak_logs": 1}
    assert state.skill_states["woodcutting"].xp == 14
    assert state.active_run is not None and state.active_run.progress_ticks == 0


def test_ninety_ticks_is_three_completions_and_no_random_draws() -> None:
    content = load_content(CONTENT_DIR)
    state = _started(OAK, content)

    result = advance_with_state_rng(state, content, 90)
    assert len(result.events) == 3
    assert state.skill_states["woodcutting"].xp == 42
    assert state.action_states[OAK].completions == 3
    assert state.action_states[OAK].cumulative_ticks == 90
    assert state.rng_calls == 0


def test_partial_progress_carries_between_calls() -> None:
    content = load_content(CONTENT_DIR)
    state = _started(OAK, content)

    assert advance_with_state_rng(state, content, 29).events == []
    assert state.active_run.progress_ticks == 29
    assert len(advance_with_state_rng(state, content, 1).events) == 1


def test_stop_discards_progress_and_goes_idle() -> None:
    content = load_content(CONTENT_DIR)
    state = _started(OAK, content)
    advance_with_state_rng(state, content, 15)

    result = dispatch_with_state_rng(state, content, StopAction())
    assert result.ok
    assert state.active_run is None
    assert current_phase(state) == "idle"
    assert advance_with_state_rng(state, content, 60).events == []


def test_starting_the_running_action_keeps_progress() -> None:
    content = load_content(CONTENT_DIR)
    state = _started(OAK, content)
    advance_with_state_rng(state, content, 12)

    result = dispatch_with_state_rng(state, content, StartAction(action_id=OAK))
    assert result.ok
    assert state.active_run.progress_ticks == 12


def test_switch_restarts_on_new_action_and_refusal_keeps_current() -> None:
    content = load_content(CONTENT_DIR)
    state = _started(OAK, content)
    advance_with_state_rng(state, content, 10)

    refused = dispatch_with_state_rng(state, content, SwitchAction(action_id="woodcutting:willow_tree"))
    assert refused.failure_kind == "action_locked"
    assert state.active_run.action_id == OAK
    assert state.active_run.progress_ticks == 10

    switched = dispatch_with_state_rng(state, content, SwitchAction(action_id="woodcutting:normal_tree"))
    assert switched.ok
    assert state.active_run.action_id == "woodcutting:normal_tree"
    assert state.active_run.progress_ticks == 0


def test_locked_unknown_and_unaffordable_starts_are_refused() -> None:
    content = load_content(CONTENT_DIR)
    state = create_initial_state(1, now_ms=0)
    before = state.model_dump()

    locked = dispatch_with_state_rng(state, content, StartAction(action_id="woodcutting:willow_tree"))
    assert locked.failure_kind == "action_locked"
    assert locked.failure.details["required"] == 20

    unknown = dispatch_with_state_rng(state, content, StartAction(action_id="woodcutting:magic_tree"))
    assert unknown.failure_kind == "unknown_content"

    missing = dispatch_with_state_rng(state, content, StartAction(action_id="cooking:shrimp"))
    assert missing.failure_kind == "insufficient_resources"
    assert missing.failure.details["missing"] == {"raw_shrimp": 1}

    assert state.model_dump() == before


def test_running_out_of_inputs_stops_the_action() -> None:
    content = load_content(CONTENT_DIR)
    state = _started("cooking:shrimp", content, raw_shrimp=2)

    result = advance_with_state_rng(state, content, 100)
    assert len(result.events) == 2
    assert result.stop_reason == "out_of_inputs"
    assert result.stopped_after_ticks == 40
    assert result.ticks_elapsed == 100
    assert state.active_run is None
    assert state.inventory == {"shrimp": 2}
    assert result.changes.items_consumed == {"raw_shrimp": 2}


def test_full_bank_drops_yield_and_warns() -> None:
    content = load_content(CONTENT_DIR)
    settings = EngineSettings(base_inventory_capacity=1)
    state = create_initial_state(1, now_ms=0, inventory={"normal_logs": 1})
    dispatch_with_state_rng(state, content, StartAction(action_id=OAK), settings)

    result = advance_with_state_rng(state, content, 30, settings)
    assert result.events[0].items_dropped == {"oak_logs": 1}
    assert [warning.kind for warning in result.warnings] == ["capacity_exceeded"]
    assert state.inventory == {"normal_logs": 1}
    assert state.active_run is not None


def test_failed_pickpocket_stuns_then_goes_idle() -> None:
    content = _thieving_content()
    state = create_initial_state(3, now_ms=0)
    state.equipment["face"] = "cursed_mask"
    dispatch_with_state_rng(state, content, StartAction(action_id="thieving:guard"))

    result = advance_with_state_rng(state, content, 30)
    assert result.stop_reason == "stunned"
    assert result.events[0].success is False
    assert result.events[0].damage == 1
    assert state.health.lost_hp == 1
    assert current_phase(state) == "stunned"
    assert state.stun.ticks_remaining == EngineSettings().stun_ticks

    refused = dispatch_with_state_rng(state, content, StartAction(action_id="thieving:guard"))
    assert refused.failure_kind == "stunned"

    advance_with_state_rng(state, content, EngineSettings().stun_ticks)
    assert state.stun is None
    assert current_phase(state) == "idle"


def test_lethal_damage_resets_health_and_stops() -> None:
    content = _thieving_content()
    settings = EngineSettings(max_hp=1)
    state = create_initial_state(3, now_ms=0)
    state.equipment["face"] = "cursed_mask"
    dispatch_with_state_rng(state, content, StartAction(action_id="thieving:guard"), settings)

    result = advance_with_state_rng(state, content, 30, settings)
    assert result.stop_reason == "player_died"
    assert result.changes.deaths == 1
    assert state.health.lost_hp == 0
    assert state.stun is None
    assert current_phase(state) == "idle"


def test_death_destroys_whatever_is_in_the_rolled_slot() -> None:
    content = _thieving_content()
    settings = EngineSettings(max_hp=1)
    state = create_initial_state(3, now_ms=0)
    for slot in EQUIPMENT_SLOTS:
        state.equipment[slot] = "cursed_mask"
    dispatch_with_state_rng(state, content, StartAction(action_id="thieving:guard"), settings)

    result = advance_with_state_rng(state, content, 30, settings)
    assert result.stop_reason == "player_died"
    assert result.changes.items_lost_on_death == {"cursed_mask": 1}
    assert len(state.equipment) == len(EQUIPMENT_SLOTS) - 1


def test_death_penalty_can_be_switched_off() -> None:
    content = _thieving_content()
    settings = EngineSettings(max_hp=1, death_penalty=False)
    state = create_initial_state(3, now_ms=0)
    state.equipment["face"] = "cursed_mask"
    dispatch_with_state_rng(state, content, StartAction(action_id="thieving:guard"), settings)

    result = advance_with_state_rng(state, content, 30, settings)
    assert result.changes.deaths == 1
    assert result.changes.items_lost_on_death == {}
    assert state.equipment == {"face": "cursed_mask"}


def test_health_regenerates_one_percent_every_ten_seconds() -> None:
    content = load_content(CONTENT_DIR)
    settings = EngineSettings()
    state = create_initial_state(1, now_ms=0)
    state.health.lost_hp = 5

    advance_with_state_rng(state, content, 150, settings)
    assert state.health.lost_hp == 4
    assert state.health.regen_ticks_remaining == 50

    advance_with_state_rng(state, content, 50, settings)
    assert state.health.lost_hp == 3

    advance_with_state_rng(state, content, 10 * settings.hp_regen_ticks, settings)
    assert state.health.lost_hp == 0
    assert state.health.regen_ticks_remaining == 0
    assert state.rng_calls == 0


def test_negative_tick_count_is_rejected() -> None:
    content = load_content(CONTENT_DIR)
    state = create_initial_state(1, now_ms=0)
    with pytest.raises(InvalidGrant):
        advance_with_state_rng(state, content, -1)


def test_chunked_advance_matches_single_advance() -> None:
    content = load_content(CONTENT_DIR)
    ticks = 20 * 60 * TICKS_PER_SECOND

    def build():
        state = _started("fishing:shrimp", content, seed=42)
        state.township.buildings["grasslands"] = {"woodcutters_hut": TownshipBuildingState(count=2)}
        return state

    whole, whole_result = run_simulation(build(), content, ticks)
    chunked, chunked_result = run_simulation(build(), content, ticks, chunk_ticks=7)

    assert whole.model_dump() == chunked.model_dump()
    assert whole_result.changes == chunked_result.changes
    assert len(whole_result.events) == len(chunked_result.events)
    assert whole.rng_calls > 0
