from __future__ import annotations

import logging
from pathlib import Path

from idle_engine.app.game_loop import GameLoop
from idle_engine.core.engine import create_initial_state
from idle_engine.core.intents import StartAction, StopAction
from idle_engine.core.loader import load_content
from idle_engine.core.settings import EngineSettings, RuntimeSettings

CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"


class FakeClock:
    def __init__(self) -> None:
        self.now = 0

    def __call__(self) -> int:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += round(seconds * 1000)


def test_loop_advances_with_the_clock_and_autosaves() -> None:
    content = load_content(CONTENT_DIR)
    clock = FakeClock()
    saves: list[int] = []
    loop = GameLoop(
        create_initial_state(1, now_ms=0),
        content,
        runtime_settings=RuntimeSettings(autosave_seconds=1),
        clock=clock,
        sleep=clock.sleep,
        on_autosave=lambda state: saves.append(state.tick),
    )

    assert loop.dispatch(StartAction(action_id="woodcutting:oak_tree")).ok
    totals = loop.run_for(3)

    assert loop.state.tick == 30
    assert totals.changes.completions == {"woodcutting:oak_tree": 1}
    assert loop.state.inventory == {"oak_logs": 1}
    assert saves == [10, 20, 30]


def test_sub_tick_time_is_carried_to_the_next_update() -> None:
    content = load_content(CONTENT_DIR)
    clock = FakeClock()
    loop = GameLoop(create_initial_state(1, now_ms=0), content, clock=clock, sleep=clock.sleep)
    loop.dispatch(StartAction(action_id="woodcutting:oak_tree"))

    clock.now = 150
    loop.update()
    assert loop.state.tick == 1
    assert loop.state.updated_at == 100

    clock.now = 200
    loop.update()
    assert loop.state.tick == 2


def test_intents_apply_time_up_to_the_moment_they_arrive() -> None:
    content = load_content(CONTENT_DIR)
    clock = FakeClock()
    loop = GameLoop(create_initial_state(1, now_ms=0), content, clock=clock, sleep=clock.sleep)
    loop.dispatch(StartAction(action_id="woodcutting:oak_tree"))

    clock.now = 3000
    loop.dispatch(StopAction())
    assert loop.state.inventory == {"oak_logs": 1}
    assert loop.state.active_run is None


def test_long_session_keeps_only_aggregates() -> None:
    content = load_content(CONTENT_DIR)
    clock = FakeClock()
    loop = GameLoop(
        create_initial_state(1, now_ms=0),
        content,
        runtime_settings=RuntimeSettings(update_interval_ms=5000),
        clock=clock,
        sleep=clock.sleep,
    )
    loop.dispatch(StartAction(action_id="woodcutting:oak_tree"))

    totals = loop.run_for(6 * 60 * 60)
    assert totals.changes.completions == {"woodcutting:oak_tree": 7200}
    assert totals.events == []
    assert totals.warnings == []


def test_full_bank_warns_once_until_space_frees_up(caplog) -> None:
    content = load_content(CONTENT_DIR)
    clock = FakeClock()
    loop = GameLoop(
        create_initial_state(1, now_ms=0, inventory={"normal_logs": 1}),
        content,
        engine_settings=EngineSettings(base_inventory_capacity=1),
        clock=clock,
        sleep=clock.sleep,
    )
    loop.dispatch(StartAction(action_id="woodcutting:oak_tree"))

    def bank_warnings() -> int:
        return sum(1 for record in caplog.records if record.levelno == logging.WARNING and "Inventory full" in record.getMessage())

    with caplog.at_level(logging.DEBUG, logger="idle_engine.app.game_loop"):
        loop.run_for(60)
        assert loop.totals.changes.items_dropped["oak_logs"] == 20
        assert bank_warnings() == 1

        loop.state.inventory.clear()
        loop.run_for(3)
        assert loop.state.inventory == {"oak_logs": 1}
        loop.run_for(3)
        assert bank_warnings() == 2
