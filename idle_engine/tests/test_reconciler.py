from __future__ import annotations

from pathlib import Path

import pytest

from idle_engine.core.engine import advance_with_state_rng, create_initial_state, dispatch_with_state_rng, resume
from idle_engine.core.intents import StartAction
from idle_engine.core.loader import load_content
from idle_engine.core.reconciler import ReportLevelChange, TimeAwayReport, reconcile
from idle_engine.core.settings import EngineSettings

CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"
OAK = "woodcutting:oak_tree"
MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS


def _running(content, action_id: str = OAK, seed: int = 5, settings: EngineSettings | None = None, **inventory: int):
    state = create_initial_state(seed, now_ms=0, inventory=inventory)
    result = dispatch_with_state_rng(state, content, StartAction(action_id=action_id), settings)
    assert result.ok, result.message
    return state


def test_offline_result_matches_live_ticks() -> None:
    content = load_content(CONTENT_DIR)
    offline = _running(content, "fishing:shrimp")
    live = _running(content, "fishing:shrimp")

    report, reconciled = reconcile(0, 10 * MINUTE_MS, offline, content)
    advance_with_state_rng(live, content, 6000)

    assert reconciled.model_dump(exclude={"updated_at"}) == live.model_dump(exclude={"updated_at"})
    assert reconciled.updated_at == 10 * MINUTE_MS
    assert report.completions == {"fishing:shrimp": live.action_states["fishing:shrimp"].completions}


def test_report_totals_for_oak_session() -> None:
    content = load_content(CONTENT_DIR)
    state = _running(content)

    report, _ = reconcile(0, MINUTE_MS, state, content)
    assert report.active_skill == "woodcutting"
    assert report.active_action == OAK
    assert report.completions == {OAK: 20}
    assert report.skill_xp == {"woodcutting": 280}
    assert report.items_gained == {"oak_logs": 20}
    assert report.level_changes["woodcutting"] == ReportLevelChange(start=1, end=4)
    assert report.xp_per_hour("woodcutting") == pytest.approx(16_800)
    assert report.capped is False


def test_snapshot_is_never_mutated() -> None:
    content = load_content(CONTENT_DIR)
    state = _running(content)
    before = state.model_dump()

    reconcile(0, HOUR_MS, state, content)
    assert state.model_dump() == before


def test_long_absence_is_capped() -> None:
    content = load_content(CONTENT_DIR)
    settings = EngineSettings(max_offline_hours=1)
    state = _running(content, settings=settings)

    report, reconciled = reconcile(0, 2 * HOUR_MS, state, content, settings)
    assert report.capped is True
    assert report.end_time == HOUR_MS
    assert report.requested_end_time == 2 * HOUR_MS
    assert report.completions == {OAK: 1200}
    assert reconciled.updated_at == 2 * HOUR_MS


def test_full_bank_items_are_reported_as_dropped() -> None:
    content = load_content(CONTENT_DIR)
    settings = EngineSettings(base_inventory_capacity=5)
    state = _running(content, settings=settings)

    report, reconciled = reconcile(0, MINUTE_MS, state, content, settings)
    assert report.items_gained == {"oak_logs": 5}
    assert report.items_dropped == {"oak_logs": 15}
    assert reconciled.inventory == {"oak_logs": 5}


def test_running_out_of_inputs_is_reported() -> None:
    content = load_content(CONTENT_DIR)
    state = _running(content, "cooking:shrimp", raw_shrimp=3)

    report, reconciled = reconcile(0, 10 * MINUTE_MS, state, content)
    assert report.stop_reason == "out_of_inputs"
    assert report.stopped_after_ms == 6000
    assert report.items_consumed == {"raw_shrimp": 3}
    assert reconciled.active_run is None


def test_clock_going_backwards_is_a_no_op() -> None:
    content = load_content(CONTENT_DIR)
    state = _running(content)

    report, reconciled = reconcile(HOUR_MS, 0, state, content)
    assert report.is_empty
    assert report.duration_ms == 0
    assert reconciled.model_dump(exclude={"updated_at"}) == state.model_dump(exclude={"updated_at"})


def test_resume_uses_last_update_time() -> None:
    content = load_content(CONTENT_DIR)
    state = _running(content)

    report, reconciled = resume(state, content, now_ms=3000)
    assert report.completions == {OAK: 1}
    assert reconciled.tick == 30


def test_reports_merge_into_one_summary() -> None:
    first = TimeAwayReport(
        start_time=0,
        end_time=1000,
        requested_end_time=1000,
        skill_xp={"woodcutting": 10},
        items_gained={"oak_logs": 1},
        level_changes={"woodcutting": ReportLevelChange(start=1, end=2)},
    )
    second = TimeAwayReport(
        start_time=1000,
        end_time=5000,
        requested_end_time=5000,
        skill_xp={"woodcutting": 5, "mining": 7},
        items_gained={"oak_logs": 2},
        level_changes={"woodcutting": ReportLevelChange(start=2, end=3)},
        stop_reason="out_of_inputs",
        stopped_after_ms=2000,
    )

    merged = first.merge(second)
    assert (merged.start_time, merged.end_time) == (0, 5000)
    assert merged.skill_xp == {"woodcutting": 15, "mining": 7}
    assert merged.items_gained == {"oak_logs": 3}
    assert merged.level_changes["woodcutting"] == ReportLevelChange(start=1, end=3)
    assert merged.stop_reason == "out_of_inputs"


def test_merge_is_order_independent() -> None:
    earlier = TimeAwayReport(
        start_time=0,
        end_time=1000,
        requested_end_time=1000,
        active_skill="mining",
        active_action="mining:copper",
        stop_reason="stunned",
        stopped_after_ms=500,
        items_lost_on_death={"thieving_gloves": 1},
    )
    later = TimeAwayReport(
        start_time=1000,
        end_time=5000,
        requested_end_time=5000,
        active_skill="woodcutting",
        active_action=OAK,
        stop_reason="out_of_inputs",
        stopped_after_ms=2000,
    )

    assert earlier.merge(later) == later.merge(earlier)
    merged = later.merge(earlier)
    assert merged.active_action == OAK
    assert (merged.stop_reason, merged.stopped_after_ms) == ("out_of_inputs", 2000)
    assert merged.items_lost_on_death == {"thieving_gloves": 1}


def test_merge_of_same_window_breaks_ties_the_same_way() -> None:
    common = {"start_time": 0, "end_time": 1000, "requested_end_time": 1000}
    a = TimeAwayReport(**common, active_skill="mining", active_action="mining:copper", stop_reason="out_of_inputs", stopped_after_ms=300)
    b = TimeAwayReport(**common, active_skill="woodcutting", active_action=OAK, stop_reason="stunned", stopped_after_ms=300)

    assert a.merge(b) == b.merge(a)
    assert a.merge(b).stop_reason == "stunned"
