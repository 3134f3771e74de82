from __future__ import annotations

from pathlib import Path

from rich.console import Console

from idle_engine.app.widgets import skills_widget, status_widget, time_away_widget
from idle_engine.core.engine import create_initial_state, dispatch_with_state_rng
from idle_engine.core.intents import StartAction
from idle_engine.core.loader import load_content
from idle_engine.core.reconciler import reconcile

CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"


def _render(renderable) -> str:
    console = Console(record=True, width=120)
    console.print(renderable)
    return console.export_text()


def test_time_away_panel_lists_gains_and_stop_reason() -> None:
    content = load_content(CONTENT_DIR)
    state = create_initial_state(1, now_ms=0, inventory={"raw_shrimp": 2})
    dispatch_with_state_rng(state, content, StartAction(action_id="cooking:shrimp"))
    report, _ = reconcile(0, 60_000, state, content)

    text = _render(time_away_widget(report, content))
    assert "Cook Shrimp" in text
    assert "ran out of materials" in text
    assert "Shrimp x2" in text


def test_empty_report_says_nothing_happened() -> None:
    content = load_content(CONTENT_DIR)
    report, _ = reconcile(0, 60_000, create_initial_state(1, now_ms=0), content)
    assert "Nothing happened" in _render(time_away_widget(report, content))


def test_status_and_skill_panels_render() -> None:
    content = load_content(CONTENT_DIR)
    state = create_initial_state(1, now_ms=0)
    dispatch_with_state_rng(state, content, StartAction(action_id="woodcutting:oak_tree"))

    assert "Oak Tree" in _render(status_widget(state, content))
    skills = _render(skills_widget(state, content))
    for skill in content.skills:
        assert skill in skills
