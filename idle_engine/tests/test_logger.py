from __future__ import annotations

import logging
from pathlib import Path

import pytest

from idle_engine.app.services.logger import (
    APP_LOGGER_NAME,
    GAMEPLAY_LOGGER_NAME,
    configure_logging,
    log_time_away,
)
from idle_engine.core.engine import create_initial_state, dispatch_with_state_rng
from idle_engine.core.intents import StartAction
from idle_engine.core.loader import load_content
from idle_engine.core.reconciler import reconcile

CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"


def _reset_loggers() -> None:
    for name in (APP_LOGGER_NAME, GAMEPLAY_LOGGER_NAME):
        target = logging.getLogger(name)
        for handler in list(target.handlers):
            handler.close()
        target.handlers.clear()
        target.propagate = True
        target.setLevel(logging.NOTSET)


@pytest.fixture
def bundle(tmp_path: Path):
    loggers = configure_logging(tmp_path / "logs", stream=False)
    yield loggers
    _reset_loggers()


def _flush(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.flush()


def test_gameplay_lines_stay_out_of_latest_log(bundle) -> None:
    bundle.app.info("engine started")
    bundle.gameplay.info("tick=30 action=woodcutting:oak_tree")
    _flush(bundle.app)
    _flush(bundle.gameplay)

    latest = bundle.latest_log_path.read_text(encoding="utf-8")
    gameplay = bundle.gameplay_log_path.read_text(encoding="utf-8")
    assert "engine started" in latest
    assert "tick=30" not in latest
    assert "tick=30" in gameplay


def test_rotation_keeps_five_archives(tmp_path: Path) -> None:
    logs_dir = tmp_path / "logs"
    logs_dir.mkdir()
    for index in range(7):
        (logs_dir / f"latest_2020010{index}_000000.log").write_text("old", encoding="utf-8")
    (logs_dir / "latest.log").write_text("previous run", encoding="utf-8")

    loggers = configure_logging(logs_dir, stream=False)
    try:
        assert len(list(logs_dir.glob("latest_*.log"))) == 5
        assert loggers.latest_log_path == logs_dir / "latest.log"
    finally:
        _reset_loggers()


def test_time_away_summary_is_written_to_gameplay_log(bundle) -> None:
    content = load_content(CONTENT_DIR)
    state = create_initial_state(1, now_ms=0, inventory={"raw_shrimp": 2})
    dispatch_with_state_rng(state, content, StartAction(action_id="cooking:shrimp"))
    report, _ = reconcile(0, 60_000, state, content)

    log_time_away(bundle.gameplay, report)
    _flush(bundle.gameplay)

    text = bundle.gameplay_log_path.read_text(encoding="utf-8")
    assert "doing cooking:shrimp; stop=out_of_inputs" in text
    assert "cooking +" in text
    assert "gained {'shrimp': 2}" in text
