from __future__ import annotations

import os

from rich.console import Console

from idle_engine.app.game_loop import GameLoop
from idle_engine.app.services.logger import configure_logging, log_time_away
from idle_engine.app.services.paths import resolve_user_paths
from idle_engine.app.services.settings_store import SettingsStore
from idle_engine.app.widgets import inventory_widget, skills_widget, status_widget, time_away_widget
from idle_engine.core.engine import resume
from idle_engine.core.intents import StartAction
from idle_engine.core.loader import ContentValidationError, load_content
from idle_engine.core.save_system import SlotStorage

ACTION_ENV_VAR = "IDLE_ENGINE_ACTION"
RUN_SECONDS_ENV_VAR = "IDLE_ENGINE_RUN_SECONDS"


def _run_seconds_from_env() -> float:
    raw = os.environ.get(RUN_SECONDS_ENV_VAR, "").strip()
    if not raw:
        return 0.0
    try:
        return max(0.0, float(raw))
    except ValueError:
        return 0.0


def main() -> None:
    console = Console()
    paths = resolve_user_paths()
    loggers = configure_logging(paths.logs)
    logger = loggers.app

    console.print("[bold]Starting Idle Engine...[/bold]")
    logger.info("Starting Idle Engine from %s.", paths.root)

    settings = SettingsStore(paths.settings_file).load_model()

    try:
        content = load_content()
    except ContentValidationError as exc:
        logger.exception("Failed to load content.")
        console.print(f"[bold red]Failed to load game content:[/bold red]\n{exc}")
        raise SystemExit(1) from exc

    storage = SlotStorage(paths.saves, content, slot_count=settings.runtime.save_slots, settings=settings.engine)
    slot = storage.last_slot() or 1
    save_data = storage.load_slot(slot)

    try:
        report, state = resume(save_data.state, content, settings=settings.engine)
        save_data.state = state
        if not report.is_empty:
            log_time_away(loggers.gameplay, report)
        if settings.runtime.show_welcome_back and not report.is_empty:
            console.print(time_away_widget(report, content))

        def save_now(_state=None) -> None:
            storage.save_slot(slot, save_data)

        save_now()

        action_id = os.environ.get(ACTION_ENV_VAR, "").strip()
        loop = GameLoop(
            save_data.state,
            content,
            engine_settings=settings.engine,
            runtime_settings=settings.runtime,
            on_autosave=save_now,
        )
        if action_id:
            result = loop.dispatch(StartAction(action_id=action_id))
            if not result.ok:
                console.print(f"[yellow]{result.message}[/yellow]")

        run_seconds = _run_seconds_from_env()
        if run_seconds > 0:
            console.print(f"Running for {run_seconds:g}s...")
            loop.run_for(run_seconds)

        save_now()
        console.print(status_widget(save_data.state, content))
        console.print(skills_widget(save_data.state, content, settings.engine))
        console.print(inventory_widget(save_data.state.inventory, content))
        logger.info("Saved slot %d and exited.", slot)
    except Exception:
        logger.exception("Unhandled exception in game loop.")
        console.print(f"[bold red]A fatal error occurred.[/bold red] See {loggers.latest_log_path}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
