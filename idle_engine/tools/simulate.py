from __future__ import annotations

import hashlib
import json

import typer
from rich.console import Console
from rich.table import Table

from idle_engine.app.widgets import time_away_widget
from idle_engine.core.engine import create_initial_state, dispatch_with_state_rng, run_simulation
from idle_engine.core.intents import StartAction
from idle_engine.core.loader import ContentValidationError, load_content
from idle_engine.core.models import EngineState
from idle_engine.core.progression import skill_level
from idle_engine.core.reconciler import reconcile
from idle_engine.core.settings import EngineSettings
from idle_engine.core.ticks import TICKS_PER_HOUR, TICKS_PER_SECOND, ticks_to_ms

app = typer.Typer(add_completion=False, help="Run deterministic headless simulations for balancing and testing.")
console = Console()


def _normalize_seed(raw_seed: str) -> int | str:
    try:
        return int(raw_seed)
    except ValueError:
        return raw_seed


def _state_signature(state: EngineState) -> str:
    payload = state.model_dump(mode="json", exclude={"updated_at"})
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()[:16]


def _load_content_or_exit():
    try:
        return load_content()
    except ContentValidationError as exc:
        console.print(f"[bold red]Content load failed:[/bold red] {exc}")
        raise typer.Exit(1) from exc


def _start_or_exit(state: EngineState, content, action_id: str, settings: EngineSettings) -> None:
    if action_id not in content.action_by_id:
        console.print(f"[bold red]Unknown action '{action_id}'.[/bold red]")
        raise typer.Exit(1)
    result = dispatch_with_state_rng(state, content, StartAction(action_id=action_id), settings)
    if not result.ok:
        console.print(f"[bold red]Cannot start {action_id}:[/bold red] {result.message}")
        raise typer.Exit(1)


def _counts(values: dict[str, int]) -> str:
    return ", ".join(f"{key}x{qty}" for key, qty in sorted(values.items())) or "-"


@app.command()
def run(
    seed: str = typer.Option("123", "--seed", help="Seed value (int or string)."),
    action: str = typer.Option("woodcutting:normal_tree", "--action", help="Action id to run."),
    seconds: int = typer.Option(600, "--seconds", min=1, help="Game seconds to simulate."),
    chunk: int = typer.Option(0, "--chunk", min=0, help="Advance in chunks of this many ticks (0 = one call)."),
    inventory: list[str] = typer.Option([], "--item", help="Starting items as id=qty."),
) -> None:
    content = _load_content_or_exit()
    settings = EngineSettings()

    starting: dict[str, int] = {}
    for entry in inventory:
        item_id, _, qty = entry.partition("=")
        starting[item_id] = int(qty or 1)

    state = create_initial_state(_normalize_seed(seed), now_ms=0, inventory=starting)
    _start_or_exit(state, content, action, settings)
    final_state, result = run_simulation(state, content, seconds * TICKS_PER_SECOND, chunk_ticks=chunk or None, settings=settings)

    skill = content.action_by_id[action].skill
    summary = Table(title="Simulation Summary")
    summary.add_column("Field", style="cyan", no_wrap=True)
    summary.add_column("Value", style="white")
    summary.add_row("Seed", str(final_state.seed))
    summary.add_row("Action", action)
    summary.add_row("Ticks", str(result.ticks_elapsed))
    summary.add_row("Completions", str(sum(result.changes.completions.values())))
    summary.add_row("Failures", str(sum(result.changes.failures.values())))
    summary.add_row("Skill XP", f"{result.changes.skill_xp.get(skill, 0)} (level {skill_level(final_state, skill, settings)})")
    summary.add_row("Items", _counts(result.changes.items_gained))
    summary.add_row("Consumed", _counts(result.changes.items_consumed))
    summary.add_row("Dropped", _counts(result.changes.items_dropped))
    summary.add_row("Currency", _counts(result.changes.currency_gained))
    summary.add_row("Stopped", result.stop_reason or "-")
    summary.add_row("RNG calls", str(final_state.rng_calls))
    console.print(summary)
    console.print(f"\n[bold green]Deterministic signature:[/bold green] {_state_signature(final_state)}")


@app.command()
def away(
    seed: str = typer.Option("123", "--seed", help="Seed value (int or string)."),
    action: str = typer.Option("woodcutting:normal_tree", "--action", help="Action id running when the player left."),
    hours: float = typer.Option(8.0, "--hours", min=0, help="Hours spent away."),
) -> None:
    content = _load_content_or_exit()
    settings = EngineSettings()
    state = create_initial_state(_normalize_seed(seed), now_ms=0)
    _start_or_exit(state, content, action, settings)

    resume_at = ticks_to_ms(int(hours * TICKS_PER_HOUR))
    report, final_state = reconcile(state.updated_at, resume_at, state, content, settings)
    console.print(time_away_widget(report, content))
    console.print(f"\n[bold green]Deterministic signature:[/bold green] {_state_signature(final_state)}")


if __name__ == "__main__":
    app()
