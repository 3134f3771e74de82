from __future__ import annotations

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from idle_engine.core.loader import ContentBundle
from idle_engine.core.models import EngineState
from idle_engine.core.progression import mastery_pool_percent, skill_level, xp_for_level
from idle_engine.core.reconciler import TimeAwayReport
from idle_engine.core.scheduler import current_phase
from idle_engine.core.settings import EngineSettings

STOP_REASON_TEXT = {
    "out_of_inputs": "ran out of materials",
    "stunned": "was stunned",
    "player_died": "died",
}


def _format_duration(ms: int) -> str:
    seconds = max(0, ms) // 1000
    hours, rem = divmod(seconds, 3600)
    minutes, seconds = divmod(rem, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    if minutes:
        return f"{minutes}m {seconds:02d}s"
    return f"{seconds}s"


def _item_name(content: ContentBundle, item_id: str) -> str:
    item = content.item_by_id.get(item_id)
    return item.name if item else item_id


def status_widget(state: EngineState, content: ContentBundle) -> Panel:
    table = Table.grid(expand=True)
    table.add_column(justify="left")
    table.add_column(justify="left")
    phase = current_phase(state)
    table.add_row("Phase", phase)
    run = state.active_run
    if run:
        action = content.action_by_id.get(run.action_id)
        table.add_row("Action", action.name if action else run.action_id)
        table.add_row("Progress", f"{run.progress_ticks}/{run.total_ticks} ticks")
    if state.stun:
        table.add_row("Stunned", f"{state.stun.ticks_remaining} ticks")
    if state.bonfire:
        table.add_row("Bonfire", f"{state.bonfire.ticks_remaining} ticks left")
    table.add_row("HP lost", str(state.health.lost_hp))
    return Panel(table, title="Status", border_style="cyan")


def skills_widget(state: EngineState, content: ContentBundle, settings: EngineSettings | None = None) -> Panel:
    settings = settings or EngineSettings()
    table = Table(expand=True)
    table.add_column("Skill")
    table.add_column("Level", justify="right")
    table.add_column("XP", justify="right")
    table.add_column("Next", justify="right")
    table.add_column("Pool", justify="right")
    for skill in content.skills:
        level = skill_level(state, skill, settings)
        skill_state = state.skill_states.get(skill)
        xp = skill_state.xp if skill_state else 0
        next_xp = "-" if level >= settings.skill_level_cap else str(xp_for_level(level + 1))
        table.add_row(
            skill,
            str(level),
            str(xp),
            next_xp,
            f"{mastery_pool_percent(state, content, skill):.1f}%",
        )
    return Panel(table, title="Skills", border_style="green")


def inventory_widget(
    inventory: dict[str, int],
    content: ContentBundle,
    title: str = "Bank",
    max_rows: int = 16,
) -> Panel:
    table = Table(expand=True)
    table.add_column("Item")
    table.add_column("Qty", justify="right")

    rows = sorted(((item_id, qty) for item_id, qty in inventory.items() if qty > 0), key=lambda pair: pair[0])[:max_rows]
    if not rows:
        table.add_row("-", "0")
    else:
        for item_id, qty in rows:
            table.add_row(_item_name(content, item_id), str(qty))
    return Panel(table, title=title, border_style="yellow")


def time_away_widget(report: TimeAwayReport, content: ContentBundle) -> Panel:
    table = Table(expand=True, show_header=False)
    table.add_column(style="cyan", no_wrap=True)
    table.add_column()

    away = _format_duration(report.requested_end_time - report.start_time)
    if report.capped:
        away += f" (capped at {_format_duration(report.duration_ms)})"
    table.add_row("Away", away)
    if report.active_action:
        action = content.action_by_id.get(report.active_action)
        table.add_row("Doing", action.name if action else report.active_action)
    if report.stop_reason:
        table.add_row(
            "Stopped",
            f"{STOP_REASON_TEXT.get(report.stop_reason, report.stop_reason)} after "
            f"{_format_duration(report.stopped_after_ms or 0)}",
        )

    for skill, xp in sorted(report.skill_xp.items()):
        line = f"+{xp} xp ({report.xp_per_hour(skill):.0f}/h)"
        change = report.level_changes.get(skill)
        if change and change.end > change.start:
            line += f", level {change.start} -> {change.end}"
        table.add_row(skill, line)
    for action_id, change in sorted(report.mastery_level_changes.items()):
        if change.end > change.start:
            action = content.action_by_id.get(action_id)
            table.add_row("Mastery", f"{action.name if action else action_id} {change.start} -> {change.end}")

    for label, counts in (
        ("Gained", report.items_gained),
        ("Used", report.items_consumed),
        ("Lost (bank full)", report.items_dropped),
        ("Lost on death", report.items_lost_on_death),
    ):
        if counts:
            table.add_row(label, ", ".join(f"{_item_name(content, key)} x{qty}" for key, qty in sorted(counts.items())))
    if report.currency_gained:
        table.add_row("Currency", ", ".join(f"+{qty} {key}" for key, qty in sorted(report.currency_gained.items())))
    if report.damage_taken:
        table.add_row("Damage", f"{report.damage_taken} hp ({report.deaths} deaths)")

    body = table if not report.is_empty else Text("Nothing happened while you were away.")
    return Panel(body, title="While you were away", border_style="magenta")
