from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal

from .background import advance_background, ensure_health_regen, ensure_township_schedule, next_background_boundary
from .changes import ChangeSet
from .loader import ContentBundle
from .modifiers import modifiers_for_action
from .models import EQUIPMENT_SLOTS, ActionBase, ActiveRun, EngineState, StunState
from .persistence import missing_costs
from .progression import skill_level
from .resolver import CompletionEvent, apply_completion, resolve_completion, resolve_duration_ticks
from .results import Failure, IntentResult, InvalidGrant
from .rng import DeterministicRNG
from .settings import EngineSettings

Phase = Literal["idle", "running", "stunned"]
StopReason = Literal["out_of_inputs", "stunned", "player_died"]

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AdvanceResult:
    events: list[CompletionEvent] = field(default_factory=list)
    changes: ChangeSet = field(default_factory=ChangeSet)
    warnings: list[Failure] = field(default_factory=list)
    ticks_elapsed: int = 0
    stop_reason: StopReason | None = None
    stopped_after_ticks: int | None = None

    def stop(self, reason: StopReason) -> None:
        if self.stop_reason is None:
            self.stop_reason = reason
            self.stopped_after_ticks = self.ticks_elapsed

    def merge(self, other: "AdvanceResult", keep_events: bool = True) -> None:
        """Fold ``other`` in. With ``keep_events=False`` only the aggregates grow."""
        if self.stop_reason is None and other.stop_reason is not None:
            self.stop_reason = other.stop_reason
            self.stopped_after_ticks = self.ticks_elapsed + (other.stopped_after_ticks or 0)
        if keep_events:
            self.events.extend(other.events)
            self.warnings.extend(other.warnings)
        self.changes.merge(other.changes)
        self.ticks_elapsed += other.ticks_elapsed


def current_phase(state: EngineState) -> Phase:
    if state.stun and state.stun.ticks_remaining > 0:
        return "stunned"
    if state.active_run:
        return "running"
    return "idle"


def check_start(state: EngineState, content: ContentBundle, action_id: str, settings: EngineSettings) -> Failure | None:
    if current_phase(state) == "stunned":
        return Failure("stunned", "Cannot start an action while stunned.", {"ticks_remaining": state.stun.ticks_remaining})  # type: ignore[union-attr]
    action = content.action_by_id.get(action_id)
    if action is None:
        return Failure.unknown("action", action_id)
    level = skill_level(state, action.skill, settings)
    if level < action.unlock_level:
        return Failure.locked(
            f"{action.name} requires {action.skill} level {action.unlock_level}.",
            required=action.unlock_level,
            level=level,
        )
    missing = missing_costs(state, action.inputs, action.currency_costs)
    if missing:
        return Failure.insufficient(missing)
    return None


def _begin_run(state: EngineState, content: ContentBundle, action: ActionBase, rng: DeterministicRNG) -> ActiveRun:
    total = resolve_duration_ticks(action, modifiers_for_action(state, content, action), rng)
    state.active_run = ActiveRun(action_id=action.id, started_at=state.tick, progress_ticks=0, total_ticks=total)
    return state.active_run


def start_action(
    state: EngineState,
    content: ContentBundle,
    action_id: str,
    rng: DeterministicRNG,
    settings: EngineSettings,
) -> IntentResult:
    if state.active_run and state.active_run.action_id == action_id and current_phase(state) == "running":
        return IntentResult.success("Already running.")
    failure = check_start(state, content, action_id, settings)
    if failure:
        return IntentResult.fail(failure)
    run = _begin_run(state, content, content.action_by_id[action_id], rng)
    logger.debug("Started %s for %d ticks.", action_id, run.total_ticks)
    return IntentResult.success(f"Started {action_id}.")


def stop_action(state: EngineState) -> IntentResult:
    """Leave Running; progress toward the current completion is discarded."""
    if state.active_run is None:
        return IntentResult.success("Nothing to stop.")
    action_id = state.active_run.action_id
    state.active_run = None
    return IntentResult.success(f"Stopped {action_id}.")


def switch_action(
    state: EngineState,
    content: ContentBundle,
    action_id: str,
    rng: DeterministicRNG,
    settings: EngineSettings,
) -> IntentResult:
    if state.active_run and state.active_run.action_id == action_id:
        return IntentResult.success("Already running.")
    failure = check_start(state, content, action_id, settings)
    if failure:
        return IntentResult.fail(failure)
    stop_action(state)
    _begin_run(state, content, content.action_by_id[action_id], rng)
    return IntentResult.success(f"Switched to {action_id}.")


def stun(state: EngineState, ticks: int) -> None:
    state.active_run = None
    state.stun = StunState(ticks_remaining=ticks) if ticks > 0 else None


def apply_death_penalty(state: EngineState, rng: DeterministicRNG) -> tuple[str, str | None]:
    """Roll one equipment slot and destroy whatever is worn there."""
    slots = sorted(set(EQUIPMENT_SLOTS) | set(state.equipment))
    slot = slots[rng.next_int(0, len(slots))]
    lost = state.equipment.pop(slot, None)
    if lost:
        logger.info("Lost %s from the %s slot on death.", lost, slot)
    return slot, lost


def _complete_run(
    state: EngineState,
    content: ContentBundle,
    run: ActiveRun,
    rng: DeterministicRNG,
    settings: EngineSettings,
    result: AdvanceResult,
) -> None:
    action = content.action_by_id[run.action_id]
    outcome = resolve_completion(
        action, modifiers_for_action(state, content, action), rng, state, content, settings, run.total_ticks
    )
    if isinstance(outcome, Failure):
        state.active_run = None
        result.stop("out_of_inputs")
        return

    event = apply_completion(state, action, outcome, content, settings)
    result.events.append(event)
    result.changes.record_event(event)
    if event.items_dropped:
        result.warnings.append(
            Failure("capacity_exceeded", "Inventory full; items were dropped.", {"dropped": dict(event.items_dropped)})
        )

    if event.died:
        if settings.death_penalty:
            _, lost = apply_death_penalty(state, rng)
            if lost:
                result.changes.record_death_loss(lost)
        state.active_run = None
        result.stop("player_died")
        return
    if not event.success:
        stun(state, settings.stun_ticks)
        result.stop("stunned")
        return
    if missing_costs(state, action.inputs, action.currency_costs):
        state.active_run = None
        result.stop("out_of_inputs")
        return
    _begin_run(state, content, action, rng)


def advance(
    state: EngineState,
    content: ContentBundle,
    ticks: int,
    rng: DeterministicRNG,
    settings: EngineSettings,
) -> AdvanceResult:
    """Advance ``ticks`` of game time, stepping from boundary to boundary.

    At a shared tick the foreground completion resolves before background
    runs, so the same total tick count gives the same state however it is
    split across calls.
    """
    if isinstance(ticks, bool) or not isinstance(ticks, int) or ticks < 0:
        raise InvalidGrant(f"Tick count must be a non-negative integer, got {ticks!r}.")

    result = AdvanceResult()
    ensure_township_schedule(state, settings)
    ensure_health_regen(state, settings)
    remaining = ticks
    while True:
        run = state.active_run
        if run and run.progress_ticks >= run.total_ticks:
            _complete_run(state, content, run, rng, settings, result)
            continue
        if remaining <= 0:
            break

        stunned = state.stun if state.stun and state.stun.ticks_remaining > 0 else None
        step = remaining
        if stunned:
            step = min(step, stunned.ticks_remaining)
        elif run:
            step = min(step, run.remaining_ticks)
        background = next_background_boundary(state)
        if background:
            step = min(step, background)

        state.tick += step
        remaining -= step
        result.ticks_elapsed += step

        if stunned:
            stunned.ticks_remaining -= step
        elif run:
            run.progress_ticks += step
            if run.progress_ticks >= run.total_ticks:
                _complete_run(state, content, run, rng, settings, result)
        if stunned and stunned.ticks_remaining <= 0 and state.stun is stunned:
            state.stun = None

        advance_background(state, content, step, rng, settings, result.changes)
        ensure_township_schedule(state, settings)
        ensure_health_regen(state, settings)

    ensure_health_regen(state, settings)
    if state.stun and state.stun.ticks_remaining <= 0:
        state.stun = None
    return result
