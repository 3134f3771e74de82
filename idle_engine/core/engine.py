from __future__ import annotations

import logging

from .intents import Intent, dispatch
from .loader import ContentBundle
from .models import EngineState
from .persistence import now_ms as wall_clock_ms
from .reconciler import TimeAwayReport, reconcile
from .results import IntentResult
from .rng import DeterministicRNG, fresh_seed, rng_from_state, sync_rng_to_state
from .scheduler import AdvanceResult, advance
from .settings import EngineSettings
from .ticks import ms_to_ticks, ticks_to_ms

gameplay_logger = logging.getLogger("idle_engine.gameplay")
logger = logging.getLogger(__name__)


def create_initial_state(
    seed: int | str | None = None,
    now_ms: int | None = None,
    inventory: dict[str, int] | None = None,
    currencies: dict[str, int] | None = None,
) -> EngineState:
    if seed is None:
        seed = fresh_seed()
    rng = DeterministicRNG.from_seed(seed)
    return EngineState(
        seed=seed,
        rng_state=rng.state,
        rng_calls=rng.calls,
        updated_at=wall_clock_ms() if now_ms is None else now_ms,
        inventory=dict(inventory or {}),
        currencies=dict(currencies or {}),
    )


def dispatch_with_state_rng(
    state: EngineState,
    content: ContentBundle,
    intent: Intent,
    settings: EngineSettings | None = None,
) -> IntentResult:
    rng = rng_from_state(state)
    result = dispatch(state, content, intent, rng, settings or EngineSettings())
    sync_rng_to_state(state, rng)
    return result


def advance_with_state_rng(
    state: EngineState,
    content: ContentBundle,
    ticks: int,
    settings: EngineSettings | None = None,
) -> AdvanceResult:
    rng = rng_from_state(state)
    result = advance(state, content, ticks, rng, settings or EngineSettings())
    sync_rng_to_state(state, rng)
    for event in result.events:
        gameplay_logger.info(
            "tick=%d action=%s success=%s xp=%d gained=%s dropped=%s",
            event.tick,
            event.action_id,
            event.success,
            event.xp,
            event.items_gained,
            event.items_dropped,
        )
    if result.stop_reason:
        gameplay_logger.info("Action stopped: %s after %d ticks.", result.stop_reason, result.stopped_after_ticks or 0)
    return result


def update_to(
    state: EngineState,
    content: ContentBundle,
    now_ms: int,
    settings: EngineSettings | None = None,
) -> AdvanceResult:
    """Live clock: advance whole ticks up to ``now_ms`` and carry the sub-tick remainder."""
    ticks = ms_to_ticks(max(0, int(now_ms) - state.updated_at))
    result = advance_with_state_rng(state, content, ticks, settings)
    state.updated_at += ticks_to_ms(ticks)
    return result


def resume(
    state: EngineState,
    content: ContentBundle,
    now_ms: int | None = None,
    settings: EngineSettings | None = None,
) -> tuple[TimeAwayReport, EngineState]:
    resume_at = wall_clock_ms() if now_ms is None else int(now_ms)
    return reconcile(state.updated_at, resume_at, state, content, settings)


def run_simulation(
    state: EngineState,
    content: ContentBundle,
    ticks: int,
    chunk_ticks: int | None = None,
    settings: EngineSettings | None = None,
) -> tuple[EngineState, AdvanceResult]:
    """Headless run used by the CLI and tests; ``chunk_ticks`` mimics a live loop."""
    total = AdvanceResult()
    remaining = ticks
    step = chunk_ticks if chunk_ticks and chunk_ticks > 0 else ticks
    while remaining > 0:
        chunk = min(step, remaining)
        total.merge(advance_with_state_rng(state, content, chunk, settings))
        remaining -= chunk
    state.updated_at += ticks_to_ms(ticks)
    return state, total
