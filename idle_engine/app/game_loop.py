from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from idle_engine.core.engine import dispatch_with_state_rng, update_to
from idle_engine.core.intents import Intent
from idle_engine.core.loader import ContentBundle
from idle_engine.core.models import EngineState
from idle_engine.core.persistence import inventory_capacity, inventory_used
from idle_engine.core.results import IntentResult
from idle_engine.core.scheduler import AdvanceResult
from idle_engine.core.settings import EngineSettings, RuntimeSettings

logger = logging.getLogger(__name__)


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class GameLoop:
    """Drives a live state from a wall clock.

    Every update and intent goes through one lock, so commands from another
    thread land between two updates and never inside one.
    """

    def __init__(
        self,
        state: EngineState,
        content: ContentBundle,
        engine_settings: EngineSettings | None = None,
        runtime_settings: RuntimeSettings | None = None,
        clock: Callable[[], int] = _wall_clock_ms,
        sleep: Callable[[float], None] = time.sleep,
        on_autosave: Callable[[EngineState], None] | None = None,
    ) -> None:
        self.state = state
        self.content = content
        self.engine_settings = engine_settings or EngineSettings()
        self.runtime_settings = runtime_settings or RuntimeSettings()
        self.clock = clock
        self.sleep = sleep
        self.on_autosave = on_autosave
        self._lock = threading.Lock()
        self._last_autosave = clock()
        self._bank_full = False
        # Aggregates only; per-completion events are returned by update() and not kept.
        self.totals = AdvanceResult()

    def dispatch(self, intent: Intent) -> IntentResult:
        with self._lock:
            self._update_locked()
            return dispatch_with_state_rng(self.state, self.content, intent, self.engine_settings)

    def _update_locked(self) -> AdvanceResult:
        result = update_to(self.state, self.content, self.clock(), self.engine_settings)
        self.totals.merge(result, keep_events=False)
        bank_full = False
        for warning in result.warnings:
            if warning.kind != "capacity_exceeded":
                logger.warning("%s %s", warning.message, warning.details)
                continue
            bank_full = True
            if self._bank_full:
                logger.debug("%s %s", warning.message, warning.details)
            else:
                logger.warning("%s %s", warning.message, warning.details)
                self._bank_full = True
        if not bank_full and self._bank_full:
            self._bank_full = inventory_used(self.state) >= inventory_capacity(
                self.state, self.content, self.engine_settings
            )
        return result

    def update(self) -> AdvanceResult:
        with self._lock:
            result = self._update_locked()
        self._maybe_autosave()
        return result

    def _maybe_autosave(self) -> None:
        if self.on_autosave is None:
            return
        now = self.clock()
        if now - self._last_autosave < self.runtime_settings.autosave_seconds * 1000:
            return
        self._last_autosave = now
        with self._lock:
            self.on_autosave(self.state)

    def run_for(self, seconds: float) -> AdvanceResult:
        """Update every interval until ``seconds`` of clock time have passed."""
        deadline = self.clock() + int(seconds * 1000)
        interval = self.runtime_settings.update_interval_ms / 1000
        while self.clock() < deadline:
            self.sleep(interval)
            self.update()
        return self.totals
