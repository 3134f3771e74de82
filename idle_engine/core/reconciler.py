from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .changes import ChangeSet
from .loader import ContentBundle
from .models import EngineState
from .rng import rng_from_state, sync_rng_to_state
from .scheduler import advance
from .settings import EngineSettings
from .ticks import ms_to_ticks, ticks_to_ms

ReportStopReason = Literal["out_of_inputs", "stunned", "player_died"]

logger = logging.getLogger(__name__)


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ReportLevelChange(FrozenModel):
    start: int
    end: int

    def merge(self, other: "ReportLevelChange") -> "ReportLevelChange":
        return ReportLevelChange(start=min(self.start, other.start), end=max(self.end, other.end))


def _sum_counts(left: dict[str, int], right: dict[str, int]) -> dict[str, int]:
    merged = dict(left)
    for key, qty in right.items():
        merged[key] = merged.get(key, 0) + qty
    return merged


def _merge_level_maps(
    left: dict[str, ReportLevelChange], right: dict[str, ReportLevelChange]
) -> dict[str, ReportLevelChange]:
    merged = dict(left)
    for key, change in right.items():
        merged[key] = merged[key].merge(change) if key in merged else change
    return merged


class TimeAwayReport(FrozenModel):
    """What happened while the player was away. Built once, never edited."""

    start_time: int
    end_time: int
    requested_end_time: int
    capped: bool = False
    active_skill: str | None = None
    active_action: str | None = None
    stop_reason: ReportStopReason | None = None
    stopped_after_ms: int | None = None
    level_changes: dict[str, ReportLevelChange] = Field(default_factory=dict)
    mastery_level_changes: dict[str, ReportLevelChange] = Field(default_factory=dict)
    skill_xp: dict[str, int] = Field(default_factory=dict)
    items_gained: dict[str, int] = Field(default_factory=dict)
    items_consumed: dict[str, int] = Field(default_factory=dict)
    items_dropped: dict[str, int] = Field(default_factory=dict)
    items_lost_on_death: dict[str, int] = Field(default_factory=dict)
    currency_gained: dict[str, int] = Field(default_factory=dict)
    currency_spent: dict[str, int] = Field(default_factory=dict)
    completions: dict[str, int] = Field(default_factory=dict)
    failures: dict[str, int] = Field(default_factory=dict)
    damage_taken: int = 0
    deaths: int = 0

    @property
    def duration_ms(self) -> int:
        return self.end_time - self.start_time

    @property
    def is_empty(self) -> bool:
        return not (
            self.skill_xp
            or self.items_gained
            or self.items_consumed
            or self.items_dropped
            or self.items_lost_on_death
            or self.currency_gained
            or self.completions
            or self.failures
            or self.deaths
        )

    def xp_per_hour(self, skill: str) -> float:
        hours = self.duration_ms / 3_600_000
        if hours <= 0:
            return 0.0
        return self.skill_xp.get(skill, 0) / hours

    def _recency(self) -> tuple:
        return (
            self.end_time,
            self.start_time,
            (self.stopped_after_ms or 0) if self.stop_reason else -1,
            self.stop_reason or "",
            self.active_action or "",
            self.active_skill or "",
        )

    def merge(self, other: "TimeAwayReport") -> "TimeAwayReport":
        """Combine two reports produced before either was dismissed.

        ``a.merge(b) == b.merge(a)``: the report whose window ends later
        supplies the action and stop details, with a fixed tie-break.
        """
        older, newer = sorted((self, other), key=TimeAwayReport._recency)
        stopped = newer if newer.stop_reason else older
        return TimeAwayReport(
            start_time=min(older.start_time, newer.start_time),
            end_time=max(older.end_time, newer.end_time),
            requested_end_time=max(older.requested_end_time, newer.requested_end_time),
            capped=older.capped or newer.capped,
            active_skill=newer.active_skill if newer.active_action else older.active_skill,
            active_action=newer.active_action or older.active_action,
            stop_reason=stopped.stop_reason,
            stopped_after_ms=stopped.stopped_after_ms,
            level_changes=_merge_level_maps(older.level_changes, newer.level_changes),
            mastery_level_changes=_merge_level_maps(older.mastery_level_changes, newer.mastery_level_changes),
            skill_xp=_sum_counts(older.skill_xp, newer.skill_xp),
            items_gained=_sum_counts(older.items_gained, newer.items_gained),
            items_consumed=_sum_counts(older.items_consumed, newer.items_consumed),
            items_dropped=_sum_counts(older.items_dropped, newer.items_dropped),
            items_lost_on_death=_sum_counts(older.items_lost_on_death, newer.items_lost_on_death),
            currency_gained=_sum_counts(older.currency_gained, newer.currency_gained),
            currency_spent=_sum_counts(older.currency_spent, newer.currency_spent),
            completions=_sum_counts(older.completions, newer.completions),
            failures=_sum_counts(older.failures, newer.failures),
            damage_taken=older.damage_taken + newer.damage_taken,
            deaths=older.deaths + newer.deaths,
        )


def build_report(
    changes: ChangeSet,
    *,
    start_time: int,
    end_time: int,
    requested_end_time: int,
    capped: bool,
    active_skill: str | None,
    active_action: str | None,
    stop_reason: ReportStopReason | None,
    stopped_after_ticks: int | None,
) -> TimeAwayReport:
    return TimeAwayReport(
        start_time=start_time,
        end_time=end_time,
        requested_end_time=requested_end_time,
        capped=capped,
        active_skill=active_skill,
        active_action=active_action,
        stop_reason=stop_reason,
        stopped_after_ms=ticks_to_ms(stopped_after_ticks) if stopped_after_ticks is not None else None,
        level_changes={
            key: ReportLevelChange(start=change.start, end=change.end) for key, change in changes.skill_levels.items()
        },
        mastery_level_changes={
            key: ReportLevelChange(start=change.start, end=change.end) for key, change in changes.mastery_levels.items()
        },
        skill_xp=dict(changes.skill_xp),
        items_gained=dict(changes.items_gained),
        items_consumed=dict(changes.items_consumed),
        items_dropped=dict(changes.items_dropped),
        items_lost_on_death=dict(changes.items_lost_on_death),
        currency_gained=dict(changes.currency_gained),
        currency_spent=dict(changes.currency_spent),
        completions=dict(changes.completions),
        failures=dict(changes.failures),
        damage_taken=changes.damage_taken,
        deaths=changes.deaths,
    )


def reconcile(
    last_saved: int,
    resume: int,
    snapshot: EngineState,
    content: ContentBundle,
    settings: EngineSettings | None = None,
) -> tuple[TimeAwayReport, EngineState]:
    """Replay the away window on a copy of ``snapshot``.

    The snapshot itself is never touched, so the caller commits the returned
    state only once it has it in hand.
    """
    settings = settings or EngineSettings()
    elapsed_ms = max(0, int(resume) - int(last_saved))
    max_ms = ticks_to_ms(settings.max_offline_ticks)
    capped = elapsed_ms > max_ms
    ticks = ms_to_ticks(min(elapsed_ms, max_ms))

    state = snapshot.model_copy(deep=True)
    run = state.active_run
    action = content.action_by_id.get(run.action_id) if run else None

    rng = rng_from_state(state)
    result = advance(state, content, ticks, rng, settings)
    sync_rng_to_state(state, rng)

    simulated_end = int(last_saved) + ticks_to_ms(ticks)
    state.updated_at = max(state.updated_at, int(resume) if capped else simulated_end)

    report = build_report(
        result.changes,
        start_time=int(last_saved),
        end_time=simulated_end,
        requested_end_time=max(int(resume), int(last_saved)),
        capped=capped,
        active_skill=action.skill if action else None,
        active_action=action.id if action else None,
        stop_reason=result.stop_reason,
        stopped_after_ticks=result.stopped_after_ticks,
    )
    logger.info(
        "Reconciled %d ms away (%d ticks%s): %d completions, stop=%s",
        elapsed_ms,
        ticks,
        ", capped" if capped else "",
        sum(report.completions.values()),
        report.stop_reason or "-",
    )
    return report, state
