from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from idle_engine.core.reconciler import TimeAwayReport

APP_LOGGER_NAME = "idle_engine"
GAMEPLAY_LOGGER_NAME = "idle_engine.gameplay"


@dataclass(slots=True)
class AppLoggerBundle:
    app: logging.Logger
    gameplay: logging.Logger
    latest_log_path: Path
    gameplay_log_path: Path


def _rotate_latest_log(logs_dir: Path, keep_archives: int = 5) -> Path:
    logs_dir.mkdir(parents=True, exist_ok=True)
    latest = logs_dir / "latest.log"
    if latest.exists():
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        latest.replace(logs_dir / f"latest_{stamp}.log")

    archives = sorted(
        (path for path in logs_dir.glob("latest_*.log") if path.is_file()),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    for stale in archives[keep_archives:]:
        stale.unlink(missing_ok=True)
    return latest


def configure_logging(logs_dir: Path, level: int = logging.INFO, stream: bool = True) -> AppLoggerBundle:
    """Route ``idle_engine.*`` to latest.log (+stderr) and gameplay lines to gameplay.log only."""
    latest = _rotate_latest_log(logs_dir)
    gameplay_log_path = logs_dir / "gameplay.log"

    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(level)
    for handler in list(app_logger.handlers):
        handler.close()
    app_logger.handlers.clear()
    app_logger.propagate = False

    if stream:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        app_logger.addHandler(stream_handler)

    file_handler = logging.FileHandler(latest, mode="w", encoding="utf-8")
    file_handler.setFormatter(formatter)
    app_logger.addHandler(file_handler)

    gameplay_logger = logging.getLogger(GAMEPLAY_LOGGER_NAME)
    gameplay_logger.setLevel(logging.INFO)
    for handler in list(gameplay_logger.handlers):
        handler.close()
    gameplay_logger.handlers.clear()
    gameplay_logger.propagate = False

    gameplay_handler = logging.FileHandler(gameplay_log_path, mode="a", encoding="utf-8")
    gameplay_handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
    gameplay_logger.addHandler(gameplay_handler)

    return AppLoggerBundle(
        app=app_logger,
        gameplay=gameplay_logger,
        latest_log_path=latest,
        gameplay_log_path=gameplay_log_path,
    )


def log_time_away(gameplay: logging.Logger, report: TimeAwayReport) -> None:
    """Write a welcome-back summary to the gameplay log, one line per kind of change."""
    gameplay.info(
        "Away %d ms (simulated %d ms%s) doing %s; stop=%s",
        report.requested_end_time - report.start_time,
        report.duration_ms,
        ", capped" if report.capped else "",
        report.active_action or "nothing",
        report.stop_reason or "-",
    )
    for skill, xp in sorted(report.skill_xp.items()):
        gameplay.info("  %s +%d xp (%.0f/h)", skill, xp, report.xp_per_hour(skill))
    for label, counts in (
        ("gained", report.items_gained),
        ("used", report.items_consumed),
        ("dropped", report.items_dropped),
        ("lost on death", report.items_lost_on_death),
    ):
        if counts:
            gameplay.info("  %s %s", label, dict(sorted(counts.items())))
    if report.deaths:
        gameplay.info("  died %d time(s), %d damage taken", report.deaths, report.damage_taken)
