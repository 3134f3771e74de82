from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

APP_DIR_NAME = "IdleEngine"
HOME_ENV_VAR = "IDLE_ENGINE_HOME"


@dataclass(slots=True)
class UserPaths:
    root: Path
    saves: Path
    logs: Path
    config: Path

    @property
    def settings_file(self) -> Path:
        return self.config / "settings.json"


def _is_windows() -> bool:
    return os.name == "nt"


def _candidate_roots(app_name: str) -> list[Path]:
    candidates: list[Path] = []
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        candidates.append(Path(override))

    if _is_windows():
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            candidates.append(Path(local_app_data) / app_name)
    else:
        xdg_data = os.environ.get("XDG_DATA_HOME")
        if xdg_data:
            candidates.append(Path(xdg_data) / app_name.lower())

    candidates.append(Path.home() / f".{app_name.lower()}")
    return candidates


def resolve_user_paths(app_name: str = APP_DIR_NAME) -> UserPaths:
    last_error: Exception | None = None
    for root in _candidate_roots(app_name):
        paths = UserPaths(root=root, saves=root / "saves", logs=root / "logs", config=root / "config")
        try:
            for directory in (paths.saves, paths.logs, paths.config):
                directory.mkdir(parents=True, exist_ok=True)
            return paths
        except OSError as exc:
            last_error = exc
    raise RuntimeError("Unable to initialize user data directories.") from last_error
