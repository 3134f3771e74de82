from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest

from idle_engine.core.loader import ContentValidationError, load_content


def _copy_content(tmp_path: Path) -> Path:
    source_content = Path(__file__).resolve().parents[1] / "content"
    test_content = tmp_path / "content"
    shutil.copytree(source_content, test_content)
    return test_content


def _edit(path: Path, mutate) -> None:
    payload = json.loads(path.read_text(encoding="utf-8"))
    mutate(payload)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def test_missing_item_reference_in_drop_table_raises_clear_error(tmp_path: Path) -> None:
    content_dir = _copy_content(tmp_path)
    _edit(content_dir / "drop_tables.json", lambda tables: tables[0]["picks"][0].update(itemId="missing_item_id"))

    with pytest.raises(ContentValidationError, match="missing item 'missing_item_id'"):
        load_content(content_dir)


def test_missing_drop_table_reference_raises_clear_error(tmp_path: Path) -> None:
    content_dir = _copy_content(tmp_path)
    _edit(content_dir / "actions.json", lambda actions: actions[3]["dropTables"].append("sunken_chest"))

    with pytest.raises(ContentValidationError, match="missing drop table 'sunken_chest'"):
        load_content(content_dir)


def test_duplicate_action_ids_are_rejected(tmp_path: Path) -> None:
    content_dir = _copy_content(tmp_path)
    _edit(content_dir / "actions.json", lambda actions: actions.append(dict(actions[0])))

    with pytest.raises(ContentValidationError, match="Duplicate action id"):
        load_content(content_dir)


def test_fixed_and_ranged_duration_cannot_mix(tmp_path: Path) -> None:
    content_dir = _copy_content(tmp_path)
    _edit(content_dir / "actions.json", lambda actions: actions[0].update(minDurationSeconds=1.0, maxDurationSeconds=2.0))

    with pytest.raises(ContentValidationError, match="Schema validation failed for actions.json"):
        load_content(content_dir)


def test_modifier_scoped_to_unknown_skill_is_rejected(tmp_path: Path) -> None:
    content_dir = _copy_content(tmp_path)
    _edit(content_dir / "upgrades.json", lambda upgrades: upgrades[0]["modifiers"][0]["scope"].update(skill="sailing"))

    with pytest.raises(ContentValidationError, match="missing skill 'sailing'"):
        load_content(content_dir)


def test_shipped_content_loads() -> None:
    content = load_content()
    assert "woodcutting" in content.skills
    assert content.building("grasslands", "woodcutters_hut") is not None
