from __future__ import annotations

from pathlib import Path

from loguru import logger

from ..board.model import Column, ColumnState
from ..config import SCHEMA_VERSION, default_config
from .file_repos import FileColumnStore, FileConfigRepository

STATE_DIR_NAME = ".taskboard"

STATE_FILES = {
    "tasks": "tasks.yaml",
    "columns": "columns.yaml",
    "users": "users.yaml",
    "outbox": "outbox.yaml",
    "events": "events.jsonl",
    "config": "config.yaml",
}

DEFAULT_COLUMNS = (
    Column(id=1, state=ColumnState.TODO),
    Column(id=2, state=ColumnState.IN_PROGRESS),
    Column(id=3, state=ColumnState.COMPLETED),
)


def _merge_defaults(config: dict, defaults: dict) -> dict:
    for key, value in defaults.items():
        if isinstance(value, dict):
            current = config.get(key)
            config[key] = _merge_defaults(current if isinstance(current, dict) else {}, value)
        else:
            config.setdefault(key, value)
    return config


def ensure_state_root(project_dir: Path) -> Path:
    state_root = project_dir / STATE_DIR_NAME
    state_root.mkdir(parents=True, exist_ok=True)

    for file_name in STATE_FILES.values():
        target = state_root / file_name
        if file_name.endswith(".jsonl") and not target.exists():
            target.touch()

    config_repo = FileConfigRepository(state_root / "config.yaml", state_root / "config.lock")
    config = _merge_defaults(config_repo.load(), default_config())
    config["schema_version"] = SCHEMA_VERSION
    config_repo.save(config)

    columns = FileColumnStore(state_root / "columns.yaml", state_root / "columns.lock")
    if not columns.list():
        for column in DEFAULT_COLUMNS:
            columns.upsert(Column(id=column.id, state=column.state))
        logger.info("Seeded default columns in {}", state_root)

    return state_root
