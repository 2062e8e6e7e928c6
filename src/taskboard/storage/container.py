from __future__ import annotations

from pathlib import Path

from ..config import BoardSettings, load_board_settings
from .bootstrap import ensure_state_root
from .file_repos import (
    FileColumnStore,
    FileConfigRepository,
    FileEventRepository,
    FileOutboxRepository,
    FileTaskStore,
    FileUserStore,
)


class BoardContainer:
    def __init__(self, project_dir: Path) -> None:
        self.project_dir = project_dir.resolve()
        self.state_root = ensure_state_root(self.project_dir)

        self.config = FileConfigRepository(self.state_root / "config.yaml", self.state_root / "config.lock")
        self.settings: BoardSettings = load_board_settings(self.config.load())
        timeout = self.settings.storage.lock_timeout

        self.tasks = FileTaskStore(self.state_root / "tasks.yaml", self.state_root / "tasks.lock", lock_timeout=timeout)
        self.columns = FileColumnStore(self.state_root / "columns.yaml", self.state_root / "columns.lock", lock_timeout=timeout)
        self.users = FileUserStore(self.state_root / "users.yaml", self.state_root / "users.lock", lock_timeout=timeout)
        self.outbox = FileOutboxRepository(self.state_root / "outbox.yaml", self.state_root / "outbox.lock", lock_timeout=timeout)
        self.events = FileEventRepository(self.state_root / "events.jsonl", self.state_root / "events.lock", lock_timeout=timeout)

    @property
    def project_id(self) -> str:
        return self.project_dir.name
