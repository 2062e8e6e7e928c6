"""Tests for the file-backed board stores, bootstrap, and configuration."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from taskboard.board.model import Column, ColumnState, NotificationRecord, NotificationStatus, Task, User
from taskboard.config import BoardSettings, load_board_settings
from taskboard.storage.bootstrap import ensure_state_root
from taskboard.storage.container import BoardContainer
from taskboard.storage.file_repos import FileTaskStore
from taskboard.storage.interfaces import TaskNotFoundError


@pytest.fixture
def store(tmp_path: Path) -> FileTaskStore:
    return FileTaskStore(tmp_path / "tasks.yaml", tmp_path / "tasks.lock")


# ---------------------------------------------------------------------------
# Task store
# ---------------------------------------------------------------------------

class TestFileTaskStore:
    def test_empty_store(self, store: FileTaskStore) -> None:
        assert store.find() == []
        assert store.get("task-missing") is None

    def test_create_and_get(self, store: FileTaskStore) -> None:
        store.create(Task(id="t1", title="First", column_id=1, order=1))

        task = store.get("t1")
        assert task is not None
        assert task.title == "First"
        assert task.column_id == 1

    def test_find_filters_and_rank_ordering(self, store: FileTaskStore) -> None:
        with store.transaction() as tx:
            tx.add(Task(id="a", column_id=1, order=2))
            tx.add(Task(id="b", column_id=1, order=1))
            tx.add(Task(id="c", column_id=2, order=5))

        assert [t.id for t in store.find(column_id=1, order_by="asc")] == ["b", "a"]
        assert [t.id for t in store.find(column_id=1, order_by="desc")] == ["a", "b"]
        assert {t.id for t in store.find(ids=["a", "c", "zzz"])} == {"a", "c"}

    def test_max_order(self, store: FileTaskStore) -> None:
        with store.transaction() as tx:
            tx.add(Task(id="a", column_id=1, order=5))
            tx.add(Task(id="b", column_id=1, order=3))
            assert tx.max_order(1) == 5
            assert tx.max_order(2) == 0

    def test_update_is_field_level(self, store: FileTaskStore) -> None:
        store.create(Task(id="t1", title="Old", description="keep", column_id=1, order=1))

        updated = store.update("t1", {"title": "New"})

        assert updated.title == "New"
        assert store.get("t1").description == "keep"

    def test_update_rejects_unknown_fields(self, store: FileTaskStore) -> None:
        store.create(Task(id="t1", title="Old", column_id=1, order=1))
        with pytest.raises(ValueError, match="Cannot update"):
            store.update("t1", {"id": "t2"})

    def test_update_missing_task_raises(self, store: FileTaskStore) -> None:
        with pytest.raises(TaskNotFoundError):
            store.update("nope", {"title": "x"})

    def test_duplicate_add_raises(self, store: FileTaskStore) -> None:
        with store.transaction() as tx:
            tx.add(Task(id="t1"))
            with pytest.raises(ValueError, match="already exists"):
                tx.add(Task(id="t1"))

    def test_exception_discards_transaction(self, store: FileTaskStore) -> None:
        store.create(Task(id="t1", column_id=1, order=1))

        with pytest.raises(RuntimeError):
            with store.transaction() as tx:
                tx.update("t1", {"order": 9})
                tx.add(Task(id="t2", column_id=1, order=2))
                raise RuntimeError("boom")

        assert store.get("t1").order == 1
        assert store.get("t2") is None

    def test_read_only_transaction_does_not_write(self, tmp_path: Path, store: FileTaskStore) -> None:
        store.find(column_id=1)
        assert not (tmp_path / "tasks.yaml").exists()

    def test_delete(self, store: FileTaskStore) -> None:
        store.create(Task(id="t1"))
        removed = store.delete("t1")
        assert removed.id == "t1"
        assert store.get("t1") is None
        with pytest.raises(TaskNotFoundError):
            store.delete("t1")


# ---------------------------------------------------------------------------
# Container, bootstrap, other stores
# ---------------------------------------------------------------------------

class TestContainer:
    def test_bootstrap_seeds_default_columns(self, tmp_path: Path) -> None:
        container = BoardContainer(tmp_path)

        columns = container.columns.list()
        assert [(c.id, c.state) for c in columns] == [
            (1, ColumnState.TODO),
            (2, ColumnState.IN_PROGRESS),
            (3, ColumnState.COMPLETED),
        ]
        assert (tmp_path / ".taskboard" / "events.jsonl").exists()

    def test_bootstrap_is_idempotent(self, tmp_path: Path) -> None:
        container = BoardContainer(tmp_path)
        container.columns.upsert(Column(id=4, state=ColumnState.COMPLETED))

        ensure_state_root(tmp_path)

        assert [c.id for c in BoardContainer(tmp_path).columns.list()] == [1, 2, 3, 4]

    def test_bootstrap_keeps_user_config(self, tmp_path: Path) -> None:
        state_root = tmp_path / ".taskboard"
        state_root.mkdir()
        (state_root / "config.yaml").write_text(
            "notifications:\n  dispatch: deferred\n", encoding="utf-8"
        )

        container = BoardContainer(tmp_path)

        assert container.settings.notifications.dispatch == "deferred"
        assert container.settings.notifications.enabled is True
        saved = yaml.safe_load((state_root / "config.yaml").read_text(encoding="utf-8"))
        assert saved["schema_version"] == 1
        assert saved["ordering"]["require_exact_permutation"] is True

    def test_user_email_is_unique(self, tmp_path: Path) -> None:
        container = BoardContainer(tmp_path)
        container.users.upsert(User(id="u1", email="alice@example.com"))

        with pytest.raises(ValueError, match="already belongs"):
            container.users.upsert(User(id="u2", email="alice@example.com"))

        container.users.upsert(User(id="u1", email="alice@example.com", name="Alice"))
        assert container.users.get("u1").name == "Alice"

    def test_outbox_pending(self, tmp_path: Path) -> None:
        container = BoardContainer(tmp_path)
        first = container.outbox.append(NotificationRecord(task_id="t1", to_email="a@example.com"))
        container.outbox.append(NotificationRecord(task_id="t2", to_email="b@example.com"))

        first.status = NotificationStatus.SENT
        container.outbox.upsert(first)

        assert [r.task_id for r in container.outbox.pending()] == ["t2"]

    def test_outbox_claim_is_single_use(self, tmp_path: Path) -> None:
        container = BoardContainer(tmp_path)
        record = container.outbox.append(NotificationRecord(task_id="t1", to_email="a@example.com"))

        assert container.outbox.claim(record.id) is True
        assert container.outbox.claim(record.id) is False
        assert container.outbox.claim("ntf-missing") is False
        assert container.outbox.list()[0].status == NotificationStatus.SENDING
        assert container.outbox.pending() == []

    def test_event_log_returns_most_recent(self, tmp_path: Path) -> None:
        container = BoardContainer(tmp_path)
        for idx in range(5):
            container.events.append(event_type="task.created", entity_id=f"t{idx}", payload={})

        recent = container.events.list_recent(limit=2)

        assert [e["entity_id"] for e in recent] == ["t3", "t4"]
        assert container.events.list_recent(limit=0) == []


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class TestSettings:
    def test_defaults(self) -> None:
        settings = load_board_settings(None)
        assert settings == BoardSettings()
        assert settings.notifications.dispatch == "inline"
        assert settings.storage.lock_timeout == 30.0

    def test_ignores_version_key(self) -> None:
        settings = load_board_settings({"version": 3, "logging": {"level": "DEBUG"}})
        assert settings.logging.level == "DEBUG"

    def test_invalid_dispatch_mode(self) -> None:
        with pytest.raises(ValidationError):
            load_board_settings({"notifications": {"dispatch": "carrier-pigeon"}})

    def test_lock_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            load_board_settings({"storage": {"lock_timeout": 0}})
