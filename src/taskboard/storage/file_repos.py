from __future__ import annotations

import json
import os
import threading
import uuid
from collections import deque
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from typing import Any, Callable, Generic, Iterator, Optional, TypeVar

import yaml
from filelock import FileLock

from ..board.model import Column, NotificationRecord, NotificationStatus, Task, User, now_iso
from .interfaces import (
    ColumnStore,
    EventRepository,
    OutboxRepository,
    TaskStore,
    TaskTransaction,
    UserStore,
)

T = TypeVar("T")

DEFAULT_LOCK_TIMEOUT = 30.0


class _FileGuard:
    """Serialize access to one state file across threads and processes."""

    def __init__(self, lock_path: Path, timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._file_lock = FileLock(str(lock_path), timeout=timeout)
        self._thread_lock = threading.RLock()

    @contextmanager
    def hold(self) -> Iterator[None]:
        with self._thread_lock:
            with self._file_lock:
                yield


def _write_yaml_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(f"{path.suffix}.tmp")
    with tmp_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle, sort_keys=False)
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp_path, path)


def _read_yaml_mapping(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    return raw if isinstance(raw, dict) else {}


class _YamlCollectionRepo(Generic[T]):
    def __init__(
        self,
        path: Path,
        lock_path: Path,
        key: str,
        loader: Callable[[dict[str, Any]], T],
        dumper: Callable[[T], dict[str, Any]],
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ) -> None:
        self._path = path
        self._guard = _FileGuard(lock_path, lock_timeout)
        self._key = key
        self._loader = loader
        self._dumper = dumper

    def locked(self) -> AbstractContextManager[None]:
        return self._guard.hold()

    def _load(self) -> list[T]:
        items = _read_yaml_mapping(self._path).get(self._key, [])
        if not isinstance(items, list):
            return []
        return [self._loader(item) for item in items if isinstance(item, dict)]

    def _save(self, items: list[T]) -> None:
        _write_yaml_atomic(self._path, {"version": 1, self._key: [self._dumper(item) for item in items]})


class FileTaskStore(TaskStore):
    def __init__(self, path: Path, lock_path: Path, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._repo = _YamlCollectionRepo[Task](
            path,
            lock_path,
            "tasks",
            loader=Task.from_dict,
            dumper=lambda t: t.to_dict(),
            lock_timeout=lock_timeout,
        )

    @contextmanager
    def transaction(self) -> Iterator[TaskTransaction]:
        with self._repo.locked():
            tx = TaskTransaction(self._repo._load())
            yield tx
            if tx.dirty:
                self._repo._save(tx.tasks)


class FileColumnStore(ColumnStore):
    def __init__(self, path: Path, lock_path: Path, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._repo = _YamlCollectionRepo[Column](
            path,
            lock_path,
            "columns",
            loader=Column.from_dict,
            dumper=lambda c: c.to_dict(),
            lock_timeout=lock_timeout,
        )

    def list(self) -> list[Column]:
        with self._repo.locked():
            return sorted(self._repo._load(), key=lambda c: c.id)

    def get(self, column_id: int) -> Optional[Column]:
        for column in self.list():
            if column.id == column_id:
                return column
        return None

    def upsert(self, column: Column) -> Column:
        with self._repo.locked():
            columns = self._repo._load()
            for idx, existing in enumerate(columns):
                if existing.id == column.id:
                    columns[idx] = column
                    self._repo._save(columns)
                    return column
            columns.append(column)
            self._repo._save(columns)
        return column


class FileUserStore(UserStore):
    def __init__(self, path: Path, lock_path: Path, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._repo = _YamlCollectionRepo[User](
            path,
            lock_path,
            "users",
            loader=User.from_dict,
            dumper=lambda u: u.to_dict(),
            lock_timeout=lock_timeout,
        )

    def list(self) -> list[User]:
        with self._repo.locked():
            return self._repo._load()

    def get(self, user_id: str) -> Optional[User]:
        for user in self.list():
            if user.id == user_id:
                return user
        return None

    def upsert(self, user: User) -> User:
        with self._repo.locked():
            users = self._repo._load()
            for existing in users:
                if existing.id != user.id and user.email and existing.email == user.email:
                    raise ValueError(f"Email {user.email} already belongs to user {existing.id}")
            for idx, existing in enumerate(users):
                if existing.id == user.id:
                    users[idx] = user
                    self._repo._save(users)
                    return user
            users.append(user)
            self._repo._save(users)
        return user


class FileOutboxRepository(OutboxRepository):
    def __init__(self, path: Path, lock_path: Path, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._repo = _YamlCollectionRepo[NotificationRecord](
            path,
            lock_path,
            "notifications",
            loader=NotificationRecord.from_dict,
            dumper=lambda r: r.to_dict(),
            lock_timeout=lock_timeout,
        )

    def list(self) -> list[NotificationRecord]:
        with self._repo.locked():
            return self._repo._load()

    def append(self, record: NotificationRecord) -> NotificationRecord:
        with self._repo.locked():
            records = self._repo._load()
            records.append(record)
            self._repo._save(records)
        return record

    def upsert(self, record: NotificationRecord) -> NotificationRecord:
        with self._repo.locked():
            records = self._repo._load()
            for idx, existing in enumerate(records):
                if existing.id == record.id:
                    records[idx] = record
                    self._repo._save(records)
                    return record
            records.append(record)
            self._repo._save(records)
        return record

    def claim(self, record_id: str) -> bool:
        with self._repo.locked():
            records = self._repo._load()
            for record in records:
                if record.id == record_id:
                    if record.status != NotificationStatus.PENDING:
                        return False
                    record.status = NotificationStatus.SENDING
                    self._repo._save(records)
                    return True
        return False


class FileEventRepository(EventRepository):
    """Append-only JSONL log of board events."""

    def __init__(self, path: Path, lock_path: Path, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._path = path
        self._guard = _FileGuard(lock_path, lock_timeout)

    def append(self, *, event_type: str, entity_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        event = {
            "id": f"evt-{uuid.uuid4().hex[:10]}",
            "ts": now_iso(),
            "type": event_type,
            "entity_id": entity_id,
            "payload": payload,
        }
        line = json.dumps(event) + "\n"
        with self._guard.hold():
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line)
                handle.flush()
                os.fsync(handle.fileno())
        return event

    def list_recent(self, limit: int = 100) -> list[dict[str, Any]]:
        """Return up to *limit* newest events, oldest first. Torn lines are skipped."""
        if limit <= 0:
            return []
        with self._guard.hold():
            if not self._path.exists():
                return []
            with self._path.open("r", encoding="utf-8") as handle:
                tail = deque(handle, maxlen=limit)
        return [event for event in map(_parse_event, tail) if event is not None]


def _parse_event(line: str) -> Optional[dict[str, Any]]:
    try:
        parsed = json.loads(line)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


class FileConfigRepository:
    def __init__(self, path: Path, lock_path: Path, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._path = path
        self._guard = _FileGuard(lock_path, lock_timeout)

    def load(self) -> dict[str, Any]:
        with self._guard.hold():
            return _read_yaml_mapping(self._path)

    def save(self, config: dict[str, Any]) -> dict[str, Any]:
        with self._guard.hold():
            _write_yaml_atomic(self._path, config)
        return config
