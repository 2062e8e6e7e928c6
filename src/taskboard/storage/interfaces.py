from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, Iterable, Literal, Optional

from ..board.model import Column, NotificationRecord, NotificationStatus, Task, User

RankOrder = Literal["asc", "desc"]

_MUTABLE_TASK_FIELDS = frozenset({"title", "description", "owner_id", "column_id", "order"})


class TaskNotFoundError(LookupError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class ColumnNotFoundError(LookupError):
    def __init__(self, column_id: int) -> None:
        super().__init__(f"Column {column_id} not found")
        self.column_id = column_id


class TaskTransaction:
    """In-memory unit of work over the full task list.

    Stores hand one of these out from ``transaction()`` and persist
    ``tasks`` once, when the block exits cleanly and ``dirty`` is set.
    An exception raised inside the block discards every change.
    """

    def __init__(self, tasks: list[Task]) -> None:
        self.tasks = tasks
        self.dirty = False
        self._index: dict[str, int] = {t.id: i for i, t in enumerate(tasks)}

    # -- lookups ------------------------------------------------------------

    def get(self, task_id: str) -> Optional[Task]:
        idx = self._index.get(task_id)
        return self.tasks[idx] if idx is not None else None

    def require(self, task_id: str) -> Task:
        task = self.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def find(
        self,
        *,
        column_id: Optional[int] = None,
        owner_id: Optional[str] = None,
        ids: Optional[Iterable[str]] = None,
        order_by: Optional[RankOrder] = None,
    ) -> list[Task]:
        wanted = set(ids) if ids is not None else None
        out = [
            t
            for t in self.tasks
            if (column_id is None or t.column_id == column_id)
            and (owner_id is None or t.owner_id == owner_id)
            and (wanted is None or t.id in wanted)
        ]
        if order_by is not None:
            # Stable sort keeps insertion order between equal ranks.
            out.sort(key=lambda t: t.order, reverse=order_by == "desc")
        return out

    def max_order(self, column_id: int) -> int:
        ranked = self.find(column_id=column_id, order_by="desc")
        return ranked[0].order if ranked else 0

    # -- mutations ----------------------------------------------------------

    def add(self, task: Task) -> Task:
        if task.id in self._index:
            raise ValueError(f"Task {task.id} already exists")
        self._index[task.id] = len(self.tasks)
        self.tasks.append(task)
        self.dirty = True
        return task

    def update(self, task_id: str, changes: dict[str, Any]) -> Task:
        task = self.require(task_id)
        unknown = set(changes) - _MUTABLE_TASK_FIELDS
        if unknown:
            raise ValueError(f"Cannot update task fields: {sorted(unknown)}")
        for key, value in changes.items():
            setattr(task, key, value)
        task.touch()
        self.dirty = True
        return task

    def remove(self, task_id: str) -> Task:
        idx = self._index.pop(task_id, None)
        if idx is None:
            raise TaskNotFoundError(task_id)
        task = self.tasks.pop(idx)
        self._index = {t.id: i for i, t in enumerate(self.tasks)}
        self.dirty = True
        return task


class TaskStore(ABC):
    @abstractmethod
    def transaction(self) -> AbstractContextManager[TaskTransaction]:
        raise NotImplementedError

    def get(self, task_id: str) -> Optional[Task]:
        with self.transaction() as tx:
            return tx.get(task_id)

    def find(
        self,
        *,
        column_id: Optional[int] = None,
        owner_id: Optional[str] = None,
        ids: Optional[Iterable[str]] = None,
        order_by: Optional[RankOrder] = None,
    ) -> list[Task]:
        with self.transaction() as tx:
            return tx.find(column_id=column_id, owner_id=owner_id, ids=ids, order_by=order_by)

    def create(self, task: Task) -> Task:
        with self.transaction() as tx:
            return tx.add(task)

    def update(self, task_id: str, changes: dict[str, Any]) -> Task:
        with self.transaction() as tx:
            return tx.update(task_id, changes)

    def delete(self, task_id: str) -> Task:
        with self.transaction() as tx:
            return tx.remove(task_id)


class ColumnStore(ABC):
    @abstractmethod
    def list(self) -> list[Column]:
        raise NotImplementedError

    @abstractmethod
    def get(self, column_id: int) -> Optional[Column]:
        raise NotImplementedError

    @abstractmethod
    def upsert(self, column: Column) -> Column:
        raise NotImplementedError

    def require(self, column_id: int) -> Column:
        column = self.get(column_id)
        if column is None:
            raise ColumnNotFoundError(column_id)
        return column


class UserStore(ABC):
    @abstractmethod
    def list(self) -> list[User]:
        raise NotImplementedError

    @abstractmethod
    def get(self, user_id: str) -> Optional[User]:
        raise NotImplementedError

    @abstractmethod
    def upsert(self, user: User) -> User:
        raise NotImplementedError


class OutboxRepository(ABC):
    @abstractmethod
    def list(self) -> list[NotificationRecord]:
        raise NotImplementedError

    @abstractmethod
    def append(self, record: NotificationRecord) -> NotificationRecord:
        raise NotImplementedError

    @abstractmethod
    def upsert(self, record: NotificationRecord) -> NotificationRecord:
        raise NotImplementedError

    @abstractmethod
    def claim(self, record_id: str) -> bool:
        """Move a pending record to ``sending``.

        Returns False when the record is missing or no longer pending, so at
        most one dispatcher ever hands a given record to a sender.
        """
        raise NotImplementedError

    def pending(self) -> list[NotificationRecord]:
        return [r for r in self.list() if r.status == NotificationStatus.PENDING]


class EventRepository(ABC):
    @abstractmethod
    def append(self, *, event_type: str, entity_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def list_recent(self, limit: int = 100) -> list[dict[str, Any]]:
        raise NotImplementedError
