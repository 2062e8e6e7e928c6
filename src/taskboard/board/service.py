"""Board service: the entry point for every task mutation.

Each public operation runs in one task-store transaction so that its writes
land together.  Board events and completion notices are published only after
that transaction has committed; neither can fail the operation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from ..logging_utils import configure_logging
from ..notifications import LoggingNotificationSender, NotificationDispatcher, NotificationSender
from ..storage.container import BoardContainer
from ..storage.interfaces import ColumnStore, EventRepository, TaskStore, TaskTransaction, UserStore
from .model import Column, Task
from .ordering import BulkMover, OrderAssigner, Reorderer
from .transitions import CompletionTransition, TransitionNotifier


class TaskPatch(BaseModel):
    """Fields a caller may change on an existing task."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    owner_id: Optional[str] = None
    column_id: Optional[int] = None


class BoardService:
    def __init__(
        self,
        tasks: TaskStore,
        columns: ColumnStore,
        users: UserStore,
        notifier: TransitionNotifier,
        *,
        events: Optional[EventRepository] = None,
        reorderer: Optional[Reorderer] = None,
    ) -> None:
        self.tasks = tasks
        self.columns = columns
        self.users = users
        self.events = events
        self.notifier = notifier
        self.assigner = OrderAssigner(tasks)
        self.reorderer = reorderer or Reorderer()
        self.mover = BulkMover()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit_event(self, event_type: str, entity_id: str, **payload: Any) -> None:
        if self.events is None:
            return
        try:
            self.events.append(event_type=event_type, entity_id=entity_id, payload=payload)
        except Exception:
            logger.exception("Failed to append board event {} for {}", event_type, entity_id)

    def recent_events(self, limit: int = 100) -> list[dict[str, Any]]:
        if self.events is None:
            return []
        return self.events.list_recent(limit)

    def dispatch_pending(self) -> int:
        """Deliver notices left pending by deferred dispatch."""
        return self.notifier.dispatcher.dispatch_pending()

    # ------------------------------------------------------------------
    # Ranking
    # ------------------------------------------------------------------

    def assign_next_order(self, column_id: int) -> int:
        return self.assigner.next_order(column_id)

    def reorder(self, column_id: int, ordered_task_ids: Sequence[str]) -> list[Task]:
        """Give the listed tasks ranks 1..n in the order supplied.

        Raises:
            ReorderError: If the sequence is rejected; nothing is written.
        """
        ordered_task_ids = list(ordered_task_ids)
        with self.tasks.transaction() as tx:
            reordered = self.reorderer.apply(tx, column_id, ordered_task_ids)
        logger.info("Reordered {} tasks in column {}", len(reordered), column_id)
        self._emit_event("tasks.reordered", str(column_id), task_ids=ordered_task_ids)
        return reordered

    def bulk_move(self, task_ids: Sequence[str], target_column_id: int) -> list[Task]:
        """Append *task_ids* to *target_column_id*, keeping their relative order."""
        task_ids = list(task_ids)
        if not task_ids:
            return []
        self.columns.require(target_column_id)

        transitions: list[Optional[CompletionTransition]] = []

        with self.tasks.transaction() as tx:
            def _update(task_id: str, changes: dict) -> Task:
                task, transition = self._apply_update(tx, task_id, changes)
                transitions.append(transition)
                return task

            moved = self.mover.move(tx, task_ids, target_column_id, _update)

        if moved:
            logger.info("Moved {} tasks to column {}", len(moved), target_column_id)
            self._emit_event(
                "tasks.bulk_moved",
                str(target_column_id),
                task_ids=[t.id for t in moved],
                orders=[t.order for t in moved],
            )
            self.notifier.notify(transitions)
        return moved

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_task(
        self,
        title: str,
        column_id: int,
        owner_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Task:
        """Create a task at the end of *column_id*."""
        if not title:
            raise ValueError("Task title must not be empty")
        self.columns.require(column_id)
        with self.tasks.transaction() as tx:
            task = Task(
                title=title,
                description=description,
                owner_id=owner_id,
                column_id=column_id,
                order=OrderAssigner.next_order_in(tx, column_id),
            )
            tx.add(task)
        logger.info("Created task {} in column {} at rank {}", task.id, column_id, task.order)
        self._emit_event("task.created", task.id, column_id=column_id, order=task.order)
        return task

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.tasks.get(task_id)

    def list_tasks(
        self,
        column_id: Optional[int] = None,
        *,
        owner_id: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> list[Task]:
        """List tasks by column, then rank.

        Args:
            column_id: Only tasks in this column.
            owner_id: Only tasks owned by this user.
            offset: Number of matching tasks to skip.
            limit: Maximum number of tasks to return; None means no limit.
        """
        if offset < 0:
            raise ValueError("offset must be >= 0")
        if limit is not None and limit < 0:
            raise ValueError("limit must be >= 0")
        tasks = sorted(
            self.tasks.find(column_id=column_id, owner_id=owner_id),
            key=lambda t: (t.column_id, t.order),
        )
        end = None if limit is None else offset + limit
        return tasks[offset:end]

    def update_task_with_transition_check(self, task_id: str, fields: dict[str, Any]) -> Task:
        """Apply a caller edit and fire a completion notice when due.

        A change of ``column_id`` appends the task to the target column: its
        ``order`` becomes one past the target's highest rank, so ranks stay
        unique. Besides reorder and bulk move, this is the only path that
        rewrites ``order``.

        Raises:
            pydantic.ValidationError: Unknown or invalid fields.
            TaskNotFoundError: No such task.
            ColumnNotFoundError: Target column does not exist.
        """
        changes = TaskPatch.model_validate(fields).model_dump(exclude_unset=True)
        if "title" in changes and changes["title"] is None:
            raise ValueError("Task title must not be empty")
        if "column_id" in changes and changes["column_id"] is None:
            raise ValueError("Task column_id must not be empty")

        with self.tasks.transaction() as tx:
            current = tx.require(task_id)
            target = changes.get("column_id")
            if target is not None and target != current.column_id:
                self.columns.require(target)
                changes["order"] = OrderAssigner.next_order_in(tx, target)
            task, transition = self._apply_update(tx, task_id, changes)

        self._emit_event("task.updated", task.id, fields=sorted(changes))
        self.notifier.notify([transition])
        return task

    def delete_task(self, task_id: str) -> Task:
        task = self.tasks.delete(task_id)
        logger.info("Deleted task {}", task_id)
        self._emit_event("task.deleted", task_id, column_id=task.column_id)
        return task

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def get_column(self, column_id: int) -> Optional[Column]:
        return self.columns.get(column_id)

    def list_columns(self) -> list[Column]:
        return self.columns.list()

    def get_board(self) -> list[dict[str, Any]]:
        """Return every column with its tasks in rank order."""
        tasks = self.list_tasks()
        return [
            {
                **column.to_dict(),
                "tasks": [t.to_dict() for t in tasks if t.column_id == column.id],
            }
            for column in self.columns.list()
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _apply_update(
        self,
        tx: TaskTransaction,
        task_id: str,
        changes: dict[str, Any],
    ) -> tuple[Task, Optional[CompletionTransition]]:
        """Single update path shared by direct edits and bulk moves."""
        task = tx.require(task_id)
        from_column_id = task.column_id
        column_changes = "column_id" in changes and changes["column_id"] != from_column_id
        previous = self.notifier.state_of(from_column_id) if column_changes else None

        task = tx.update(task_id, changes)

        if previous is None:
            return task, None
        return task, self.notifier.detect(previous, from_column_id, task)


def create_board_service(
    project_dir: Path,
    *,
    sender: NotificationSender | None = None,
    configure_logs: bool = False,
) -> BoardService:
    """Wire a service over the file-backed stores under *project_dir*."""
    container = BoardContainer(project_dir)
    settings = container.settings
    if configure_logs:
        configure_logging(settings.logging.level)
    dispatcher = NotificationDispatcher(
        container.outbox,
        sender or LoggingNotificationSender(),
        inline=settings.notifications.dispatch == "inline",
        enabled=settings.notifications.enabled,
    )
    notifier = TransitionNotifier(container.columns, container.users, dispatcher)
    return BoardService(
        container.tasks,
        container.columns,
        container.users,
        notifier,
        events=container.events,
        reorderer=Reorderer(require_exact_permutation=settings.ordering.require_exact_permutation),
    )
