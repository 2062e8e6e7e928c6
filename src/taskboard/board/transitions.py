"""Detect tasks entering a completed column and turn that into a notice.

Column states collapse into two logical states, NOT_COMPLETED and
COMPLETED.  Only the NOT_COMPLETED -> COMPLETED edge produces a notice;
leaving a completed column, or moving between two not-completed columns,
produces nothing.

Detection runs inside the task transaction and only reads columns.  Owner
lookup and delivery happen after the transaction commits, in
:meth:`TransitionNotifier.notify`, and never raise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from loguru import logger

from ..notifications import NotificationDispatcher
from ..storage.interfaces import ColumnStore, UserStore
from .model import LogicalState, NotificationRecord, Task


@dataclass(frozen=True)
class CompletionTransition:
    task_id: str
    title: str
    owner_id: Optional[str]
    from_column_id: int
    to_column_id: int


def completion_subject(title: str) -> str:
    return f'Task "{title}" completed!'


def completion_body(title: str) -> str:
    return f'Good job! Your task "{title}" has been marked as completed.'


class TransitionNotifier:
    def __init__(
        self,
        columns: ColumnStore,
        users: UserStore,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self.columns = columns
        self.users = users
        self.dispatcher = dispatcher

    def state_of(self, column_id: int) -> LogicalState:
        column = self.columns.get(column_id)
        if column is None:
            return LogicalState.NOT_COMPLETED
        return column.logical_state

    def detect(self, previous: LogicalState, from_column_id: int, task: Task) -> Optional[CompletionTransition]:
        """Compare the captured state with the task's resulting column."""
        current = self.state_of(task.column_id)
        if previous == LogicalState.COMPLETED or current != LogicalState.COMPLETED:
            return None
        return CompletionTransition(
            task_id=task.id,
            title=task.title,
            owner_id=task.owner_id,
            from_column_id=from_column_id,
            to_column_id=task.column_id,
        )

    def compose(self, transition: CompletionTransition) -> Optional[NotificationRecord]:
        if not transition.owner_id:
            logger.debug("Task {} completed without an owner; no notice", transition.task_id)
            return None
        owner = self.users.get(transition.owner_id)
        if owner is None or not owner.email:
            logger.debug("Owner {} of task {} has no email; no notice", transition.owner_id, transition.task_id)
            return None
        return NotificationRecord(
            task_id=transition.task_id,
            to_email=owner.email,
            subject=completion_subject(transition.title),
            body=completion_body(transition.title),
        )

    def notify(self, transitions: Iterable[Optional[CompletionTransition]]) -> list[NotificationRecord]:
        """Publish one notice per transition. Failures are logged, not raised."""
        published: list[NotificationRecord] = []
        for transition in transitions:
            if transition is None:
                continue
            try:
                record = self.compose(transition)
                if record is None:
                    continue
                notices = self.dispatcher.publish([record])
                if not notices:
                    continue
                published.extend(notices)
                logger.info("Task {} completed; notice {} queued for {}", transition.task_id, record.id, record.to_email)
            except Exception:
                logger.exception("Completion notice for task {} could not be published", transition.task_id)
        return published
