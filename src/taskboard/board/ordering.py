"""Per-column task ranking: next rank, reorder, and bulk move.

Every operation here works against an open :class:`TaskTransaction`, so a
caller that runs it inside ``store.transaction()`` gets one atomic write for
the whole operation.  Ranks start at 1 and are unique inside a column.
"""

from __future__ import annotations

from collections import Counter
from typing import Callable, Sequence

from ..storage.interfaces import TaskStore, TaskTransaction
from .model import Task

# Applies field changes to one task through the regular update path.
UpdateFn = Callable[[str, dict], Task]


class ReorderError(ValueError):
    """Raised before any write when a reorder request is not acceptable."""


class OrderAssigner:
    """Compute the rank for a task entering a column."""

    def __init__(self, tasks: TaskStore) -> None:
        self.tasks = tasks

    def next_order(self, column_id: int) -> int:
        """Return one past the highest rank in *column_id*, or 1 if empty."""
        with self.tasks.transaction() as tx:
            return self.next_order_in(tx, column_id)

    @staticmethod
    def next_order_in(tx: TaskTransaction, column_id: int) -> int:
        """Same as :meth:`next_order`, against an already open transaction."""
        return tx.max_order(column_id) + 1


class Reorderer:
    """Rewrite the ranks of a column's tasks from a caller-supplied sequence.

    Parameters
    ----------
    require_exact_permutation:
        When true (the default), the sequence must name every task currently
        in the column exactly once.  When false, only ids that belong to a
        different column are rejected; omitted tasks keep their old rank.
    """

    def __init__(self, *, require_exact_permutation: bool = True) -> None:
        self.require_exact_permutation = require_exact_permutation

    def validate(self, tx: TaskTransaction, column_id: int, ordered_task_ids: Sequence[str]) -> None:
        found = tx.find(ids=ordered_task_ids)
        foreign = sorted(t.id for t in found if t.column_id != column_id)
        if foreign:
            raise ReorderError(f"Tasks {foreign} do not belong to column {column_id}")

        if not self.require_exact_permutation:
            return

        missing = sorted(set(ordered_task_ids) - {t.id for t in found})
        if missing:
            raise ReorderError(f"Unknown task ids: {missing}")
        duplicates = sorted(tid for tid, count in Counter(ordered_task_ids).items() if count > 1)
        if duplicates:
            raise ReorderError(f"Duplicate task ids: {duplicates}")
        omitted = sorted({t.id for t in tx.find(column_id=column_id)} - set(ordered_task_ids))
        if omitted:
            raise ReorderError(f"Reorder of column {column_id} omits tasks {omitted}")

    def apply(self, tx: TaskTransaction, column_id: int, ordered_task_ids: Sequence[str]) -> list[Task]:
        """Validate, then set ``order = position + 1`` for each id in turn."""
        self.validate(tx, column_id, ordered_task_ids)
        return [
            tx.update(task_id, {"order": position})
            for position, task_id in enumerate(ordered_task_ids, start=1)
        ]


class BulkMover:
    """Append a group of tasks, in their current rank order, to a column."""

    def move(
        self,
        tx: TaskTransaction,
        task_ids: Sequence[str],
        target_column_id: int,
        update: UpdateFn,
    ) -> list[Task]:
        """Move *task_ids* to the end of *target_column_id*.

        Tasks are taken in ascending rank order and given consecutive ranks
        starting one past the target's current maximum.  Tasks coming from
        different columns end up as one contiguous block.  Ids that match no
        task are skipped.

        Args:
            tx: Open task transaction.
            task_ids: Tasks to move; empty means no-op.
            target_column_id: Destination column.
            update: Update path applied to each task, so that every move is
                seen by the same side effects as a direct edit.

        Returns:
            The moved tasks in their new order.
        """
        if not task_ids:
            return []
        to_move = tx.find(ids=task_ids, order_by="asc")
        if not to_move:
            return []

        start = OrderAssigner.next_order_in(tx, target_column_id)
        return [
            update(task.id, {"column_id": target_column_id, "order": start + offset})
            for offset, task in enumerate(to_move)
        ]
