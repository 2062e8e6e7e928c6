"""Board core: task model, per-column ranking, and completion notices."""

from .model import Column, ColumnState, LogicalState, NotificationRecord, NotificationStatus, Task, User
from .ordering import BulkMover, OrderAssigner, Reorderer, ReorderError

__all__ = [
    "Task",
    "Column",
    "ColumnState",
    "LogicalState",
    "User",
    "NotificationRecord",
    "NotificationStatus",
    "OrderAssigner",
    "Reorderer",
    "ReorderError",
    "BulkMover",
]
