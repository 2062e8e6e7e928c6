from .container import BoardContainer
from .interfaces import (
    ColumnNotFoundError,
    ColumnStore,
    EventRepository,
    OutboxRepository,
    TaskNotFoundError,
    TaskStore,
    TaskTransaction,
    UserStore,
)

__all__ = [
    "BoardContainer",
    "TaskStore",
    "TaskTransaction",
    "ColumnStore",
    "UserStore",
    "OutboxRepository",
    "EventRepository",
    "TaskNotFoundError",
    "ColumnNotFoundError",
]
