"""Storage backends and models."""

from task_store.storage.base import TaskStorage
from task_store.storage.dynamodb import DynamoDBTaskStorage
from task_store.storage.errors import (
    IncompleteWriteError,
    PaginationLimitError,
    TaskAlreadyCompleteError,
    TaskStorageError,
)
from task_store.storage.memory import InMemoryTaskStorage
from task_store.storage.models import TaskRecord, TaskStatus

__all__ = [
    "DynamoDBTaskStorage",
    "InMemoryTaskStorage",
    "IncompleteWriteError",
    "PaginationLimitError",
    "TaskAlreadyCompleteError",
    "TaskRecord",
    "TaskStatus",
    "TaskStorage",
    "TaskStorageError",
]
