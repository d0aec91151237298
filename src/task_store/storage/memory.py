"""In-memory storage backend for tests and local development."""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from typing import Any

from task_store.storage.errors import TaskAlreadyCompleteError
from task_store.storage.models import TaskRecord, TaskStatus, serialize_output, utc_timestamp

_DEPENDENCY_FIELDS = {"id", "output", "status"}


class InMemoryTaskStorage:
    """Process-local implementation with the same contract as the DynamoDB backend."""

    def __init__(self) -> None:
        self._tasks: dict[str, TaskRecord] = {}
        self._lock = threading.Lock()

    def migrate(self) -> None:
        return None

    def insert_tasks(self, tasks: Sequence[TaskRecord | Mapping[str, Any]]) -> list[TaskRecord]:
        records = [
            task if isinstance(task, TaskRecord) else TaskRecord.model_validate(dict(task))
            for task in tasks
        ]
        with self._lock:
            for record in records:
                self._tasks[record.id] = record.model_copy(deep=True)
        return records

    def load_task(self, task_id: str) -> TaskRecord | None:
        with self._lock:
            record = self._tasks.get(task_id)
        return record.model_copy(deep=True) if record else None

    def load_dependencies(self, task_ids: Sequence[str]) -> list[TaskRecord]:
        with self._lock:
            found = [
                self._tasks[task_id] for task_id in dict.fromkeys(task_ids) if task_id in self._tasks
            ]
        return [
            TaskRecord.model_validate(
                {
                    name: value
                    for name, value in record.to_item().items()
                    if name in _DEPENDENCY_FIELDS
                }
            )
            for record in found
        ]

    def complete_task(self, task_id: str, output: Any) -> TaskRecord:
        with self._lock:
            current = self._tasks.get(task_id)
            # A missing task fails the pending check, as it does in DynamoDB.
            if current is None or current.status != TaskStatus.PENDING:
                raise TaskAlreadyCompleteError(task_id)
            updated = current.model_copy(
                deep=True,
                update={
                    "output": serialize_output(output),
                    "status": TaskStatus.COMPLETE.value,
                    "status_updated_at": utc_timestamp(),
                },
            )
            self._tasks[task_id] = updated
        return updated.model_copy(deep=True)
