"""Storage interface for the task queue's persistence needs."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from task_store.storage.models import TaskRecord


class TaskStorage(Protocol):
    def migrate(self) -> None: ...

    def insert_tasks(
        self, tasks: Sequence[TaskRecord | Mapping[str, Any]]
    ) -> list[TaskRecord]: ...

    def load_task(self, task_id: str) -> TaskRecord | None: ...

    def load_dependencies(self, task_ids: Sequence[str]) -> list[TaskRecord]: ...

    def complete_task(self, task_id: str, output: Any) -> TaskRecord: ...
