"""Domain errors raised by task storage backends.

Store failures that are not translated here (throttling, network, validation)
propagate unchanged as ``botocore`` exceptions.
"""

from __future__ import annotations


class TaskStorageError(Exception):
    """Base class for errors raised by the storage adapter itself."""


class IncompleteWriteError(TaskStorageError):
    """A batch write left items unprocessed; the caller must re-submit."""

    def __init__(self, unprocessed_count: int) -> None:
        super().__init__(f"Failed to create all tasks ({unprocessed_count} unprocessed)")
        self.unprocessed_count = unprocessed_count


class TaskAlreadyCompleteError(TaskStorageError):
    """The task was not pending when completion was attempted."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} is already complete")
        self.task_id = task_id


class PaginationLimitError(TaskStorageError):
    """Unprocessed keys were still pending after the allowed number of rounds."""

    def __init__(self, *, rounds: int, remaining_keys: int) -> None:
        super().__init__(
            f"Batch get still had {remaining_keys} unprocessed keys after {rounds} rounds"
        )
        self.rounds = rounds
        self.remaining_keys = remaining_keys
