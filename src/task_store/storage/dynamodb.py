"""DynamoDB-backed task storage.

Store limits handled here:
- batch writes accept at most 25 put requests, batch gets at most 100 keys;
- batch gets may resolve only part of a request and hand back the rest as
  ``UnprocessedKeys``, which must be requested again until none remain;
- completion is a conditional update, the only concurrency control in the system.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError

from task_store.config.settings import Settings, get_settings
from task_store.storage.batching import chunk, fan_out
from task_store.storage.errors import (
    IncompleteWriteError,
    PaginationLimitError,
    TaskAlreadyCompleteError,
)
from task_store.storage.models import TaskRecord, TaskStatus, serialize_output, utc_timestamp

logger = logging.getLogger(__name__)

BATCH_WRITE_LIMIT = 25
BATCH_GET_LIMIT = 100

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"

_DEPENDENCY_PROJECTION = "#id, #output, #status"
_DEPENDENCY_ATTRIBUTE_NAMES = {"#id": "id", "#output": "output", "#status": "status"}

_COMPLETE_UPDATE_EXPRESSION = (
    "SET #output = :output, #status = :statusComplete, #statusUpdatedAt = :statusUpdatedAt"
)
_COMPLETE_CONDITION_EXPRESSION = "#status = :statusPending"
_COMPLETE_ATTRIBUTE_NAMES = {
    "#output": "output",
    "#status": "status",
    "#statusUpdatedAt": "statusUpdatedAt",
}


class DynamoDBTaskStorage:
    """Persist tasks in a single DynamoDB table keyed by ``id``.

    The client and table name are fixed for the lifetime of the instance and no
    method mutates instance state, so one instance can be shared across threads.
    """

    def __init__(
        self,
        client: Any,
        table_name: str,
        *,
        max_workers: int = 8,
        max_pagination_rounds: int | None = 64,
    ) -> None:
        if not table_name:
            raise ValueError("table_name is required")
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if max_pagination_rounds is not None and max_pagination_rounds < 1:
            raise ValueError("max_pagination_rounds must be at least 1")
        self._client = client
        self._table_name = table_name
        self._max_workers = max_workers
        self._max_pagination_rounds = max_pagination_rounds
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> DynamoDBTaskStorage:
        """Build a storage instance with a boto3 client configured from settings."""
        settings = settings or get_settings()
        client = boto3.client(
            "dynamodb",
            region_name=settings.resolved_region_name() or None,
            endpoint_url=settings.endpoint_url or None,
        )
        return cls(
            client,
            settings.table_name,
            max_workers=settings.max_workers,
            max_pagination_rounds=settings.max_pagination_rounds,
        )

    @property
    def table_name(self) -> str:
        return self._table_name

    def migrate(self) -> None:
        """Create the task table if it does not already exist."""
        try:
            self._client.describe_table(TableName=self._table_name)
            return
        except ClientError as exc:
            if _error_code(exc) != "ResourceNotFoundException":
                raise

        try:
            self._client.create_table(
                TableName=self._table_name,
                KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
                AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
                BillingMode="PAY_PER_REQUEST",
            )
            logger.info("Created DynamoDB table %s", self._table_name)
        except ClientError as exc:
            # Another process created it between describe and create.
            if _error_code(exc) != "ResourceInUseException":
                raise
        self._client.get_waiter("table_exists").wait(TableName=self._table_name)

    def insert_tasks(self, tasks: Sequence[TaskRecord | Mapping[str, Any]]) -> list[TaskRecord]:
        """Write all tasks in concurrent batches of at most 25.

        Raises ``IncompleteWriteError`` if any batch reports unprocessed items.
        Nothing is retried; the caller re-submits the whole list.
        """
        records = [_coerce_record(task) for task in tasks]
        if not records:
            return records

        batches = chunk(records, BATCH_WRITE_LIMIT)
        logger.debug(
            "Inserting tasks table=%s count=%s batches=%s",
            self._table_name,
            len(records),
            len(batches),
        )
        responses = fan_out(self._write_batch, batches, max_workers=self._max_workers)

        unprocessed = 0
        for response in responses:
            unprocessed += len(response.get("UnprocessedItems", {}).get(self._table_name) or [])
        if unprocessed:
            logger.warning(
                "Batch write left items unprocessed table=%s unprocessed=%s of %s",
                self._table_name,
                unprocessed,
                len(records),
            )
            raise IncompleteWriteError(unprocessed)
        return records

    def load_task(self, task_id: str) -> TaskRecord | None:
        response = self._client.get_item(TableName=self._table_name, Key=self._key(task_id))
        item = response.get("Item")
        if not item:
            return None
        return TaskRecord.model_validate(self._unwrap(item))

    def load_dependencies(self, task_ids: Sequence[str]) -> list[TaskRecord]:
        """Load ``id``, ``output`` and ``status`` for every existing task in ``task_ids``.

        Ids are requested in concurrent batches of at most 100. Result order is
        not guaranteed to follow ``task_ids``; missing ids are left out.
        """
        # The store rejects duplicate keys inside one batch get.
        unique_ids = list(dict.fromkeys(task_ids))
        if not unique_ids:
            return []

        batches = chunk(unique_ids, BATCH_GET_LIMIT)
        logger.debug(
            "Loading dependencies table=%s count=%s batches=%s",
            self._table_name,
            len(unique_ids),
            len(batches),
        )
        results = fan_out(self._get_all_items, batches, max_workers=self._max_workers)
        return [record for batch_records in results for record in batch_records]

    def complete_task(self, task_id: str, output: Any) -> TaskRecord:
        """Move a pending task to complete and store its output.

        Raises ``TaskAlreadyCompleteError`` when the task is no longer pending,
        which is the expected result of losing a completion race.
        """
        values = {
            ":output": serialize_output(output),
            ":statusComplete": TaskStatus.COMPLETE.value,
            ":statusPending": TaskStatus.PENDING.value,
            ":statusUpdatedAt": utc_timestamp(),
        }
        try:
            response = self._client.update_item(
                TableName=self._table_name,
                Key=self._key(task_id),
                UpdateExpression=_COMPLETE_UPDATE_EXPRESSION,
                ConditionExpression=_COMPLETE_CONDITION_EXPRESSION,
                ExpressionAttributeNames=dict(_COMPLETE_ATTRIBUTE_NAMES),
                ExpressionAttributeValues=self._wrap(values),
                ReturnValues="ALL_NEW",
            )
        except ClientError as exc:
            if _error_code(exc) == CONDITIONAL_CHECK_FAILED:
                logger.info("Task %s was not pending; completion skipped", task_id)
                raise TaskAlreadyCompleteError(task_id) from exc
            raise
        return TaskRecord.model_validate(self._unwrap(response["Attributes"]))

    def _write_batch(self, batch: list[TaskRecord]) -> dict[str, Any]:
        return self._client.batch_write_item(
            RequestItems={
                self._table_name: [
                    {"PutRequest": {"Item": self._wrap(record.to_item())}} for record in batch
                ]
            }
        )

    def _get_all_items(self, batch: list[str]) -> list[TaskRecord]:
        """Drain one batch get, re-requesting unprocessed keys until none remain."""
        request: dict[str, Any] | None = {
            "Keys": [self._key(task_id) for task_id in batch],
            "ProjectionExpression": _DEPENDENCY_PROJECTION,
            "ExpressionAttributeNames": dict(_DEPENDENCY_ATTRIBUTE_NAMES),
        }
        records: list[TaskRecord] = []
        rounds = 0
        while request is not None:
            if self._max_pagination_rounds is not None and rounds >= self._max_pagination_rounds:
                logger.warning(
                    "Batch get gave up table=%s rounds=%s remaining=%s",
                    self._table_name,
                    rounds,
                    len(request["Keys"]),
                )
                raise PaginationLimitError(rounds=rounds, remaining_keys=len(request["Keys"]))
            rounds += 1

            response = self._client.batch_get_item(RequestItems={self._table_name: request})
            for item in response.get("Responses", {}).get(self._table_name, []):
                records.append(TaskRecord.model_validate(self._unwrap(item)))

            unprocessed = response.get("UnprocessedKeys", {}).get(self._table_name)
            if unprocessed and unprocessed.get("Keys"):
                logger.debug(
                    "Batch get round=%s table=%s unprocessed=%s",
                    rounds,
                    self._table_name,
                    len(unprocessed["Keys"]),
                )
                request = unprocessed
            else:
                request = None
        return records

    def _key(self, task_id: str) -> dict[str, Any]:
        return self._wrap({"id": task_id})

    def _wrap(self, item: Mapping[str, Any]) -> dict[str, Any]:
        return {
            name: self._serializer.serialize(_to_store_value(value)) for name, value in item.items()
        }

    def _unwrap(self, item: Mapping[str, Any]) -> dict[str, Any]:
        return {name: self._deserializer.deserialize(value) for name, value in item.items()}


def _coerce_record(task: TaskRecord | Mapping[str, Any]) -> TaskRecord:
    if isinstance(task, TaskRecord):
        return task
    return TaskRecord.model_validate(dict(task))


def _to_store_value(value: Any) -> Any:
    """Convert floats (which DynamoDB's serializer rejects) to ``Decimal``, recursively.

    NaN and infinities have no DynamoDB number representation and raise ``ValueError``.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        value = Decimal(str(value))
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError(f"Cannot store non-finite number {value}")
        return value
    if isinstance(value, Mapping):
        return {key: _to_store_value(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_to_store_value(item) for item in value]
    return value


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))
