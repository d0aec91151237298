"""Test double for the low-level DynamoDB client used by DynamoDBTaskStorage."""

from __future__ import annotations

import copy
import threading
from typing import Any

from botocore.exceptions import ClientError


def client_error(code: str, operation: str, message: str = "") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


class FakeWaiter:
    def __init__(self, client: FakeDynamoDBClient, name: str) -> None:
        self.client = client
        self.name = name

    def wait(self, **kwargs: Any) -> None:
        self.client.waits.append((self.name, kwargs))


class FakeDynamoDBClient:
    """Single-table store holding items in DynamoDB attribute-value format.

    Hooks:
    - ``unprocessed_write_ids``: ids that batch writes leave unprocessed.
    - ``max_keys_per_get``: resolve at most this many keys per batch get round.
    - ``stuck_get_ids``: ids that batch gets never resolve.
    - ``update_error_code``: error raised by every update_item call.
    """

    def __init__(self, table_name: str = "tasks", *, table_exists: bool = True) -> None:
        self.table_name = table_name
        self.table_exists = table_exists
        self.items: dict[str, dict[str, Any]] = {}
        self.calls: dict[str, list[dict[str, Any]]] = {
            "batch_write_item": [],
            "get_item": [],
            "batch_get_item": [],
            "update_item": [],
            "describe_table": [],
            "create_table": [],
        }
        self.waits: list[tuple[str, dict[str, Any]]] = []
        self.unprocessed_write_ids: set[str] = set()
        self.max_keys_per_get: int | None = None
        self.stuck_get_ids: set[str] = set()
        self.update_error_code: str | None = None
        self._lock = threading.Lock()

    def _record(self, operation: str, kwargs: dict[str, Any]) -> None:
        with self._lock:
            self.calls[operation].append(copy.deepcopy(kwargs))

    def batch_write_item(self, *, RequestItems: dict[str, Any]) -> dict[str, Any]:
        self._record("batch_write_item", {"RequestItems": RequestItems})
        requests = RequestItems[self.table_name]
        if len(requests) > 25:
            raise client_error("ValidationException", "BatchWriteItem", "Too many items")

        unprocessed = []
        with self._lock:
            for request in requests:
                item = request["PutRequest"]["Item"]
                task_id = item["id"]["S"]
                if task_id in self.unprocessed_write_ids:
                    unprocessed.append(request)
                    continue
                self.items[task_id] = copy.deepcopy(item)
        return {"UnprocessedItems": {self.table_name: unprocessed} if unprocessed else {}}

    def get_item(self, *, TableName: str, Key: dict[str, Any]) -> dict[str, Any]:
        self._record("get_item", {"TableName": TableName, "Key": Key})
        with self._lock:
            item = self.items.get(Key["id"]["S"])
        return {"Item": copy.deepcopy(item)} if item is not None else {}

    def batch_get_item(self, *, RequestItems: dict[str, Any]) -> dict[str, Any]:
        self._record("batch_get_item", {"RequestItems": RequestItems})
        request = RequestItems[self.table_name]
        keys = request["Keys"]
        if len(keys) > 100:
            raise client_error("ValidationException", "BatchGetItem", "Too many keys")

        names = request.get("ExpressionAttributeNames", {})
        projection = [
            names.get(part.strip(), part.strip())
            for part in request.get("ProjectionExpression", "").split(",")
            if part.strip()
        ]

        resolvable = [key for key in keys if key["id"]["S"] not in self.stuck_get_ids]
        stuck = [key for key in keys if key["id"]["S"] in self.stuck_get_ids]
        if self.max_keys_per_get is not None:
            resolved = resolvable[: self.max_keys_per_get]
            remaining = resolvable[self.max_keys_per_get :] + stuck
        else:
            resolved = resolvable
            remaining = stuck

        found = []
        with self._lock:
            for key in resolved:
                item = self.items.get(key["id"]["S"])
                if item is None:
                    continue
                if projection:
                    item = {name: value for name, value in item.items() if name in projection}
                found.append(copy.deepcopy(item))

        unprocessed: dict[str, Any] = {}
        if remaining:
            pending = dict(request)
            pending["Keys"] = remaining
            unprocessed[self.table_name] = pending
        return {"Responses": {self.table_name: found}, "UnprocessedKeys": unprocessed}

    def update_item(self, **kwargs: Any) -> dict[str, Any]:
        self._record("update_item", kwargs)
        if self.update_error_code is not None:
            raise client_error(self.update_error_code, "UpdateItem")

        names = kwargs["ExpressionAttributeNames"]
        values = kwargs["ExpressionAttributeValues"]
        task_id = kwargs["Key"]["id"]["S"]

        with self._lock:
            current = self.items.get(task_id)
            if not self._condition_holds(current, kwargs["ConditionExpression"], names, values):
                raise client_error(
                    "ConditionalCheckFailedException",
                    "UpdateItem",
                    "The conditional request failed",
                )
            updated = copy.deepcopy(current)
            assignments = kwargs["UpdateExpression"].removeprefix("SET ").split(",")
            for assignment in assignments:
                name, value = (part.strip() for part in assignment.split("="))
                updated[names[name]] = copy.deepcopy(values[value])
            self.items[task_id] = updated
        return {"Attributes": copy.deepcopy(updated)}

    @staticmethod
    def _condition_holds(
        item: dict[str, Any] | None,
        expression: str,
        names: dict[str, str],
        values: dict[str, Any],
    ) -> bool:
        if item is None:
            return False
        name, value = (part.strip() for part in expression.split("="))
        return item.get(names[name]) == values[value]

    def describe_table(self, *, TableName: str) -> dict[str, Any]:
        self._record("describe_table", {"TableName": TableName})
        if not self.table_exists:
            raise client_error("ResourceNotFoundException", "DescribeTable")
        return {"Table": {"TableName": TableName, "TableStatus": "ACTIVE"}}

    def create_table(self, **kwargs: Any) -> dict[str, Any]:
        self._record("create_table", kwargs)
        self.table_exists = True
        return {"TableDescription": {"TableName": kwargs["TableName"]}}

    def get_waiter(self, name: str) -> FakeWaiter:
        return FakeWaiter(self, name)

    def put_raw(self, item: dict[str, Any]) -> None:
        self.items[item["id"]["S"]] = copy.deepcopy(item)
