"""Task record model shared by storage backends and callers."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_OPTIONAL_ATTRIBUTES = ("output", "statusUpdatedAt")


class TaskStatus(StrEnum):
    """Task lifecycle status. Only ``pending -> complete`` is allowed."""

    PENDING = "pending"
    COMPLETE = "complete"


class TaskRecord(BaseModel):
    """Persisted task record.

    Caller-defined attributes beyond the known fields are kept as extras and
    written to the store unchanged.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, use_enum_values=True)

    id: str = Field(min_length=1)
    status: TaskStatus = Field(default=TaskStatus.PENDING, validate_default=True)
    # JSON-encoded once the task is complete.
    output: Any = None
    status_updated_at: str | None = Field(default=None, alias="statusUpdatedAt")

    def to_item(self) -> dict[str, Any]:
        """Plain mapping in store attribute names.

        ``output`` and ``statusUpdatedAt`` are left out while unset; caller
        attributes set to ``None`` are kept.
        """
        item = self.model_dump(mode="python", by_alias=True)
        for name in _OPTIONAL_ATTRIBUTES:
            if item.get(name) is None:
                item.pop(name, None)
        return item

    def decoded_output(self) -> Any:
        if self.output is None:
            return None
        if isinstance(self.output, str):
            return json.loads(self.output)
        return self.output


def utc_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. ``2024-05-01T12:00:00.000Z``."""
    moment = (now or datetime.now(tz=UTC)).astimezone(UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def serialize_output(output: Any) -> str | None:
    """Encode a completion payload for storage; ``None`` stays unset."""
    if output is None:
        return None
    return json.dumps(output, default=_json_default)


def _json_default(value: Any) -> Any:
    # Numbers read back from the store are Decimals.
    if isinstance(value, Decimal):
        if value.is_finite() and value == value.to_integral_value():
            return int(value)
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
