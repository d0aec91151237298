from __future__ import annotations

from collections.abc import Iterator

import pytest

from task_store.config.settings import get_settings
from task_store.storage.dynamodb import DynamoDBTaskStorage
from task_store.storage.memory import InMemoryTaskStorage

from .fakes import FakeDynamoDBClient


@pytest.fixture
def fake_client() -> FakeDynamoDBClient:
    return FakeDynamoDBClient("tasks")


@pytest.fixture
def storage(fake_client: FakeDynamoDBClient) -> DynamoDBTaskStorage:
    return DynamoDBTaskStorage(fake_client, "tasks", max_workers=4, max_pagination_rounds=64)


@pytest.fixture
def memory_storage() -> InMemoryTaskStorage:
    return InMemoryTaskStorage()


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
