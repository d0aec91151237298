"""Task storage adapter for a DynamoDB-backed task queue."""

__version__ = "0.1.0"
