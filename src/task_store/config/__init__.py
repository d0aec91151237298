"""Configuration loading."""

from task_store.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
