"""Configuration package."""

from .settings import HookSource, Settings, get_settings

__all__ = ["HookSource", "Settings", "get_settings"]
