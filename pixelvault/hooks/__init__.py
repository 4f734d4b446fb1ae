"""Pre/post execution hooks around image operations."""

from .base import Hook, Phase, event_key, split_event_key
from .builtin import TransformationLimitHook
from .pipeline import HookBinding, HookPipeline, HookRegistry, run_operation

__all__ = [
    "Hook",
    "Phase",
    "event_key",
    "split_event_key",
    "TransformationLimitHook",
    "HookBinding",
    "HookPipeline",
    "HookRegistry",
    "run_operation",
]
