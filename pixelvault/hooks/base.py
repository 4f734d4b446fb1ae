"""Hook interface."""

import enum
from abc import ABC, abstractmethod
from typing import ClassVar

from pixelvault.context import OperationContext


class Phase(str, enum.Enum):
    """When a hook runs relative to an operation's own work."""

    PRE_EXEC = "PreExec"
    POST_EXEC = "PostExec"


def event_key(operation: str, phase: Phase) -> str:
    """Event name a hook uses to subscribe, e.g. ``getImagePreExec``."""
    return f"{operation}{Phase(phase).value}"


def split_event_key(key: str) -> tuple[str, Phase]:
    """Split ``getImagePreExec`` into ``("getImage", Phase.PRE_EXEC)``.

    Raises:
        ValueError: If the key does not end in a phase name.
    """
    for phase in Phase:
        if key.endswith(phase.value) and len(key) > len(phase.value):
            return key[: -len(phase.value)], phase
    raise ValueError(f"Invalid hook event: {key!r}")


class Hook(ABC):
    """Base class for hooks.

    ``events`` maps event names (``"<operation>PreExec"`` or
    ``"<operation>PostExec"``) to priorities; lower priorities run first.
    Hooks must not keep per-request state on ``self``: one instance serves
    every operation it is scheduled for.
    """

    events: ClassVar[dict[str, int]] = {}

    @abstractmethod
    def exec(self, context: OperationContext) -> None:
        """Run the hook against the current operation."""

    @property
    def name(self) -> str:
        return type(self).__name__
