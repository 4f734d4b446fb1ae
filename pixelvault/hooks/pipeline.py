"""Hook registration, ordering and execution."""

import importlib
import inspect
import logging
import pkgutil
import threading
from dataclasses import dataclass
from types import ModuleType
from typing import Any, Callable, Iterable

from config import HookSource
from pixelvault.context import OperationContext
from pixelvault.errors import HookExecutionError

from .base import Hook, Phase, event_key, split_event_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HookBinding:
    """A hook scheduled for one phase of one operation."""

    hook: Hook
    operation: str
    phase: Phase
    priority: int


class HookPipeline:
    """Ordered pre/post hooks for a single operation.

    The hook lists are tuples fixed at construction, so one pipeline can be
    shared by concurrent invocations of the operation.
    """

    def __init__(
        self,
        operation: str,
        pre_hooks: Iterable[Hook] = (),
        post_hooks: Iterable[Hook] = (),
    ):
        self.operation = operation
        self.pre_hooks: tuple[Hook, ...] = tuple(pre_hooks)
        self.post_hooks: tuple[Hook, ...] = tuple(post_hooks)

    def pre_exec(self, context: OperationContext) -> None:
        """Run every pre-exec hook in priority order.

        Raises:
            HookExecutionError: On the first failing hook; later hooks do
                not run.
        """
        self._run(Phase.PRE_EXEC, self.pre_hooks, context)

    def post_exec(self, context: OperationContext) -> None:
        """Run every post-exec hook in priority order.

        Raises:
            HookExecutionError: On the first failing hook; later hooks do
                not run.
        """
        self._run(Phase.POST_EXEC, self.post_hooks, context)

    def _run(self, phase: Phase, hooks: tuple[Hook, ...], context: OperationContext) -> None:
        for hook in hooks:
            try:
                hook.exec(context)
            except HookExecutionError:
                raise
            except Exception as e:
                event = event_key(self.operation, phase)
                logger.error(f"Hook {hook.name} failed on {event}: {e}")
                raise HookExecutionError(
                    f"Hook {hook.name} failed on {event}: {e}",
                    hook=hook.name,
                    phase=phase.value,
                    operation=self.operation,
                    cause=e,
                ) from e


class HookRegistry:
    """Collects hooks and builds the ordered pipeline for an operation.

    Hooks are registered explicitly (``register``/``register_hook``) or
    discovered from configured packages (``discover``). Within a phase hooks
    run in ascending priority; equal priorities keep registration order.
    """

    def __init__(self):
        self._bindings: list[HookBinding] = []
        self._lock = threading.Lock()

    def register(self, hook: Hook, operation: str, phase: Phase | str, priority: int) -> None:
        """Schedule ``hook`` for one phase of ``operation``."""
        if not isinstance(hook, Hook):
            raise TypeError(f"Expected a Hook instance, got {type(hook).__name__}")
        binding = HookBinding(hook=hook, operation=operation, phase=Phase(phase), priority=int(priority))
        with self._lock:
            self._bindings.append(binding)
        logger.debug(
            f"Registered hook {hook.name} on {event_key(operation, binding.phase)} "
            f"with priority {binding.priority}"
        )

    def register_hook(self, hook: Hook) -> None:
        """Schedule ``hook`` for every event listed in its ``events`` mapping."""
        for key, priority in hook.events.items():
            operation, phase = split_event_key(key)
            self.register(hook, operation, phase, priority)

    def discover(self, sources: Iterable[HookSource]) -> int:
        """Register concrete hooks found in the configured packages.

        A class qualifies when it is defined in the scanned package (or one
        of its direct submodules), its name starts with the source prefix,
        and it is a concrete ``Hook`` subclass.

        Returns:
            int: Number of hook classes registered.
        """
        found = 0
        seen: set[type] = set()
        for source in sources:
            try:
                package = importlib.import_module(source.path)
            except ImportError as e:
                logger.warning(f"Skipping hook source {source.path}: {e}")
                continue

            for module in self._modules(package):
                for name, cls in inspect.getmembers(module, inspect.isclass):
                    if (
                        cls in seen
                        or cls.__module__ != module.__name__
                        or not name.startswith(source.prefix)
                        or not issubclass(cls, Hook)
                        or inspect.isabstract(cls)
                    ):
                        continue
                    seen.add(cls)
                    self.register_hook(cls())
                    found += 1

        logger.info(f"Discovered {found} hooks")
        return found

    @staticmethod
    def _modules(package: ModuleType) -> list[ModuleType]:
        modules = [package]
        if hasattr(package, "__path__"):
            for info in sorted(pkgutil.iter_modules(package.__path__), key=lambda i: i.name):
                modules.append(importlib.import_module(f"{package.__name__}.{info.name}"))
        return modules

    def pipeline(self, operation: str) -> HookPipeline:
        """Build the ordered pipeline for ``operation``.

        Hooks without an event for this operation are not scheduled.
        """
        with self._lock:
            bindings = [b for b in self._bindings if b.operation == operation]

        def ordered(phase: Phase) -> list[Hook]:
            selected = [b for b in bindings if b.phase is phase]
            # sorted() is stable, so equal priorities keep registration order
            return [b.hook for b in sorted(selected, key=lambda b: b.priority)]

        return HookPipeline(operation, ordered(Phase.PRE_EXEC), ordered(Phase.POST_EXEC))

    def __len__(self) -> int:
        return len(self._bindings)


def run_operation(
    pipeline: HookPipeline,
    context: OperationContext,
    work: Callable[[OperationContext], Any],
) -> Any:
    """Run pre-exec hooks, the operation itself, then post-exec hooks.

    ``work`` is skipped when a pre-exec hook already set ``context.result``.
    """
    pipeline.pre_exec(context)
    if context.result is None:
        context.result = work(context)
    pipeline.post_exec(context)
    return context.result
