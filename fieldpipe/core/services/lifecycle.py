"""
Lifecycle manager — optional per-module init/reset/cleanup hooks.

A module (a loaded Python module or a typed plugin) may expose any of:

    module_init(config)   → {"initialized": bool, "state": {...}}
    module_reset(state)   → new state
    module_cleanup(state) → None

None are required. A missing hook is a no-op, never an error. Hook
failures never propagate: init records the error in the returned
LifecycleState, reset and cleanup log a warning.

The manager keeps the latest state per module name so batch calls
(``reset_all``, ``cleanup_all``) can act on everything that was
initialized.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping

from fieldpipe.core.models.lifecycle import LifecycleState

logger = logging.getLogger(__name__)


@dataclass
class BatchOutcome:
    """Aggregate of one lifecycle call over many modules."""

    operation: str
    total: int = 0
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "warnings": self.warnings,
        }


def _hook(module: Any, name: str):
    fn = getattr(module, name, None)
    return fn if callable(fn) else None


class LifecycleManager:
    """Runs lifecycle hooks and remembers each module's state."""

    def __init__(self) -> None:
        self._states: dict[str, LifecycleState] = {}
        self._modules: dict[str, Any] = {}

    # ── Single module ───────────────────────────────────────────

    def init(
        self,
        module: Any,
        name: str,
        config: Mapping[str, Any] | None = None,
    ) -> LifecycleState:
        """Run ``module_init`` and store the resulting state."""
        record = LifecycleState(module_name=name or "unknown")
        self._modules[record.module_name] = module

        hook = _hook(module, "module_init")
        if hook is None:
            self._states[record.module_name] = record
            return record

        try:
            out = hook(dict(config or {})) or {}
            record.initialized = bool(out.get("initialized", False))
            record.state = dict(out.get("state") or {})
        except Exception as e:
            record.initialized = False
            record.error = str(e)
            logger.warning("Lifecycle init failed for %s: %s", record.module_name, e)
        else:
            logger.info(
                "Initialized %s (%d state item(s))",
                record.module_name, len(record.state),
            )

        self._states[record.module_name] = record
        return record

    def reset(
        self,
        module: Any,
        name: str,
        state: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Run ``module_reset``. Returns the previous state on failure."""
        updated, _ = self._reset(module, name, state)
        return updated

    def _reset(
        self, module: Any, name: str, state: dict[str, Any] | None
    ) -> tuple[dict[str, Any], bool]:
        previous = dict(state or {})
        hook = _hook(module, "module_reset")
        if hook is None:
            return previous, True

        try:
            updated = hook(dict(previous))
        except Exception as e:
            logger.warning("Error resetting %s: %s", name, e)
            return previous, False

        updated = dict(updated or {})
        logger.info(
            "Reset %s (cleared %d item(s))", name, len(previous) - len(updated)
        )
        stored = self._states.get(name)
        if stored is not None:
            stored.state = updated
        return updated, True

    def cleanup(
        self,
        module: Any,
        name: str,
        state: dict[str, Any] | None = None,
    ) -> bool:
        """Run ``module_cleanup``. Returns False if the hook raised."""
        hook = _hook(module, "module_cleanup")
        if hook is None:
            return True

        try:
            hook(dict(state or {}))
        except Exception as e:
            logger.warning("Error cleaning up %s: %s", name, e)
            return False
        logger.info("Cleanup complete for %s", name)
        return True

    # ── Batch ───────────────────────────────────────────────────

    def init_all(
        self,
        names: Iterable[str],
        modules: Mapping[str, Any],
        configs: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> BatchOutcome:
        outcome = BatchOutcome(operation="init")
        configs = configs or {}
        for name in names:
            outcome.total += 1
            record = self.init(modules.get(name), name, configs.get(name))
            if record.error is not None:
                outcome.failed.append(name)
                outcome.warnings.append(f"{name}: {record.error}")
            elif record.initialized:
                outcome.succeeded.append(name)
        logger.info("Initialized %d of %d module(s)", outcome.success_count, outcome.total)
        return outcome

    def reset_all(self, names: Iterable[str] | None = None) -> BatchOutcome:
        outcome = BatchOutcome(operation="reset")
        for name in self._select(names):
            outcome.total += 1
            _, ok = self._reset(
                self._modules.get(name), name, self._states[name].state
            )
            (outcome.succeeded if ok else outcome.failed).append(name)
        return outcome

    def cleanup_all(self, names: Iterable[str] | None = None) -> BatchOutcome:
        outcome = BatchOutcome(operation="cleanup")
        for name in self._select(names):
            outcome.total += 1
            ok = self.cleanup(self._modules.get(name), name, self._states[name].state)
            (outcome.succeeded if ok else outcome.failed).append(name)
        return outcome

    def _select(self, names: Iterable[str] | None) -> list[str]:
        if names is None:
            return list(self._states)
        return [n for n in names if n in self._states]

    # ── State access ────────────────────────────────────────────

    def get_state(self, name: str) -> LifecycleState | None:
        return self._states.get(name)

    def set_state(self, name: str, state: dict[str, Any]) -> LifecycleState:
        record = self._states.get(name)
        if record is None:
            record = LifecycleState(module_name=name)
            self._states[name] = record
        record.state = dict(state)
        return record

    def forget(self, name: str) -> None:
        self._states.pop(name, None)
        self._modules.pop(name, None)

    @property
    def module_names(self) -> list[str]:
        return list(self._states)

    @contextmanager
    def lifecycle(
        self,
        module: Any,
        name: str,
        config: Mapping[str, Any] | None = None,
    ) -> Iterator[LifecycleState]:
        """Init on entry, cleanup on exit (also when the body raises)."""
        record = self.init(module, name, config)
        try:
            yield record
        finally:
            self.cleanup(module, name, record.state)
