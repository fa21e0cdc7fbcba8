"""
Module registry — the validated modules an engine may run.

Modules get in only through ``register``, which validates the loaded
module first. Entries are keyed by (category, name), so a plot module
and a domain module may share a name. Re-registering a key overwrites.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from fieldpipe.core.engine.loader import InterfaceValidation, validate_interface
from fieldpipe.core.engine.plugins import PluginModule
from fieldpipe.core.models.event import MODULE_REGISTERED, MODULE_REJECTED
from fieldpipe.core.models.module import (
    ModuleCategory,
    ModuleDescriptor,
    PipelineState,
    coerce_category,
)

logger = logging.getLogger(__name__)


class ModuleRegistry:
    """Validated modules keyed by (category, name).

    An optional ``events`` bus receives ``module:registered`` and
    ``module:rejected`` notifications.
    """

    def __init__(self, events: Any = None):
        self._lock = threading.Lock()
        self._modules: dict[tuple[str, str], ModuleDescriptor] = {}
        self._events = events

    def register(
        self,
        name: str,
        plugin_module: Any,
        category: ModuleCategory | str,
        descriptor: ModuleDescriptor | None = None,
    ) -> bool:
        """Validate ``plugin_module`` and store it.

        Returns False, leaving the registry untouched, when validation
        fails. The descriptor (if given) moves to REJECTED in that case,
        unless it is already REGISTERED: a registered entry keeps its
        plugin and state. A descriptor that was REJECTED earlier is
        refused without validating; load the module again to retry.
        """
        category = coerce_category(category)
        if descriptor is not None and descriptor.rejected:
            message = f"Module '{name}' was rejected earlier; load it again to retry"
            logger.warning("Cannot register %s module %s: %s", category.value, name, message)
            self._notify(MODULE_REJECTED, descriptor, [message])
            return False

        validation = self.validate(name, plugin_module, category)

        if not validation.valid and descriptor is not None and (
            descriptor.state is PipelineState.REGISTERED
        ):
            rejected = descriptor.model_copy(update={
                "interface_style": validation.interface_style,
                "missing_capabilities": list(validation.missing),
                "state": PipelineState.REJECTED,
                "plugin": None,
            })
            logger.warning(
                "Cannot re-register %s module %s, keeping the registered one: %s",
                category.value, name, "; ".join(validation.errors),
            )
            self._notify(MODULE_REJECTED, rejected, validation.errors)
            return False

        if descriptor is None:
            path = getattr(plugin_module, "MODULE_PATH", None) or ""
            descriptor = ModuleDescriptor(
                name=name,
                category=category,
                path=str(path),
                loaded=True,
                state=PipelineState.LOADED,
            )

        if descriptor.state is PipelineState.DISCOVERED:
            descriptor.advance(PipelineState.LOADED)
        descriptor.interface_style = validation.interface_style
        descriptor.missing_capabilities = list(validation.missing)

        if not validation.valid:
            if descriptor.state is PipelineState.LOADED:
                descriptor.advance(PipelineState.REJECTED)
            logger.warning(
                "Cannot register %s module %s: %s",
                category.value, name, "; ".join(validation.errors),
            )
            self._notify(MODULE_REJECTED, descriptor, validation.errors)
            return False

        if descriptor.state is PipelineState.LOADED:
            descriptor.advance(PipelineState.VALIDATED)
        descriptor.advance(PipelineState.REGISTERED)
        descriptor.plugin = validation.plugin

        with self._lock:
            if descriptor.key in self._modules:
                logger.warning("Overwriting existing %s module: %s", category.value, name)
            self._modules[descriptor.key] = descriptor

        logger.debug(
            "Registered %s module: %s (%s style)",
            category.value, name, validation.interface_style.value,
        )
        self._notify(MODULE_REGISTERED, descriptor)
        return True

    def validate(
        self, name: str, plugin_module: Any, category: ModuleCategory | str
    ) -> InterfaceValidation:
        return validate_interface(plugin_module, category, name)

    def _notify(
        self, event_type: str, descriptor: ModuleDescriptor, errors: list[str] | None = None
    ) -> None:
        if self._events is None:
            return
        payload = {
            "name": descriptor.name,
            "category": descriptor.category.value,
            "interface_style": (
                descriptor.interface_style.value if descriptor.interface_style else None
            ),
        }
        if errors:
            payload["errors"] = errors
        self._events.emit(event_type, payload, source="registry")

    # ── Lookup ───────────────────────────────────────────────────

    def unregister(self, name: str, category: ModuleCategory | str) -> None:
        with self._lock:
            self._modules.pop((coerce_category(category).value, name), None)

    def get(self, name: str, category: ModuleCategory | str) -> ModuleDescriptor | None:
        with self._lock:
            return self._modules.get((coerce_category(category).value, name))

    def get_plugin(self, name: str, category: ModuleCategory | str) -> PluginModule | None:
        descriptor = self.get(name, category)
        return descriptor.plugin if descriptor else None

    def is_registered(self, name: str, category: ModuleCategory | str | None = None) -> bool:
        with self._lock:
            if category is not None:
                return (coerce_category(category).value, name) in self._modules
            return any(key[1] == name for key in self._modules)

    def list_modules(self, category: ModuleCategory | str | None = None) -> list[str]:
        """Registered names, in registration order."""
        with self._lock:
            keys = list(self._modules)
        if category is None:
            return [name for _, name in keys]
        wanted = coerce_category(category).value
        return [name for cat, name in keys if cat == wanted]

    def status(self) -> dict[str, Any]:
        plot = self.list_modules(ModuleCategory.PLOT)
        domain = self.list_modules(ModuleCategory.DOMAIN)
        return {
            "plot_modules": plot,
            "domain_modules": domain,
            "total_modules": len(plot) + len(domain),
        }

    def clear(self) -> None:
        with self._lock:
            self._modules.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._modules)

