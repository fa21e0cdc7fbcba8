"""
Module loader — execute a module's entry file into an isolated module object.

Entry file candidates are tried in order; the first that exists wins:

    plot:    module.py, <name>_generator.py, <name>.py, main.py
    domain:  <name>.py, data_loader.py, main.py, module.py

Each load creates a fresh module object (``importlib.util``) with
``MODULE_PATH`` set to the module's directory before the file runs, so
two loads of the same module never share state. Loading never raises:
problems come back in the LoadOutcome.
"""

from __future__ import annotations

import importlib.util
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any

from fieldpipe.core.engine.discovery import category_root
from fieldpipe.core.engine.plugins import PluginModule, build_plugin
from fieldpipe.core.errors import DiscoveryError, ErrorCategory, InterfaceError, LoadError
from fieldpipe.core.models.module import (
    InterfaceStyle,
    ModuleCategory,
    ModuleDescriptor,
    PipelineState,
    coerce_category,
)

logger = logging.getLogger(__name__)

PLOT_ENTRY_CANDIDATES = ("module.py", "{name}_generator.py", "{name}.py", "main.py")
DOMAIN_ENTRY_CANDIDATES = ("{name}.py", "data_loader.py", "main.py", "module.py")

# Namespace for loaded module objects in sys.modules
_NAMESPACE = "fieldpipe_modules"


@dataclass
class LoadOutcome:
    name: str
    category: ModuleCategory
    loaded: bool = False
    descriptor: ModuleDescriptor | None = None
    plugin_module: ModuleType | None = None
    searched: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    error_category: ErrorCategory | None = None

    def fail(self, message: str, category: ErrorCategory) -> LoadOutcome:
        self.errors.append(message)
        self.error_category = category
        logger.warning(message)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category.value,
            "loaded": self.loaded,
            "entry_file": self.descriptor.entry_file if self.descriptor else None,
            "searched": self.searched,
            "errors": self.errors,
            "error_category": self.error_category.value if self.error_category else None,
        }


@dataclass
class InterfaceValidation:
    valid: bool = False
    interface_style: InterfaceStyle = InterfaceStyle.INVALID
    missing: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    plugin: PluginModule | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "interface_style": self.interface_style.value,
            "missing": self.missing,
            "errors": self.errors,
        }


def entry_candidates(name: str, category: ModuleCategory | str) -> list[str]:
    """Candidate entry filenames for a module, in priority order."""
    templates = (
        PLOT_ENTRY_CANDIDATES
        if coerce_category(category) is ModuleCategory.PLOT
        else DOMAIN_ENTRY_CANDIDATES
    )
    return [t.format(name=name) for t in templates]


def _execute(entry: Path, module_dir: Path, qualname: str) -> ModuleType:
    spec = importlib.util.spec_from_file_location(qualname, entry)
    if spec is None or spec.loader is None:
        raise LoadError(f"Cannot build an import spec for {entry}")

    module = importlib.util.module_from_spec(spec)
    module.MODULE_PATH = str(module_dir)
    sys.modules[qualname] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(qualname, None)
        raise
    return module


def load(
    name: str,
    category: ModuleCategory | str,
    base_dir: Path | str,
    descriptor: ModuleDescriptor | None = None,
) -> LoadOutcome:
    """Locate and execute a module's entry file.

    Args:
        name: Module directory name.
        category: ``plot`` or ``domain``.
        base_dir: Directory holding the category roots.
        descriptor: Descriptor from discovery to update; a new one is
            created when omitted.
    """
    category = coerce_category(category)
    module_dir = category_root(base_dir, category) / name
    candidates = entry_candidates(name, category)
    outcome = LoadOutcome(name=name, category=category, searched=candidates)

    if not module_dir.is_dir():
        return outcome.fail(
            f"Module directory not found: {module_dir} "
            f"(searched: {', '.join(candidates)})",
            DiscoveryError.category,
        )

    entry = next(
        (module_dir / c for c in candidates if (module_dir / c).is_file()), None
    )
    if entry is None:
        return outcome.fail(
            f"No entry file found in {module_dir} (searched: {', '.join(candidates)})",
            LoadError.category,
        )

    qualname = f"{_NAMESPACE}.{category.value}.{name}"
    try:
        module = _execute(entry, module_dir, qualname)
    except Exception as e:
        return outcome.fail(
            f"Failed to load module '{name}' from {entry.name}: {e}", LoadError.category
        )

    if descriptor is None:
        descriptor = ModuleDescriptor(name=name, category=category, path=str(module_dir))
    elif descriptor.state is not PipelineState.DISCOVERED:
        # reload: start a fresh pass through the state machine
        descriptor = descriptor.model_copy(update={"state": PipelineState.DISCOVERED})
    descriptor.entry_file = str(entry)
    descriptor.loaded = True
    descriptor.advance(PipelineState.LOADED)

    outcome.loaded = True
    outcome.descriptor = descriptor
    outcome.plugin_module = module
    logger.info("Loaded %s module %s from %s", category.value, name, entry.name)
    return outcome


def validate_interface(
    plugin_module: Any,
    category: ModuleCategory | str,
    name: str | None = None,
) -> InterfaceValidation:
    """Decide which capability contract a loaded module satisfies.

    On success ``plugin`` holds the typed variant the engine should use
    from now on.
    """
    category = coerce_category(category)
    label = name or getattr(plugin_module, "__name__", "unknown")
    try:
        plugin = build_plugin(plugin_module, label, category)
    except InterfaceError as e:
        logger.debug("Interface check failed for %s: %s", label, e)
        errors = [str(e)]
        if category is ModuleCategory.DOMAIN:
            errors = [f"Missing required function: {m}()" for m in e.missing]
        return InterfaceValidation(
            valid=False,
            interface_style=InterfaceStyle.INVALID,
            missing=e.missing,
            errors=errors,
        )

    return InterfaceValidation(valid=True, interface_style=plugin.style, plugin=plugin)
