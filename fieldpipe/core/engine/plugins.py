"""
Typed plugin variants — what a loaded module is allowed to be.

A loaded entry file is a plain Python module. Before the engine uses it,
it is wrapped in exactly one of:

    NewStylePlotModule   get_module_metadata, get_available_plots, generate_plot
    OldStylePlotModule   generate_variants, get_module_info,
                         validate_config, get_default_config
    DomainModule         module_init

Building the wrapper IS the interface check: construction raises
InterfaceError naming every missing function. All variants also pick up
the optional hooks (lifecycle, dependencies, schema, batch generation)
when the module defines them.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from types import ModuleType
from typing import Any, Callable, ClassVar, Mapping

from fieldpipe.core.errors import InterfaceError
from fieldpipe.core.models.module import InterfaceStyle, ModuleCategory, coerce_category

logger = logging.getLogger(__name__)

NEW_STYLE_CAPABILITIES = ("get_module_metadata", "get_available_plots", "generate_plot")
OLD_STYLE_CAPABILITIES = (
    "generate_variants",
    "get_module_info",
    "validate_config",
    "get_default_config",
)
DOMAIN_CAPABILITIES = ("module_init",)


def missing_capabilities(module: Any, required: tuple[str, ...]) -> list[str]:
    """Names from ``required`` that ``module`` does not define as callables."""
    return [name for name in required if not callable(getattr(module, name, None))]


def _plot_id(entry: Any) -> str:
    if isinstance(entry, Mapping):
        for key in ("plot_id", "id", "name"):
            if key in entry:
                return str(entry[key])
    return str(entry)


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, Mapping):
        return list(value.values())
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


@dataclass
class PluginModule:
    """Common shape of every variant."""

    name: str
    module: ModuleType = field(repr=False)

    module_init: Callable | None = field(default=None, repr=False)
    module_reset: Callable | None = field(default=None, repr=False)
    module_cleanup: Callable | None = field(default=None, repr=False)
    get_dependencies: Callable | None = field(default=None, repr=False)
    get_module_schema: Callable | None = field(default=None, repr=False)

    style: ClassVar[InterfaceStyle] = InterfaceStyle.INVALID
    category: ClassVar[ModuleCategory] = ModuleCategory.PLOT
    capabilities: ClassVar[tuple[str, ...]] = ()

    def __post_init__(self) -> None:
        missing = missing_capabilities(self, self.capabilities)
        if missing:
            raise InterfaceError(
                f"Module '{self.name}' missing required functions: {', '.join(missing)}",
                missing=missing,
            )

    @classmethod
    def from_module(cls, module: Any, name: str | None = None):
        """Wrap ``module``, pulling every declared field off it by name."""
        kwargs = {}
        for f in fields(cls):
            if f.name in ("name", "module"):
                continue
            value = getattr(module, f.name, None)
            kwargs[f.name] = value if callable(value) else None
        return cls(name=name or getattr(module, "__name__", "unknown"), module=module, **kwargs)

    @property
    def path(self) -> str | None:
        return getattr(self.module, "MODULE_PATH", None)

    def schema(self) -> Any:
        return self.get_module_schema() if self.get_module_schema else None


@dataclass
class PlotPlugin(PluginModule, ABC):
    """Shared plot behaviour; the two interface styles fill in the rest."""

    generate_plots_batch: Callable | None = field(default=None, repr=False)

    @abstractmethod
    def available_plots(self) -> list[str]:
        """Plot ids this module can produce."""

    @abstractmethod
    def info(self) -> dict[str, Any]:
        """Module metadata as a plain dict."""

    @abstractmethod
    def _generate_each(self, data: Any, plot_ids: list[str], config: dict) -> list[Any]:
        """Produce ``plot_ids`` one by one (no batch entry point)."""

    def generate(self, data: Any, plot_ids: list[str], config: dict) -> list[Any]:
        """Produce every requested plot; one result per plot.

        Uses the module's ``generate_plots_batch`` when it has one.
        """
        if self.generate_plots_batch is not None:
            out = self.generate_plots_batch(data=data, plot_ids=plot_ids, config=config)
            return _as_list(out)
        return self._generate_each(data, plot_ids, config)


@dataclass
class NewStylePlotModule(PlotPlugin):
    get_module_metadata: Callable | None = field(default=None, repr=False)
    get_available_plots: Callable | None = field(default=None, repr=False)
    generate_plot: Callable | None = field(default=None, repr=False)

    style: ClassVar[InterfaceStyle] = InterfaceStyle.NEW
    capabilities: ClassVar[tuple[str, ...]] = NEW_STYLE_CAPABILITIES

    def available_plots(self) -> list[str]:
        return [_plot_id(p) for p in _as_list_keys(self.get_available_plots())]

    def info(self) -> dict[str, Any]:
        return dict(self.get_module_metadata() or {})

    def _generate_each(self, data: Any, plot_ids: list[str], config: dict) -> list[Any]:
        results = []
        for plot_id in plot_ids:
            try:
                results.append(self.generate_plot(plot_id, data, config))
            except Exception as e:
                logger.warning("Plot %s/%s failed: %s", self.name, plot_id, e)
                results.append({"plot_id": plot_id, "status": "failed", "error": str(e)})
        return results


@dataclass
class OldStylePlotModule(PlotPlugin):
    generate_variants: Callable | None = field(default=None, repr=False)
    get_module_info: Callable | None = field(default=None, repr=False)
    validate_config: Callable | None = field(default=None, repr=False)
    get_default_config: Callable | None = field(default=None, repr=False)

    style: ClassVar[InterfaceStyle] = InterfaceStyle.OLD
    capabilities: ClassVar[tuple[str, ...]] = OLD_STYLE_CAPABILITIES

    def available_plots(self) -> list[str]:
        variants = self.info().get("variants")
        if variants is None:
            variants = (self.get_default_config() or {}).get("variants")
        if variants is None:
            return [self.name]
        return [_plot_id(v) for v in _as_list_keys(variants)]

    def info(self) -> dict[str, Any]:
        return dict(self.get_module_info() or {})

    def _generate_each(self, data: Any, plot_ids: list[str], config: dict) -> list[Any]:
        merged = {**(self.get_default_config() or {}), **config, "variants": plot_ids}
        return _as_list(self.generate_variants(data, merged))


@dataclass
class DomainModule(PluginModule):
    style: ClassVar[InterfaceStyle] = InterfaceStyle.DOMAIN
    category: ClassVar[ModuleCategory] = ModuleCategory.DOMAIN
    capabilities: ClassVar[tuple[str, ...]] = DOMAIN_CAPABILITIES


def _as_list_keys(value: Any) -> list[Any]:
    """Like _as_list, but a mapping contributes its keys (plot ids)."""
    if isinstance(value, Mapping):
        return list(value.keys())
    return _as_list(value)


def build_plugin(
    module: Any,
    name: str,
    category: ModuleCategory | str,
) -> PluginModule:
    """Wrap ``module`` in the first variant it satisfies.

    Plot modules try new style, then old style; a module satisfying both
    is new style. Domain modules have a single variant.

    Raises:
        InterfaceError: No variant fits. ``missing`` lists every absent
            function across the variants tried.
    """
    category = coerce_category(category)
    if category is ModuleCategory.DOMAIN:
        return DomainModule.from_module(module, name)

    new_missing = missing_capabilities(module, NEW_STYLE_CAPABILITIES)
    if not new_missing:
        return NewStylePlotModule.from_module(module, name)
    old_missing = missing_capabilities(module, OLD_STYLE_CAPABILITIES)
    if not old_missing:
        return OldStylePlotModule.from_module(module, name)

    missing = new_missing + [m for m in old_missing if m not in new_missing]
    raise InterfaceError(
        f"Module '{name}' does not implement a known plot module interface "
        f"(missing new-style: {', '.join(new_missing)}; "
        f"missing old-style: {', '.join(old_missing)})",
        missing=missing,
    )
