"""
Engine executor — the orchestration loops.

Flow for plot generation:
    discover → load → validate/register → list plots → generate → fold counts

Per-module failures are isolated: a module that fails to load, validate
or run is counted and reported, and the loop moves on to the next one
unless ``continue_on_error`` is False.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping

from fieldpipe.core.engine.discovery import PLOT_ROOT, discover
from fieldpipe.core.engine.loader import load
from fieldpipe.core.errors import (
    DiscoveryError,
    ErrorCategory,
    InterfaceError,
    LoadError,
    ModuleRuntimeError,
    category_of,
)
from fieldpipe.core.models.event import PLOT_FAILED, PLOT_GENERATED
from fieldpipe.core.models.module import ModuleCategory, coerce_category
from fieldpipe.core.models.result import Result, create_result
from fieldpipe.core.persistence.artifacts import DEFAULT_REGISTRY_FILE, ArtifactStore
from fieldpipe.core.services.dependency_resolver import resolve_load_order
from fieldpipe.core.services.error_report import ErrorReport, trap_pipeline_errors

if TYPE_CHECKING:
    from fieldpipe.core.context import EngineContext

logger = logging.getLogger(__name__)

OUTPUT_SUBDIRS = ("plots", "reports", "data", "logs")


@dataclass
class PlotGenerationReport:
    """Result of one orchestrate_plot_generation run."""

    status: str = "success"
    modules_found: int = 0
    modules_loaded: int = 0
    modules_failed: int = 0
    plots_generated: int = 0
    plots_failed: int = 0
    results: dict[str, list[Any]] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    duration_secs: float = 0.0
    # One Result per module (plus "engine" for run-level problems)
    module_results: dict[str, Result] = field(default_factory=dict)
    error_report: ErrorReport = field(default_factory=ErrorReport)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def record_error(self, module: str, message: str, category: ErrorCategory) -> None:
        result = self.module_results.get(module)
        if result is None:
            result = create_result("generate_plots", module_name=module)
            self.module_results[module] = result
        result.add_categorized_error(message, category)
        self.errors.append(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "modules_found": self.modules_found,
            "modules_loaded": self.modules_loaded,
            "modules_failed": self.modules_failed,
            "plots_generated": self.plots_generated,
            "plots_failed": self.plots_failed,
            "errors": self.errors,
            "errors_by_category": dict(self.error_report.counts_by_category),
            "modules_with_errors": list(self.error_report.modules_with_errors),
            "duration_secs": round(self.duration_secs, 3),
        }


# ── Generic call wrapper ────────────────────────────────────────────


def safe_module_call(
    fn: Callable,
    *args: Any,
    module_name: str | None = None,
    operation: str | None = None,
    **kwargs: Any,
) -> Result:
    """Call ``fn`` and wrap the outcome in a Result.

    The return value becomes ``data``. An exception becomes an error
    whose details carry its category; it never propagates.
    """
    op = operation or getattr(fn, "__name__", "module_call")
    result = create_result(op, module_name=module_name, call=f"{op}(...)")
    result.input_parameters = dict(kwargs)
    start = time.monotonic()
    try:
        result.data = fn(*args, **kwargs)
    except Exception as e:
        logger.warning("%s failed in %s: %s", op, module_name or "?", e)
        result.add_categorized_error(
            f"{type(e).__name__}: {e}",
            category_of(e),
            {"exception": type(e).__name__},
        )
    return result.finalize(start)


# ── Pipeline setup ──────────────────────────────────────────────────


def initialize_pipeline(ctx: EngineContext, output_dir: Path | str | None = None) -> Result:
    """Create the output tree and open the artifact store.

    ``data`` holds ``output_dirs`` (name → Path) and ``artifacts``.
    """
    result = create_result("initialize_pipeline")
    out = Path(output_dir) if output_dir is not None else ctx.output_dir
    subdirs = {name: out / name for name in OUTPUT_SUBDIRS}

    try:
        for path in subdirs.values():
            path.mkdir(parents=True, exist_ok=True)
            logger.debug("Created directory: %s", path)
        store = ArtifactStore.open(out / DEFAULT_REGISTRY_FILE)
    except OSError as e:
        return result.add_categorized_error(f"Initialization failed: {e}", category_of(e))

    ctx.output_dir = out
    ctx.artifacts = store
    result.data = {"output_dirs": subdirs, "artifacts": store}
    return result


def run_analysis(
    ctx: EngineContext,
    domain_name: str,
    output_dir: Path | str | None = None,
) -> Result:
    """Set up a domain analysis: initialize → load → register → init hook."""
    start = time.monotonic()
    result = create_result(f"run_analysis({domain_name})", module_name=domain_name)
    ctx.events.broadcast_pipeline_event("start", domain_name)

    def _fail(errors: Iterable[tuple[str, ErrorCategory]]) -> Result:
        for msg, category in errors:
            result.add_categorized_error(msg, category)
        ctx.events.broadcast_pipeline_event(
            "error",
            domain_name,
            {
                "errors": list(result.errors),
                "categories": [result.error_category(i).value for i in range(len(result.errors))],
            },
        )
        return result.finalize(start)

    init = initialize_pipeline(ctx, output_dir)
    if init.failed:
        return _fail((e, init.error_category(i)) for i, e in enumerate(init.errors))

    loaded = load(domain_name, ModuleCategory.DOMAIN, ctx.base_dir)
    if not loaded.loaded:
        return _fail((e, loaded.error_category or LoadError.category) for e in loaded.errors)

    if not ctx.registry.register(
        domain_name, loaded.plugin_module, ModuleCategory.DOMAIN, loaded.descriptor
    ):
        missing = ", ".join(loaded.descriptor.missing_capabilities)
        return _fail([(
            f"Failed to register domain module '{domain_name}' (missing: {missing})",
            InterfaceError.category,
        )])

    plugin = loaded.descriptor.plugin
    state = ctx.lifecycle.init(plugin, domain_name, ctx.module_config(domain_name))
    if state.error is not None:
        return _fail([(
            f"Initialization of '{domain_name}' failed: {state.error}",
            ModuleRuntimeError.category,
        )])

    result.data = {
        "domain": domain_name,
        "plugin": plugin,
        "state": state,
        "output_dirs": init.data["output_dirs"],
        "artifacts": init.data["artifacts"],
    }
    result.finalize(start)
    ctx.events.broadcast_pipeline_event(
        "complete", domain_name, {"duration_seconds": result.duration_seconds}
    )
    logger.info("Analysis %s ready in %.2fs", domain_name, result.duration_seconds)
    return result


# ── Plot generation ─────────────────────────────────────────────────


def _plot_succeeded(entry: Any) -> bool:
    if isinstance(entry, Result):
        return entry.status == "success"
    if isinstance(entry, Mapping):
        return entry.get("status") == "success"
    return False


def orchestrate_plot_generation(
    ctx: EngineContext,
    data: Any,
    base_dir: Path | str | None = None,
    output_base: Path | str | None = None,
    continue_on_error: bool = True,
    dpi: int = 300,
    halt_on_error: bool = False,
) -> PlotGenerationReport:
    """Run every discovered plot module over ``data``.

    Status: failed if no module loaded or no plot was produced; partial
    if any module or plot failed; success otherwise. With
    ``continue_on_error=False`` the first module failure ends the run
    with status failed.

    Every error is categorized; ``error_report`` aggregates them across
    modules once the run ends.

    Raises:
        PipelineHaltedError: ``halt_on_error`` is set and the run
            recorded any error. The finished report is on the exception.
    """
    start = time.monotonic()
    report = PlotGenerationReport()
    base = Path(base_dir) if base_dir is not None else ctx.base_dir
    out_base = Path(output_base) if output_base is not None else ctx.output_dir / "plots"

    def _finish(status: str | None = None) -> PlotGenerationReport:
        if status is not None:
            report.status = status
        report.duration_secs = time.monotonic() - start
        report.error_report = trap_pipeline_errors(report.module_results, halt_on_error)
        return report

    def _module_failed(name: str, msg: str, category: ErrorCategory) -> bool:
        """Record a module failure; True means stop the run."""
        report.modules_failed += 1
        report.record_error(name, msg, category)
        logger.info("✗ %s → %s", name, msg)
        ctx.events.emit(
            PLOT_FAILED,
            {"module": name, "error": msg, "category": category.value},
            source="engine",
        )
        return not continue_on_error

    found = discover(base, ModuleCategory.PLOT).plot_modules
    report.modules_found = len(found)
    if not found:
        report.record_error(
            "engine", f"No plot modules found in {base / PLOT_ROOT}", DiscoveryError.category
        )
        return _finish("failed")

    for name, descriptor in found.items():
        loaded = load(name, ModuleCategory.PLOT, base, descriptor)
        if not loaded.loaded:
            msg = f"Failed to load module '{name}': {'; '.join(loaded.errors)}"
            if _module_failed(name, msg, loaded.error_category or LoadError.category):
                return _finish("failed")
            continue
        report.modules_loaded += 1

        if not ctx.registry.register(
            name, loaded.plugin_module, ModuleCategory.PLOT, loaded.descriptor
        ):
            missing = ", ".join(loaded.descriptor.missing_capabilities)
            msg = f"Module '{name}' missing required functions: {missing}"
            if _module_failed(name, msg, InterfaceError.category):
                return _finish("failed")
            continue

        plugin = loaded.descriptor.plugin
        try:
            plot_ids = plugin.available_plots()
            module_out = out_base / name
            module_out.mkdir(parents=True, exist_ok=True)
            outputs = plugin.generate(
                data,
                plot_ids,
                {"output_dir": str(module_out), "dpi": dpi, "verbose": False},
            )
        except Exception as e:
            msg = f"Error executing module '{name}': {e}"
            if _module_failed(name, msg, category_of(e)):
                return _finish("failed")
            continue

        succeeded = sum(1 for o in outputs if _plot_succeeded(o))
        failed = len(outputs) - succeeded
        module_result = create_result("generate_plots", module_name=name, data=outputs)
        if failed:
            module_result.add_warning(f"{failed} of {len(outputs)} plot(s) failed")
        report.module_results[name] = module_result
        report.results[name] = outputs
        report.plots_generated += succeeded
        report.plots_failed += failed
        logger.info(
            "%s %s → %d generated, %d failed",
            "✓" if failed == 0 else "⚠", name, succeeded, failed,
        )
        ctx.events.emit(
            PLOT_GENERATED,
            {"module": name, "generated": succeeded, "failed": failed},
            source="engine",
        )

    if report.modules_loaded == 0:
        report.status = "failed"
    elif report.plots_generated == 0:
        report.status = "failed"
        report.record_error(
            "engine", "No plots generated from any module", ModuleRuntimeError.category
        )
    elif report.modules_failed or report.plots_failed:
        report.status = "partial"
    else:
        report.status = "success"

    logger.info(
        "Plot generation %s: %d/%d modules loaded, %d plots, %d failed",
        report.status, report.modules_loaded, report.modules_found,
        report.plots_generated, report.plots_failed,
    )
    return _finish()


# ── Dependency-ordered loading ──────────────────────────────────────


def load_in_dependency_order(
    ctx: EngineContext,
    names: Iterable[str],
    category: ModuleCategory | str = ModuleCategory.DOMAIN,
    base_dir: Path | str | None = None,
) -> Result:
    """Load modules, order them by declared requirements, then register.

    Nothing is registered if any module fails to load or the order
    cannot be resolved. ``data`` holds ``order`` and ``registered``.
    """
    category = coerce_category(category)
    base = Path(base_dir) if base_dir is not None else ctx.base_dir
    names = list(names)
    result = create_result("load_in_dependency_order")
    start = time.monotonic()

    outcomes = {}
    for name in names:
        outcome = load(name, category, base)
        if not outcome.loaded:
            for err in outcome.errors:
                result.add_categorized_error(
                    err, outcome.error_category or LoadError.category
                )
            continue
        outcomes[name] = outcome
    if result.failed:
        return result.finalize(start)

    resolved = resolve_load_order(
        {n: o.plugin_module for n, o in outcomes.items()}, names
    )
    order = resolved.data["order"]
    if order is None:
        for i, err in enumerate(resolved.errors):
            result.add_categorized_error(err, resolved.error_category(i))
        result.data = {"order": None, "registered": []}
        return result.finalize(start)

    registered = []
    for name in order:
        o = outcomes[name]
        if ctx.registry.register(name, o.plugin_module, category, o.descriptor):
            registered.append(name)
        else:
            result.add_warning(
                f"Module '{name}' not registered: missing "
                f"{', '.join(o.descriptor.missing_capabilities)}"
            )

    result.data = {"order": order, "registered": registered}
    return result.finalize(start)
