"""
Module engine — discover, load, validate, register and run modules.

    from fieldpipe.core.context import EngineContext
    from fieldpipe.core.engine import orchestrate_plot_generation

    ctx = EngineContext.create(base_dir="analysis")
    report = orchestrate_plot_generation(ctx, data)
"""

from fieldpipe.core.engine.discovery import DiscoveryResult, discover
from fieldpipe.core.engine.executor import (
    PlotGenerationReport,
    initialize_pipeline,
    load_in_dependency_order,
    orchestrate_plot_generation,
    run_analysis,
    safe_module_call,
)
from fieldpipe.core.engine.loader import (
    InterfaceValidation,
    LoadOutcome,
    entry_candidates,
    load,
    validate_interface,
)
from fieldpipe.core.engine.plugins import (
    DomainModule,
    NewStylePlotModule,
    OldStylePlotModule,
    PluginModule,
    build_plugin,
)
from fieldpipe.core.engine.registry import ModuleRegistry

__all__ = [
    # discovery.py
    "DiscoveryResult",
    "discover",
    # executor.py
    "PlotGenerationReport",
    "initialize_pipeline",
    "load_in_dependency_order",
    "orchestrate_plot_generation",
    "run_analysis",
    "safe_module_call",
    # loader.py
    "InterfaceValidation",
    "LoadOutcome",
    "entry_candidates",
    "load",
    "validate_interface",
    # plugins.py
    "DomainModule",
    "NewStylePlotModule",
    "OldStylePlotModule",
    "PluginModule",
    "build_plugin",
    # registry.py
    "ModuleRegistry",
]
