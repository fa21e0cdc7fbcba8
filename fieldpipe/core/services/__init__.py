"""
Core services — validation, dependency resolution, events and lifecycle.
"""

from fieldpipe.core.services.dependency_resolver import (
    build_graph,
    detect_cycles,
    resolve_load_order,
    topological_sort,
)
from fieldpipe.core.services.error_report import (
    ErrorReport,
    generate_error_report,
    trap_pipeline_errors,
)
from fieldpipe.core.services.event_bus import EmitReport, EventBus
from fieldpipe.core.services.lifecycle import BatchOutcome, LifecycleManager
from fieldpipe.core.services.schema_validator import ConfigValidation, validate_config

__all__ = [
    "BatchOutcome",
    "ConfigValidation",
    "EmitReport",
    "ErrorReport",
    "EventBus",
    "LifecycleManager",
    "build_graph",
    "detect_cycles",
    "generate_error_report",
    "resolve_load_order",
    "topological_sort",
    "trap_pipeline_errors",
    "validate_config",
]
