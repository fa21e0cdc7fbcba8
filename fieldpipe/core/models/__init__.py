"""
Domain models — Pydantic types for the orchestration core.

All models are re-exported here for convenient access:

    from fieldpipe.core.models import Result, ModuleDescriptor, DependencyGraph
"""

from fieldpipe.core.models.event import EventRecord
from fieldpipe.core.models.graph import CycleReport, DependencyGraph, SortOutcome
from fieldpipe.core.models.lifecycle import LifecycleState
from fieldpipe.core.models.module import (
    InterfaceStyle,
    ModuleCategory,
    ModuleDescriptor,
    PipelineState,
)
from fieldpipe.core.models.result import (
    Result,
    add_categorized_error,
    add_error,
    add_warning,
    combine_results,
    create_result,
    error_category,
    finalize_result,
    is_successful,
)
from fieldpipe.core.models.schema import Constraints, ModuleSchema, ParameterSpec

__all__ = [
    # event.py
    "EventRecord",
    # graph.py
    "CycleReport",
    "DependencyGraph",
    "SortOutcome",
    # lifecycle.py
    "LifecycleState",
    # module.py
    "InterfaceStyle",
    "ModuleCategory",
    "ModuleDescriptor",
    "PipelineState",
    # result.py
    "Result",
    "add_categorized_error",
    "add_error",
    "add_warning",
    "combine_results",
    "create_result",
    "error_category",
    "finalize_result",
    "is_successful",
    # schema.py
    "Constraints",
    "ModuleSchema",
    "ParameterSpec",
]
