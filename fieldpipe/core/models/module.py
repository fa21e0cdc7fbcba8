"""
Module model — a plugin unit found on disk.

A descriptor is created at discovery, mutated as the module moves
through load and validation, and kept in the registry for the lifetime
of its EngineContext:

    DISCOVERED → LOADED → VALIDATED → REGISTERED
                        ↘ REJECTED   (terminal; re-discover to retry)
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fieldpipe.core.errors import InvalidArgument


class ModuleCategory(str, Enum):
    PLOT = "plot"
    DOMAIN = "domain"


class InterfaceStyle(str, Enum):
    """Which capability contract a loaded module satisfies."""

    NEW = "new"
    OLD = "old"
    DOMAIN = "domain"
    INVALID = "invalid"


class PipelineState(str, Enum):
    DISCOVERED = "discovered"
    LOADED = "loaded"
    VALIDATED = "validated"
    REJECTED = "rejected"
    REGISTERED = "registered"


# Allowed forward moves. REJECTED has none.
_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.DISCOVERED: {PipelineState.LOADED, PipelineState.REJECTED},
    PipelineState.LOADED: {PipelineState.VALIDATED, PipelineState.REJECTED},
    PipelineState.VALIDATED: {PipelineState.REGISTERED},
    PipelineState.REGISTERED: {PipelineState.REGISTERED},
    PipelineState.REJECTED: set(),
}


def coerce_category(value: str | ModuleCategory) -> ModuleCategory:
    """Accept 'plot'/'domain' strings as well as the enum."""
    try:
        return ModuleCategory(value)
    except ValueError:
        raise InvalidArgument(
            f"Unknown module category '{value}'. Must be one of: plot, domain"
        ) from None


class ModuleDescriptor(BaseModel):
    """A discovered module and what the engine has learned about it."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # ── Identity (set at discovery) ──────────────────────────────
    name: str
    category: ModuleCategory
    path: str

    # Marker files present in the module directory
    module_file: str | None = None      # plot: module.py
    interface_file: str | None = None   # plot: INTERFACE.md
    readme_file: str | None = None
    config_file: str | None = None      # domain: domain_config.yaml

    # ── Load / validate ──────────────────────────────────────────
    entry_file: str | None = None
    loaded: bool = False
    interface_style: InterfaceStyle | None = None
    missing_capabilities: list[str] = Field(default_factory=list)
    state: PipelineState = PipelineState.DISCOVERED

    # Typed execution context (plugin variant); never serialized
    plugin: Any = Field(default=None, exclude=True)

    @property
    def key(self) -> tuple[str, str]:
        """Registry key: (category, name)."""
        return (self.category.value, self.name)

    @property
    def rejected(self) -> bool:
        return self.state == PipelineState.REJECTED

    def advance(self, target: PipelineState) -> None:
        """Move to ``target``; illegal moves (e.g. out of REJECTED) raise."""
        if target not in _TRANSITIONS[self.state]:
            raise InvalidArgument(
                f"Module '{self.name}' cannot move from {self.state.value} to {target.value}"
            )
        self.state = target
