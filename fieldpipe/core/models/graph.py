"""
Dependency graph types.

An edge ``(a, b)`` means "a requires b": b must be loaded before a.
Graphs are built fresh per resolution request and never mutated after.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, Field


class DependencyGraph(BaseModel):
    """Nodes in discovery order, edges dependent → dependency."""

    nodes: list[str] = Field(default_factory=list)
    edges: list[tuple[str, str]] = Field(default_factory=list)
    adjacency: dict[str, list[str]] = Field(default_factory=dict)

    def requires(self, node: str) -> list[str]:
        return list(self.adjacency.get(node, []))

    def dependents(self, node: str) -> list[str]:
        """Nodes that list ``node`` as a dependency, in node order."""
        return [n for n in self.nodes if node in self.adjacency.get(n, [])]

    def unresolved(self) -> list[tuple[str, str]]:
        """Edges whose dependency is not a node of this graph."""
        known = set(self.nodes)
        return [(a, b) for a, b in self.edges if b not in known]


@dataclass
class CycleReport:
    """Outcome of cycle detection.

    Each cycle is closed: it starts and ends with the repeated node,
    e.g. ``["A", "B", "A"]``.
    """

    has_cycles: bool = False
    cycles: list[list[str]] = field(default_factory=list)
    affected_modules: list[str] = field(default_factory=list)

    def describe(self) -> str:
        return "; ".join(" -> ".join(c) for c in self.cycles)


@dataclass
class SortOutcome:
    """Outcome of a topological sort. ``order`` is None on failure."""

    order: list[str] | None = None
    error: str | None = None
    cycles: CycleReport = field(default_factory=CycleReport)

    @property
    def ok(self) -> bool:
        return self.order is not None
