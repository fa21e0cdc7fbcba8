"""
Dependency resolver — module graph, cycle detection and load order.

Modules declare what they need through ``get_dependencies()``:

    def get_dependencies():
        return {
            "requires_modules": ["data_loader"],
            "requires_packages": ["numpy"],
            "requires_external": ["gs"],
        }

Only ``requires_modules`` takes part in ordering. The other two are
checked by ``check_dependencies_available``.

Ordering contract:
    - A module comes after everything it requires.
    - Among modules that are ready at the same time, discovery order wins.
    - Any cycle refuses the whole sort; nothing is partially ordered.
    - A requirement naming a module that is not in the graph leaves its
      dependent unsortable, and the failure names the missing reference.
"""

from __future__ import annotations

import importlib.util
import logging
import shutil
from collections import deque
from typing import Any, Iterable, Mapping

from fieldpipe.core.errors import DependencyError
from fieldpipe.core.models.graph import CycleReport, DependencyGraph, SortOutcome
from fieldpipe.core.models.result import Result, create_result

logger = logging.getLogger(__name__)

_REQUIRE_KEYS = ("requires_modules", "requires")


# ── Graph construction ──────────────────────────────────────────────


def _declared_requires(module: Any) -> list[str]:
    """Read the ``requires_modules`` list a module declares.

    Accepts a mapping (``dependencies`` / ``requires_modules`` /
    ``requires`` keys), an object with a ``get_dependencies()`` callable,
    or an object with a ``requires_modules`` / ``requires`` attribute.
    """
    if module is None:
        return []

    deps: Any = None
    if isinstance(module, Mapping):
        deps = module.get("dependencies", module)
    else:
        getter = getattr(module, "get_dependencies", None)
        if callable(getter):
            deps = getter()
        else:
            deps = module

    if isinstance(deps, (str, list, tuple)):
        return _as_names(deps)
    if isinstance(deps, Mapping):
        for key in _REQUIRE_KEYS:
            if key in deps:
                return _as_names(deps[key])
        return []
    for key in _REQUIRE_KEYS:
        value = getattr(deps, key, None)
        if value is not None and not callable(value):
            return _as_names(value)
    return []


def _as_names(value: Any) -> list[str]:
    """A lone string is one requirement, not a sequence of characters."""
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def build_graph(
    modules: Mapping[str, Any],
    module_names: Iterable[str] | None = None,
) -> DependencyGraph:
    """Build a graph from declared requirements.

    ``module_names`` fixes the node order (defaults to the mapping order).
    A module whose dependency declaration raises is treated as having no
    requirements. Repeated requirements keep their first occurrence.
    """
    names = list(module_names) if module_names is not None else list(modules)
    graph = DependencyGraph(nodes=names)

    for name in names:
        try:
            required = _declared_requires(modules.get(name))
        except Exception as e:
            logger.warning("Could not read dependencies of %s: %s", name, e)
            required = []

        deduped: list[str] = []
        for dep in required:
            if dep not in deduped:
                deduped.append(dep)
        graph.adjacency[name] = deduped
        graph.edges.extend((name, dep) for dep in deduped)

    return graph


# ── Cycle detection ─────────────────────────────────────────────────


def detect_cycles(graph: DependencyGraph) -> CycleReport:
    """Find cycles with an iterative depth-first search.

    Each node is unvisited, in progress (on the current path) or done.
    Meeting an in-progress node closes a cycle: the path from that node
    to the current one, plus the node again.
    """
    report = CycleReport()
    done: set[str] = set()
    on_path: set[str] = set()

    for root in graph.nodes:
        if root in done:
            continue

        path: list[str] = [root]
        on_path.add(root)
        stack: list[tuple[str, int]] = [(root, 0)]

        while stack:
            node, idx = stack[-1]
            deps = graph.adjacency.get(node, [])
            if idx >= len(deps):
                stack.pop()
                path.pop()
                on_path.discard(node)
                done.add(node)
                continue

            stack[-1] = (node, idx + 1)
            dep = deps[idx]
            if dep in on_path:
                start = path.index(dep)
                report.cycles.append(path[start:] + [dep])
            elif dep not in done:
                path.append(dep)
                on_path.add(dep)
                stack.append((dep, 0))

    affected: list[str] = []
    for cycle in report.cycles:
        for node in cycle:
            if node not in affected:
                affected.append(node)
    report.affected_modules = affected
    report.has_cycles = bool(report.cycles)
    return report


# ── Topological sort ────────────────────────────────────────────────


def topological_sort(graph: DependencyGraph) -> SortOutcome:
    """Order nodes so every module follows its requirements.

    Kahn's algorithm. In-degree is the number of declared requirements;
    a reverse map (dependency → dependents, in node order) drives the
    decrements so ties resolve in discovery order.
    """
    cycles = detect_cycles(graph)
    if cycles.has_cycles:
        msg = f"Circular dependency detected: {cycles.describe()}"
        logger.warning(msg)
        return SortOutcome(order=None, error=msg, cycles=cycles)

    in_degree = {n: len(graph.adjacency.get(n, [])) for n in graph.nodes}
    dependents: dict[str, list[str]] = {n: [] for n in graph.nodes}
    for n in graph.nodes:
        for dep in graph.adjacency.get(n, []):
            if dep in dependents:
                dependents[dep].append(n)

    queue = deque(n for n in graph.nodes if in_degree[n] == 0)
    order: list[str] = []
    while queue:
        node = queue.popleft()
        order.append(node)
        for child in dependents[node]:
            in_degree[child] -= 1
            if in_degree[child] == 0:
                queue.append(child)

    if len(order) != len(graph.nodes):
        missing = graph.unresolved()
        if missing:
            refs = ", ".join(f"{a} -> {b}" for a, b in missing)
            msg = f"Could not sort all modules: unresolved dependencies ({refs})"
        else:
            msg = "Could not sort all modules"
        logger.warning(msg)
        return SortOutcome(order=None, error=msg, cycles=cycles)

    return SortOutcome(order=order, cycles=cycles)


def resolve_load_order(
    modules: Mapping[str, Any],
    module_names: Iterable[str] | None = None,
) -> Result:
    """Build the graph and sort it, wrapped in a Result.

    ``data`` holds ``order`` (or None) and the graph; a failed sort
    carries its message and a dependency error category.
    """
    result = create_result("resolve_load_order")
    graph = build_graph(modules, module_names)
    outcome = topological_sort(graph)
    result.data = {"order": outcome.order, "graph": graph}
    result.metadata["cycles"] = outcome.cycles.cycles
    if not outcome.ok:
        result.add_categorized_error(
            outcome.error or "Cannot determine module load order",
            DependencyError.category,
        )
    return result


# ── Reporting ───────────────────────────────────────────────────────


def dependency_report(graph: DependencyGraph) -> list[dict[str, Any]]:
    """One row per module: requirements, dependents and loadability."""
    known = set(graph.nodes)
    rows = []
    for node in graph.nodes:
        requires = graph.requires(node)
        rows.append({
            "module": node,
            "dependencies": requires,
            "dependents": graph.dependents(node),
            "can_load": all(dep in known for dep in requires),
        })
    return rows


def format_graph(graph: DependencyGraph) -> str:
    """Human-readable dump: requirements, cycles, then load order."""
    lines = ["DEPENDENCY GRAPH", "─" * 40]
    for node in graph.nodes:
        requires = graph.requires(node)
        if requires:
            lines.append(f"{node} requires: {', '.join(requires)}")
        else:
            lines.append(f"{node} (no dependencies)")

    outcome = topological_sort(graph)
    if outcome.cycles.has_cycles:
        lines.append("")
        lines.append("Circular dependencies:")
        for i, cycle in enumerate(outcome.cycles.cycles, 1):
            lines.append(f"  Cycle {i}: {' -> '.join(cycle)}")
    else:
        lines.append("")
        lines.append("No circular dependencies")

    if outcome.ok:
        lines.append("")
        lines.append("Load order:")
        for i, name in enumerate(outcome.order or [], 1):
            lines.append(f"  {i}. {name}")
    elif not outcome.cycles.has_cycles:
        lines.append("")
        lines.append(outcome.error or "")
    return "\n".join(lines)


def check_dependencies_available(
    requires_packages: Iterable[str] = (),
    requires_modules: Iterable[str] = (),
    requires_external: Iterable[str] = (),
    registry: Any = None,
) -> dict[str, Any]:
    """Check whether declared dependencies are present.

    Packages are looked up with ``importlib.util.find_spec``, external
    tools with ``shutil.which``. Modules are checked against ``registry``
    (anything with ``is_registered(name)``) or assumed present without one.
    """
    out: dict[str, Any] = {
        "all_available": True,
        "packages": {},
        "modules": {},
        "external": {},
    }

    for pkg in requires_packages:
        try:
            found = importlib.util.find_spec(pkg) is not None
        except (ImportError, ValueError):
            found = False
        out["packages"][pkg] = {"name": pkg, "available": found}
        if not found:
            out["all_available"] = False

    for mod in requires_modules:
        if registry is None:
            out["modules"][mod] = {"name": mod, "available": True, "assumed": True}
            continue
        found = bool(registry.is_registered(mod))
        out["modules"][mod] = {"name": mod, "available": found, "assumed": False}
        if not found:
            out["all_available"] = False

    for tool in requires_external:
        found = shutil.which(tool) is not None
        out["external"][tool] = {"name": tool, "available": found}
        if not found:
            out["all_available"] = False

    return out
