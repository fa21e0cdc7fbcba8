"""
Module discovery — find plugin directories under the two fixed roots.

    <base_dir>/
        plot_modules/<name>/     module.py and/or INTERFACE.md
        domain_modules/<name>/   domain_config.yaml and/or README.md

A subdirectory without any marker file is ignored. Discovery only reads
the filesystem; nothing is imported here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from fieldpipe.core.models.module import ModuleCategory, ModuleDescriptor, coerce_category

logger = logging.getLogger(__name__)

PLOT_ROOT = "plot_modules"
DOMAIN_ROOT = "domain_modules"

_ROOTS = {
    ModuleCategory.PLOT: PLOT_ROOT,
    ModuleCategory.DOMAIN: DOMAIN_ROOT,
}


@dataclass
class DiscoveryResult:
    plot_modules: dict[str, ModuleDescriptor] = field(default_factory=dict)
    domain_modules: dict[str, ModuleDescriptor] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.plot_modules) + len(self.domain_modules)

    def of(self, category: ModuleCategory | str) -> dict[str, ModuleDescriptor]:
        if coerce_category(category) is ModuleCategory.PLOT:
            return self.plot_modules
        return self.domain_modules

    def to_dict(self) -> dict:
        return {
            "plot_modules": [d.model_dump(mode="json") for d in self.plot_modules.values()],
            "domain_modules": [d.model_dump(mode="json") for d in self.domain_modules.values()],
            "total": self.total,
        }


def category_root(base_dir: Path | str, category: ModuleCategory | str) -> Path:
    return Path(base_dir) / _ROOTS[coerce_category(category)]


def _existing(path: Path) -> str | None:
    return str(path) if path.is_file() else None


def _scan_plot(module_dir: Path) -> ModuleDescriptor | None:
    module_file = _existing(module_dir / "module.py")
    interface_file = _existing(module_dir / "INTERFACE.md")
    if module_file is None and interface_file is None:
        return None
    return ModuleDescriptor(
        name=module_dir.name,
        category=ModuleCategory.PLOT,
        path=str(module_dir),
        module_file=module_file,
        interface_file=interface_file,
        readme_file=_existing(module_dir / "README.md"),
    )


def _scan_domain(module_dir: Path) -> ModuleDescriptor | None:
    config_file = _existing(module_dir / "domain_config.yaml")
    readme_file = _existing(module_dir / "README.md")
    if config_file is None and readme_file is None:
        return None
    return ModuleDescriptor(
        name=module_dir.name,
        category=ModuleCategory.DOMAIN,
        path=str(module_dir),
        config_file=config_file,
        readme_file=readme_file,
    )


def _scan(root: Path, category: ModuleCategory) -> dict[str, ModuleDescriptor]:
    found: dict[str, ModuleDescriptor] = {}
    if not root.is_dir():
        logger.debug("No %s directory at %s", category.value, root)
        return found

    scan = _scan_plot if category is ModuleCategory.PLOT else _scan_domain
    for module_dir in sorted(p for p in root.iterdir() if p.is_dir()):
        if module_dir.name.startswith((".", "_")):
            continue
        descriptor = scan(module_dir)
        if descriptor is not None:
            found[descriptor.name] = descriptor
            logger.debug("Found %s module: %s", category.value, descriptor.name)
    return found


def discover(
    base_dir: Path | str,
    category: ModuleCategory | str | None = None,
) -> DiscoveryResult:
    """Scan ``base_dir`` for plot and/or domain modules.

    Args:
        base_dir: Directory holding ``plot_modules/`` and ``domain_modules/``.
        category: Restrict to one category; None scans both.

    Returns:
        DiscoveryResult with descriptors keyed by name, in name order.
    """
    base = Path(base_dir)
    wanted = None if category is None else coerce_category(category)
    result = DiscoveryResult()

    if wanted in (None, ModuleCategory.PLOT):
        result.plot_modules = _scan(base / PLOT_ROOT, ModuleCategory.PLOT)
    if wanted in (None, ModuleCategory.DOMAIN):
        result.domain_modules = _scan(base / DOMAIN_ROOT, ModuleCategory.DOMAIN)

    logger.info(
        "Discovered %d plot and %d domain module(s) under %s",
        len(result.plot_modules), len(result.domain_modules), base,
    )
    return result
