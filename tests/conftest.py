"""
Shared test fixtures and configuration.

Plugin modules are written to ``tmp_path`` as real files so the loader
exercises the same importlib path it uses in production.
"""

import logging
import textwrap
from pathlib import Path

import pytest

from fieldpipe.core.context import EngineContext

NEW_STYLE_PLOT = """
    def get_module_metadata():
        return {"name": "ridgeline", "version": "1.0"}

    def get_available_plots():
        return [{"plot_id": "compact"}, {"plot_id": "expanded"}]

    def generate_plot(plot_id, data, config):
        return {"plot_id": plot_id, "status": "success", "dpi": config["dpi"]}
"""

OLD_STYLE_PLOT = """
    def get_module_info():
        return {"name": "boxplot", "variants": ["by_site", "by_year"]}

    def validate_config(config):
        return True

    def get_default_config():
        return {"palette": "viridis"}

    def generate_variants(data, config):
        return [{"plot_id": v, "status": "success"} for v in config["variants"]]
"""

DOMAIN_MODULE = """
    CALLS = []

    def module_init(config):
        CALLS.append(("init", dict(config)))
        return {"initialized": True, "state": {"threshold": config.get("threshold", 0.5)}}

    def module_cleanup(state):
        CALLS.append(("cleanup", dict(state)))
"""


def write_module(
    base_dir: Path,
    category: str,
    name: str,
    files: dict[str, str],
) -> Path:
    """Create ``<base>/<category>_modules/<name>/`` holding ``files``."""
    module_dir = base_dir / f"{category}_modules" / name
    module_dir.mkdir(parents=True, exist_ok=True)
    for filename, content in files.items():
        (module_dir / filename).write_text(textwrap.dedent(content), encoding="utf-8")
    return module_dir


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """setup_logging() replaces root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def modules_dir(tmp_path: Path) -> Path:
    """Empty base directory for plugin modules."""
    base = tmp_path / "analysis"
    base.mkdir()
    return base


@pytest.fixture
def engine(modules_dir: Path, tmp_path: Path) -> EngineContext:
    """Fresh EngineContext over ``modules_dir`` with output under tmp_path."""
    return EngineContext.create(base_dir=modules_dir, output_dir=tmp_path / "results")


@pytest.fixture
def populated_dir(modules_dir: Path) -> Path:
    """Base dir with one new-style plot, one old-style plot and one domain module."""
    write_module(modules_dir, "plot", "ridgeline", {"module.py": NEW_STYLE_PLOT})
    write_module(
        modules_dir, "plot", "boxplot", {"boxplot_generator.py": OLD_STYLE_PLOT, "INTERFACE.md": "# boxplot"}
    )
    write_module(
        modules_dir,
        "domain",
        "coha",
        {"coha.py": DOMAIN_MODULE, "domain_config.yaml": "name: coha\n"},
    )
    return modules_dir
