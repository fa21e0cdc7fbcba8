"""
Configuration loader — reads pipeline.yml into a PipelineConfig.

    project:
      name: coha-dispersal
      version: "1.2"
    paths:
      modules_dir: .
      output_dir: results
    plot_types:
      ridgeline: {enabled: true, dpi: 300}
    modules:
      coha_dispersal: {threshold: 0.5}   # passed to module_init

Unknown sections are kept (``extra="allow"``) and reachable through
``get_config_value``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from fieldpipe.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

PIPELINE_CONFIG_FILE = "pipeline.yml"
CONFIG_ENV_VAR = "FIELDPIPE_CONFIG"


class ConfigError(ConfigurationError):
    """Raised when pipeline configuration is invalid or missing."""


# ── Models ──────────────────────────────────────────────────────────


class ProjectInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = "fieldpipe-project"
    version: str = "0.0.0"


class PathsConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    modules_dir: str = "."
    output_dir: str = "results"


class PlotTypeConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    enabled: bool = False


class PipelineConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    project: ProjectInfo = Field(default_factory=ProjectInfo)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    plot_types: dict[str, PlotTypeConfig] = Field(default_factory=dict)
    defaults: dict[str, Any] = Field(default_factory=dict)
    modules: dict[str, dict[str, Any]] = Field(default_factory=dict)

    # Directory the config was loaded from; relative paths resolve here
    _config_dir: Path | None = PrivateAttr(default=None)

    def resolve(self, relative: str) -> Path:
        base = self._config_dir or Path.cwd()
        return (base / relative).resolve()

    @property
    def modules_dir(self) -> Path:
        return self.resolve(self.paths.modules_dir)

    @property
    def output_dir(self) -> Path:
        return self.resolve(self.paths.output_dir)

    def module_config(self, name: str) -> dict[str, Any]:
        return dict(self.modules.get(name) or {})


# ── Loading ─────────────────────────────────────────────────────────


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for pipeline.yml starting from ``start_dir``, walking up.

    ``$FIELDPIPE_CONFIG`` takes precedence when set.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)

    current = (start_dir or Path.cwd()).resolve()
    for _ in range(20):  # safety limit
        candidate = current / PIPELINE_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


def load_pipeline_config(path: Path | str | None = None) -> PipelineConfig:
    """Load and validate pipeline configuration.

    Args:
        path: Explicit path to pipeline.yml. If None, searches upward.

    Raises:
        ConfigError: The file is missing, unreadable or invalid.
    """
    path = Path(path) if path is not None else find_config_file()
    if path is None:
        raise ConfigError(
            f"No {PIPELINE_CONFIG_FILE} found. "
            f"Create one or set {CONFIG_ENV_VAR}."
        )
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading pipeline config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = PipelineConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid pipeline configuration: {e}") from e

    config._config_dir = path.parent.resolve()
    if config.plot_types and not enabled_plot_types(config):
        logger.warning("No plot types enabled in %s", path)

    logger.info(
        "Loaded pipeline config '%s' v%s", config.project.name, config.project.version
    )
    return config


# ── Access helpers ──────────────────────────────────────────────────


def get_config_value(config: PipelineConfig | dict, path: str, default: Any = None) -> Any:
    """Read a nested value by dotted path, e.g. ``"plot_types.ridgeline.dpi"``."""
    value: Any = config.model_dump() if isinstance(config, BaseModel) else config
    for key in path.split("."):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def enabled_plot_types(config: PipelineConfig) -> list[str]:
    return [name for name, pt in config.plot_types.items() if pt.enabled]
