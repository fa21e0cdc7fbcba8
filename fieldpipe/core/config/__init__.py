"""Configuration loading (pipeline.yml)."""

from fieldpipe.core.config.loader import (
    ConfigError,
    PipelineConfig,
    enabled_plot_types,
    get_config_value,
    load_pipeline_config,
)

__all__ = [
    "ConfigError",
    "PipelineConfig",
    "enabled_plot_types",
    "get_config_value",
    "load_pipeline_config",
]
