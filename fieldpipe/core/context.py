"""
Engine context — everything one orchestration engine owns.

There are no process-wide registries. Each EngineContext carries its own
module registry, event bus, lifecycle manager and (optional) pipeline
config, and every engine call takes the context explicitly:

    ctx = EngineContext.create(base_dir="analysis/")
    report = orchestrate_plot_generation(ctx, data)

Two contexts never see each other's modules or events.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from fieldpipe.core.config.loader import PipelineConfig
from fieldpipe.core.engine.registry import ModuleRegistry
from fieldpipe.core.persistence.artifacts import ArtifactStore
from fieldpipe.core.services.event_bus import EventBus
from fieldpipe.core.services.lifecycle import LifecycleManager

DEFAULT_OUTPUT_DIR = "results"


@dataclass
class EngineContext:
    base_dir: Path
    output_dir: Path
    events: EventBus = field(default_factory=EventBus)
    lifecycle: LifecycleManager = field(default_factory=LifecycleManager)
    registry: ModuleRegistry | None = None
    config: PipelineConfig | None = None
    artifacts: ArtifactStore | None = None

    def __post_init__(self) -> None:
        if self.registry is None:
            self.registry = ModuleRegistry(events=self.events)

    @classmethod
    def create(
        cls,
        base_dir: Path | str = ".",
        output_dir: Path | str | None = None,
        config: PipelineConfig | None = None,
    ) -> EngineContext:
        """Build a context, taking directories from ``config`` when given."""
        if config is not None:
            base = config.modules_dir if base_dir == "." else Path(base_dir)
            out = Path(output_dir) if output_dir is not None else config.output_dir
        else:
            base = Path(base_dir)
            out = Path(output_dir) if output_dir is not None else base / DEFAULT_OUTPUT_DIR
        return cls(base_dir=base, output_dir=out, config=config)

    def module_config(self, name: str) -> dict:
        return self.config.module_config(name) if self.config else {}
