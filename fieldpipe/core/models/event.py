"""
Event records and the standard event types modules emit.

Event types follow ``<domain>:<action>``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

# Data loading
DATA_LOAD_START = "data_load:start"
DATA_LOAD_COMPLETE = "data_load:complete"
DATA_QUALITY_CHECK = "data_quality:check"

# Processing
PROCESS_START = "process:start"
PROCESS_COMPLETE = "process:complete"

# Plots
PLOT_GENERATE_START = "plot:generate_start"
PLOT_GENERATED = "plot:generated"
PLOT_FAILED = "plot:failed"

# Reports
REPORT_START = "report:start"
REPORT_COMPLETE = "report:complete"

# Pipeline
PIPELINE_START = "pipeline:start"
PIPELINE_COMPLETE = "pipeline:complete"
PIPELINE_ERROR = "pipeline:error"

# Module lifecycle
MODULE_REGISTERED = "module:registered"
MODULE_REJECTED = "module:rejected"


def _now() -> datetime:
    return datetime.now(UTC)


class EventRecord(BaseModel):
    """One emitted event, as kept in the append-only log."""

    id: int
    type: str
    source: str = "unknown"
    timestamp: datetime = Field(default_factory=_now)
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }
