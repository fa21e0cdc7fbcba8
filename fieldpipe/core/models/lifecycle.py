"""
LifecycleState — per-module state kept between runs.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class LifecycleState(BaseModel):
    """Created by ``init``, replaced by ``reset``, read by ``cleanup``.

    Never expires on its own. ``error`` is set when the init hook raised.
    """

    module_name: str
    initialized: bool = False
    state: dict[str, Any] = Field(default_factory=dict)
    init_time: str = Field(default_factory=_now_iso)
    error: str | None = None
