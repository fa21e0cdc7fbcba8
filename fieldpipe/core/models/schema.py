"""
Parameter schemas modules declare for their configuration.

A module exposes ``get_module_schema()`` returning either a ModuleSchema
or a plain mapping of the same shape:

    {
        "module_id": "ridgeline",
        "parameters": {
            "dpi": {"type": "numeric", "default": 300,
                    "constraints": {"min": 72, "max": 1200}},
            "palette": {"type": "character", "required": True,
                        "constraints": {"allowed_values": ["viridis", "plasma"]}},
        },
    }
"""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

from fieldpipe.core.errors import ConfigurationError

PARAMETER_TYPES = (
    "numeric",
    "integer",
    "character",
    "string",
    "logical",
    "boolean",
    "list",
    "vector",
    "mapping",
)


class Constraints(BaseModel):
    """Value constraints. Unset fields are not checked."""

    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    allowed_values: list[Any] | None = None
    length: int | None = None
    non_empty: bool = False


class ParameterSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = "vector"
    required: bool = False
    default: Any = None
    description: str = ""
    constraints: Constraints = Field(default_factory=Constraints)


class ModuleSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    module_id: str = "unknown_module"
    module_version: str = "1.0.0"
    module_type: str = ""
    name: str = ""
    description: str = ""
    parameters: dict[str, ParameterSpec] = Field(default_factory=dict)
    dependencies: dict[str, list[str]] = Field(default_factory=dict)


def coerce_schema(schema: Any) -> ModuleSchema:
    """Normalize the accepted schema shapes into a ModuleSchema.

    Accepts a ModuleSchema, a mapping with a ``parameters`` key, or a bare
    mapping of parameter name → spec.

    Raises:
        ConfigurationError: The schema is not a mapping or a spec is malformed.
    """
    if isinstance(schema, ModuleSchema):
        return schema
    if not isinstance(schema, Mapping):
        raise ConfigurationError(
            f"module schema must be a mapping, got {type(schema).__name__}"
        )
    raw: dict[str, Any] = dict(schema)
    if "parameters" not in raw and all(isinstance(v, Mapping) for v in raw.values()):
        raw = {"parameters": raw}
    if raw.get("parameters") is None:
        raw["parameters"] = {}
    if not isinstance(raw["parameters"], Mapping):
        raise ConfigurationError("schema 'parameters' must be a mapping")
    try:
        return ModuleSchema.model_validate(raw)
    except Exception as e:
        raise ConfigurationError(f"Invalid module schema: {e}") from e
