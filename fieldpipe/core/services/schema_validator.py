"""
Schema validation — check a caller-supplied config against a module schema.

Validation never raises for bad input: every problem is reported in the
returned ConfigValidation so callers can show all of them at once.

Constraint semantics worth knowing:
    - min/max compare against min()/max() of the whole value, so a list
      passes ``min`` only if its smallest element does.
    - pattern / allowed_values apply to every element.
    - length / non_empty look at the element count (a scalar counts as 1).
    - A type mismatch skips constraint checks for that parameter.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from fieldpipe.core.errors import ConfigurationError, ErrorCategory, ValidationError
from fieldpipe.core.models.schema import (
    Constraints,
    ModuleSchema,
    ParameterSpec,
    coerce_schema,
)

logger = logging.getLogger(__name__)


@dataclass
class ConfigValidation:
    """Result of validating a config against a schema."""

    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    missing_params: list[str] = field(default_factory=list)
    extra_params: list[str] = field(default_factory=list)
    normalized_config: dict[str, Any] = field(default_factory=dict)
    # Parallel to ``errors``
    error_categories: list[ErrorCategory] = field(default_factory=list)

    def fail(
        self, message: str, category: ErrorCategory = ConfigurationError.category
    ) -> None:
        self.valid = False
        self.errors.append(message)
        self.error_categories.append(category)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": self.errors,
            "error_categories": [c.value for c in self.error_categories],
            "warnings": self.warnings,
            "missing_params": self.missing_params,
            "extra_params": self.extra_params,
            "normalized_config": self.normalized_config,
        }


@dataclass
class ParameterCheck:
    """Result of checking one parameter value."""

    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ── Value helpers ────────────────────────────────────────────────────


def _elements(value: Any) -> list[Any]:
    """Flatten a value into its elements (scalars become one element)."""
    if isinstance(value, Mapping):
        return list(value.values())
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)


def _all(value: Any, predicate) -> bool:
    if isinstance(value, Mapping):
        return False
    return all(predicate(x) for x in _elements(value))


def type_matches(value: Any, expected: str) -> bool:
    """Check ``value`` against a declared parameter type.

    Scalar types also accept a list/tuple whose elements all match.
    """
    if expected in ("numeric", "integer"):
        return _all(value, _is_number)
    if expected in ("character", "string"):
        return _all(value, lambda x: isinstance(x, str))
    if expected in ("logical", "boolean"):
        return _all(value, lambda x: isinstance(x, bool))
    if expected == "list":
        return isinstance(value, (list, tuple))
    if expected == "vector":
        return not isinstance(value, Mapping)
    if expected == "mapping":
        return isinstance(value, Mapping)
    return False


def _type_name(value: Any) -> str:
    return type(value).__name__


# ── Constraint checks ────────────────────────────────────────────────


def check_constraints(
    value: Any,
    constraints: Constraints | Mapping[str, Any] | None,
    param_name: str = "unknown",
) -> ParameterCheck:
    """Check ``value`` against min/max/pattern/allowed_values/length/non_empty."""
    result = ParameterCheck()
    if constraints is None:
        return result
    if not isinstance(constraints, Constraints):
        constraints = Constraints.model_validate(dict(constraints))

    elements = _elements(value)
    numeric = bool(elements) and all(_is_number(x) for x in elements)

    if constraints.min is not None and numeric and min(elements) < constraints.min:
        result.valid = False
        result.errors.append(
            f"Parameter '{param_name}': value(s) below minimum {constraints.min:g}"
        )

    if constraints.max is not None and numeric and max(elements) > constraints.max:
        result.valid = False
        result.errors.append(
            f"Parameter '{param_name}': value(s) above maximum {constraints.max:g}"
        )

    if constraints.pattern is not None:
        strings = [x for x in elements if isinstance(x, str)]
        if len(strings) == len(elements):
            regex = re.compile(constraints.pattern)
            if not all(regex.search(s) for s in strings):
                result.valid = False
                result.errors.append(
                    f"Parameter '{param_name}': value(s) don't match pattern "
                    f"'{constraints.pattern}'"
                )

    if constraints.allowed_values is not None:
        allowed = constraints.allowed_values
        invalid: list[Any] = []
        for x in elements:
            if x not in allowed and x not in invalid:
                invalid.append(x)
        if invalid:
            result.valid = False
            result.errors.append(
                "Parameter '{name}': invalid value(s) {bad}. Allowed: {ok}".format(
                    name=param_name,
                    bad=", ".join(str(x) for x in invalid),
                    ok=", ".join(str(x) for x in allowed),
                )
            )

    if constraints.length is not None and len(elements) != constraints.length:
        result.valid = False
        result.errors.append(
            f"Parameter '{param_name}': expected length {constraints.length}, "
            f"got {len(elements)}"
        )

    if constraints.non_empty and len(elements) == 0:
        result.valid = False
        result.errors.append(f"Parameter '{param_name}': must be non-empty")

    return result


def validate_parameter(
    value: Any,
    spec: ParameterSpec | Mapping[str, Any],
    param_name: str = "unknown",
) -> ParameterCheck:
    """Type-check one value, then check its constraints."""
    if not isinstance(spec, ParameterSpec):
        spec = ParameterSpec.model_validate(dict(spec))

    if not type_matches(value, spec.type):
        return ParameterCheck(
            valid=False,
            errors=[
                f"Parameter '{param_name}': expected type '{spec.type}', "
                f"got '{_type_name(value)}'"
            ],
        )
    return check_constraints(value, spec.constraints, param_name)


# ── Config validation ────────────────────────────────────────────────


def validate_config(
    user_config: Mapping[str, Any] | None,
    schema: ModuleSchema | Mapping[str, Any],
    strict: bool = False,
) -> ConfigValidation:
    """Validate ``user_config`` against ``schema``.

    Required-but-absent parameters go to ``missing_params`` and force
    ``valid=False``. Absent optional parameters get their default in
    ``normalized_config``. Unknown keys land in ``extra_params`` as a
    warning, or as an error when ``strict``.
    """
    config = dict(user_config or {})
    result = ConfigValidation(normalized_config=dict(config))

    try:
        module_schema = coerce_schema(schema)
    except ConfigurationError as e:
        result.fail(str(e))
        return result

    specs = module_schema.parameters

    for name, spec in specs.items():
        if name in config:
            continue
        if spec.required:
            result.missing_params.append(name)
            result.fail(f"Required parameter '{name}' not provided")
        elif spec.default is not None:
            result.normalized_config[name] = spec.default

    for name, value in config.items():
        spec = specs.get(name)
        if spec is None:
            result.extra_params.append(name)
            if strict:
                result.fail(f"Unknown parameter: '{name}'")
            else:
                result.warnings.append(f"Unknown parameter: '{name}' (will be ignored)")
            continue

        check = validate_parameter(value, spec, name)
        for message in check.errors:
            result.fail(message, ValidationError.category)
        result.warnings.extend(check.warnings)

    if not result.valid:
        logger.debug(
            "Config for %s invalid: %d error(s)",
            module_schema.module_id,
            len(result.errors),
        )
    return result


# ── Schema utilities ─────────────────────────────────────────────────


def get_required_parameters(schema: ModuleSchema | Mapping[str, Any]) -> list[str]:
    specs = coerce_schema(schema).parameters
    return [name for name, spec in specs.items() if spec.required]


def get_default_config(schema: ModuleSchema | Mapping[str, Any]) -> dict[str, Any]:
    """Parameter name → declared default (None where no default)."""
    specs = coerce_schema(schema).parameters
    return {name: spec.default for name, spec in specs.items()}


def get_parameter_spec(
    schema: ModuleSchema | Mapping[str, Any], param_name: str
) -> ParameterSpec | None:
    return coerce_schema(schema).parameters.get(param_name)


def generate_module_docs(schema: ModuleSchema | Mapping[str, Any]) -> str:
    """Render a schema as Markdown documentation."""
    module_schema = coerce_schema(schema)
    lines = [f"# Module: {module_schema.module_id}"]
    if module_schema.name:
        lines += ["", module_schema.name]
    if module_schema.description:
        lines += ["", module_schema.description]

    if module_schema.parameters:
        lines += ["", "## Parameters"]
        for name, spec in module_schema.parameters.items():
            req = "**required**" if spec.required else "optional"
            lines.append(f"### `{name}` ({spec.type}, {req})")
            if spec.description:
                lines += ["", spec.description]
            if spec.default is not None:
                lines.append(f"- Default: `{spec.default}`")
            c = spec.constraints
            if c.min is not None:
                lines.append(f"- Minimum: {c.min:g}")
            if c.max is not None:
                lines.append(f"- Maximum: {c.max:g}")
            if c.allowed_values:
                lines.append(
                    "- Allowed values: " + ", ".join(str(v) for v in c.allowed_values)
                )
            lines.append("")

    deps = module_schema.dependencies
    if deps:
        lines.append("## Dependencies")
        for kind, names in deps.items():
            if names:
                lines.append(f"{kind}: {', '.join(names)}")

    return "\n".join(lines)
