"""
Error taxonomy for the orchestration core.

Exceptions are raised only at construction boundaries (bad arguments,
unsatisfied plugin contracts). Everywhere else failures travel inside
Result objects, tagged with an ErrorCategory so batch reports can group
them.
"""

from __future__ import annotations

import re
from enum import Enum


class ErrorCategory(str, Enum):
    """Failure classes shared by results, reports and log lines."""

    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    DISCOVERY = "discovery"
    LOAD = "load"
    INTERFACE = "interface"
    DEPENDENCY = "dependency"
    RUNTIME = "runtime"
    FILE_NOT_FOUND = "file_not_found"
    PERMISSION = "permission"
    UNKNOWN = "unknown"


CATEGORY_DESCRIPTIONS: dict[ErrorCategory, str] = {
    ErrorCategory.CONFIGURATION: "Configuration parameters invalid or missing",
    ErrorCategory.VALIDATION: "Value does not match its declared type or constraints",
    ErrorCategory.DISCOVERY: "No module found at the expected location",
    ErrorCategory.LOAD: "Module entry file missing or failed to execute",
    ErrorCategory.INTERFACE: "Module does not implement a known capability contract",
    ErrorCategory.DEPENDENCY: "Module dependency cycle or unresolved reference",
    ErrorCategory.RUNTIME: "Module raised while being invoked",
    ErrorCategory.FILE_NOT_FOUND: "Required file missing",
    ErrorCategory.PERMISSION: "File permission or access denied",
    ErrorCategory.UNKNOWN: "Unexpected or unclassified error",
}


class FieldpipeError(Exception):
    """Base class for all orchestration errors."""

    category: ErrorCategory = ErrorCategory.UNKNOWN


class InvalidArgument(FieldpipeError, ValueError):
    """Raised when a caller passes an argument outside its domain."""

    category = ErrorCategory.VALIDATION


class ConfigurationError(FieldpipeError):
    """Schema or pipeline configuration missing or malformed."""

    category = ErrorCategory.CONFIGURATION


class ValidationError(FieldpipeError):
    """A value failed its type or constraint check."""

    category = ErrorCategory.VALIDATION


class DiscoveryError(FieldpipeError):
    """No module could be found."""

    category = ErrorCategory.DISCOVERY


class LoadError(FieldpipeError):
    """Entry file missing, or executing it failed."""

    category = ErrorCategory.LOAD


class InterfaceError(FieldpipeError):
    """A loaded module does not satisfy any capability set.

    ``missing`` lists the capability names that were not found.
    """

    category = ErrorCategory.INTERFACE

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = list(missing or [])


class DependencyError(FieldpipeError):
    """Dependency cycle detected or a requirement cannot be resolved."""

    category = ErrorCategory.DEPENDENCY


class ModuleRuntimeError(FieldpipeError):
    """A module raised while one of its capabilities was invoked."""

    category = ErrorCategory.RUNTIME


class PipelineHaltedError(FieldpipeError):
    """Raised when a batch of results carries errors and halting was asked.

    ``report`` is the ErrorReport that triggered the halt.
    """

    category = ErrorCategory.RUNTIME

    def __init__(self, message: str, report: object = None):
        super().__init__(message)
        self.report = report


# Ordered: first matching pattern wins.
_CATEGORY_PATTERNS: list[tuple[re.Pattern[str], ErrorCategory]] = [
    (re.compile(r"cycle|circular|depends on unknown|unresolved"), ErrorCategory.DEPENDENCY),
    (re.compile(r"config|parameter|argument|schema"), ErrorCategory.CONFIGURATION),
    (re.compile(r"missing required (function|capabilit)|interface"), ErrorCategory.INTERFACE),
    (re.compile(r"(no such|not found).*(module|plugin)|(module|plugin).*not found"), ErrorCategory.DISCOVERY),
    (re.compile(r"(no such|not found).*(file|path|directory)|(file|path|directory).*not found"), ErrorCategory.FILE_NOT_FOUND),
    (re.compile(r"permission|denied|access"), ErrorCategory.PERMISSION),
    (re.compile(r"failed to load|entry file|import"), ErrorCategory.LOAD),
    (re.compile(r"type|constraint|minimum|maximum|pattern|allowed"), ErrorCategory.VALIDATION),
]


def categorize_error(message: str) -> ErrorCategory:
    """Classify a free-text error message into the taxonomy."""
    lowered = (message or "").lower()
    for pattern, category in _CATEGORY_PATTERNS:
        if pattern.search(lowered):
            return category
    return ErrorCategory.UNKNOWN


def category_of(exc: BaseException) -> ErrorCategory:
    """Category for an exception: its declared one, else by message."""
    if isinstance(exc, FieldpipeError):
        return exc.category
    if isinstance(exc, FileNotFoundError):
        return ErrorCategory.FILE_NOT_FOUND
    if isinstance(exc, PermissionError):
        return ErrorCategory.PERMISSION
    found = categorize_error(str(exc))
    return ErrorCategory.RUNTIME if found is ErrorCategory.UNKNOWN else found
