"""
Error report — aggregate categorized errors across many module results.

    results ──▶ generate_error_report ──▶ ErrorReport
                                            ├── totals (errors, warnings)
                                            ├── modules_with_errors
                                            └── counts by category

``trap_pipeline_errors`` logs a non-empty report and, when asked,
raises PipelineHaltedError.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, Field

from fieldpipe.core.errors import CATEGORY_DESCRIPTIONS, ErrorCategory, PipelineHaltedError
from fieldpipe.core.models.result import Result

logger = logging.getLogger(__name__)

# Errors listed per module in format_error_report before eliding.
_SHOWN_PER_MODULE = 3


class ErrorEntry(BaseModel):
    module: str
    message: str
    category: ErrorCategory
    index: int


class ErrorReport(BaseModel):
    """Errors and warnings collected from a batch of results."""

    total_errors: int = 0
    total_warnings: int = 0
    modules_with_errors: list[str] = Field(default_factory=list)
    entries: list[ErrorEntry] = Field(default_factory=list)
    counts_by_category: dict[str, int] = Field(default_factory=dict)

    @property
    def n_modules_affected(self) -> int:
        return len(self.modules_with_errors)

    @property
    def has_errors(self) -> bool:
        return self.total_errors > 0

    def errors_for(self, module: str) -> list[ErrorEntry]:
        return [e for e in self.entries if e.module == module]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_errors": self.total_errors,
            "total_warnings": self.total_warnings,
            "modules_with_errors": list(self.modules_with_errors),
            "n_modules_affected": self.n_modules_affected,
            "counts_by_category": dict(self.counts_by_category),
        }


def generate_error_report(results: Iterable[Any] | Mapping[str, Any]) -> ErrorReport:
    """Aggregate errors from ``results``.

    Accepts a list of Results or a mapping of name → Result (the key is
    used when a Result has no ``module_name``). Anything that is not a
    Result is skipped.
    """
    if isinstance(results, Mapping):
        items = list(results.items())
    else:
        items = [(None, r) for r in results]

    report = ErrorReport()
    for key, result in items:
        if not isinstance(result, Result):
            continue
        report.total_warnings += len(result.warnings)
        if not result.errors:
            continue

        module = result.module_name or key or "unknown"
        if module not in report.modules_with_errors:
            report.modules_with_errors.append(module)
        for i, message in enumerate(result.errors):
            category = result.error_category(i)
            report.entries.append(
                ErrorEntry(module=module, message=message, category=category, index=i)
            )
            report.counts_by_category[category.value] = (
                report.counts_by_category.get(category.value, 0) + 1
            )

    report.total_errors = len(report.entries)
    return report


def format_error_report(report: ErrorReport) -> str:
    """Multi-line human-readable rendering of a report."""
    lines = [
        "ERROR REPORT",
        f"Total errors: {report.total_errors}",
        f"Total warnings: {report.total_warnings}",
        f"Modules affected: {report.n_modules_affected}",
    ]
    if not report.has_errors:
        return "\n".join(lines)

    lines.append("")
    lines.append("Errors by category:")
    for category, count in report.counts_by_category.items():
        description = CATEGORY_DESCRIPTIONS.get(ErrorCategory(category), "")
        lines.append(f"  {category}: {count}  ({description})")

    lines.append("")
    lines.append("Errors by module:")
    for module in report.modules_with_errors:
        entries = report.errors_for(module)
        lines.append(f"  {module}: {len(entries)} error(s)")
        for entry in entries[:_SHOWN_PER_MODULE]:
            lines.append(f"    - [{entry.category.value}] {entry.message[:60]}")
        if len(entries) > _SHOWN_PER_MODULE:
            lines.append(f"    ... and {len(entries) - _SHOWN_PER_MODULE} more")
    return "\n".join(lines)


def trap_pipeline_errors(
    results: Iterable[Any] | Mapping[str, Any],
    halt_on_error: bool = False,
) -> ErrorReport:
    """Report errors across ``results``; optionally stop the pipeline.

    Raises:
        PipelineHaltedError: ``halt_on_error`` is set and any result
            carries an error.
    """
    report = generate_error_report(results)
    if not report.has_errors:
        return report

    logger.warning(format_error_report(report))
    if halt_on_error:
        raise PipelineHaltedError(
            f"Pipeline halted: {report.total_errors} error(s) "
            f"in {report.n_modules_affected} module(s)",
            report=report,
        )
    return report
