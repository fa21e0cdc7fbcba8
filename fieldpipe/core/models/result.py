"""
Result — the success/partial/failed envelope every operation returns.

A Result is the engine's equivalent of a receipt: modules and core
services never raise across the batch boundary, they hand back a Result
whose status only ever moves towards ``failed``:

    success ──(warning)──▶ partial ──(error)──▶ failed
       └──────────────(error)──────────────────────┘

``failed`` is absorbing. The module-level helpers (``add_error``,
``add_warning`` ...) mirror the methods so call sites can use either
style.
"""

from __future__ import annotations

import json
import time
from datetime import UTC, datetime
from typing import Any, Iterable, Literal, Mapping

from pydantic import BaseModel, Field

from fieldpipe.core.errors import ErrorCategory, InvalidArgument

Status = Literal["success", "partial", "failed"]
Severity = Literal["low", "medium", "high"]

VALID_STATUSES: tuple[str, ...] = ("success", "partial", "failed")
VALID_SEVERITIES: tuple[str, ...] = ("low", "medium", "high")

# success < partial < failed
_RANK: dict[str, int] = {status: rank for rank, status in enumerate(VALID_STATUSES)}

_STATUS_MARKERS = {"success": "✓", "partial": "⚠", "failed": "✗"}


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


def worst_status(statuses: Iterable[str]) -> Status:
    """Highest severity among ``statuses`` (``success`` if empty)."""
    worst = "success"
    for status in statuses:
        if _RANK.get(status, _RANK["failed"]) > _RANK[worst]:
            worst = status if status in _RANK else "failed"
    return worst  # type: ignore[return-value]


class Result(BaseModel):
    """Standardized outcome of one operation.

    ``errors`` and ``warnings`` keep insertion order. Per-entry extras
    (error details, warning severities) live in ``metadata`` at the same
    positional index as their message.
    """

    status: Status = "success"
    operation: str
    module_name: str | None = None

    data: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    quality_score: float | None = None

    timestamp: str = Field(default_factory=_now_iso)
    duration_seconds: float | None = None

    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    input_parameters: dict[str, Any] = Field(default_factory=dict)
    call: str | None = None

    # ── Mutation (monotonic) ─────────────────────────────────────

    def escalate(self, status: str) -> None:
        """Raise the status to ``status`` if it is more severe. Never lowers."""
        if status not in _RANK:
            raise InvalidArgument(
                f"Invalid status '{status}'. Must be one of: {', '.join(VALID_STATUSES)}"
            )
        if _RANK[status] > _RANK[self.status]:
            self.status = status  # type: ignore[assignment]

    def add_error(self, message: str, details: Any = None) -> Result:
        """Record an error; status becomes ``failed`` permanently."""
        self.errors.append(message)
        self.escalate("failed")
        if details is not None:
            self._set_error_slot("error_details", details)
        return self

    def add_categorized_error(
        self,
        message: str,
        category: ErrorCategory | str = ErrorCategory.UNKNOWN,
        details: Any = None,
    ) -> Result:
        """Record an error tagged with an ErrorCategory.

        Raises:
            InvalidArgument: ``category`` is not a known category.
        """
        try:
            category = ErrorCategory(category)
        except ValueError:
            raise InvalidArgument(
                f"Invalid error category '{category}'. Must be one of: "
                f"{', '.join(c.value for c in ErrorCategory)}"
            ) from None
        self.add_error(message, details)
        self._set_error_slot("error_categories", category.value)
        return self

    def _set_error_slot(self, key: str, value: Any) -> None:
        """Store ``value`` at the index of the latest error."""
        slots = self.metadata.setdefault(key, [])
        slots.extend([None] * (len(self.errors) - len(slots)))
        slots[len(self.errors) - 1] = value

    def add_warning(self, message: str, severity: str = "medium") -> Result:
        """Record a warning; ``success`` becomes ``partial``, nothing else moves."""
        if severity not in VALID_SEVERITIES:
            raise InvalidArgument(
                f"Invalid severity '{severity}'. Must be one of: {', '.join(VALID_SEVERITIES)}"
            )
        self.warnings.append(message)
        self.escalate("partial")
        self.metadata.setdefault("warning_severity", []).append(severity)
        return self

    def finalize(self, start_time: float | None = None) -> Result:
        """Set ``duration_seconds`` from a ``time.monotonic()`` start mark."""
        if start_time is not None:
            self.duration_seconds = time.monotonic() - start_time
        return self

    # ── Inspection ───────────────────────────────────────────────

    @property
    def ok(self) -> bool:
        """Whether the operation succeeded without issues."""
        return self.status == "success" and not self.errors

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    def error_category(self, index: int = 0) -> ErrorCategory:
        """Category of the error at ``index``.

        Falls back to a ``category`` key in that error's details, then to
        UNKNOWN (also for an index with no error).
        """
        if not 0 <= index < len(self.errors):
            return ErrorCategory.UNKNOWN
        for key in ("error_categories", "error_details"):
            slots = self.metadata.get(key) or []
            value = slots[index] if index < len(slots) else None
            if isinstance(value, Mapping):
                value = value.get("category")
            if value is not None:
                try:
                    return ErrorCategory(value)
                except ValueError:
                    continue
        return ErrorCategory.UNKNOWN

    def count_issues(self) -> dict[str, int]:
        return {
            "errors": len(self.errors),
            "warnings": len(self.warnings),
            "total": len(self.errors) + len(self.warnings),
        }

    def summary(self, include_errors: bool = True) -> str:
        """One-line human summary, optionally followed by the error list."""
        issues = self.count_issues()["total"]
        line = "[{status}] {op} ({module}, {dur:.2f} sec, {n} issue{s})".format(
            status=self.status,
            op=self.operation,
            module=self.module_name or "?",
            dur=self.duration_seconds or 0.0,
            n=issues,
            s="" if issues == 1 else "s",
        )
        if include_errors and self.errors:
            line += "\nErrors:\n" + "\n".join(f"  - {e}" for e in self.errors)
        return line

    def to_dict(self) -> dict[str, Any]:
        """Serializable view without the (possibly large) data payload."""
        return {
            "status": self.status,
            "operation": self.operation,
            "module_name": self.module_name,
            "quality_score": self.quality_score,
            "duration_seconds": self.duration_seconds,
            "timestamp": self.timestamp,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "issue_count": self.count_issues(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=str)

    def __str__(self) -> str:
        marker = _STATUS_MARKERS.get(self.status, "?")
        return f"{marker} {self.summary(include_errors=False)}"


# ── Functional API ───────────────────────────────────────────────────


def create_result(
    operation: str,
    module_name: str | None = None,
    data: Any = None,
    status: str = "success",
    call: str | None = None,
) -> Result:
    """Create a Result.

    Raises:
        InvalidArgument: ``operation`` is empty or ``status`` is unknown.
    """
    if not operation:
        raise InvalidArgument("argument 'operation' is required")
    if status not in _RANK:
        raise InvalidArgument(
            f"Invalid status '{status}'. Must be one of: {', '.join(VALID_STATUSES)}"
        )
    return Result(
        operation=operation,
        module_name=module_name,
        data=data,
        status=status,  # type: ignore[arg-type]
        call=call,
    )


def add_error(result: Result, message: str, details: Any = None) -> Result:
    return result.add_error(message, details)


def add_categorized_error(
    result: Result,
    message: str,
    category: ErrorCategory | str = ErrorCategory.UNKNOWN,
    details: Any = None,
) -> Result:
    return result.add_categorized_error(message, category, details)


def error_category(result: Result, index: int = 0) -> ErrorCategory:
    return result.error_category(index)


def add_warning(result: Result, message: str, severity: str = "medium") -> Result:
    return result.add_warning(message, severity)


def finalize_result(result: Result, start_time: float | None = None) -> Result:
    return result.finalize(start_time)


def is_successful(result: Any) -> bool:
    """True only for a Result with status ``success`` and no errors."""
    return isinstance(result, Result) and result.ok


def has_errors(result: Any) -> bool:
    return isinstance(result, Result) and bool(result.errors)


def has_warnings(result: Any) -> bool:
    return isinstance(result, Result) and bool(result.warnings)


def format_result_summary(result: Any, include_errors: bool = True) -> str:
    if not isinstance(result, Result):
        return "[Invalid result object]"
    return result.summary(include_errors=include_errors)


def combine_results(results: list[Any], name: str = "batch_operation") -> Result:
    """Aggregate several results into one.

    Status is the worst input status; errors and warnings are merged in
    input order; ``data`` is the list of each input's data. Non-Result
    entries are carried through as data and count as ``failed``.
    An empty input yields a failed result.
    """
    if not results:
        return create_result(name, status="failed")

    statuses = [r.status if isinstance(r, Result) else "failed" for r in results]
    combined = create_result(
        name,
        status=worst_status(statuses),
        data=[r.data if isinstance(r, Result) else r for r in results],
    )
    categories: list[str] = []
    for r in results:
        if isinstance(r, Result):
            combined.errors.extend(r.errors)
            combined.warnings.extend(r.warnings)
            categories.extend(r.error_category(i).value for i in range(len(r.errors)))
    if categories:
        combined.metadata["error_categories"] = categories
    return combined
