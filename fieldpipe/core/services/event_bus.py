"""
EventBus — in-process pub/sub with an append-only event log.

Modules talk to each other by emitting typed events instead of calling
one another. Every emit is recorded, whether or not anyone listens.

Thread safety model
───────────────────
- ``_lock`` protects ``_next_id``, ``_log`` and ``_subscribers``.
- Callbacks are invoked outside the lock, against a snapshot of the
  subscriber table taken at emit time, so a callback may subscribe,
  unsubscribe or emit without deadlocking.

Delivery is synchronous: ``emit`` returns after every subscriber ran.
A subscriber that raises is logged and reported in the EmitReport; it
never stops the remaining subscribers and never reaches the emitter.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from fieldpipe.core.errors import InvalidArgument
from fieldpipe.core.models.event import (
    PIPELINE_COMPLETE,
    PIPELINE_ERROR,
    PIPELINE_START,
    EventRecord,
)

logger = logging.getLogger(__name__)

Callback = Callable[[EventRecord], Any]

_PIPELINE_PHASES = {
    "start": PIPELINE_START,
    "complete": PIPELINE_COMPLETE,
    "error": PIPELINE_ERROR,
}


@dataclass
class EmitReport:
    """What happened during one emit."""

    record: EventRecord
    notified: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def listener_count(self) -> int:
        return len(self.notified)


class EventBus:
    """Subscriber table plus append-only event log.

    Subscriptions are keyed by (event type, listener name); subscribing
    the same listener name again replaces its callback in place, keeping
    its original position in the delivery order.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._next_id: int = 1
        self._log: list[EventRecord] = []
        self._subscribers: dict[str, dict[str, Callback]] = {}

    # ── Subscribing ─────────────────────────────────────────────

    def subscribe(
        self,
        event_type: str,
        callback: Callback,
        listener_name: str = "anonymous",
    ) -> None:
        """Register ``callback`` for ``event_type`` under ``listener_name``.

        Raises:
            InvalidArgument: ``callback`` is not callable.
        """
        if not callable(callback):
            raise InvalidArgument(
                f"callback for '{event_type}' must be callable, "
                f"got {type(callback).__name__}"
            )
        with self._lock:
            listeners = self._subscribers.setdefault(event_type, {})
            replaced = listener_name in listeners
            listeners[listener_name] = callback

        if replaced:
            logger.debug("Replaced listener %s on %s", listener_name, event_type)
        else:
            logger.debug("Subscribed %s to %s", listener_name, event_type)

    def unsubscribe(self, event_type: str, listener_name: str) -> bool:
        """Remove a listener. Returns False if it was not subscribed."""
        with self._lock:
            listeners = self._subscribers.get(event_type)
            if not listeners or listener_name not in listeners:
                return False
            del listeners[listener_name]
            if not listeners:
                del self._subscribers[event_type]
        logger.debug("Unsubscribed %s from %s", listener_name, event_type)
        return True

    def list_subscriptions(self) -> dict[str, list[str]]:
        """Event type → listener names, in delivery order."""
        with self._lock:
            return {t: list(names) for t, names in self._subscribers.items()}

    # ── Emitting ────────────────────────────────────────────────

    def emit(
        self,
        event_type: str,
        payload: Any = None,
        source: str = "unknown",
    ) -> EmitReport:
        """Record an event and deliver it to current subscribers."""
        with self._lock:
            record = EventRecord(
                id=self._next_id,
                type=event_type,
                source=source,
                data=payload,
            )
            self._next_id += 1
            self._log.append(record)
            listeners = list(self._subscribers.get(event_type, {}).items())

        report = EmitReport(record=record)
        for name, callback in listeners:
            try:
                callback(record)
            except Exception as e:
                msg = f"Listener '{name}' failed on '{event_type}': {e}"
                logger.warning(msg)
                report.warnings.append(msg)
            else:
                report.notified.append(name)

        logger.debug(
            "event %s #%d from %s → %d listener(s)",
            event_type, record.id, source, len(report.notified),
        )
        return report

    def emit_async(
        self,
        event_type: str,
        payload: Any = None,
        source: str = "unknown",
    ) -> EmitReport:
        """Same as ``emit``. Delivery is synchronous."""
        return self.emit(event_type, payload, source)

    def broadcast_pipeline_event(
        self,
        phase: str,
        pipeline_name: str = "pipeline",
        data: dict[str, Any] | None = None,
    ) -> EmitReport:
        """Emit ``pipeline:start``, ``pipeline:complete`` or ``pipeline:error``."""
        event_type = _PIPELINE_PHASES.get(phase)
        if event_type is None:
            raise InvalidArgument(
                f"Unknown pipeline phase '{phase}'. "
                f"Expected one of: {', '.join(_PIPELINE_PHASES)}"
            )
        payload = {"pipeline": pipeline_name, **(data or {})}
        return self.emit(event_type, payload, source=pipeline_name)

    # ── Event log ───────────────────────────────────────────────

    def get_event_log(
        self,
        event_type: str | None = None,
        source: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[EventRecord]:
        """Filtered copy of the log, oldest first.

        ``limit`` keeps the most recent N matches.
        """
        with self._lock:
            events = list(self._log)

        if event_type is not None:
            events = [e for e in events if e.type == event_type]
        if source is not None:
            events = [e for e in events if e.source == source]
        if since is not None:
            events = [e for e in events if e.timestamp >= since]
        if limit is not None:
            if limit < 0:
                raise InvalidArgument(f"limit must be >= 0, got {limit}")
            events = events[-limit:] if limit else []
        return events

    def clear_events(self) -> int:
        """Empty the log. Ids keep increasing afterwards."""
        with self._lock:
            count = len(self._log)
            self._log.clear()
        logger.debug("Cleared %d event(s)", count)
        return count

    def statistics(self) -> dict[str, Any]:
        with self._lock:
            events = list(self._log)

        stats: dict[str, Any] = {
            "total_events": len(events),
            "by_type": dict(Counter(e.type for e in events)),
            "by_source": dict(Counter(e.source for e in events)),
            "first_event": None,
            "last_event": None,
        }
        if events:
            stats["first_event"] = events[0].timestamp.isoformat()
            stats["last_event"] = events[-1].timestamp.isoformat()
        return stats
